"""
Linear-quadratic regulator for a discretized linear plant.
"""

from __future__ import annotations

import logging
from typing import Sequence, Union

import numpy as np
from numpy.typing import ArrayLike
from scipy.linalg import fractional_matrix_power

from .design import (
    check_stability,
    is_positive_definite,
    is_positive_semidefinite,
    lqr_discrete,
    make_cost_matrix,
)
from .errors import ConfigurationError
from .state_space import StateSpaceModel, as_vector, discretize

logger = logging.getLogger(__name__)


class LinearQuadraticRegulator:
    """
    Fixed-gain LQR: u = K (r - x).

    The gain is synthesized once from the plant discretized at dt. Any
    configuration that cannot produce a stabilizing gain raises
    ConfigurationError here rather than failing later inside a control cycle.

    Example:
        plant = identify_velocity_system(0.023, 0.001)
        # 8 rad/s velocity error tolerance, 12 V control effort tolerance
        lqr = LinearQuadraticRegulator.from_tolerances(plant, [8.0], [12.0], 0.02)
        u = lqr.calculate(xhat, r)
    """

    def __init__(
        self,
        plant: StateSpaceModel,
        Q: ArrayLike,
        R: ArrayLike,
        dt: float,
    ) -> None:
        n, m = plant.num_states, plant.num_inputs
        Q = np.atleast_2d(np.asarray(Q, dtype=np.float64))
        R = np.atleast_2d(np.asarray(R, dtype=np.float64))

        if Q.shape != (n, n):
            raise ConfigurationError(f"State cost Q must be {n}x{n}, got {Q.shape}")
        if R.shape != (m, m):
            raise ConfigurationError(f"Input cost R must be {m}x{m}, got {R.shape}")
        if not is_positive_semidefinite(Q):
            raise ConfigurationError("State cost Q must be symmetric positive semi-definite")
        if not is_positive_definite(R):
            raise ConfigurationError("Input cost R must be symmetric positive definite")

        self.plant = plant
        self.dt = float(dt)
        self._discrete = discretize(plant, self.dt)

        K, _, _ = lqr_discrete(self._discrete.A, self._discrete.B, Q, R)
        self._check_closed_loop(K)
        self._K = K

        logger.debug("LQR gain K=%s", K.tolist())

    @classmethod
    def from_tolerances(
        cls,
        plant: StateSpaceModel,
        qelms: Union[float, Sequence[float]],
        relms: Union[float, Sequence[float]],
        dt: float,
    ) -> "LinearQuadraticRegulator":
        """
        Build from per-state error tolerances and per-input effort tolerances.

        Decrease qelms to penalize state excursion more (more aggressive);
        decrease relms to penalize control effort more (less aggressive).
        """
        return cls(plant, make_cost_matrix(qelms), make_cost_matrix(relms), dt)

    def _check_closed_loop(self, K: np.ndarray) -> None:
        stable, poles = check_stability(self._discrete.A, self._discrete.B, K, continuous=False)
        if not stable:
            raise ConfigurationError(
                f"LQR gain does not stabilize the plant, closed-loop poles {poles.tolist()}"
            )

    @property
    def K(self) -> np.ndarray:
        return self._K.copy()

    @property
    def num_states(self) -> int:
        return self.plant.num_states

    @property
    def num_inputs(self) -> int:
        return self.plant.num_inputs

    @property
    def closed_loop_poles(self) -> np.ndarray:
        """Eigenvalues of Ad - Bd K."""
        return np.linalg.eigvals(self._discrete.A - self._discrete.B @ self._K)

    def calculate(self, x: ArrayLike, r: ArrayLike) -> np.ndarray:
        """Feedback input K (r - x). Does not mutate the controller."""
        x = as_vector(x, self.num_states, "x")
        r = as_vector(r, self.num_states, "r")
        return self._K @ (r - x)

    def latency_compensate(self, dt: float, input_delay: float) -> None:
        """
        Adjust the gain for an actuator that applies inputs input_delay seconds late.

        K <- K (Ad - Bd K)^(input_delay / dt)
        """
        if input_delay < 0:
            raise ValueError(f"input_delay must be non-negative, got {input_delay}")
        if input_delay == 0:
            return

        sys_d = discretize(self.plant, dt)
        A_cl = sys_d.A - sys_d.B @ self._K
        K = np.real(self._K @ fractional_matrix_power(A_cl, input_delay / dt))

        logger.info("Latency-compensated LQR gain for %.4f s delay: %s", input_delay, K.tolist())
        self._K = K
