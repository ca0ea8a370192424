"""
Linear Kalman filter used as the state observer of a LinearSystemLoop.

The filter fuses the plant model (driven by the input that is actually applied)
with sensor measurements, weighted by the process and measurement noise
covariances.

Theory:
    Predict:
        x_hat <- Ad x_hat + Bd u
        P     <- Ad P Ad' + Qd
    Correct:
        S     = C P C' + Rd
        K     = P C' S^-1
        x_hat <- x_hat + K (y - C x_hat - D u)
        P     <- (I - K C) P

The covariance and gain are recomputed on every call.
"""

from __future__ import annotations

import logging
from typing import Optional, Sequence, Union

import numpy as np
from numpy.typing import ArrayLike

from .design import (
    is_positive_definite,
    is_positive_semidefinite,
    lqe_discrete,
    make_cov_matrix,
)
from .errors import ConfigurationError
from .state_space import StateSpaceModel, as_vector, discretize, discretize_aq, discretize_r

logger = logging.getLogger(__name__)


class KalmanFilter:
    """
    Kalman filter for a linear plant with continuous-time noise intensities.

    Attributes:
        plant: Continuous-time StateSpaceModel
        Q: Continuous process noise covariance (n, n)
        R: Continuous measurement noise covariance (p, p)
        dt: Nominal discretization period (s)
        xhat: Current state estimate (n,)
        P: Current error covariance (n, n)

    Example:
        >>> plant = identify_velocity_system(0.023, 0.001)
        >>> observer = KalmanFilter.from_std_devs(plant, [3.0], [0.01], 0.02)
        >>> observer.reset([0.0])
        >>> observer.correct([y_measured])
        >>> observer.predict([u_applied])
    """

    def __init__(
        self,
        plant: StateSpaceModel,
        Q: ArrayLike,
        R: ArrayLike,
        dt: float,
        initial_covariance: Optional[ArrayLike] = None,
    ) -> None:
        if dt <= 0:
            raise ConfigurationError(f"dt must be positive, got {dt}")

        n, m, p = plant.num_states, plant.num_inputs, plant.num_outputs
        Q = np.atleast_2d(np.asarray(Q, dtype=np.float64))
        R = np.atleast_2d(np.asarray(R, dtype=np.float64))

        if Q.shape != (n, n):
            raise ConfigurationError(f"Q must be {n}x{n}, got {Q.shape}")
        if R.shape != (p, p):
            raise ConfigurationError(f"R must be {p}x{p}, got {R.shape}")
        if not is_positive_semidefinite(Q):
            raise ConfigurationError("Process noise covariance Q must be symmetric positive semi-definite")
        if not is_positive_definite(R):
            raise ConfigurationError("Measurement noise covariance R must be symmetric positive definite")
        if np.linalg.matrix_rank(plant.C) < p:
            raise ConfigurationError("Output matrix C must have full row rank")

        self.plant = plant
        self.Q = Q
        self.R = R
        self.dt = float(dt)

        self._discrete = discretize(plant, self.dt)
        _, self._Qd = discretize_aq(plant.A, Q, self.dt)
        self._Rd = discretize_r(R, self.dt)

        if initial_covariance is None:
            _, P0, _ = lqe_discrete(self._discrete.A, plant.C, self._Qd, self._Rd)
        else:
            P0 = np.atleast_2d(np.asarray(initial_covariance, dtype=np.float64))
            if P0.shape != (n, n):
                raise ConfigurationError(f"Initial covariance must be {n}x{n}, got {P0.shape}")
            if not is_positive_semidefinite(P0):
                raise ConfigurationError("Initial covariance must be symmetric positive semi-definite")

        self._P0 = P0.copy()
        self.P = P0.copy()
        self.xhat = np.zeros(n)
        self.gain = np.zeros((n, p))
        self._last_u = np.zeros(m)

    @classmethod
    def from_std_devs(
        cls,
        plant: StateSpaceModel,
        state_std_devs: Union[float, Sequence[float]],
        measurement_std_devs: Union[float, Sequence[float]],
        dt: float,
        initial_covariance: Optional[ArrayLike] = None,
    ) -> "KalmanFilter":
        """
        Build from how much we trust the model (state_std_devs) and the
        sensors (measurement_std_devs).
        """
        return cls(
            plant,
            make_cov_matrix(state_std_devs),
            make_cov_matrix(measurement_std_devs),
            dt,
            initial_covariance=initial_covariance,
        )

    @property
    def num_states(self) -> int:
        return self.plant.num_states

    @property
    def num_inputs(self) -> int:
        return self.plant.num_inputs

    @property
    def num_outputs(self) -> int:
        return self.plant.num_outputs

    @property
    def initial_covariance(self) -> np.ndarray:
        return self._P0.copy()

    def set_xhat(self, xhat: ArrayLike) -> None:
        self.xhat = as_vector(xhat, self.num_states, "xhat")

    def reset(self, x0: Optional[ArrayLike] = None) -> None:
        """Restart the estimate at x0 (zeros when omitted) with the initial covariance."""
        if x0 is None:
            self.xhat = np.zeros(self.num_states)
        else:
            self.xhat = as_vector(x0, self.num_states, "x0")
        self.P = self._P0.copy()
        self._last_u = np.zeros(self.num_inputs)

    def predict(self, u: ArrayLike, dt: Optional[float] = None) -> np.ndarray:
        """
        Propagate the estimate with the input that is (or was) applied.

        A dt other than the nominal period re-discretizes the model and the
        process noise for this step only.
        """
        u = as_vector(u, self.num_inputs, "u")

        if dt is None or abs(dt - self.dt) < 1e-12:
            Ad, Bd, Qd = self._discrete.A, self._discrete.B, self._Qd
        else:
            if dt <= 0:
                raise ValueError(f"dt must be positive, got {dt}")
            logger.debug("Re-discretizing observer for dt=%.6f (nominal %.6f)", dt, self.dt)
            sys_d = discretize(self.plant, dt)
            _, Qd = discretize_aq(self.plant.A, self.Q, dt)
            Ad, Bd = sys_d.A, sys_d.B

        self.xhat = Ad @ self.xhat + Bd @ u
        self.P = Ad @ self.P @ Ad.T + Qd
        self._last_u = u
        return self.xhat.copy()

    def correct(self, y: ArrayLike, u: Optional[ArrayLike] = None) -> np.ndarray:
        """
        Fuse a measurement into the estimate.

        Args:
            y: Measurement (p,)
            u: Input for the feedthrough term; defaults to the last input
                passed to predict()

        Raises:
            numpy.linalg.LinAlgError: innovation covariance is singular
        """
        y = as_vector(y, self.num_outputs, "y")
        u = self._last_u if u is None else as_vector(u, self.num_inputs, "u")

        C, D = self.plant.C, self.plant.D
        S = C @ self.P @ C.T + self._Rd

        # K = P C' S^-1, solved as S' K' = C P'
        K = np.linalg.solve(S.T, C @ self.P.T).T

        self.xhat = self.xhat + K @ (y - C @ self.xhat - D @ u)
        self.P = (np.eye(self.num_states) - K @ C) @ self.P
        self.gain = K
        return self.xhat.copy()
