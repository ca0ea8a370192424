"""
Linear plant models for state-space control.

A StateSpaceModel holds the A, B, C, D matrices of a plant, continuous or
discretized. This module also converts between the two, discretizes noise
covariances for the Kalman filter, and builds plants from the kV/kA
feedforward gains a mechanism is characterized with.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np
from numpy.typing import ArrayLike
from scipy.linalg import expm

from .errors import ConfigurationError


def _as_matrix(value: ArrayLike) -> np.ndarray:
    return np.atleast_2d(np.asarray(value, dtype=np.float64))


@dataclass
class StateSpaceModel:
    """
    x' = A x + B u,  y = C x + D u

    The same class holds a discretized plant (x[k+1] = A x[k] + B u[k]);
    which one a model is depends on where it came from.

    Shapes: A (n, n), B (n, m), C (p, n), D (p, m). D defaults to zeros.
    Any inconsistency raises ConfigurationError.

    Example:
        plant = identify_velocity_system(0.023, 0.001)   # flywheel
        plant_d = plant.to_discrete(0.02)
    """

    A: np.ndarray
    B: np.ndarray
    C: np.ndarray
    D: Optional[np.ndarray] = None

    def __post_init__(self) -> None:
        self.A, self.B, self.C = _as_matrix(self.A), _as_matrix(self.B), _as_matrix(self.C)
        if self.D is None:
            self.D = np.zeros((self.C.shape[0], self.B.shape[1]))
        else:
            self.D = _as_matrix(self.D)

        n, m, p = self.num_states, self.num_inputs, self.num_outputs
        expected = {"A": (n, n), "B": (n, m), "C": (p, n), "D": (p, m)}
        for name, shape in expected.items():
            actual = getattr(self, name).shape
            if actual != shape:
                raise ConfigurationError(
                    f"{name} is {actual[0]}x{actual[1]}, expected {shape[0]}x{shape[1]} "
                    f"for n={n} states, m={m} inputs, p={p} outputs"
                )

    @property
    def num_states(self) -> int:
        return self.A.shape[0]

    @property
    def num_inputs(self) -> int:
        return self.B.shape[1]

    @property
    def num_outputs(self) -> int:
        return self.C.shape[0]

    @property
    def poles(self) -> np.ndarray:
        return np.linalg.eigvals(self.A)

    @property
    def is_stable(self) -> bool:
        """All poles in the open left half plane (continuous-time reading of A)."""
        return bool(np.all(self.poles.real < 0))

    @property
    def is_discrete_stable(self) -> bool:
        """All poles strictly inside the unit circle (discrete-time reading of A)."""
        return bool(np.all(np.abs(self.poles) < 1))

    @property
    def controllability_matrix(self) -> np.ndarray:
        """[B, AB, ..., A^(n-1) B]"""
        blocks = [self.B]
        for _ in range(self.num_states - 1):
            blocks.append(self.A @ blocks[-1])
        return np.hstack(blocks)

    @property
    def observability_matrix(self) -> np.ndarray:
        """[C; CA; ...; C A^(n-1)]"""
        blocks = [self.C]
        for _ in range(self.num_states - 1):
            blocks.append(blocks[-1] @ self.A)
        return np.vstack(blocks)

    def is_controllable(self, tol: float = 1e-10) -> bool:
        return int(np.linalg.matrix_rank(self.controllability_matrix, tol=tol)) == self.num_states

    def is_observable(self, tol: float = 1e-10) -> bool:
        return int(np.linalg.matrix_rank(self.observability_matrix, tol=tol)) == self.num_states

    def to_discrete(self, dt: float, method: str = "zoh") -> "StateSpaceModel":
        return discretize(self, dt, method)

    def __repr__(self) -> str:
        return f"StateSpaceModel(n={self.num_states}, m={self.num_inputs}, p={self.num_outputs})"


def _zoh(A: np.ndarray, B: np.ndarray, dt: float) -> Tuple[np.ndarray, np.ndarray]:
    # expm([[A, B], [0, 0]] dt) = [[Ad, Bd], [0, I]]
    n, m = B.shape
    block = np.block([[A, B], [np.zeros((m, n + m))]])
    phi = expm(block * dt)
    return phi[:n, :n], phi[:n, n:]


def _bilinear(A: np.ndarray, B: np.ndarray, dt: float) -> Tuple[np.ndarray, np.ndarray]:
    I = np.eye(A.shape[0])
    lhs = I - A * (dt / 2.0)
    Ad = np.linalg.solve(lhs, I + A * (dt / 2.0))
    Bd = np.linalg.solve(lhs, B) * dt
    return Ad, Bd


def _euler(A: np.ndarray, B: np.ndarray, dt: float) -> Tuple[np.ndarray, np.ndarray]:
    return np.eye(A.shape[0]) + A * dt, B * dt


_DISCRETIZERS = {
    "zoh": _zoh,
    "bilinear": _bilinear,
    "euler": _euler,
}


def discretize(
    sys: StateSpaceModel,
    dt: float,
    method: str = "zoh",
) -> StateSpaceModel:
    """
    Discretize a continuous plant for a fixed period.

    Args:
        sys: Continuous-time model
        dt: Period in seconds, must be positive
        method: "zoh" (exact zero-order hold, the default), "bilinear" or "euler"

    Returns:
        Model with the discrete Ad, Bd and the original C, D

    Raises:
        ConfigurationError: dt <= 0, or the result is not finite
        ValueError: unknown method
    """
    if dt <= 0:
        raise ConfigurationError(f"dt must be positive, got {dt}")
    try:
        discretizer = _DISCRETIZERS[method]
    except KeyError:
        raise ValueError(f"Unknown discretization method: {method}") from None

    Ad, Bd = discretizer(sys.A, sys.B, dt)
    if not (np.all(np.isfinite(Ad)) and np.all(np.isfinite(Bd))):
        raise ConfigurationError(f"Discretization at dt={dt} produced non-finite matrices")

    return StateSpaceModel(Ad, Bd, sys.C.copy(), sys.D.copy())


def discretize_aq(
    A: ArrayLike,
    Q: ArrayLike,
    dt: float,
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Discretize the state matrix and continuous process noise covariance together.

    Uses Van Loan's method: exponentiate [[-A, Q], [0, A']]*dt, then
    Ad = (lower-right block)' and Qd = Ad @ (upper-right block).

    Returns:
        (Ad, Qd) with Qd symmetrized
    """
    A, Q = _as_matrix(A), _as_matrix(Q)
    n = A.shape[0]

    M = np.block([[-A, Q], [np.zeros((n, n)), A.T]])

    phi = expm(M * dt)
    Ad = phi[n:, n:].T
    Qd = Ad @ phi[:n, n:]

    return Ad, (Qd + Qd.T) / 2.0


def discretize_r(R: ArrayLike, dt: float) -> np.ndarray:
    """Discretize continuous measurement noise covariance: Rd = R / dt."""
    return _as_matrix(R) / dt


def as_vector(value: ArrayLike, size: int, name: str) -> np.ndarray:
    """Coerce a scalar, list or column into a 1-D float vector of the given size."""
    vec = np.asarray(value, dtype=np.float64).reshape(-1)
    if vec.size != size:
        raise ValueError(f"{name} must have {size} elements, got {vec.size}")
    return vec


def _check_feedforward_gains(kv: float, ka: float) -> None:
    if ka <= 0:
        raise ConfigurationError(f"ka must be greater than zero, got {ka}")
    if kv < 0:
        raise ConfigurationError(f"kv must be non-negative, got {kv}")


def identify_velocity_system(kv: float, ka: float) -> StateSpaceModel:
    """
    Velocity plant from feedforward gains.

    States: [velocity]. Inputs: [voltage]. Outputs: [velocity].

    Args:
        kv: Volts per unit velocity
        ka: Volts per unit acceleration

    Raises:
        ConfigurationError: ka <= 0 or kv < 0
    """
    _check_feedforward_gains(kv, ka)
    return StateSpaceModel(
        A=[[-kv / ka]],
        B=[[1.0 / ka]],
        C=[[1.0]],
        D=[[0.0]],
    )


def identify_position_system(kv: float, ka: float) -> StateSpaceModel:
    """
    Position plant from feedforward gains.

    States: [position, velocity]. Inputs: [voltage]. Outputs: [position].
    """
    _check_feedforward_gains(kv, ka)
    return StateSpaceModel(
        A=[[0.0, 1.0], [0.0, -kv / ka]],
        B=[[0.0], [1.0 / ka]],
        C=[[1.0, 0.0]],
        D=[[0.0]],
    )
