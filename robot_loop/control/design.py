"""
Gain synthesis and the checks that guard it.

Everything here works on discrete-time matrices: discretize the plant first.
Failures that mean "this configuration can never give a working loop" raise
ConfigurationError.
"""

from __future__ import annotations

from typing import Sequence, Tuple, Union

import numpy as np
from numpy.typing import ArrayLike
from scipy.linalg import solve_discrete_are

from .errors import ConfigurationError


def _mat(value: ArrayLike) -> np.ndarray:
    return np.atleast_2d(np.asarray(value, dtype=np.float64))


def _solve_dare(A: np.ndarray, B: np.ndarray, Q: np.ndarray, R: np.ndarray) -> np.ndarray:
    try:
        return solve_discrete_are(A, B, Q, R)
    except (np.linalg.LinAlgError, ValueError) as e:
        raise ConfigurationError(f"Discrete Riccati equation has no stabilizing solution: {e}") from e


def lqr_discrete(
    A: ArrayLike,
    B: ArrayLike,
    Q: ArrayLike,
    R: ArrayLike,
) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """
    Infinite-horizon discrete LQR.

    Minimizes sum(x' Q x + u' R u) for x[k+1] = A x[k] + B u[k] under the
    control law u = K (r - x).

    Args:
        A, B: Discretized plant (n x n, n x m)
        Q: State weight (n x n), positive semi-definite
        R: Input weight (m x m), positive definite

    Returns:
        (K, S, E): gain (m x n), Riccati solution, eigenvalues of A - B K

    Raises:
        ConfigurationError: (A, B) not stabilizable, or the Riccati solve fails

    Example:
        sys_d = plant.to_discrete(0.02)
        K, S, E = lqr_discrete(sys_d.A, sys_d.B, make_cost_matrix([8.0]), make_cost_matrix([12.0]))
    """
    A, B, Q, R = _mat(A), _mat(B), _mat(Q), _mat(R)

    if not is_stabilizable(A, B):
        raise ConfigurationError("(A, B) is not stabilizable: an unstable mode cannot be reached by the input")

    S = _solve_dare(A, B, Q, R)
    # K = (R + B'SB)^-1 B'SA
    K = np.linalg.solve(R + B.T @ S @ B, B.T @ S @ A)

    return K, S, np.linalg.eigvals(A - B @ K)


def lqe_discrete(
    A: ArrayLike,
    C: ArrayLike,
    Q: ArrayLike,
    R: ArrayLike,
) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """
    Steady-state discrete Kalman filter, the dual of lqr_discrete.

    The running KalmanFilter recomputes its gain every cycle; this is the
    gain and a priori covariance it converges to, and the covariance it
    starts from by default.

    Args:
        A: Discretized state matrix (n x n)
        C: Output matrix (p x n)
        Q: Discrete process noise covariance (n x n)
        R: Discrete measurement noise covariance (p x p)

    Returns:
        (L, P, E): gain (n x p), a priori covariance, eigenvalues of A - A L C
    """
    A, C, Q, R = _mat(A), _mat(C), _mat(Q), _mat(R)

    if not is_detectable(A, C):
        raise ConfigurationError("(A, C) is not detectable: an unstable mode is invisible to the outputs")

    P = _solve_dare(A.T, C.T, Q, R)
    S = C @ P @ C.T + R
    L = np.linalg.solve(S.T, C @ P.T).T

    return L, P, np.linalg.eigvals(A - A @ L @ C)


def is_stabilizable(A: ArrayLike, B: ArrayLike, tol: float = 1e-9) -> bool:
    """
    PBH test for a discrete pair: every eigenvalue with |lambda| >= 1 must
    satisfy rank([lambda*I - A, B]) = n.
    """
    A, B = _mat(A), _mat(B)
    n = A.shape[0]

    for lam in np.linalg.eigvals(A):
        if abs(lam) < 1.0:
            continue
        pbh = np.hstack([lam * np.eye(n) - A, B])
        if np.linalg.matrix_rank(pbh, tol=tol) < n:
            return False
    return True


def is_detectable(A: ArrayLike, C: ArrayLike, tol: float = 1e-9) -> bool:
    """Dual of is_stabilizable: (A, C) is detectable iff (A', C') is stabilizable."""
    A, C = _mat(A), _mat(C)
    return is_stabilizable(A.T, C.T, tol=tol)


def check_stability(
    A: ArrayLike,
    B: ArrayLike,
    K: ArrayLike,
    continuous: bool = False,
) -> Tuple[bool, np.ndarray]:
    """
    Poles of the closed loop A - B K and whether they are stable.

    Discrete (default): all |pole| < 1. Continuous: all Re(pole) < 0.
    """
    poles = np.linalg.eigvals(_mat(A) - _mat(B) @ _mat(K))
    if continuous:
        return bool(np.all(poles.real < 0)), poles
    return bool(np.all(np.abs(poles) < 1)), poles


def make_cost_matrix(tolerances: Union[float, Sequence[float]]) -> np.ndarray:
    """
    Bryson's rule: a diagonal cost matrix with entries 1 / tolerance^2.

    An infinite tolerance yields a zero weight (the state or input is ignored).

    Example:
        # 8 rad/s velocity error is as costly as 12 V of control effort
        Q = make_cost_matrix([8.0])
        R = make_cost_matrix([12.0])
    """
    tol = np.atleast_1d(np.asarray(tolerances, dtype=np.float64))
    if np.any(tol <= 0):
        raise ConfigurationError(f"Tolerances must be positive, got {tol.tolist()}")

    with np.errstate(divide="ignore"):
        weights = np.where(np.isinf(tol), 0.0, 1.0 / tol ** 2)
    return np.diag(weights)


def make_cov_matrix(std_devs: Union[float, Sequence[float]]) -> np.ndarray:
    """Diagonal covariance matrix from per-element standard deviations."""
    std = np.atleast_1d(np.asarray(std_devs, dtype=np.float64))
    if np.any(std < 0):
        raise ConfigurationError(f"Standard deviations must be non-negative, got {std.tolist()}")
    return np.diag(std ** 2)


def is_positive_definite(M: ArrayLike) -> bool:
    """Symmetric and Cholesky-factorizable."""
    M = _mat(M)
    if M.shape[0] != M.shape[1] or not np.allclose(M, M.T):
        return False
    try:
        np.linalg.cholesky(M)
    except np.linalg.LinAlgError:
        return False
    return True


def is_positive_semidefinite(M: ArrayLike, tol: float = 1e-12) -> bool:
    """Symmetric with no eigenvalue below -tol (scaled by the matrix norm)."""
    M = _mat(M)
    if M.shape[0] != M.shape[1] or not np.allclose(M, M.T):
        return False
    scale = max(1.0, float(np.max(np.abs(M))))
    return bool(np.all(np.linalg.eigvalsh(M) >= -tol * scale))
