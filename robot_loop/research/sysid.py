# robot_loop/research/sysid.py
"""
Feedforward-gain identification for velocity mechanisms.

Fits V = ks*sign(w) + kv*w + ka*dw/dt from logged voltage/velocity samples,
giving the kv/ka pair that identify_velocity_system() turns into a plant.
"""
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Dict

import numpy as np
from numpy.typing import ArrayLike

from ..control import StateSpaceModel, identify_velocity_system


@dataclass
class FeedforwardGains:
    """Mechanism feedforward gains: V = ks*sign(w) + kv*w + ka*a"""
    ks: float = 0.0          # Static friction voltage (V)
    kv: float = 0.0          # V / (rad/s)
    ka: float = 0.0          # V / (rad/s^2)
    r_squared: float = 0.0   # Fit quality of the one-step regression

    def to_plant(self) -> StateSpaceModel:
        return identify_velocity_system(self.kv, self.ka)

    def to_dict(self) -> Dict[str, float]:
        return {"ks": self.ks, "kv": self.kv, "ka": self.ka, "r_squared": self.r_squared}


def identify_velocity_gains(
    voltage: ArrayLike,
    velocity: ArrayLike,
    dt: float,
) -> FeedforwardGains:
    """
    Identify ks, kv, ka from uniformly sampled voltage/velocity data.

    Regresses the one-step model w[k+1] = alpha*w[k] + beta*V[k] + gamma*sign(w[k])
    and maps it back through the zero-order-hold solution of the velocity
    plant, so the result is exact for noiseless data held constant between
    samples.

    Args:
        voltage: Applied voltage at each sample (V), held until the next sample
        velocity: Measured velocity at each sample (rad/s)
        dt: Sample period (s)

    Raises:
        ValueError: Too little data, or data that doesn't describe a decaying
            first-order response
    """
    V = np.asarray(voltage, dtype=np.float64).reshape(-1)
    w = np.asarray(velocity, dtype=np.float64).reshape(-1)

    if len(V) != len(w):
        raise ValueError(f"voltage and velocity lengths differ ({len(V)} vs {len(w)})")
    if len(w) < 4:
        raise ValueError("Need at least 4 samples to identify feedforward gains")

    X = np.column_stack([w[:-1], V[:-1], np.sign(w[:-1])])
    target = w[1:]

    coeffs, _, rank, _ = np.linalg.lstsq(X, target, rcond=None)
    if rank < X.shape[1]:
        # e.g. constant voltage with no velocity sign change: V and sign(w) are collinear
        raise ValueError(
            f"Voltage/velocity data is not rich enough to identify gains (rank {rank} < {X.shape[1]})"
        )
    alpha, beta, gamma = (float(c) for c in coeffs)

    if not (0.0 < alpha < 1.0) or beta <= 0.0:
        raise ValueError(f"Fit is not a stable first-order response (alpha={alpha:.4f}, beta={beta:.4g})")

    residual = target - X @ coeffs
    ss_tot = float(np.sum((target - np.mean(target)) ** 2))
    r_squared = 1.0 - float(np.sum(residual ** 2)) / ss_tot if ss_tot > 0 else 1.0

    # alpha = exp(A dt), beta = (alpha - 1) / A * B, with A = -kv/ka, B = 1/ka
    A = math.log(alpha) / dt
    B = beta * A / (alpha - 1.0)

    return FeedforwardGains(
        ks=-gamma / beta,
        kv=-A / B,
        ka=1.0 / B,
        r_squared=r_squared,
    )
