"""
Plant-inversion feedforward.
"""

from __future__ import annotations

from typing import Optional

import numpy as np
from numpy.typing import ArrayLike

from .state_space import StateSpaceModel, as_vector, discretize


class LinearPlantInversionFeedforward:
    """
    Input that moves the discretized plant from r to next_r in one step:

        u_ff = pinv(Bd) (next_r - Ad r)

    With r == next_r this is the steady-state input that holds the plant at
    the reference, which is what removes the tracking error a pure feedback
    law leaves behind. pinv(Bd) gives the least-squares input when Bd is not
    square.
    """

    def __init__(self, plant: StateSpaceModel, dt: float) -> None:
        self.plant = plant
        self.dt = float(dt)

        sys_d = discretize(plant, self.dt)
        self.Ad = sys_d.A
        self.Bd = sys_d.B
        self._Bd_pinv = np.linalg.pinv(self.Bd)

        self.r: Optional[np.ndarray] = None
        self.uff = np.zeros(plant.num_inputs)

    @property
    def num_states(self) -> int:
        return self.plant.num_states

    @property
    def num_inputs(self) -> int:
        return self.plant.num_inputs

    def reset(self, r: Optional[ArrayLike] = None) -> None:
        self.r = None if r is None else as_vector(r, self.num_states, "r")
        self.uff = np.zeros(self.num_inputs)

    def calculate(self, next_r: ArrayLike, r: Optional[ArrayLike] = None) -> np.ndarray:
        """
        Args:
            next_r: Reference for the next step
            r: Current reference; defaults to the previous next_r, or to
                next_r itself before any reference has been seen

        Returns:
            Feedforward input (m,)
        """
        next_r = as_vector(next_r, self.num_states, "next_r")
        if r is not None:
            r = as_vector(r, self.num_states, "r")
        elif self.r is not None:
            r = self.r
        else:
            r = next_r

        self.uff = self._Bd_pinv @ (next_r - self.Ad @ r)
        self.r = next_r
        return self.uff.copy()
