"""
State-space control loop: controller + feedforward + observer.

One cycle, in this order:
    1. correct the observer with the latest measurement
    2. u = clamp(K (next_r - x_hat) + u_ff(next_r))
    3. predict the observer forward with that u
    4. hand u to the actuator

The command must be computed after the correction and before the prediction
that consumes it; step() runs the whole cycle in that order.
"""

from __future__ import annotations

import logging
import warnings
from typing import Callable, Optional

import numpy as np
from numpy.typing import ArrayLike

from .controller import LinearQuadraticRegulator
from .errors import ConfigurationError, NumericalWarning
from .estimator import KalmanFilter
from .feedforward import LinearPlantInversionFeedforward
from .state_space import as_vector

logger = logging.getLogger(__name__)

ClampFunction = Callable[[np.ndarray], np.ndarray]


class LinearSystemLoop:
    """
    Combines a LinearQuadraticRegulator, LinearPlantInversionFeedforward and
    KalmanFilter into one per-cycle update.

    Example:
        loop = LinearSystemLoop(controller, feedforward, observer, max_voltage=12.0)

        # entering an active epoch
        loop.reset([encoder.get_rate()])

        # every 20 ms
        loop.set_next_r([target])
        loop.correct([encoder.get_rate()])
        loop.predict(0.02)
        motor.set_voltage(loop.get_u(0))
    """

    def __init__(
        self,
        controller: LinearQuadraticRegulator,
        feedforward: LinearPlantInversionFeedforward,
        observer: KalmanFilter,
        max_voltage: Optional[float] = 12.0,
        u_min: Optional[ArrayLike] = None,
        u_max: Optional[ArrayLike] = None,
        clamp_function: Optional[ClampFunction] = None,
    ) -> None:
        n, m = observer.num_states, observer.num_inputs
        if (controller.num_states, controller.num_inputs) != (n, m):
            raise ConfigurationError(
                f"Controller is {controller.num_inputs}x{controller.num_states}, observer expects {m}x{n}"
            )
        if (feedforward.num_states, feedforward.num_inputs) != (n, m):
            raise ConfigurationError(
                f"Feedforward is {feedforward.num_inputs}x{feedforward.num_states}, observer expects {m}x{n}"
            )

        self.controller = controller
        self.feedforward = feedforward
        self.observer = observer
        self.clamp_function = clamp_function

        if u_min is None and u_max is None:
            if max_voltage is None:
                lo, hi = np.full(m, -np.inf), np.full(m, np.inf)
            else:
                if max_voltage <= 0:
                    raise ConfigurationError(f"max_voltage must be positive, got {max_voltage}")
                lo, hi = np.full(m, -float(max_voltage)), np.full(m, float(max_voltage))
        else:
            lo = np.full(m, -np.inf) if u_min is None else np.broadcast_to(
                np.asarray(u_min, dtype=np.float64), (m,)).copy()
            hi = np.full(m, np.inf) if u_max is None else np.broadcast_to(
                np.asarray(u_max, dtype=np.float64), (m,)).copy()

        if np.any(lo > hi):
            raise ConfigurationError(f"u_min {lo.tolist()} exceeds u_max {hi.tolist()}")

        self.u_min = lo
        self.u_max = hi

        self._next_r = np.zeros(n)
        self._u = np.zeros(m)
        self.failed_cycles = 0

    @property
    def num_states(self) -> int:
        return self.observer.num_states

    @property
    def num_inputs(self) -> int:
        return self.observer.num_inputs

    @property
    def xhat(self) -> np.ndarray:
        return self.observer.xhat.copy()

    @property
    def next_r(self) -> np.ndarray:
        return self._next_r.copy()

    @property
    def u(self) -> np.ndarray:
        return self._u.copy()

    @property
    def error(self) -> np.ndarray:
        """next_r - x_hat"""
        return self._next_r - self.observer.xhat

    def get_u(self, i: int) -> float:
        """i-th element of the last command, for handing to an actuator."""
        return float(self._u[i])

    def set_next_r(self, next_r: ArrayLike) -> None:
        self._next_r = as_vector(next_r, self.num_states, "next_r")

    def clamp_input(self, u: ArrayLike) -> np.ndarray:
        u = as_vector(u, self.num_inputs, "u")
        if self.clamp_function is not None:
            return as_vector(self.clamp_function(u), self.num_inputs, "clamped u")
        return np.clip(u, self.u_min, self.u_max)

    def reset(self, x0: Optional[ArrayLike] = None) -> None:
        """
        Start a new control epoch from a fresh (measurement-derived) state.

        The reference is zeroed; set it again before the next predict().
        """
        x0 = np.zeros(self.num_states) if x0 is None else as_vector(x0, self.num_states, "x0")
        self.observer.reset(x0)
        self.feedforward.reset(x0)
        self._next_r = np.zeros(self.num_states)
        self._u = np.zeros(self.num_inputs)
        logger.info("Loop reset, x0=%s", x0.tolist())

    def correct(self, y: ArrayLike) -> None:
        """Correct the state estimate with a measurement, using the last applied input."""
        y = as_vector(y, self.observer.num_outputs, "y")
        if not np.all(np.isfinite(y)):
            self._cycle_failed(f"non-finite measurement {y.tolist()}, estimate not updated")
            return
        try:
            self.observer.correct(y, self._u)
        except np.linalg.LinAlgError as e:
            self._cycle_failed(f"observer correction failed ({e}), estimate not updated")

    def predict(self, dt: Optional[float] = None) -> np.ndarray:
        """
        Compute the next command and propagate the observer with it.

        If the command cannot be computed the previous one is held.
        """
        xhat = self.observer.xhat
        try:
            u = self.controller.calculate(xhat, self._next_r) + self.feedforward.calculate(self._next_r)
            u = self.clamp_input(u)
            if not np.all(np.isfinite(u)):
                raise np.linalg.LinAlgError(f"non-finite command {u.tolist()}")
        except np.linalg.LinAlgError as e:
            self._cycle_failed(f"command computation failed ({e}), holding {self._u.tolist()}")
        else:
            self._u = u

        try:
            self.observer.predict(self._u, dt)
        except np.linalg.LinAlgError as e:
            self._cycle_failed(f"observer prediction failed ({e})")

        return self._u.copy()

    def step(
        self,
        y: ArrayLike,
        dt: Optional[float] = None,
        next_r: Optional[ArrayLike] = None,
    ) -> np.ndarray:
        """One full cycle: [set_next_r], correct, predict. Returns the command."""
        if next_r is not None:
            self.set_next_r(next_r)
        self.correct(y)
        return self.predict(dt)

    def _cycle_failed(self, reason: str) -> None:
        self.failed_cycles += 1
        logger.warning("Control cycle degraded: %s", reason)
        warnings.warn(reason, NumericalWarning, stacklevel=3)
