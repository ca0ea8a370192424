# robot_loop/research/simulation.py
"""
Simulation of the plant a loop is controlling.

Includes:
- Gaussian sensor noise
- A "true" linear plant stepped with exact zero-order-hold dynamics
- Encoder / motor stand-ins exposing the same calls as host hardware
- A runner that drives a LinearSystemLoop against the simulated plant
"""
from __future__ import annotations

import math
import random
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

import numpy as np
from numpy.typing import ArrayLike

from ..control import LinearSystemLoop, StateSpaceModel
from ..control.state_space import as_vector, discretize


# =============================================================================
# Noise Models
# =============================================================================

@dataclass
class GaussianNoise:
    """Gaussian noise model."""
    mean: float = 0.0
    std: float = 0.0

    def sample(self) -> float:
        return random.gauss(self.mean, self.std) if self.std > 0 else self.mean

    def add_to(self, value: float) -> float:
        return value + self.sample()


# =============================================================================
# Plant
# =============================================================================

class LinearPlantSimulator:
    """
    Ground-truth plant: x[k+1] = Ad x[k] + Bd u[k], y = C x + D u (+ noise).

    Voltage saturation is applied here too, since the real motor controller
    cannot exceed the battery whatever the loop asks for.
    """

    def __init__(
        self,
        plant: StateSpaceModel,
        x0: Optional[ArrayLike] = None,
        measurement_noise: Optional[GaussianNoise] = None,
        max_input: Optional[float] = None,
    ):
        self.plant = plant
        self.noise = measurement_noise or GaussianNoise()
        self.max_input = max_input

        self.x = np.zeros(plant.num_states) if x0 is None else as_vector(x0, plant.num_states, "x0")
        self.u = np.zeros(plant.num_inputs)
        self._cache: Dict[float, StateSpaceModel] = {}

    def _discrete(self, dt: float) -> StateSpaceModel:
        sys_d = self._cache.get(dt)
        if sys_d is None:
            sys_d = discretize(self.plant, dt)
            self._cache[dt] = sys_d
        return sys_d

    def apply(self, u: ArrayLike) -> None:
        u = as_vector(u, self.plant.num_inputs, "u")
        if self.max_input is not None:
            u = np.clip(u, -self.max_input, self.max_input)
        self.u = u

    def step(self, dt: float) -> np.ndarray:
        sys_d = self._discrete(dt)
        self.x = sys_d.A @ self.x + sys_d.B @ self.u
        return self.x.copy()

    def output(self) -> np.ndarray:
        """Noiseless y = C x + D u."""
        return self.plant.C @ self.x + self.plant.D @ self.u

    def measure(self) -> np.ndarray:
        return np.array([self.noise.add_to(float(v)) for v in self.output()])

    def reset(self, x0: Optional[ArrayLike] = None) -> None:
        self.x = np.zeros(self.plant.num_states) if x0 is None else as_vector(x0, self.plant.num_states, "x0")
        self.u = np.zeros(self.plant.num_inputs)


class SimulatedEncoder:
    """
    Quadrature encoder on the simulated plant's output, which is in rad/s.

    Like a real encoder it counts pulses: get_rate() is pulses per second
    times distance_per_pulse, so it reads raw pulses/s until the owner sets a
    distance per pulse (2*pi/counts_per_rev gives rad/s back).
    """

    def __init__(self, sim: LinearPlantSimulator, counts_per_rev: int = 4096, output_index: int = 0):
        if counts_per_rev <= 0:
            raise ValueError(f"counts_per_rev must be positive, got {counts_per_rev}")
        self.sim = sim
        self.counts_per_rev = int(counts_per_rev)
        self.output_index = output_index
        self.distance_per_pulse = 1.0

    def set_distance_per_pulse(self, distance_per_pulse: float) -> None:
        self.distance_per_pulse = distance_per_pulse

    def get_rate(self) -> float:
        rad_per_sec = float(self.sim.measure()[self.output_index])
        pulses_per_sec = rad_per_sec * self.counts_per_rev / (2.0 * math.pi)
        return pulses_per_sec * self.distance_per_pulse


class SimulatedMotor:
    """Forwards voltage commands to the simulated plant."""

    def __init__(self, sim: LinearPlantSimulator):
        self.sim = sim
        self.voltage = 0.0

    def set_voltage(self, voltage: float) -> None:
        self.voltage = float(voltage)
        self.sim.apply([self.voltage])


# =============================================================================
# Simulation Runner
# =============================================================================

ReferenceFn = Callable[[float], ArrayLike]


class SimulationRunner:
    """
    Runs a LinearSystemLoop against a LinearPlantSimulator.

    Each step: measure -> loop.step -> apply -> advance plant.
    """

    def __init__(
        self,
        loop: LinearSystemLoop,
        sim: LinearPlantSimulator,
        reference: ReferenceFn,
        dt: float = 0.02,
        recorder: Optional[Any] = None,
    ):
        self.loop = loop
        self.sim = sim
        self.reference = reference
        self.dt = dt
        self.recorder = recorder

        self.time = 0.0
        self.history: List[Dict[str, Any]] = []

    def step(self) -> Dict[str, Any]:
        """Run one control cycle."""
        r = self.reference(self.time)
        y = self.sim.measure()

        u = self.loop.step(y, self.dt, next_r=r)
        self.sim.apply(u)
        self.sim.step(self.dt)

        row = {
            "time": self.time,
            "r": as_vector(r, self.loop.num_states, "r"),
            "y": y,
            "u": u,
            "xhat": self.loop.xhat,
            "x": self.sim.x.copy(),
        }
        self.history.append(row)
        if self.recorder is not None:
            self.recorder.write("cycle", **row)

        self.time += self.dt
        return row

    def run(self, duration_s: float) -> List[Dict[str, Any]]:
        """Run simulation for specified duration."""
        n_steps = int(round(duration_s / self.dt))

        for _ in range(n_steps):
            self.step()

        return self.history

    def reset(self, x0: Optional[ArrayLike] = None) -> None:
        self.sim.reset(x0)
        self.loop.reset(self.sim.x)
        self.time = 0.0
        self.history = []
