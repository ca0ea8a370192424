# robot_loop/robots/flywheel.py
"""
State-space flywheel velocity control.

The host framework owns scheduling and hardware; it calls robot_init() once,
teleop_init() when the driver enables, and teleop_periodic() every loop
period. The flywheel spins up to spinup_rpm while spin-up is requested and
spins down to zero otherwise.

    States:  [velocity], rad/s
    Inputs:  [voltage], V
    Outputs: [velocity], rad/s
"""
from __future__ import annotations

import logging
import math
from typing import Callable, Optional, Protocol

from ..config import LoopProfile, build_loop
from ..control import LinearSystemLoop

logger = logging.getLogger(__name__)


class Encoder(Protocol):
    def set_distance_per_pulse(self, distance_per_pulse: float) -> None: ...
    def get_rate(self) -> float: ...


class Motor(Protocol):
    def set_voltage(self, voltage: float) -> None: ...


def rpm_to_rad_per_sec(rpm: float) -> float:
    return rpm * 2.0 * math.pi / 60.0


class FlywheelRobot:
    """
    Flywheel driven by a LinearSystemLoop built from a loop profile.

    Args:
        encoder: Velocity sensor, rate in rad/s once robot_init() has run
        motor: Voltage actuator
        spinup_requested: Polled every period; True holds the spin-up speed
        profile: Loop profile, defaults to the bundled flywheel profile
    """

    def __init__(
        self,
        encoder: Encoder,
        motor: Motor,
        spinup_requested: Callable[[], bool],
        profile: Optional[LoopProfile] = None,
    ):
        self.profile = profile or LoopProfile.load("flywheel_default")
        self.encoder = encoder
        self.motor = motor
        self.spinup_requested = spinup_requested

        self.dt = self.profile.loop.dt
        self.spinup = rpm_to_rad_per_sec(self.profile.flywheel.spinup_rpm)
        self.loop: LinearSystemLoop = build_loop(self.profile)

    def robot_init(self) -> None:
        # 2 pi radians per revolution of encoder counts
        counts = self.profile.flywheel.encoder_counts_per_rev
        self.encoder.set_distance_per_pulse(2.0 * math.pi / counts)

    def teleop_init(self) -> None:
        self.loop.reset([self.encoder.get_rate()])
        logger.info("Flywheel control enabled")

    def teleop_periodic(self) -> float:
        """Run one control period; returns the voltage sent to the motor."""
        target = self.spinup if self.spinup_requested() else 0.0
        self.loop.set_next_r([target])

        self.loop.correct([self.encoder.get_rate()])
        self.loop.predict(self.dt)

        voltage = self.loop.get_u(0)
        self.motor.set_voltage(voltage)
        return voltage
