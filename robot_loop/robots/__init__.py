"""Example mechanisms wired to a LinearSystemLoop."""

from .flywheel import FlywheelRobot, rpm_to_rad_per_sec

__all__ = ["FlywheelRobot", "rpm_to_rad_per_sec"]
