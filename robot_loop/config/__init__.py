"""Loop profiles: YAML files loaded into dataclasses."""

from .settings import (
    ControllerSettings,
    FlywheelSettings,
    LoopProfile,
    LoopSettings,
    ObserverSettings,
    PlantSettings,
    build_loop,
    build_plant,
)

__all__ = [
    "ControllerSettings",
    "FlywheelSettings",
    "LoopProfile",
    "LoopSettings",
    "ObserverSettings",
    "PlantSettings",
    "build_loop",
    "build_plant",
]
