# robot_loop/config/settings.py
"""
Loop profiles.

A profile is a YAML file describing the plant, observer, controller and loop
limits. LoopProfile.load() turns it into dataclasses and build_loop() turns those
into a ready LinearSystemLoop.

Example:
    profile = LoopProfile.load("flywheel_default")
    loop = build_loop(profile)
"""
from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List, Optional, Type, TypeVar, Union

import yaml

from ..control import (
    ConfigurationError,
    KalmanFilter,
    LinearPlantInversionFeedforward,
    LinearQuadraticRegulator,
    LinearSystemLoop,
    StateSpaceModel,
    identify_position_system,
    identify_velocity_system,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

PROFILE_DIR = Path(__file__).resolve().parent


@dataclass
class PlantSettings:
    type: str = "velocity"      # "velocity" | "position" | "matrices"
    kv: float = 0.023           # V / (rad/s)
    ka: float = 0.001           # V / (rad/s^2)
    A: Optional[List[List[float]]] = None
    B: Optional[List[List[float]]] = None
    C: Optional[List[List[float]]] = None
    D: Optional[List[List[float]]] = None


@dataclass
class ObserverSettings:
    state_std_devs: List[float] = field(default_factory=lambda: [3.0])
    measurement_std_devs: List[float] = field(default_factory=lambda: [0.01])


@dataclass
class ControllerSettings:
    qelms: List[float] = field(default_factory=lambda: [8.0])
    relms: List[float] = field(default_factory=lambda: [12.0])
    input_delay_s: float = 0.0


@dataclass
class LoopSettings:
    dt: float = 0.02
    max_voltage: Optional[float] = 12.0
    u_min: Optional[List[float]] = None
    u_max: Optional[List[float]] = None


@dataclass
class FlywheelSettings:
    spinup_rpm: float = 500.0
    encoder_counts_per_rev: int = 4096


@dataclass
class LoopProfile:
    plant: PlantSettings = field(default_factory=PlantSettings)
    observer: ObserverSettings = field(default_factory=ObserverSettings)
    controller: ControllerSettings = field(default_factory=ControllerSettings)
    loop: LoopSettings = field(default_factory=LoopSettings)
    flywheel: FlywheelSettings = field(default_factory=FlywheelSettings)

    @classmethod
    def load(cls, profile: Union[str, Path] = "flywheel_default") -> "LoopProfile":
        """Load a bundled profile by name, or any YAML file by path."""
        path = Path(profile)
        if path.suffix not in (".yaml", ".yml"):
            path = PROFILE_DIR / f"{profile}.yaml"

        data = yaml.safe_load(path.read_text()) or {}
        if not isinstance(data, dict):
            raise ConfigurationError(f"Profile {path} must be a mapping, got {type(data).__name__}")

        logger.info("Loaded loop profile %s", path)
        return dict_to_dataclass(cls, data)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def save(self, path: Union[str, Path]) -> None:
        with open(path, "w") as f:
            yaml.dump(self.to_dict(), f, default_flow_style=False, sort_keys=False)


def dict_to_dataclass(cls: Type[T], data: Optional[Dict[str, Any]]) -> T:
    """
    Convert a dictionary to a dataclass, handling nested dataclasses.

    Unknown keys are a configuration error so typos don't silently fall back
    to defaults.
    """
    if data is None:
        return cls()

    field_types = {f.name: f.type for f in fields(cls)}
    defaults = cls()
    kwargs = {}

    for key, value in data.items():
        if key not in field_types:
            raise ConfigurationError(f"Unknown key '{key}' for {cls.__name__}")

        nested = getattr(defaults, key)
        if hasattr(nested, "__dataclass_fields__"):
            if not isinstance(value, dict):
                raise ConfigurationError(f"Section '{key}' must be a mapping")
            value = dict_to_dataclass(type(nested), value)

        kwargs[key] = value

    return cls(**kwargs)


def build_plant(settings: PlantSettings) -> StateSpaceModel:
    if settings.type == "velocity":
        return identify_velocity_system(settings.kv, settings.ka)
    if settings.type == "position":
        return identify_position_system(settings.kv, settings.ka)
    if settings.type == "matrices":
        if settings.A is None or settings.B is None or settings.C is None:
            raise ConfigurationError("Plant type 'matrices' requires A, B and C")
        return StateSpaceModel(settings.A, settings.B, settings.C, settings.D)
    raise ConfigurationError(f"Unknown plant type: {settings.type}")


def build_loop(profile: LoopProfile) -> LinearSystemLoop:
    """Construct plant, observer, controller, feedforward and loop from a profile."""
    dt = profile.loop.dt
    plant = build_plant(profile.plant)

    observer = KalmanFilter.from_std_devs(
        plant,
        profile.observer.state_std_devs,
        profile.observer.measurement_std_devs,
        dt,
    )
    controller = LinearQuadraticRegulator.from_tolerances(
        plant,
        profile.controller.qelms,
        profile.controller.relms,
        dt,
    )
    if profile.controller.input_delay_s > 0:
        controller.latency_compensate(dt, profile.controller.input_delay_s)

    feedforward = LinearPlantInversionFeedforward(plant, dt)

    loop = LinearSystemLoop(
        controller,
        feedforward,
        observer,
        max_voltage=profile.loop.max_voltage,
        u_min=profile.loop.u_min,
        u_max=profile.loop.u_max,
    )
    logger.info(
        "Built loop: n=%d m=%d dt=%.4f K=%s",
        loop.num_states, loop.num_inputs, dt, controller.K.tolist(),
    )
    return loop
