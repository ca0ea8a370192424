# robot_loop/research/__init__.py
"""
Research and analysis tools for state-space loops.

Modules:
- simulation: Ground-truth plant simulation, simulated encoder/motor, loop runner
- metrics: Step response and tracking metrics
- sysid: Feedforward gain (ks, kv, ka) identification

Example usage:
    from robot_loop.research.simulation import LinearPlantSimulator, SimulationRunner
    from robot_loop.research.metrics import history_step_metrics
    from robot_loop.research.sysid import identify_velocity_gains
"""

from .metrics import (
    ControlMetrics,
    analyze_step_response,
    compute_tracking_error,
    history_step_metrics,
    load_jsonl,
)

from .simulation import (
    GaussianNoise,
    LinearPlantSimulator,
    SimulatedEncoder,
    SimulatedMotor,
    SimulationRunner,
)

from .sysid import (
    FeedforwardGains,
    identify_velocity_gains,
)

__all__ = [
    # Metrics
    "ControlMetrics",
    "analyze_step_response",
    "compute_tracking_error",
    "history_step_metrics",
    "load_jsonl",
    # Simulation
    "GaussianNoise",
    "LinearPlantSimulator",
    "SimulatedEncoder",
    "SimulatedMotor",
    "SimulationRunner",
    # System identification
    "FeedforwardGains",
    "identify_velocity_gains",
]
