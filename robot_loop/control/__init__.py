"""
State-space control for robot mechanisms.

Provides scipy-based models, gain synthesis, and the runtime pieces of a
state-space loop: Kalman filter observer, LQR controller, plant-inversion
feedforward, and the LinearSystemLoop that sequences them each cycle.

Example usage:
    from robot_loop.control import (
        KalmanFilter,
        LinearPlantInversionFeedforward,
        LinearQuadraticRegulator,
        LinearSystemLoop,
        identify_velocity_system,
    )

    plant = identify_velocity_system(kv=0.023, ka=0.001)
    observer = KalmanFilter.from_std_devs(plant, [3.0], [0.01], 0.02)
    controller = LinearQuadraticRegulator.from_tolerances(plant, [8.0], [12.0], 0.02)
    feedforward = LinearPlantInversionFeedforward(plant, 0.02)
    loop = LinearSystemLoop(controller, feedforward, observer, max_voltage=12.0)

    loop.reset([0.0])
    loop.set_next_r([52.36])
    u = loop.step([measured_velocity])
"""

from .errors import ConfigurationError, NumericalWarning
from .state_space import (
    StateSpaceModel,
    discretize,
    discretize_aq,
    discretize_r,
    identify_position_system,
    identify_velocity_system,
)
from .design import (
    lqr_discrete,
    lqe_discrete,
    check_stability,
    is_stabilizable,
    is_detectable,
    make_cost_matrix,
    make_cov_matrix,
)
from .estimator import KalmanFilter
from .controller import LinearQuadraticRegulator
from .feedforward import LinearPlantInversionFeedforward
from .loop import LinearSystemLoop

__all__ = [
    # Errors
    "ConfigurationError",
    "NumericalWarning",
    # Models
    "StateSpaceModel",
    "discretize",
    "discretize_aq",
    "discretize_r",
    "identify_velocity_system",
    "identify_position_system",
    # Design
    "lqr_discrete",
    "lqe_discrete",
    "check_stability",
    "is_stabilizable",
    "is_detectable",
    "make_cost_matrix",
    "make_cov_matrix",
    # Runtime
    "KalmanFilter",
    "LinearQuadraticRegulator",
    "LinearPlantInversionFeedforward",
    "LinearSystemLoop",
]
