# tests/conftest.py

import math

import pytest
from fakes.fake_hardware import FakeButton, FakeEncoder, FakeMotor

from robot_loop.control import (
    KalmanFilter,
    LinearPlantInversionFeedforward,
    LinearQuadraticRegulator,
    LinearSystemLoop,
    identify_velocity_system,
)

# ============== Flywheel Constants ==============

FLYWHEEL_KV = 0.023   # volts per (rad/s)
FLYWHEEL_KA = 0.001   # volts per (rad/s^2)
DT = 0.02
SPINUP = 500.0 * 2.0 * math.pi / 60.0  # 500 rpm in rad/s


# ============== Pytest Configuration ==============

def pytest_configure(config):
    config.addinivalue_line("markers", "slow: marks tests as slow")


# ============== Fixtures ==============

@pytest.fixture
def flywheel_plant():
    return identify_velocity_system(FLYWHEEL_KV, FLYWHEEL_KA)


@pytest.fixture
def flywheel_observer(flywheel_plant):
    return KalmanFilter.from_std_devs(flywheel_plant, [3.0], [0.01], DT)


@pytest.fixture
def flywheel_controller(flywheel_plant):
    return LinearQuadraticRegulator.from_tolerances(flywheel_plant, [8.0], [12.0], DT)


@pytest.fixture
def flywheel_feedforward(flywheel_plant):
    return LinearPlantInversionFeedforward(flywheel_plant, DT)


@pytest.fixture
def flywheel_loop(flywheel_controller, flywheel_feedforward, flywheel_observer):
    return LinearSystemLoop(
        flywheel_controller,
        flywheel_feedforward,
        flywheel_observer,
        max_voltage=12.0,
    )


@pytest.fixture
def encoder():
    return FakeEncoder()


@pytest.fixture
def motor():
    return FakeMotor()


@pytest.fixture
def button():
    return FakeButton()
