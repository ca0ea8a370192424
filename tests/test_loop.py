"""Tests for LinearSystemLoop."""

import numpy as np
import pytest

from robot_loop.control import (
    ConfigurationError,
    KalmanFilter,
    LinearPlantInversionFeedforward,
    LinearQuadraticRegulator,
    LinearSystemLoop,
    NumericalWarning,
    StateSpaceModel,
    discretize,
    identify_position_system,
)

DT = 0.02


# ============================================================================
# Construction
# ============================================================================


class TestLoopConfiguration:

    def test_default_limits(self, flywheel_loop):
        assert np.allclose(flywheel_loop.u_min, [-12.0])
        assert np.allclose(flywheel_loop.u_max, [12.0])
        assert np.allclose(flywheel_loop.next_r, [0.0])
        assert np.allclose(flywheel_loop.u, [0.0])
        assert flywheel_loop.failed_cycles == 0

    @pytest.mark.parametrize("max_voltage", [0.0, -12.0])
    def test_nonpositive_max_voltage(self, flywheel_controller, flywheel_feedforward, flywheel_observer, max_voltage):
        with pytest.raises(ConfigurationError):
            LinearSystemLoop(flywheel_controller, flywheel_feedforward, flywheel_observer, max_voltage=max_voltage)

    def test_inverted_bounds(self, flywheel_controller, flywheel_feedforward, flywheel_observer):
        with pytest.raises(ConfigurationError):
            LinearSystemLoop(
                flywheel_controller, flywheel_feedforward, flywheel_observer,
                u_min=[5.0], u_max=[-5.0],
            )

    def test_dimension_mismatch(self, flywheel_controller, flywheel_feedforward):
        plant = identify_position_system(0.5, 0.1)
        observer = KalmanFilter.from_std_devs(plant, [0.1, 1.0], [0.01], DT)

        with pytest.raises(ConfigurationError):
            LinearSystemLoop(flywheel_controller, flywheel_feedforward, observer)

    def test_feedforward_mismatch(self, flywheel_controller, flywheel_observer):
        ff = LinearPlantInversionFeedforward(identify_position_system(0.5, 0.1), DT)
        with pytest.raises(ConfigurationError):
            LinearSystemLoop(flywheel_controller, ff, flywheel_observer)


# ============================================================================
# Cycle ordering
# ============================================================================


class TestLoopCycle:

    def test_correct_then_command_then_predict(self, flywheel_plant, flywheel_loop):
        """The command uses the corrected estimate; the prediction uses that command."""
        sys_d = discretize(flywheel_plant, DT)
        K = flywheel_loop.controller.K

        flywheel_loop.reset([0.0])
        flywheel_loop.set_next_r([20.0])
        flywheel_loop.correct([10.0])
        xhat_corrected = flywheel_loop.xhat

        assert 0.0 < xhat_corrected[0] <= 10.0

        u = flywheel_loop.predict(DT)

        r = np.array([20.0])
        u_expected = K @ (r - xhat_corrected) + np.linalg.pinv(sys_d.B) @ (r - sys_d.A @ [0.0])
        u_expected = np.clip(u_expected, -12.0, 12.0)

        assert np.allclose(u, u_expected)
        assert np.allclose(flywheel_loop.u, u)
        assert flywheel_loop.get_u(0) == pytest.approx(u[0])
        assert np.allclose(flywheel_loop.xhat, sys_d.A @ xhat_corrected + sys_d.B @ u)

    def test_jittered_period_rediscretizes_observer_only(self, flywheel_plant, flywheel_loop):
        """A late cycle propagates over the real dt; the command still uses nominal-dt gains."""
        nominal = discretize(flywheel_plant, DT)
        late = discretize(flywheel_plant, 0.03)
        K = flywheel_loop.controller.K

        flywheel_loop.reset([0.0])
        flywheel_loop.set_next_r([20.0])
        flywheel_loop.correct([10.0])
        xhat_corrected = flywheel_loop.xhat

        u = flywheel_loop.predict(0.03)

        r = np.array([20.0])
        u_expected = K @ (r - xhat_corrected) + np.linalg.pinv(nominal.B) @ (r - nominal.A @ [0.0])
        assert np.allclose(u, np.clip(u_expected, -12.0, 12.0))

        assert np.allclose(flywheel_loop.xhat, late.A @ xhat_corrected + late.B @ u)
        assert not np.allclose(flywheel_loop.xhat, nominal.A @ xhat_corrected + nominal.B @ u)

    def test_step_matches_manual_cycle(self, flywheel_plant):
        def make_loop():
            return LinearSystemLoop(
                LinearQuadraticRegulator.from_tolerances(flywheel_plant, [8.0], [12.0], DT),
                LinearPlantInversionFeedforward(flywheel_plant, DT),
                KalmanFilter.from_std_devs(flywheel_plant, [3.0], [0.01], DT),
            )

        a, b = make_loop(), make_loop()
        for y in [0.0, 3.0, 9.0, 20.0]:
            a.set_next_r([30.0])
            a.correct([y])
            ua = a.predict(DT)
            ub = b.step([y], DT, next_r=[30.0])
            assert np.allclose(ua, ub)
            assert np.allclose(a.xhat, b.xhat)

    def test_error(self, flywheel_loop):
        flywheel_loop.reset([4.0])
        flywheel_loop.set_next_r([10.0])
        assert np.allclose(flywheel_loop.error, [6.0])

    def test_reset_zeroes_reference_and_command(self, flywheel_loop):
        flywheel_loop.step([0.0], DT, next_r=[50.0])
        assert flywheel_loop.get_u(0) != 0.0

        flywheel_loop.reset([12.0])

        assert np.allclose(flywheel_loop.xhat, [12.0])
        assert np.allclose(flywheel_loop.next_r, [0.0])
        assert np.allclose(flywheel_loop.u, [0.0])
        assert np.allclose(flywheel_loop.feedforward.r, [12.0])

    def test_wrong_reference_size(self, flywheel_loop):
        with pytest.raises(ValueError):
            flywheel_loop.set_next_r([1.0, 2.0])


# ============================================================================
# Input limits
# ============================================================================


class TestInputLimits:

    @pytest.mark.parametrize("target,limit", [(1000.0, 12.0), (-1000.0, -12.0)])
    def test_saturates_at_max_voltage(self, flywheel_loop, target, limit):
        flywheel_loop.reset([0.0])
        u = flywheel_loop.step([0.0], DT, next_r=[target])
        assert u[0] == limit

    def test_per_element_bounds(self):
        plant = StateSpaceModel([[-1.0, 0.0], [0.0, -2.0]], np.eye(2), np.eye(2))
        loop = LinearSystemLoop(
            LinearQuadraticRegulator.from_tolerances(plant, [0.1, 0.1], [1.0, 1.0], DT),
            LinearPlantInversionFeedforward(plant, DT),
            KalmanFilter.from_std_devs(plant, [0.1, 0.1], [0.01, 0.01], DT),
            u_min=[-1.0, -3.0],
            u_max=[2.0, 4.0],
        )

        assert np.allclose(loop.clamp_input([10.0, 10.0]), [2.0, 4.0])
        assert np.allclose(loop.clamp_input([-10.0, -10.0]), [-1.0, -3.0])
        assert np.allclose(loop.clamp_input([0.5, 0.5]), [0.5, 0.5])

    def test_one_sided_bound(self, flywheel_controller, flywheel_feedforward, flywheel_observer):
        loop = LinearSystemLoop(flywheel_controller, flywheel_feedforward, flywheel_observer, u_max=[6.0])
        assert np.allclose(loop.clamp_input([100.0]), [6.0])
        assert np.allclose(loop.clamp_input([-100.0]), [-100.0])

    def test_unbounded(self, flywheel_controller, flywheel_feedforward, flywheel_observer):
        loop = LinearSystemLoop(flywheel_controller, flywheel_feedforward, flywheel_observer, max_voltage=None)
        assert np.allclose(loop.clamp_input([1e6]), [1e6])

    def test_custom_clamp_function(self, flywheel_controller, flywheel_feedforward, flywheel_observer):
        loop = LinearSystemLoop(
            flywheel_controller, flywheel_feedforward, flywheel_observer,
            clamp_function=lambda u: np.clip(u, 0.0, 3.0),
        )
        loop.reset([0.0])
        assert loop.step([0.0], DT, next_r=[100.0])[0] == 3.0
        assert np.allclose(loop.clamp_input([-5.0]), [0.0])


# ============================================================================
# Runtime numerical failures
# ============================================================================


class TestNumericalFailures:

    def test_non_finite_measurement_is_skipped(self, flywheel_loop):
        flywheel_loop.reset([7.0])

        with pytest.warns(NumericalWarning):
            flywheel_loop.correct([float("nan")])

        assert np.allclose(flywheel_loop.xhat, [7.0])
        assert flywheel_loop.failed_cycles == 1

    def test_failed_command_holds_previous(self, flywheel_loop, monkeypatch):
        flywheel_loop.reset([0.0])
        u_prev = flywheel_loop.step([0.0], DT, next_r=[50.0])
        xhat_before = flywheel_loop.xhat

        def broken(x, r):
            raise np.linalg.LinAlgError("singular matrix")

        monkeypatch.setattr(flywheel_loop.controller, "calculate", broken)

        with pytest.warns(NumericalWarning):
            u = flywheel_loop.predict(DT)

        assert np.allclose(u, u_prev)
        assert flywheel_loop.failed_cycles == 1

        # Observer still propagated, with the held command
        sys_d = discretize(flywheel_loop.observer.plant, DT)
        assert np.allclose(flywheel_loop.xhat, sys_d.A @ xhat_before + sys_d.B @ u_prev)

    def test_non_finite_command_holds_previous(self, flywheel_loop, monkeypatch):
        flywheel_loop.reset([0.0])
        u_prev = flywheel_loop.step([0.0], DT, next_r=[50.0])

        monkeypatch.setattr(flywheel_loop.controller, "calculate", lambda x, r: np.array([np.inf]))
        flywheel_loop.clamp_function = lambda u: u

        with pytest.warns(NumericalWarning):
            u = flywheel_loop.predict(DT)

        assert np.allclose(u, u_prev)

    def test_recovers_after_failure(self, flywheel_loop):
        flywheel_loop.reset([0.0])
        with pytest.warns(NumericalWarning):
            flywheel_loop.step([float("inf")], DT, next_r=[20.0])

        u = flywheel_loop.step([1.0], DT, next_r=[20.0])
        assert np.all(np.isfinite(u))
        assert np.all(np.isfinite(flywheel_loop.xhat))
        assert flywheel_loop.failed_cycles == 1
