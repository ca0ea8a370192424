"""End-to-end flywheel tests: loop + simulated plant, robot wiring, CLI runner."""

import json
import math
import random
from pathlib import Path

import numpy as np
import pytest
from conftest import DT, SPINUP
from fakes.fake_hardware import FakeButton, FakeEncoder, FakeMotor

from robot_loop.config import LoopProfile
from robot_loop.research.metrics import history_step_metrics
from robot_loop.research.simulation import (
    GaussianNoise,
    LinearPlantSimulator,
    SimulatedEncoder,
    SimulationRunner,
)
from robot_loop.robots.flywheel import FlywheelRobot, rpm_to_rad_per_sec
from robot_loop.runners.run_flywheel_sim import main, run_flywheel


# ============================================================================
# Loop against a simulated flywheel
# ============================================================================


class TestFlywheelSpinup:

    def test_reaches_spinup_speed(self, flywheel_plant, flywheel_loop):
        sim = LinearPlantSimulator(flywheel_plant, max_input=12.0)
        runner = SimulationRunner(flywheel_loop, sim, reference=lambda t: [SPINUP], dt=DT)
        runner.reset()

        history = runner.run(2.0)

        assert len(history) == 100
        assert history[-1]["x"][0] == pytest.approx(SPINUP, rel=0.02)
        assert all(abs(row["u"][0]) <= 12.0 for row in history)

        # Holding 500 rpm takes kv * w volts
        assert history[-1]["u"][0] == pytest.approx(0.023 * SPINUP, rel=0.02)

    def test_first_command_within_limits(self, flywheel_plant, flywheel_loop):
        sim = LinearPlantSimulator(flywheel_plant, max_input=12.0)
        runner = SimulationRunner(flywheel_loop, sim, reference=lambda t: [SPINUP], dt=DT)
        runner.reset()

        row = runner.step()
        assert 0.0 < row["u"][0] < 12.0

    def test_reaches_spinup_speed_with_noise(self, flywheel_plant, flywheel_loop):
        random.seed(1)
        sim = LinearPlantSimulator(
            flywheel_plant,
            measurement_noise=GaussianNoise(std=0.5),
            max_input=12.0,
        )
        runner = SimulationRunner(flywheel_loop, sim, reference=lambda t: [SPINUP], dt=DT)
        runner.reset([0.0])

        history = runner.run(3.0)
        tail = np.array([row["x"][0] for row in history[-50:]])

        assert np.mean(tail) == pytest.approx(SPINUP, rel=0.02)
        assert all(abs(row["u"][0]) <= 12.0 for row in history)
        assert flywheel_loop.failed_cycles == 0

    def test_spin_down(self, flywheel_plant, flywheel_loop):
        sim = LinearPlantSimulator(flywheel_plant, x0=[SPINUP], max_input=12.0)
        runner = SimulationRunner(flywheel_loop, sim, reference=lambda t: [0.0], dt=DT)
        runner.reset([SPINUP])

        history = runner.run(2.0)
        assert abs(history[-1]["x"][0]) < 0.02 * SPINUP

    def test_step_metrics(self, flywheel_plant, flywheel_loop):
        sim = LinearPlantSimulator(flywheel_plant, max_input=12.0)
        runner = SimulationRunner(flywheel_loop, sim, reference=lambda t: [SPINUP], dt=DT)
        runner.reset()

        m = history_step_metrics(runner.run(2.0), input_limit=12.0)

        assert m.steady_state_error < 0.02 * SPINUP
        assert m.settling_time_s is not None
        assert m.max_abs_input <= 12.0


# ============================================================================
# Robot wiring with fake hardware
# ============================================================================


class TestFlywheelRobot:

    def test_rpm_conversion(self):
        assert rpm_to_rad_per_sec(500.0) == pytest.approx(SPINUP)
        assert rpm_to_rad_per_sec(60.0) == pytest.approx(2.0 * math.pi)

    def test_robot_init_sets_distance_per_pulse(self, encoder, motor, button):
        robot = FlywheelRobot(encoder, motor, button)
        robot.robot_init()
        assert encoder.distance_per_pulse == pytest.approx(2.0 * math.pi / 4096)

    def test_robot_init_scales_simulated_encoder(self, flywheel_plant, motor, button):
        sim = LinearPlantSimulator(flywheel_plant, x0=[10.0])
        encoder = SimulatedEncoder(sim, counts_per_rev=4096)

        # raw pulses/s until a distance per pulse is set
        assert encoder.get_rate() == pytest.approx(10.0 * 4096 / (2.0 * math.pi))

        FlywheelRobot(encoder, motor, button).robot_init()
        assert encoder.get_rate() == pytest.approx(10.0)

    def test_simulated_encoder_rejects_bad_resolution(self, flywheel_plant):
        with pytest.raises(ValueError):
            SimulatedEncoder(LinearPlantSimulator(flywheel_plant), counts_per_rev=0)

    def test_teleop_init_resets_from_encoder(self, motor, button):
        encoder = FakeEncoder(rate=20.0)
        robot = FlywheelRobot(encoder, motor, button)
        robot.teleop_init()

        assert np.allclose(robot.loop.xhat, [20.0])
        assert encoder.reads == 1

    def test_spinup_requested(self, encoder, motor):
        robot = FlywheelRobot(encoder, motor, FakeButton(pressed=True))
        robot.robot_init()
        robot.teleop_init()

        voltage = robot.teleop_periodic()

        assert 0.0 < voltage <= 12.0
        assert motor.voltages == [voltage]
        assert np.allclose(robot.loop.next_r, [SPINUP])

    def test_idle_at_rest_commands_nothing(self, encoder, motor, button):
        robot = FlywheelRobot(encoder, motor, button)
        robot.teleop_init()

        for _ in range(5):
            robot.teleop_periodic()

        assert np.allclose(motor.voltages, 0.0)

    def test_release_spins_down(self, motor):
        encoder = FakeEncoder(rate=SPINUP)
        button = FakeButton(pressed=False)
        robot = FlywheelRobot(encoder, motor, button)
        robot.teleop_init()

        voltage = robot.teleop_periodic()
        assert voltage < 0.0
        assert voltage >= -12.0


# ============================================================================
# Simulation runner / CLI
# ============================================================================


class TestFlywheelRunner:

    def test_run_flywheel(self):
        history = run_flywheel(LoopProfile.load(), duration_s=2.0)

        assert len(history) == 100
        assert history[-1]["x"][0] == pytest.approx(SPINUP, rel=0.02)
        assert history[-1]["r"][0] == pytest.approx(SPINUP)

    def test_release(self):
        history = run_flywheel(LoopProfile.load(), duration_s=4.0, release_at_s=2.0)

        assert history[99]["x"][0] == pytest.approx(SPINUP, rel=0.02)
        assert history[-1]["r"][0] == 0.0
        assert abs(history[-1]["x"][0]) < 0.02 * SPINUP

    def test_main_records_cycles(self, tmp_path: Path, capsys):
        rc = main(["--duration", "1.0", "--record", "--log-dir", str(tmp_path)])

        assert rc == 0
        lines = (tmp_path / "flywheel_sim.jsonl").read_text(encoding="utf-8").strip().splitlines()
        assert len(lines) == 50

        first = json.loads(lines[0])
        assert first["event"] == "cycle"
        assert set(first) >= {"time", "r", "u", "xhat", "x"}

        out = capsys.readouterr().out
        assert "[FlywheelSim] 50 cycles" in out
        assert "steady_state_error" in out
