# robot_loop/runners/run_flywheel_sim.py
"""
Flywheel spin-up against a simulated plant.

Builds FlywheelRobot from a YAML loop profile, wires it to a simulated
encoder and motor, and steps the plant once per loop period while the
spin-up request is held. Prints step-response metrics at the end; with
--record every cycle also goes to <log-dir>/flywheel_sim.jsonl.

Usage:
    robot-loop-flywheel-sim --duration 4 --release-at 2 --noise-std 0.2 --record
"""
from __future__ import annotations

import argparse
import logging
from typing import Any, Dict, List, Optional, Sequence

from robot_loop.config import LoopProfile, build_plant
from robot_loop.logger.logger import LoopLogBundle
from robot_loop.research.metrics import history_step_metrics
from robot_loop.research.simulation import (
    GaussianNoise,
    LinearPlantSimulator,
    SimulatedEncoder,
    SimulatedMotor,
)
from robot_loop.robots.flywheel import FlywheelRobot


def run_flywheel(
    profile: LoopProfile,
    duration_s: float = 4.0,
    spinup_at_s: float = 0.0,
    release_at_s: Optional[float] = None,
    noise_std: float = 0.0,
    bundle: Optional[LoopLogBundle] = None,
) -> List[Dict[str, Any]]:
    """
    Drive FlywheelRobot against a simulated flywheel.

    Spin-up is requested from spinup_at_s until release_at_s (or the end).
    Returns one row per period with time, reference, measurement, command,
    estimate and true state.
    """
    plant = build_plant(profile.plant)
    sim = LinearPlantSimulator(
        plant,
        measurement_noise=GaussianNoise(std=noise_std),
        max_input=profile.loop.max_voltage,
    )
    encoder = SimulatedEncoder(sim, counts_per_rev=profile.flywheel.encoder_counts_per_rev)
    motor = SimulatedMotor(sim)

    clock = {"t": 0.0}

    def spinup_requested() -> bool:
        t = clock["t"]
        return t >= spinup_at_s and (release_at_s is None or t < release_at_s)

    robot = FlywheelRobot(encoder, motor, spinup_requested, profile=profile)
    robot.robot_init()
    robot.teleop_init()

    history: List[Dict[str, Any]] = []
    n_steps = int(round(duration_s / robot.dt))

    for _ in range(n_steps):
        voltage = robot.teleop_periodic()
        sim.step(robot.dt)

        row = {
            "time": clock["t"],
            "r": robot.loop.next_r,
            "u": [voltage],
            "xhat": robot.loop.xhat,
            "x": sim.x.copy(),
        }
        history.append(row)
        if bundle is not None:
            bundle.events.write("cycle", **row)

        clock["t"] += robot.dt

    return history


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        description="Simulated flywheel driven by a state-space loop"
    )
    parser.add_argument(
        "--profile",
        default="flywheel_default",
        help="Bundled profile name or path to a YAML profile",
    )
    parser.add_argument("--duration", type=float, default=4.0, help="Simulated seconds")
    parser.add_argument("--spinup-at", type=float, default=0.0, help="Spin-up request start (s)")
    parser.add_argument("--release-at", type=float, default=None, help="Spin-up request end (s)")
    parser.add_argument(
        "--noise-std",
        type=float,
        default=0.0,
        help="Encoder noise standard deviation (rad/s)",
    )
    parser.add_argument("--log-dir", default="logs", help="Directory for text and JSONL logs")
    parser.add_argument("--record", action="store_true", help="Record every cycle to JSONL")
    parser.add_argument("--console", action="store_true", help="Also log to the console")

    args = parser.parse_args(argv)

    profile = LoopProfile.load(args.profile)
    bundle = LoopLogBundle(
        name="flywheel_sim",
        log_dir=args.log_dir,
        level=logging.INFO,
        console=args.console,
    ) if args.record else None

    try:
        history = run_flywheel(
            profile,
            duration_s=args.duration,
            spinup_at_s=args.spinup_at,
            release_at_s=args.release_at,
            noise_std=args.noise_std,
            bundle=bundle,
        )
    finally:
        if bundle is not None:
            bundle.close()

    spinup = [row for row in history if row["time"] >= args.spinup_at
              and (args.release_at is None or row["time"] < args.release_at)]
    metrics = history_step_metrics(spinup, input_limit=profile.loop.max_voltage)

    print(f"[FlywheelSim] {len(history)} cycles at dt={profile.loop.dt}")
    for key, value in metrics.to_dict().items():
        print(f"[FlywheelSim]   {key}: {value}")

    return 0


if __name__ == "__main__":
    raise SystemExit(main())
