#!/usr/bin/env python3
"""
Example 01: Flywheel Spin-up

Demonstrates:
- Loading a loop profile
- Building the Kalman filter / LQR / feedforward loop
- Running it against a simulated flywheel
- Step-response metrics

Usage:
    python 01_flywheel_spinup.py
    python 01_flywheel_spinup.py my_flywheel.yaml
"""
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from robot_loop.config import LoopProfile, build_loop, build_plant
from robot_loop.research.metrics import history_step_metrics
from robot_loop.research.simulation import GaussianNoise, LinearPlantSimulator, SimulationRunner
from robot_loop.robots.flywheel import rpm_to_rad_per_sec


def main():
    profile = LoopProfile.load(sys.argv[1] if len(sys.argv) > 1 else "flywheel_default")
    loop = build_loop(profile)

    target = rpm_to_rad_per_sec(profile.flywheel.spinup_rpm)
    sim = LinearPlantSimulator(
        build_plant(profile.plant),
        measurement_noise=GaussianNoise(std=0.2),
        max_input=profile.loop.max_voltage,
    )
    runner = SimulationRunner(loop, sim, reference=lambda t: [target], dt=profile.loop.dt)
    runner.reset()

    print("="*60)
    print("Flywheel Spin-up Example")
    print("="*60)
    print(f"Target: {profile.flywheel.spinup_rpm:.0f} rpm ({target:.2f} rad/s)")
    print(f"LQR gain K: {loop.controller.K.tolist()}")
    print()

    history = runner.run(2.0)
    for row in history[::10]:
        print(f"t={row['time']:5.2f}s  x={row['x'][0]:7.2f}  xhat={row['xhat'][0]:7.2f}  u={row['u'][0]:6.2f} V")

    m = history_step_metrics(history, input_limit=profile.loop.max_voltage)
    print()
    for key, value in m.to_dict().items():
        print(f"  {key}: {value}")


if __name__ == "__main__":
    main()
