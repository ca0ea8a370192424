#!/usr/bin/env python3
"""
Example 02: Feedforward Gain Identification

Demonstrates:
- Recording a voltage/velocity run with JsonlLogger
- Fitting ks, kv, ka from the recording
- Turning the fit into a plant and an LQR gain

Usage:
    python 02_identify_gains.py [log_dir]
"""
import random
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from robot_loop.control import LinearQuadraticRegulator, identify_velocity_system
from robot_loop.logger.logger import JsonlLogger
from robot_loop.research.metrics import load_jsonl
from robot_loop.research.simulation import GaussianNoise, LinearPlantSimulator
from robot_loop.research.sysid import identify_velocity_gains

# "Unknown" mechanism we pretend to characterize
TRUE_KV = 0.023
TRUE_KA = 0.001
DT = 0.02


def record_run(path: Path) -> None:
    sim = LinearPlantSimulator(
        identify_velocity_system(TRUE_KV, TRUE_KA),
        measurement_noise=GaussianNoise(std=0.05),
        max_input=12.0,
    )
    with JsonlLogger(str(path)) as rec:
        voltage = 0.0
        for k in range(500):
            # new random voltage every 10 cycles
            if k % 10 == 0:
                voltage = random.uniform(-12.0, 12.0)
            rec.write("sample", voltage=voltage, velocity=float(sim.measure()[0]))
            sim.apply([voltage])
            sim.step(DT)


def main():
    log_dir = Path(sys.argv[1] if len(sys.argv) > 1 else "logs")
    path = log_dir / "sysid.jsonl"
    record_run(path)

    rows = load_jsonl(str(path))
    gains = identify_velocity_gains(
        [r["voltage"] for r in rows],
        [r["velocity"] for r in rows],
        DT,
    )

    print(f"Recorded {len(rows)} samples to {path}")
    print(f"Fit: ks={gains.ks:.4f} V  kv={gains.kv:.5f} V/(rad/s)  ka={gains.ka:.6f} V/(rad/s^2)  R^2={gains.r_squared:.4f}")
    print(f"True: kv={TRUE_KV}  ka={TRUE_KA}")

    lqr = LinearQuadraticRegulator.from_tolerances(gains.to_plant(), [8.0], [12.0], DT)
    print(f"LQR gain from fitted plant: {lqr.K.tolist()}")


if __name__ == "__main__":
    main()
