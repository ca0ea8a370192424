# robot_loop/research/metrics.py
"""
Step-response and tracking metrics for simulated or recorded loop runs.

Works on plain sequences, on SimulationRunner histories, and on the rows a
JsonlLogger recording loads back as.
"""
from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

import numpy as np


def load_jsonl(path: Union[str, Path], event: Optional[str] = None) -> List[Dict[str, Any]]:
    """Rows of a JSONL recording, optionally only those with the given event name."""
    with open(path, "r", encoding="utf-8") as f:
        rows = [json.loads(line) for line in f if line.strip()]
    if event is not None:
        rows = [row for row in rows if row.get("event") == event]
    return rows


@dataclass
class ControlMetrics:
    rmse: float = 0.0
    mae: float = 0.0
    max_error: float = 0.0

    rise_time_s: Optional[float] = None        # 10% -> 90% of the step
    settling_time_s: Optional[float] = None    # last entry into the band
    overshoot_percent: Optional[float] = None
    steady_state_error: Optional[float] = None

    max_abs_input: Optional[float] = None
    saturated_fraction: Optional[float] = None  # share of cycles at the limit

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def compute_tracking_error(
    setpoints: Sequence[float],
    actuals: Sequence[float],
) -> Tuple[float, float, float]:
    """(rmse, mae, max_error); all zero for empty or mismatched input."""
    r = np.asarray(setpoints, dtype=np.float64)
    y = np.asarray(actuals, dtype=np.float64)
    if r.size == 0 or r.shape != y.shape:
        return (0.0, 0.0, 0.0)

    abs_err = np.abs(r - y)
    return (
        float(np.sqrt(np.mean(abs_err ** 2))),
        float(np.mean(abs_err)),
        float(np.max(abs_err)),
    )


def _first_crossing(t: np.ndarray, y_norm: np.ndarray, level: float) -> Optional[float]:
    hits = np.nonzero(y_norm >= level)[0]
    return float(t[hits[0]]) if hits.size else None


def analyze_step_response(
    times_s: Sequence[float],
    values: Sequence[float],
    setpoint: float,
    initial: float = 0.0,
    settling_threshold: float = 0.02,
    inputs: Optional[Sequence[float]] = None,
    input_limit: Optional[float] = None,
) -> ControlMetrics:
    """
    Characterize a response to a step from `initial` to `setpoint`.

    Values are normalized so the step runs from 0 to 1. Settling time is
    measured from the first sample to the sample after the response last
    left the +/- settling_threshold band; None if it ends outside the band.

    Args:
        times_s: Sample times (s)
        values: Response samples
        setpoint: Final reference
        initial: Value before the step
        settling_threshold: Band half-width as a fraction of the step
        inputs: Commanded inputs, for actuator usage
        input_limit: Saturation bound used to count saturated cycles
    """
    t = np.asarray(times_s, dtype=np.float64)
    y = np.asarray(values, dtype=np.float64)
    step = setpoint - initial
    if t.size < 2 or y.size < 2 or abs(step) < 1e-9:
        return ControlMetrics()

    y_norm = (y - initial) / step

    t_10 = _first_crossing(t, y_norm, 0.1)
    t_90 = _first_crossing(t, y_norm, 0.9)
    rise_time_s = t_90 - t_10 if t_10 is not None and t_90 is not None else None

    outside = np.nonzero(np.abs(y_norm - 1.0) > settling_threshold)[0]
    if outside.size == 0:
        settling_time_s = 0.0
    elif outside[-1] + 1 < t.size:
        settling_time_s = float(t[outside[-1] + 1] - t[0])
    else:
        settling_time_s = None

    tail = y_norm[-max(1, y_norm.size // 10):]
    rmse, mae, max_error = compute_tracking_error(np.full_like(y, setpoint), y)

    metrics = ControlMetrics(
        rmse=rmse,
        mae=mae,
        max_error=max_error,
        rise_time_s=rise_time_s,
        settling_time_s=settling_time_s,
        overshoot_percent=max(0.0, float(np.max(y_norm)) - 1.0) * 100.0,
        steady_state_error=abs(1.0 - float(np.mean(tail))) * abs(step),
    )

    if inputs is not None and len(inputs) > 0:
        u = np.abs(np.asarray(inputs, dtype=np.float64))
        metrics.max_abs_input = float(np.max(u))
        if input_limit is not None:
            metrics.saturated_fraction = float(np.mean(u >= input_limit - 1e-9))

    return metrics


def history_step_metrics(
    history: List[Dict[str, Any]],
    state_index: int = 0,
    input_index: int = 0,
    input_limit: Optional[float] = None,
    use_estimate: bool = False,
    initial: float = 0.0,
) -> ControlMetrics:
    """
    Step metrics for a SimulationRunner history or recorded "cycle" rows.

    Uses the true state ("x") unless use_estimate is set, and takes the final
    row's reference as the setpoint.
    """
    if not history:
        return ControlMetrics()

    key = "xhat" if use_estimate else "x"
    return analyze_step_response(
        [row["time"] for row in history],
        [row[key][state_index] for row in history],
        setpoint=history[-1]["r"][state_index],
        initial=initial,
        inputs=[row["u"][input_index] for row in history],
        input_limit=input_limit,
    )
