"""Synthetic accelerometer traces.

Used by the tests, the ``simulate`` CLI command and the benchmark. A
trace is a device lying still (gravity on +Z) sampled at a fixed rate,
with single-sample jolts along one axis at chosen timestamps.
"""

from __future__ import annotations

from typing import Optional, Sequence

import numpy as np

from shake_engine.config import GRAVITY_EARTH
from shake_engine.detector import Sample

_AXES = {"x": 0, "y": 1, "z": 2}


def build_trace(
    duration_ms: int,
    pulses: Sequence[int] = (),
    rate_hz: float = 50.0,
    amplitude: float = 40.0,
    axis: str = "x",
    start_ms: int = 0,
    noise_std: float = 0.0,
    gravity: float = GRAVITY_EARTH,
    seed: Optional[int] = None,
) -> list[Sample]:
    """Resting trace with jolts injected at ``pulses`` (absolute ms).

    A jolt replaces the resting sample that would fall on the same
    timestamp.
    """
    if axis not in _AXES:
        raise ValueError(f"axis must be one of {sorted(_AXES)}")

    period = 1000.0 / rate_hz
    stamps = start_ms + np.round(np.arange(0, duration_ms, period)).astype(np.int64)
    rows: dict[int, np.ndarray] = {}

    rng = np.random.default_rng(seed)
    noise = rng.normal(0.0, noise_std, size=(len(stamps), 3)) if noise_std > 0 else np.zeros((len(stamps), 3))
    for ts, n in zip(stamps.tolist(), noise):
        rows[ts] = np.array([0.0, 0.0, gravity]) + n

    for ts in pulses:
        row = np.array([0.0, 0.0, gravity])
        row[_AXES[axis]] += amplitude
        rows[int(ts)] = row

    return [
        Sample(timestamp_ms=ts, x=float(r[0]), y=float(r[1]), z=float(r[2]))
        for ts, r in sorted(rows.items())
    ]


def double_chop(
    interval_ms: int = 300,
    lead_in_ms: int = 1000,
    tail_ms: int = 500,
    **kwargs,
) -> list[Sample]:
    """Still device, two jolts ``interval_ms`` apart, then still again."""
    first = lead_in_ms
    second = lead_in_ms + interval_ms
    return build_trace(second + tail_ms, pulses=[first, second], **kwargs)


def running(
    steps: int = 12,
    cadence_hz: float = 2.0,
    jitter_ms: float = 0.0,
    lead_in_ms: int = 1000,
    seed: Optional[int] = None,
    **kwargs,
) -> list[Sample]:
    """Footfall jolts at a steady cadence, optionally jittered."""
    rng = np.random.default_rng(seed)
    step_ms = 1000.0 / cadence_hz
    times = lead_in_ms + np.arange(steps) * step_ms
    if jitter_ms > 0:
        times = times + rng.uniform(-jitter_ms, jitter_ms, size=steps)
    pulses = np.round(times).astype(np.int64).tolist()
    return build_trace(pulses[-1] + int(step_ms), pulses=pulses, seed=seed, **kwargs)


def pulse_times(trace: Sequence[Sample], threshold: float = 20.0) -> list[int]:
    """Timestamps of samples whose raw X/Y deviation exceeds ``threshold``."""
    return [s.timestamp_ms for s in trace if abs(s.x) > threshold or abs(s.y) > threshold]
