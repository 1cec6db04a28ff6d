"""Prometheus-compatible metrics for ShakeEngine.

Exposes counters in Prometheus text exposition format.
No client library needed; the text format is generated directly.

Tracked metrics:
- shake_engine_samples_total (counter)
- shake_engine_samples_dropped_total (counter, malformed or out-of-order)
- shake_engine_samples_throttled_total (counter, rate cap)
- shake_engine_candidates_total (counter, by outcome)
- shake_engine_triggers_total (counter)
- shake_engine_toggles_total (counter, by result)
- shake_engine_sample_latency_seconds (histogram)
- shake_engine_flashlight_on (gauge)
- shake_engine_active_connections (gauge)
"""

from __future__ import annotations

import time
import threading
from collections import Counter

from shake_engine.detector import DetectorStats

_DETECTOR_COUNTERS = (
    "samples", "dropped", "clamped", "candidates", "debounced",
    "suppressed", "timeouts", "too_slow", "triggers",
)


class _Histogram:
    """Simple histogram with configurable buckets."""

    def __init__(self, buckets: list[float]):
        self.buckets = sorted(buckets)
        self.bucket_counts = [0] * len(self.buckets)
        self.count = 0
        self.sum = 0.0
        self._lock = threading.Lock()

    def observe(self, value: float):
        with self._lock:
            self.count += 1
            self.sum += value
            for i, b in enumerate(self.buckets):
                if value <= b:
                    self.bucket_counts[i] += 1
                    break

    def render(self, name: str, help_text: str) -> str:
        lines = [
            f"# HELP {name} {help_text}",
            f"# TYPE {name} histogram",
        ]
        with self._lock:
            cumulative = 0
            for i, b in enumerate(self.buckets):
                cumulative += self.bucket_counts[i]
                lines.append(f'{name}_bucket{{le="{b}"}} {cumulative}')
            lines.append(f'{name}_bucket{{le="+Inf"}} {self.count}')
            lines.append(f"{name}_sum {self.sum:.6f}")
            lines.append(f"{name}_count {self.count}")
        return "\n".join(lines)


class MetricsCollector:
    """Collects and exposes Prometheus metrics for the shake service."""

    def __init__(self):
        self._toggles: Counter = Counter()
        self._throttled = 0
        self._flashlight_on = False
        self._active_connections = 0
        self._detector_totals: Counter = Counter()
        self._detector_seen = DetectorStats()
        self._lock = threading.Lock()

        # Per-sample processing: 10µs to 10ms
        self._latency = _Histogram(
            [0.00001, 0.00005, 0.0001, 0.0005, 0.001, 0.005, 0.010]
        )

        self._start_time = time.time()

    def record_sample(self, latency_seconds: float):
        self._latency.observe(latency_seconds)

    def record_throttled(self):
        with self._lock:
            self._throttled += 1

    def record_toggle(self, success: bool, flashlight_on: bool):
        with self._lock:
            self._toggles["ok" if success else "failed"] += 1
            self._flashlight_on = flashlight_on

    def update_detector(self, stats: DetectorStats):
        """Fold the detector's counters into the running totals."""
        with self._lock:
            for name in _DETECTOR_COUNTERS:
                self._detector_totals[name] += getattr(stats, name) - getattr(self._detector_seen, name)
            self._detector_seen = stats

    def detector_replaced(self):
        """Start counting from zero for a freshly built detector.

        Totals already exported are kept so the counters never go
        backwards.
        """
        with self._lock:
            self._detector_seen = DetectorStats()

    def set_flashlight(self, on: bool):
        self._flashlight_on = on

    def set_connections(self, count: int):
        self._active_connections = count

    def render(self) -> str:
        """Render all metrics in Prometheus text exposition format."""
        lines: list[str] = []

        with self._lock:
            stats = Counter(self._detector_totals)
            toggles = dict(self._toggles)
            throttled = self._throttled

        uptime = time.time() - self._start_time
        lines.append("# HELP shake_engine_uptime_seconds Time since collector start")
        lines.append("# TYPE shake_engine_uptime_seconds gauge")
        lines.append(f"shake_engine_uptime_seconds {uptime:.1f}")
        lines.append("")

        lines.append("# HELP shake_engine_samples_total Samples processed by the detector")
        lines.append("# TYPE shake_engine_samples_total counter")
        lines.append(f"shake_engine_samples_total {stats['samples']}")
        lines.append("")

        lines.append("# HELP shake_engine_samples_dropped_total Malformed or out-of-order samples")
        lines.append("# TYPE shake_engine_samples_dropped_total counter")
        lines.append(f"shake_engine_samples_dropped_total {stats['dropped']}")
        lines.append("")

        lines.append("# HELP shake_engine_samples_throttled_total Samples skipped by the rate cap")
        lines.append("# TYPE shake_engine_samples_throttled_total counter")
        lines.append(f"shake_engine_samples_throttled_total {throttled}")
        lines.append("")

        lines.append("# HELP shake_engine_candidates_total Above-threshold samples by outcome")
        lines.append("# TYPE shake_engine_candidates_total counter")
        accepted = stats["candidates"] - stats["debounced"] - stats["suppressed"]
        for outcome, count in (
            ("accepted", accepted),
            ("debounced", stats["debounced"]),
            ("running", stats["suppressed"]),
        ):
            lines.append(f'shake_engine_candidates_total{{outcome="{outcome}"}} {count}')
        lines.append("")

        lines.append("# HELP shake_engine_triggers_total Double-chop triggers emitted")
        lines.append("# TYPE shake_engine_triggers_total counter")
        lines.append(f"shake_engine_triggers_total {stats['triggers']}")
        lines.append("")

        lines.append("# HELP shake_engine_toggles_total Flashlight toggles by result")
        lines.append("# TYPE shake_engine_toggles_total counter")
        for result, count in sorted(toggles.items()):
            lines.append(f'shake_engine_toggles_total{{result="{result}"}} {count}')
        lines.append("")

        lines.append(self._latency.render(
            "shake_engine_sample_latency_seconds",
            "Per-sample detector processing latency in seconds"
        ))
        lines.append("")

        lines.append("# HELP shake_engine_flashlight_on Whether the flashlight is currently on")
        lines.append("# TYPE shake_engine_flashlight_on gauge")
        lines.append(f"shake_engine_flashlight_on {int(self._flashlight_on)}")
        lines.append("")

        lines.append("# HELP shake_engine_active_connections Current WebSocket connections")
        lines.append("# TYPE shake_engine_active_connections gauge")
        lines.append(f"shake_engine_active_connections {self._active_connections}")
        lines.append("")

        return "\n".join(lines) + "\n"

    @property
    def toggle_counts(self) -> dict[str, int]:
        with self._lock:
            return dict(self._toggles)
