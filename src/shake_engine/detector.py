"""Double-chop gesture detection from raw accelerometer samples.

Each sample runs through the same fixed stages:

    validate → lazy timeout → gravity filter → magnitude threshold
             → debounce → running suppression → double-pulse state machine

Everything is evaluated against the timestamp of the incoming sample.
There are no timers, so a detector that stops receiving samples stays
in whatever state the last sample left it.
"""

from __future__ import annotations

import dataclasses
import logging
import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Iterable, Iterator, Optional

import numpy as np

from shake_engine.config import DetectorConfig
from shake_engine.filters import GravityFilter, magnitude_g
from shake_engine.running import RunningWindow

logger = logging.getLogger("shake_engine.detector")


@dataclass(frozen=True)
class Sample:
    """One accelerometer reading. Axes in m/s², timestamp in monotonic ms."""
    timestamp_ms: int
    x: float
    y: float
    z: float


@dataclass(frozen=True)
class TriggerEvent:
    """Fired when a qualifying pulse pair completes."""
    timestamp_ms: int  # time of the second pulse
    first_pulse_ms: int
    interval_ms: int
    magnitude_g: float  # strongest of the two pulses
    sequence: int  # 1-based count of triggers from this detector

    def to_dict(self) -> dict:
        return dataclasses.asdict(self)


class DetectorState(Enum):
    IDLE = "idle"
    ARMED = "armed"


@dataclass
class PulseState:
    """First half of a pending pulse pair."""
    pending: bool = False
    first_pulse_ms: Optional[int] = None
    last_pulse_ms: Optional[int] = None
    peak_g: float = 0.0

    def arm(self, now: int, magnitude: float):
        self.pending = True
        self.first_pulse_ms = now
        self.last_pulse_ms = now
        self.peak_g = magnitude

    def clear(self):
        self.pending = False
        self.first_pulse_ms = None
        self.last_pulse_ms = None
        self.peak_g = 0.0


@dataclass
class DetectorStats:
    """Counters describing what the detector has done with its input."""
    samples: int = 0
    dropped: int = 0
    clamped: int = 0
    candidates: int = 0
    debounced: int = 0
    suppressed: int = 0
    timeouts: int = 0
    too_slow: int = 0
    triggers: int = 0
    last_magnitude_g: float = 0.0
    last_running_frequency_hz: Optional[float] = field(default=None)

    def to_dict(self) -> dict:
        return dataclasses.asdict(self)


class GestureDetector:
    """Streaming double-chop detector.

    Feed samples in non-decreasing timestamp order from a single stream.
    Each call returns at most one ``TriggerEvent``; registered callbacks
    receive the same event synchronously before the call returns.

    Usage:
        detector = GestureDetector()
        detector.on_trigger(lambda e: flashlight.toggle())
        for sample in sensor:
            detector.feed(sample)
    """

    def __init__(self, config: Optional[DetectorConfig] = None):
        self.config = config or DetectorConfig()
        self._filter = GravityFilter(self.config.gravity_filter_alpha)
        self._running = RunningWindow(
            window_ms=self.config.running_window_ms,
            min_events=self.config.running_min_events,
            freq_min_hz=self.config.running_freq_min_hz,
            freq_max_hz=self.config.running_freq_max_hz,
            regularity_cv=self.config.running_regularity_cv,
        )
        self._pulse = PulseState()
        self._last_accepted_ms: Optional[int] = None
        self._last_timestamp: Optional[float] = None
        self._callbacks: list[Callable[[TriggerEvent], None]] = []
        self._stats = DetectorStats()

    def on_trigger(self, callback: Callable[[TriggerEvent], None]):
        """Register a callback for trigger events."""
        self._callbacks.append(callback)

    def feed(self, sample: Sample) -> Optional[TriggerEvent]:
        return self.process_sample(sample.timestamp_ms, sample.x, sample.y, sample.z)

    def stream(self, samples: Iterable[Sample]) -> Iterator[TriggerEvent]:
        """Lazily yield trigger events for a (possibly endless) sample stream."""
        for sample in samples:
            event = self.feed(sample)
            if event is not None:
                yield event

    def process_sample(self, timestamp_ms: int, x: float, y: float, z: float) -> Optional[TriggerEvent]:
        """Run one sample through every stage.

        Samples with non-finite values or a timestamp earlier than the
        previous one are dropped and leave all state untouched.
        """
        values = self._accept(timestamp_ms, x, y, z)
        if values is None:
            self._stats.dropped += 1
            return None

        self._last_timestamp = values[0]
        now = int(values[0])
        self._stats.samples += 1

        # Stale arm must be cleared before anything else looks at it
        if self._pulse.pending and now - self._pulse.first_pulse_ms > self.config.time_window_ms:
            logger.debug("Pair timed out (armed at %d, now %d)", self._pulse.first_pulse_ms, now)
            self._pulse.clear()
            self._stats.timeouts += 1

        self._running.trim(now)

        raw = np.array(values[1:], dtype=np.float64)
        limit = self.config.max_axis_value
        if np.any(np.abs(raw) > limit):
            raw = np.clip(raw, -limit, limit)
            self._stats.clamped += 1

        linear = self._filter.update(raw)
        total = magnitude_g(linear, self.config.gravity)
        self._stats.last_magnitude_g = total

        if total <= self.config.shake_threshold_g:
            return None

        self._stats.candidates += 1

        if (
            self._last_accepted_ms is not None
            and now - self._last_accepted_ms < self.config.min_interval_ms
        ):
            self._stats.debounced += 1
            return None

        self._last_accepted_ms = now
        self._running.add(now)

        verdict = self._running.check()
        self._stats.last_running_frequency_hz = verdict.frequency_hz
        if verdict.is_running:
            logger.debug(
                "Running pattern (%d pulses, %.2f Hz, cv=%.3f), pulse discarded",
                verdict.count, verdict.frequency_hz, verdict.cv,
            )
            self._pulse.clear()
            self._stats.suppressed += 1
            return None

        return self._advance(now, total)

    def _accept(self, timestamp_ms, x, y, z) -> Optional[tuple[float, float, float, float]]:
        """Coerce a sample to floats, or None if it must be dropped."""
        try:
            values = (float(timestamp_ms), float(x), float(y), float(z))
        except (TypeError, ValueError, OverflowError):
            return None
        if not all(math.isfinite(v) for v in values):
            return None
        if self._last_timestamp is not None and values[0] < self._last_timestamp:
            return None
        return values

    def _advance(self, now: int, magnitude: float) -> Optional[TriggerEvent]:
        """Move the pulse-pair state machine with an accepted pulse."""
        if not self._pulse.pending:
            self._pulse.arm(now, magnitude)
            logger.debug("Armed at %d (%.2f g)", now, magnitude)
            return None

        first = self._pulse.first_pulse_ms
        interval = now - first
        peak = max(self._pulse.peak_g, magnitude)
        self._pulse.clear()

        if interval > self.config.max_interval_ms:
            logger.debug("Second pulse too slow (%d ms)", interval)
            self._stats.too_slow += 1
            return None

        self._stats.triggers += 1
        event = TriggerEvent(
            timestamp_ms=now,
            first_pulse_ms=first,
            interval_ms=interval,
            magnitude_g=peak,
            sequence=self._stats.triggers,
        )
        logger.info("Double chop at %d ms (interval %d ms, %.2f g)", now, interval, peak)

        for cb in self._callbacks:
            cb(event)

        return event

    @property
    def state(self) -> DetectorState:
        return DetectorState.ARMED if self._pulse.pending else DetectorState.IDLE

    @property
    def pulse_state(self) -> PulseState:
        return dataclasses.replace(self._pulse)

    @property
    def gravity(self) -> np.ndarray:
        """Current gravity estimate (m/s²)."""
        return self._filter.gravity

    @property
    def running_pulses(self) -> list[int]:
        return self._running.pulses

    @property
    def stats(self) -> DetectorStats:
        return dataclasses.replace(self._stats)

    def reset(self):
        """Clear all state, including the gravity estimate and counters."""
        self._filter.reset()
        self._running.clear()
        self._pulse.clear()
        self._last_accepted_ms = None
        self._last_timestamp = None
        self._stats = DetectorStats()
