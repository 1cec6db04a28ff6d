"""Periodic-motion (walking/running) suppression.

Gait produces a train of acceleration spikes that individually look like
chops. What separates it from a deliberate double chop is cadence: many
pulses, at 1.5-4 Hz, with near-constant spacing. ``RunningWindow`` keeps
the recent pulse timestamps and answers whether they currently look
like that.
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass
from typing import Optional

import numpy as np


@dataclass
class RunningVerdict:
    """Outcome of one running-hypothesis check."""
    is_running: bool
    count: int
    frequency_hz: Optional[float] = None
    cv: Optional[float] = None


class RunningWindow:
    """Trailing window of accepted pulse timestamps (milliseconds)."""

    def __init__(
        self,
        window_ms: int = 3000,
        min_events: int = 6,
        freq_min_hz: float = 1.5,
        freq_max_hz: float = 4.0,
        regularity_cv: float = 0.3,
    ):
        self.window_ms = window_ms
        self.min_events = min_events
        self.freq_min_hz = freq_min_hz
        self.freq_max_hz = freq_max_hz
        self.regularity_cv = regularity_cv
        self._pulses: deque[int] = deque()

    def trim(self, now_ms: int):
        """Evict pulses older than the window."""
        while self._pulses and now_ms - self._pulses[0] > self.window_ms:
            self._pulses.popleft()

    def add(self, timestamp_ms: int):
        self._pulses.append(timestamp_ms)

    def check(self) -> RunningVerdict:
        """Evaluate the running hypothesis over the current window."""
        count = len(self._pulses)
        if count < self.min_events:
            return RunningVerdict(is_running=False, count=count)

        stamps = np.fromiter(self._pulses, dtype=np.float64, count=count)
        span_s = (stamps[-1] - stamps[0]) / 1000.0
        if span_s <= 0:
            return RunningVerdict(is_running=False, count=count)

        frequency = (count - 1) / span_s
        intervals = np.diff(stamps)
        mean = float(np.mean(intervals))
        cv = float(np.std(intervals)) / mean if mean > 0 else float("inf")

        in_band = self.freq_min_hz <= frequency <= self.freq_max_hz
        regular = cv < self.regularity_cv
        return RunningVerdict(
            is_running=in_band and regular,
            count=count,
            frequency_hz=frequency,
            cv=cv,
        )

    def clear(self):
        self._pulses.clear()

    @property
    def pulses(self) -> list[int]:
        return list(self._pulses)

    def __len__(self) -> int:
        return len(self._pulses)
