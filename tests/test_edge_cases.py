"""Edge case tests for malformed input and lazy timing."""

import math

import numpy as np
import pytest

from shake_engine import synthetic
from shake_engine.detector import DetectorState, GestureDetector, Sample


def armed_detector():
    det = GestureDetector()
    for s in synthetic.build_trace(1001, pulses=[1000]):
        det.feed(s)
    assert det.state == DetectorState.ARMED
    return det


class TestMalformedSamples:
    @pytest.mark.parametrize("bad", [math.nan, math.inf, -math.inf])
    def test_non_finite_axis_dropped(self, bad):
        det = armed_detector()
        gravity = det.gravity
        before = det.stats

        assert det.process_sample(1020, bad, 0.0, 9.8) is None

        after = det.stats
        assert after.dropped == before.dropped + 1
        assert after.samples == before.samples
        np.testing.assert_array_equal(det.gravity, gravity)
        assert det.state == DetectorState.ARMED

    def test_non_finite_timestamp_dropped(self):
        det = GestureDetector()
        assert det.process_sample(math.nan, 0.0, 0.0, 9.8) is None
        assert det.stats.dropped == 1
        assert det.stats.samples == 0

    def test_non_numeric_dropped(self):
        det = GestureDetector()
        assert det.process_sample(0, None, 0.0, 9.8) is None
        assert det.process_sample(0, "abc", 0.0, 9.8) is None
        assert det.stats.dropped == 2

    def test_overflowing_values_dropped(self):
        det = GestureDetector()
        assert det.process_sample(10**400, 0.0, 0.0, 9.8) is None
        assert det.process_sample(0, 10**400, 0.0, 9.8) is None
        assert det.stats.dropped == 2
        assert det.stats.samples == 0

    def test_numeric_string_timestamp_coerced(self):
        det = GestureDetector()
        det.process_sample("100", "0.0", 0.0, 9.8)
        det.process_sample(120, 0.0, 0.0, 9.8)
        assert det.process_sample("110", 0.0, 0.0, 9.8) is None
        assert det.stats.samples == 2
        assert det.stats.dropped == 1

    def test_string_timestamp_still_arms(self):
        det = GestureDetector()
        for s in synthetic.build_trace(1000):
            det.feed(s)
        det.process_sample("1000", 50.0, 0.0, 9.8)
        assert det.state == DetectorState.ARMED
        assert det.pulse_state.first_pulse_ms == 1000

    def test_regressing_timestamp_dropped(self):
        det = armed_detector()
        # A strong jolt in the past would otherwise complete the pair
        assert det.process_sample(900, 60.0, 0.0, 9.8) is None
        assert det.stats.dropped == 1
        assert det.state == DetectorState.ARMED

    def test_equal_timestamp_accepted(self):
        det = GestureDetector()
        det.process_sample(100, 0.0, 0.0, 9.8)
        det.process_sample(100, 0.0, 0.0, 9.8)
        assert det.stats.samples == 2
        assert det.stats.dropped == 0

    def test_out_of_range_values_clamped(self):
        det = GestureDetector()
        det.process_sample(0, 1e9, 0.0, 0.0)

        limit = det.config.max_axis_value
        assert det.stats.clamped == 1
        assert det.gravity[0] == pytest.approx(0.2 * limit)

    def test_zero_input(self):
        det = GestureDetector()
        for i in range(100):
            assert det.process_sample(i * 20, 0.0, 0.0, 0.0) is None
        assert det.stats.candidates == 0


class TestLazyTiming:
    def test_idle_stream_stays_armed(self):
        det = armed_detector()
        # No further samples: nothing can clear the arm
        assert det.state == DetectorState.ARMED
        assert det.stats.timeouts == 0

    def test_timeout_applied_on_next_sample(self):
        det = armed_detector()
        det.process_sample(5000, 0.0, 0.0, 9.80665)
        assert det.state == DetectorState.IDLE
        assert det.stats.timeouts == 1

    def test_timeout_checked_before_new_pulse(self):
        det = armed_detector()
        # Strong jolt long after the arm: resets, then arms fresh
        event = det.process_sample(2500, 50.0, 0.0, 9.80665)
        assert event is None
        assert det.stats.timeouts == 1
        assert det.state == DetectorState.ARMED
        assert det.pulse_state.first_pulse_ms == 2500

    def test_exactly_at_time_window_not_expired(self):
        det = armed_detector()
        det.process_sample(2000, 0.0, 0.0, 9.80665)
        assert det.state == DetectorState.ARMED

    def test_large_timestamps(self):
        base = 10**12
        trace = [
            Sample(s.timestamp_ms + base, s.x, s.y, s.z)
            for s in synthetic.double_chop(interval_ms=250)
        ]
        det = GestureDetector()
        events = list(det.stream(trace))
        assert len(events) == 1
        assert events[0].interval_ms == 250
