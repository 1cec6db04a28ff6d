"""Tests for the double-chop detector state machine."""

import itertools

import numpy as np
import pytest

from shake_engine import synthetic
from shake_engine.config import DetectorConfig
from shake_engine.detector import DetectorState, GestureDetector, Sample


def run(trace, config=None):
    det = GestureDetector(config)
    events = list(det.stream(trace))
    return det, events


def feed_until(det, trace, last_ms):
    for s in trace:
        if s.timestamp_ms > last_ms:
            break
        det.feed(s)


class TestDoublePulse:
    @pytest.mark.parametrize("interval", [150, 200, 300, 450, 600])
    def test_pair_within_max_interval_triggers_once(self, interval):
        trace = synthetic.build_trace(3000, pulses=[1000, 1000 + interval])
        det, events = run(trace)

        assert len(events) == 1
        assert events[0].timestamp_ms == 1000 + interval
        assert events[0].first_pulse_ms == 1000
        assert events[0].interval_ms == interval
        assert det.state == DetectorState.IDLE

    def test_first_pulse_arms(self):
        trace = synthetic.build_trace(2000, pulses=[1000])
        det = GestureDetector()
        feed_until(det, trace, 1000)

        assert det.state == DetectorState.ARMED
        assert det.pulse_state.first_pulse_ms == 1000

    def test_pair_beyond_time_window_never_triggers(self):
        trace = synthetic.build_trace(3000, pulses=[1000, 2100])
        det = GestureDetector()

        feed_until(det, trace, 2080)
        assert det.state == DetectorState.IDLE
        assert det.stats.timeouts == 1

        feed_until(det, [s for s in trace if s.timestamp_ms > 2080], 2100)
        assert det.stats.triggers == 0
        assert det.state == DetectorState.ARMED  # second pulse starts a new pair

    def test_too_slow_pair_resets_without_arming(self):
        trace = synthetic.build_trace(3000, pulses=[1000, 1800])
        det, events = run(trace)

        assert events == []
        assert det.stats.too_slow == 1
        assert det.state == DetectorState.IDLE

    def test_third_pulse_after_too_slow_starts_fresh_pair(self):
        trace = synthetic.build_trace(3500, pulses=[1000, 1800, 2100, 2400])
        det, events = run(trace)

        # 1800→2100 would qualify if 1800 had armed; it must not
        assert len(events) == 1
        assert events[0].first_pulse_ms == 2100
        assert events[0].timestamp_ms == 2400

    def test_trigger_resets_pulse_state(self):
        trace = synthetic.build_trace(1700, pulses=[1000, 1300, 1600])
        det, events = run(trace)

        assert len(events) == 1
        assert det.state == DetectorState.ARMED
        assert det.pulse_state.first_pulse_ms == 1600

    def test_repeated_double_chops(self):
        trace = synthetic.build_trace(5000, pulses=[1000, 1200, 2200, 2400, 3300, 3500])
        det, events = run(trace)

        assert [e.timestamp_ms for e in events] == [1200, 2400, 3500]
        assert [e.sequence for e in events] == [1, 2, 3]
        assert det.stats.suppressed == 0

    def test_end_to_end_example(self):
        samples = [
            Sample(0, 0.0, 0.0, 9.8),
            Sample(50, 0.0, 0.0, 9.8),
            Sample(200, 40.0, 0.0, 9.8),
            Sample(500, 40.0, 0.0, 9.8),
        ]
        det = GestureDetector()

        assert det.feed(samples[0]) is None
        assert det.feed(samples[1]) is None
        assert det.feed(samples[2]) is None
        assert det.state == DetectorState.ARMED

        event = det.feed(samples[3])
        assert event is not None
        assert event.timestamp_ms == 500
        assert event.interval_ms == 300
        assert det.state == DetectorState.IDLE

    def test_callbacks_receive_event(self):
        received = []
        det = GestureDetector()
        det.on_trigger(received.append)

        events = list(det.stream(synthetic.double_chop(interval_ms=300)))
        assert received == events
        assert len(received) == 1


class TestDebounce:
    def test_close_pulses_collapse(self):
        trace = synthetic.build_trace(2000, pulses=[1000, 1100])
        det, events = run(trace)

        assert events == []
        assert det.stats.candidates >= 2
        assert det.stats.debounced == 1
        assert det.state == DetectorState.ARMED
        assert det.pulse_state.first_pulse_ms == 1000

    def test_debounced_pulse_does_not_move_reference(self):
        # 1200 is 100 ms after the discarded 1100 but 200 ms after 1000
        trace = synthetic.build_trace(2000, pulses=[1000, 1100, 1200])
        det, events = run(trace)

        assert len(events) == 1
        assert events[0].first_pulse_ms == 1000
        assert events[0].timestamp_ms == 1200

    def test_debounce_after_trigger(self):
        trace = synthetic.build_trace(2500, pulses=[1000, 1300, 1400])
        det, events = run(trace)

        assert len(events) == 1
        assert det.state == DetectorState.IDLE
        assert det.stats.debounced == 1


class TestRunningSuppression:
    def test_steady_two_hz_stream_stops_triggering(self):
        pulses = [1000 + k * 500 for k in range(16)]
        trace = synthetic.build_trace(pulses[-1] + 500, pulses=pulses)
        det, events = run(trace)

        window_full_at = pulses[5]
        assert all(e.timestamp_ms < window_full_at for e in events)
        assert det.stats.suppressed == len(pulses) - 5
        assert det.state == DetectorState.IDLE

    def test_no_triggers_once_running_established(self):
        det = GestureDetector()
        warmup = [1000 + k * 500 for k in range(5)]
        steps = [warmup[-1] + 500 * (k + 1) for k in range(10)]
        trace = synthetic.build_trace(steps[-1] + 500, pulses=warmup + steps)

        feed_until(det, trace, warmup[-1])
        triggers_before = det.stats.triggers

        later = [s for s in trace if s.timestamp_ms > warmup[-1]]
        events = list(det.stream(later))

        assert events == []
        assert det.stats.triggers == triggers_before

    def test_jittered_running_still_suppressed(self):
        trace = synthetic.running(steps=16, cadence_hz=2.0, jitter_ms=30, seed=3)
        pulses = synthetic.pulse_times(trace)
        det, events = run(trace)

        assert len(pulses) == 16
        assert all(e.timestamp_ms < pulses[5] for e in events)
        assert det.stats.suppressed == 11

    def test_running_resets_armed_pair(self):
        pulses = [1000 + k * 500 for k in range(5)]
        trace = synthetic.build_trace(pulses[-1] + 100, pulses=pulses)
        det = GestureDetector()
        feed_until(det, trace, pulses[-1])
        assert det.state == DetectorState.ARMED

        sixth = pulses[-1] + 500
        more = synthetic.build_trace(600, pulses=[sixth], start_ms=pulses[-1] + 100)
        feed_until(det, more, sixth)
        assert det.stats.suppressed == 1
        assert det.state == DetectorState.IDLE

    def test_fast_regular_pulses_not_running(self):
        # 5 Hz is above the gait band
        config = DetectorConfig(min_interval_ms=100, max_interval_ms=150, time_window_ms=1000)
        pulses = [1000 + k * 200 for k in range(8)]
        trace = synthetic.build_trace(pulses[-1] + 500, pulses=pulses)
        det, _ = run(trace, config)
        assert det.stats.suppressed == 0


class TestGravity:
    def test_converges_to_constant_sample(self):
        det = GestureDetector()
        for i in range(60):
            det.process_sample(i * 20, 1.0, 2.0, 9.0)
        np.testing.assert_allclose(det.gravity, [1.0, 2.0, 9.0], atol=1e-3)

    def test_updated_on_every_sample(self):
        det = GestureDetector()
        det.process_sample(0, 0.0, 0.0, 10.0)
        assert det.gravity[2] == pytest.approx(2.0)
        det.process_sample(20, 0.0, 0.0, 10.0)
        assert det.gravity[2] == pytest.approx(3.6)


class TestStream:
    def test_stream_is_lazy_over_endless_input(self):
        def endless():
            for cycle in itertools.count():
                base = cycle * 2000
                for t in range(0, 2000, 20):
                    x = 40.0 if t in (500, 800) else 0.0
                    yield Sample(base + t, x, 0.0, 9.80665)

        det = GestureDetector()
        first_three = list(itertools.islice(det.stream(endless()), 3))
        assert [e.timestamp_ms for e in first_three] == [800, 2800, 4800]

    def test_reset_clears_everything(self):
        det = GestureDetector()
        feed_until(det, synthetic.build_trace(2000, pulses=[1000]), 1000)
        det.reset()

        assert det.state == DetectorState.IDLE
        assert det.stats.samples == 0
        assert det.running_pulses == []
        np.testing.assert_array_equal(det.gravity, np.zeros(3))
