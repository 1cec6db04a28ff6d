"""Stress tests for ShakeEngine."""

import threading
import time

import numpy as np
import pytest

from shake_engine import synthetic
from shake_engine.detector import GestureDetector, Sample
from shake_engine.flashlight import SimulatedFlashlight
from shake_engine.service import ShakeService
from shake_engine.settings import SettingsStore


def noisy_stream(count, seed=42):
    rng = np.random.default_rng(seed)
    values = rng.normal(0.0, 15.0, size=(count, 3))
    values[:, 2] += 9.8
    for i, (x, y, z) in enumerate(values):
        yield Sample(i * 20, float(x), float(y), float(z))


class TestHighVolume:
    def test_100k_samples(self):
        """Process 100,000 noisy samples without errors."""
        det = GestureDetector()
        for _ in det.stream(noisy_stream(100_000)):
            pass
        stats = det.stats
        assert stats.samples == 100_000
        assert stats.candidates >= stats.triggers

    def test_running_window_bounded(self):
        det = GestureDetector()
        trace = synthetic.running(steps=400, cadence_hz=3.0)
        list(det.stream(trace))
        # 3 Hz over a 3 s window, boundary included
        assert len(det.running_pulses) <= 10

    def test_throughput(self):
        trace = list(noisy_stream(20_000, seed=1))
        det = GestureDetector()
        t0 = time.perf_counter()
        list(det.stream(trace))
        elapsed = time.perf_counter() - t0
        assert elapsed < 10.0, f"{len(trace)} samples took {elapsed:.2f}s"

    def test_garbage_interleaved(self):
        det = GestureDetector()
        rng = np.random.default_rng(7)
        for i in range(5_000):
            if rng.random() < 0.2:
                det.process_sample(i * 20, float("nan"), 0.0, 9.8)
            else:
                det.process_sample(i * 20, *rng.normal(0.0, 10.0, size=3).tolist())
        stats = det.stats
        assert stats.samples + stats.dropped == 5_000
        assert stats.dropped > 0


class TestConcurrency:
    def test_concurrent_handle_sample(self, tmp_path):
        service = ShakeService(
            store=SettingsStore(tmp_path / "settings.json"),
            flashlight=SimulatedFlashlight(),
        )
        service.start()
        errors = []

        def worker(offset):
            try:
                for i in range(2_000):
                    service.handle_sample(Sample(i * 20 + offset, 0.0, 0.0, 9.8))
            except Exception as e:
                errors.append(e)

        threads = [threading.Thread(target=worker, args=(k,)) for k in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert errors == []
        stats = service.detector.stats
        assert stats.samples + stats.dropped == 8_000

    @pytest.mark.parametrize("seed", [1, 2, 3])
    def test_jittered_chops_still_trigger(self, seed):
        trace = synthetic.double_chop(interval_ms=300, noise_std=0.5, seed=seed)
        assert len(list(GestureDetector().stream(trace))) == 1
