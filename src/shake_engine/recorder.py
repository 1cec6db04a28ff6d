"""Accelerometer recording and replay.

Record real sensor sessions for:
- Reproducible detector tuning without a device in hand
- CI runs over captured walking/running/chop traces
- Demo sessions that play back deterministically
"""

from __future__ import annotations

import json
import time
from pathlib import Path
from typing import Iterator, Optional

import numpy as np

from shake_engine.detector import Sample, TriggerEvent


class SampleRecorder:
    """Records samples (and any triggers they produced) to a file.

    Usage:
        recorder = SampleRecorder()
        recorder.start()
        # In your sensor callback:
        recorder.add_sample(sample)
        # When done:
        recorder.save("session.json")
    """

    def __init__(self):
        self._samples: list[Sample] = []
        self._triggers: list[dict] = []
        self._recording = False

    def start(self):
        """Begin a new recording session."""
        self._samples = []
        self._triggers = []
        self._recording = True

    def stop(self) -> int:
        """Stop recording. Returns number of samples captured."""
        self._recording = False
        return len(self._samples)

    @property
    def is_recording(self) -> bool:
        return self._recording

    @property
    def sample_count(self) -> int:
        return len(self._samples)

    @property
    def duration_ms(self) -> int:
        if len(self._samples) < 2:
            return 0
        return self._samples[-1].timestamp_ms - self._samples[0].timestamp_ms

    def add_sample(self, sample: Sample):
        if not self._recording:
            return
        self._samples.append(sample)

    def add_trigger(self, event: TriggerEvent):
        if not self._recording:
            return
        self._triggers.append(event.to_dict())

    def save(self, path: str | Path):
        """Save recording to JSON file."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)

        data = {
            "version": 1,
            "sample_count": len(self._samples),
            "duration_ms": self.duration_ms,
            "samples": [[s.timestamp_ms, s.x, s.y, s.z] for s in self._samples],
            "triggers": self._triggers,
        }

        with open(path, "w") as f:
            json.dump(data, f)

    def save_compact(self, path: str | Path) -> Path:
        """Save in compact binary format (numpy npz)."""
        path = Path(path).with_suffix(".npz")
        path.parent.mkdir(parents=True, exist_ok=True)

        samples = np.array(
            [[s.timestamp_ms, s.x, s.y, s.z] for s in self._samples],
            dtype=np.float64,
        ).reshape(-1, 4)

        np.savez_compressed(
            path,
            samples=samples,
            trigger_data=np.array([json.dumps(self._triggers)]),
        )
        return path


class SamplePlayer:
    """Replays a recorded accelerometer session.

    Loads ``.json`` and ``.npz`` recordings as well as plain ``.csv``
    exports with ``timestamp_ms,x,y,z`` columns (header optional).

    Usage:
        player = SamplePlayer.load("session.json")
        for event in detector.stream(player.play()):
            ...
    """

    def __init__(self, samples: list[Sample], triggers: Optional[list[dict]] = None):
        self._samples = samples
        self.triggers = triggers or []

    @classmethod
    def load(cls, path: str | Path) -> SamplePlayer:
        path = Path(path)

        if path.suffix == ".npz":
            return cls._load_compact(path)
        if path.suffix == ".csv":
            return cls._load_csv(path)

        with open(path) as f:
            data = json.load(f)

        samples = [_row_to_sample(row) for row in data["samples"]]
        return cls(samples, data.get("triggers", []))

    @classmethod
    def _load_compact(cls, path: Path) -> SamplePlayer:
        data = np.load(path, allow_pickle=False)
        samples = [_row_to_sample(row) for row in data["samples"]]
        triggers = json.loads(str(data["trigger_data"][0]))
        return cls(samples, triggers)

    @classmethod
    def _load_csv(cls, path: Path) -> SamplePlayer:
        with open(path) as f:
            first = f.readline()
        skip = 0 if _is_numeric_row(first) else 1
        rows = np.loadtxt(path, delimiter=",", skiprows=skip, ndmin=2, usecols=(0, 1, 2, 3))
        return cls([_row_to_sample(row) for row in rows])

    @property
    def sample_count(self) -> int:
        return len(self._samples)

    @property
    def duration_ms(self) -> int:
        if len(self._samples) < 2:
            return 0
        return self._samples[-1].timestamp_ms - self._samples[0].timestamp_ms

    def play(self) -> Iterator[Sample]:
        """Iterate through all samples instantly (no timing)."""
        yield from self._samples

    def play_realtime(self, speed: float = 1.0) -> Iterator[Sample]:
        """Replay at original timing (or scaled by speed factor).

        Args:
            speed: Playback speed multiplier (2.0 = double speed).
        """
        if not self._samples:
            return

        origin = self._samples[0].timestamp_ms
        start = time.monotonic()

        for sample in self._samples:
            target_time = (sample.timestamp_ms - origin) / 1000.0 / speed
            elapsed = time.monotonic() - start
            if target_time > elapsed:
                time.sleep(target_time - elapsed)
            yield sample

    def get_sample(self, index: int) -> Optional[Sample]:
        if 0 <= index < len(self._samples):
            return self._samples[index]
        return None


def _row_to_sample(row) -> Sample:
    return Sample(timestamp_ms=int(row[0]), x=float(row[1]), y=float(row[2]), z=float(row[3]))


def _is_numeric_row(line: str) -> bool:
    try:
        [float(v) for v in line.strip().split(",")]
    except ValueError:
        return False
    return True
