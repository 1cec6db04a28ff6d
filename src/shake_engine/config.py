"""Detector configuration.

All thresholds live in one immutable value passed to the detector at
construction. Defaults are the tuned values from the field app; the
running-suppression numbers are empirical and meant to be tuned.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, asdict
from pathlib import Path
from typing import Any

import yaml

GRAVITY_EARTH = 9.80665


class ConfigError(ValueError):
    """Raised when a detector configuration is invalid."""


def sensitivity_factor(percent: float) -> float:
    """Threshold multiplier for a 0-100 sensitivity slider (50 -> 1.0)."""
    if not 0 <= percent <= 100:
        raise ConfigError(f"sensitivity must be within 0..100, got {percent}")
    return 2 ** ((50 - percent) / 50)


@dataclass(frozen=True)
class DetectorConfig:
    """Thresholds and timing constants for the double-chop detector."""

    shake_threshold_g: float = 2.5
    time_window_ms: int = 1000
    min_interval_ms: int = 150
    max_interval_ms: int = 600
    gravity_filter_alpha: float = 0.8
    running_window_ms: int = 3000
    running_min_events: int = 6
    running_freq_min_hz: float = 1.5
    running_freq_max_hz: float = 4.0
    running_regularity_cv: float = 0.3
    gravity: float = GRAVITY_EARTH
    sensor_range_g: float = 16.0

    def __post_init__(self):
        self.validate()

    def validate(self):
        """Check ranges and the ordering of the timing windows."""
        if self.shake_threshold_g <= 0:
            raise ConfigError("shake_threshold_g must be positive")
        if not 0.0 <= self.gravity_filter_alpha < 1.0:
            raise ConfigError("gravity_filter_alpha must be in [0, 1)")
        if self.min_interval_ms < 0:
            raise ConfigError("min_interval_ms must be >= 0")
        if self.max_interval_ms <= self.min_interval_ms:
            raise ConfigError("max_interval_ms must exceed min_interval_ms")
        if self.time_window_ms < self.max_interval_ms:
            raise ConfigError("time_window_ms must be >= max_interval_ms")
        if self.running_window_ms <= 0:
            raise ConfigError("running_window_ms must be positive")
        if self.running_min_events < 3:
            raise ConfigError("running_min_events must be at least 3")
        if not 0 < self.running_freq_min_hz <= self.running_freq_max_hz:
            raise ConfigError("running frequency band is empty or negative")
        if self.running_regularity_cv <= 0:
            raise ConfigError("running_regularity_cv must be positive")
        if self.gravity <= 0:
            raise ConfigError("gravity must be positive")
        if self.sensor_range_g <= self.shake_threshold_g:
            raise ConfigError("sensor_range_g must exceed shake_threshold_g")

    def replace(self, **changes: Any) -> DetectorConfig:
        """Return a copy with some fields overridden."""
        try:
            return dataclasses.replace(self, **changes)
        except TypeError as e:
            raise ConfigError(str(e)) from e

    @classmethod
    def with_sensitivity(cls, percent: float, **overrides: Any) -> DetectorConfig:
        """Build a config from a 0-100 sensitivity setting.

        50% keeps the default threshold; every 50 points halves or
        doubles it (100% -> 1.25 g, 0% -> 5 g).
        """
        threshold = cls.shake_threshold_g * sensitivity_factor(percent)
        return cls.from_dict({**overrides, "shake_threshold_g": round(threshold, 4)})

    @property
    def max_axis_value(self) -> float:
        """Largest absolute axis reading accepted before clamping."""
        return self.sensor_range_g * self.gravity

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> DetectorConfig:
        known = {f.name for f in dataclasses.fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ConfigError(f"unknown config keys: {', '.join(unknown)}")
        return cls(**data)

    @classmethod
    def from_yaml(cls, path: str | Path) -> DetectorConfig:
        """Load a config from YAML. Missing keys keep their defaults.

        The file may hold the fields at top level or under a
        ``detector:`` key.
        """
        with open(path) as f:
            data = yaml.safe_load(f) or {}

        if not isinstance(data, dict):
            raise ConfigError(f"{path}: expected a mapping")
        if "detector" in data:
            data = data["detector"] or {}

        sensitivity = data.pop("sensitivity", None)
        if sensitivity is not None:
            return cls.with_sensitivity(sensitivity, **data)
        return cls.from_dict(data)

    def to_yaml(self, path: str | Path):
        with open(path, "w") as f:
            yaml.dump({"detector": self.to_dict()}, f, default_flow_style=False, sort_keys=False)
