"""Persisted service settings.

Holds what the host remembers between runs: whether the service was
enabled (used to auto-start on boot), the sensitivity slider and the
flashlight commands.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, asdict, fields
from pathlib import Path
from typing import Optional

from shake_engine.config import DetectorConfig, sensitivity_factor

logger = logging.getLogger("shake_engine.settings")

DEFAULT_SETTINGS_PATH = Path(
    os.environ.get("SHAKE_ENGINE_HOME", Path.home() / ".shake_engine")
) / "settings.json"


@dataclass
class ServiceSettings:
    service_enabled: bool = False
    sensitivity: float = 50.0
    vibrate_on_toggle: bool = True
    max_rate_hz: float = 0.0  # 0 = no cap
    flashlight_on_command: str = ""
    flashlight_off_command: str = ""
    detector_config: Optional[str] = None  # YAML overrides

    def build_detector_config(self) -> DetectorConfig:
        """Detector config from the YAML file (if any), threshold scaled by sensitivity."""
        base = DetectorConfig.from_yaml(self.detector_config) if self.detector_config else DetectorConfig()
        factor = sensitivity_factor(self.sensitivity)
        return base.replace(shake_threshold_g=round(base.shake_threshold_g * factor, 4))


class SettingsStore:
    """JSON-file backed ``ServiceSettings``."""

    def __init__(self, path: str | Path = DEFAULT_SETTINGS_PATH):
        self.path = Path(path)
        self._settings: Optional[ServiceSettings] = None

    def get(self) -> ServiceSettings:
        if self._settings is None:
            self._settings = self.load()
        return self._settings

    def load(self) -> ServiceSettings:
        if self.path.exists():
            try:
                data = json.loads(self.path.read_text())
                known = {f.name for f in fields(ServiceSettings)}
                return ServiceSettings(**{k: v for k, v in data.items() if k in known})
            except (OSError, ValueError, TypeError) as e:
                logger.warning("Ignoring unreadable settings file %s: %s", self.path, e)
        return ServiceSettings()

    def save(self, settings: ServiceSettings):
        self._settings = settings
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(asdict(settings), indent=2))

    def update(self, **kwargs) -> ServiceSettings:
        settings = self.get()
        for k, v in kwargs.items():
            if hasattr(settings, k):
                setattr(settings, k, v)
            else:
                logger.debug("Unknown setting %s ignored", k)
        self.save(settings)
        return settings
