"""Background shake service: sensor samples in, flashlight toggles out.

``ShakeService`` is the host around the detector. It owns the detector,
a flashlight and the persisted settings, and turns every trigger into
a toggle plus a feedback notification (vibration, status text) for
whatever front end is listening.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, replace
from typing import Callable, Optional

from shake_engine.detector import GestureDetector, Sample, TriggerEvent
from shake_engine.flashlight import Flashlight, from_settings
from shake_engine.metrics import MetricsCollector
from shake_engine.settings import SettingsStore

logger = logging.getLogger("shake_engine.service")


@dataclass
class ServiceFeedback:
    """What a front end should show/do after a trigger."""
    event: TriggerEvent
    toggled: bool
    flashlight_on: bool
    vibrate: bool

    @property
    def status_text(self) -> str:
        return status_text(self.flashlight_on)

    def to_dict(self) -> dict:
        return {
            "type": "trigger",
            **self.event.to_dict(),
            "toggled": self.toggled,
            "flashlight_on": self.flashlight_on,
            "vibrate": self.vibrate,
            "status": self.status_text,
        }


def status_text(flashlight_on: bool) -> str:
    return f"Shake device twice to toggle. Flashlight: {'ON' if flashlight_on else 'OFF'}"


class ShakeService:
    """Wires a sample source to the detector and the flashlight.

    ``handle_sample`` may be called from several threads (e.g. a web
    server); samples are serialized through a lock so the detector still
    sees a single ordered stream.
    """

    def __init__(
        self,
        store: Optional[SettingsStore] = None,
        flashlight: Optional[Flashlight] = None,
        detector: Optional[GestureDetector] = None,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.store = store or SettingsStore()
        settings = self.store.get()
        self.flashlight = flashlight or from_settings(
            settings.flashlight_on_command, settings.flashlight_off_command
        )
        self.detector = detector or GestureDetector(settings.build_detector_config())
        self.metrics = metrics or MetricsCollector()

        self._listeners: list[Callable[[ServiceFeedback], None]] = []
        self._lock = threading.Lock()
        self._flashlight_lock = threading.Lock()
        self._running = False
        self._last_sample_ms: Optional[int] = None

    @classmethod
    def boot(cls, store: Optional[SettingsStore] = None, **kwargs) -> Optional[ShakeService]:
        """Start the service on boot only if it was enabled before."""
        store = store or SettingsStore()
        if not store.get().service_enabled:
            logger.info("Service was disabled before shutdown, not starting")
            return None
        service = cls(store=store, **kwargs)
        service.start()
        return service

    def on_feedback(self, callback: Callable[[ServiceFeedback], None]):
        """Register a listener for post-trigger feedback."""
        self._listeners.append(callback)

    def start(self):
        if self._running:
            return
        if not self.flashlight.available:
            logger.error("No flashlight available; triggers will not toggle anything")
        self._running = True
        self.store.update(service_enabled=True)
        logger.info("Shake detection active (threshold %.2f g)", self.detector.config.shake_threshold_g)

    def stop(self):
        if not self._running:
            return
        self._running = False
        self.store.update(service_enabled=False)
        self.shutdown_flashlight()
        logger.info("Shake detection inactive")

    @property
    def running(self) -> bool:
        return self._running

    def apply_sensitivity(self, percent: float):
        """Persist a new sensitivity and rebuild the detector with it."""
        config = replace(self.store.get(), sensitivity=percent).build_detector_config()
        self.store.update(sensitivity=percent)
        with self._lock:
            self.detector = GestureDetector(config)
            self.metrics.detector_replaced()
            self._last_sample_ms = None
        logger.info("Sensitivity %.0f%% -> threshold %.2f g", percent, config.shake_threshold_g)

    def handle_sample(self, sample: Sample) -> Optional[ServiceFeedback]:
        """Feed one sensor sample. Returns feedback if it toggled the flashlight."""
        if not self._running:
            return None

        with self._lock:
            if self._throttled(sample.timestamp_ms):
                self.metrics.record_throttled()
                return None

            t0 = time.perf_counter()
            event = self.detector.feed(sample)
            self.metrics.record_sample(time.perf_counter() - t0)
            self.metrics.update_detector(self.detector.stats)

        if event is None:
            return None
        return self._on_trigger(event)

    def toggle(self) -> bool:
        """Toggle the flashlight directly (manual control)."""
        ok, _ = self._toggle()
        return ok

    def shutdown_flashlight(self):
        """Turn the torch off and release it, leaving the enabled flag alone."""
        with self._flashlight_lock:
            self.flashlight.turn_off_completely()
            self.flashlight.release()
            self.metrics.set_flashlight(self.flashlight.is_on)

    def _toggle(self) -> tuple[bool, bool]:
        with self._flashlight_lock:
            ok = self.flashlight.toggle()
            on = self.flashlight.is_on
            self.metrics.record_toggle(ok, on)
        return ok, on

    def _throttled(self, timestamp_ms: int) -> bool:
        max_rate = self.store.get().max_rate_hz
        if max_rate <= 0:
            return False
        if self._last_sample_ms is not None and timestamp_ms - self._last_sample_ms < 1000.0 / max_rate:
            return True
        self._last_sample_ms = timestamp_ms
        return False

    def _on_trigger(self, event: TriggerEvent) -> ServiceFeedback:
        logger.info("Trigger #%d received, toggling flashlight", event.sequence)
        ok, on = self._toggle()
        feedback = ServiceFeedback(
            event=event,
            toggled=ok,
            flashlight_on=on,
            vibrate=self.store.get().vibrate_on_toggle,
        )
        logger.debug("Flashlight toggle success: %s. %s", ok, feedback.status_text)

        for cb in self._listeners:
            try:
                cb(feedback)
            except Exception as e:
                logger.error("Feedback listener error: %s", e)

        return feedback

    def status(self) -> dict:
        stats = self.detector.stats
        return {
            "running": self._running,
            "flashlight_available": self.flashlight.available,
            "flashlight_on": self.flashlight.is_on,
            "status": status_text(self.flashlight.is_on),
            "detector_state": self.detector.state.value,
            "threshold_g": self.detector.config.shake_threshold_g,
            "sensitivity": self.store.get().sensitivity,
            "stats": stats.to_dict(),
        }
