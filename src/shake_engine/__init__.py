"""ShakeEngine - Double-chop gesture detection from accelerometer streams."""

__version__ = "0.1.0"

from shake_engine.config import DetectorConfig, ConfigError
from shake_engine.detector import GestureDetector, Sample, TriggerEvent, DetectorState
from shake_engine.filters import GravityFilter
from shake_engine.running import RunningWindow
from shake_engine.recorder import SampleRecorder, SamplePlayer
from shake_engine.flashlight import Flashlight, SimulatedFlashlight, CommandFlashlight
from shake_engine.settings import ServiceSettings, SettingsStore
from shake_engine.service import ShakeService, ServiceFeedback
from shake_engine.metrics import MetricsCollector
