"""Flashlight actuators driven by trigger events.

The detector never touches hardware. Whatever reacts to a trigger
implements ``Flashlight``: idempotent on/off commands that report
success as a bool instead of raising.
"""

from __future__ import annotations

import logging
import shlex
import subprocess
from abc import ABC, abstractmethod
from typing import Optional

logger = logging.getLogger("shake_engine.flashlight")


class Flashlight(ABC):
    """Base class for on/off torch actuators."""

    name: str = "flashlight"

    def __init__(self):
        self._on = False

    @property
    @abstractmethod
    def available(self) -> bool:
        """Whether the underlying device can be driven at all."""

    @abstractmethod
    def _set(self, on: bool) -> bool:
        """Drive the hardware. Returns True on success."""

    @property
    def is_on(self) -> bool:
        return self._on

    def turn_on(self) -> bool:
        return self._switch(True)

    def turn_off(self) -> bool:
        return self._switch(False)

    def toggle(self) -> bool:
        """Flip the torch. Returns True if the new state was applied."""
        if not self.available:
            logger.warning("%s: toggle requested but no flash is available", self.name)
            return False
        return self._switch(not self._on)

    def turn_off_completely(self):
        """Make sure the torch is off, e.g. when the service stops."""
        if self._on:
            self.turn_off()

    def release(self):
        """Turn off and free any resources. Safe to call repeatedly."""
        logger.info("%s: release (was %s)", self.name, "ON" if self._on else "OFF")
        if self._on:
            self.turn_off()
        self._on = False

    def _switch(self, on: bool) -> bool:
        if not self.available:
            return False
        ok = self._set(on)
        if ok:
            self._on = on
            logger.info("%s turned %s", self.name, "ON" if on else "OFF")
        else:
            logger.error("%s: could not turn %s", self.name, "on" if on else "off")
        return ok


class SimulatedFlashlight(Flashlight):
    """In-memory torch for tests, demos and headless hosts."""

    name = "simulated"

    def __init__(self, available: bool = True, fail: bool = False):
        super().__init__()
        self._available = available
        self.fail = fail
        self.history: list[bool] = []

    @property
    def available(self) -> bool:
        return self._available

    def _set(self, on: bool) -> bool:
        if self.fail:
            return False
        self.history.append(on)
        return True


class CommandFlashlight(Flashlight):
    """Drives a torch by running shell commands.

    Example (Linux LED class device):
        CommandFlashlight(
            on_command="sh -c 'echo 1 > /sys/class/leds/torch/brightness'",
            off_command="sh -c 'echo 0 > /sys/class/leds/torch/brightness'",
        )
    """

    name = "command"

    def __init__(self, on_command: str, off_command: str, timeout: float = 5.0):
        super().__init__()
        self.on_command = on_command
        self.off_command = off_command
        self.timeout = timeout

    @property
    def available(self) -> bool:
        return bool(self.on_command and self.off_command)

    def _set(self, on: bool) -> bool:
        command = self.on_command if on else self.off_command
        try:
            proc = subprocess.run(
                shlex.split(command),
                stdout=subprocess.DEVNULL,
                stderr=subprocess.PIPE,
                timeout=self.timeout,
            )
        except subprocess.TimeoutExpired:
            logger.warning("Flashlight command timed out: %s", command)
            return False
        except OSError as e:
            logger.warning("Flashlight command failed to start: %s (%s)", command, e)
            return False

        if proc.returncode != 0:
            logger.warning(
                "Flashlight command [%s] -> rc=%d: %s",
                command, proc.returncode, proc.stderr.decode(errors="replace").strip(),
            )
            return False
        return True


def from_settings(on_command: Optional[str], off_command: Optional[str]) -> Flashlight:
    """Command-driven torch when both commands are configured, else simulated."""
    if on_command and off_command:
        return CommandFlashlight(on_command, off_command)
    return SimulatedFlashlight()
