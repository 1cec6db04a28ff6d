"""Low-pass gravity estimation and linear-acceleration extraction."""

from __future__ import annotations

import numpy as np


class GravityFilter:
    """Separates the slowly varying gravity component from device motion.

    Each update blends the new reading into the running estimate
    (``g = alpha * g + (1 - alpha) * s``) and returns ``s - g``. No
    orientation calibration is needed; the estimate follows the device
    as it is turned.
    """

    def __init__(self, alpha: float = 0.8):
        if not 0.0 <= alpha < 1.0:
            raise ValueError("alpha must be in [0, 1)")
        self.alpha = alpha
        self._gravity = np.zeros(3, dtype=np.float64)

    def update(self, sample: np.ndarray) -> np.ndarray:
        """Fold one raw (x, y, z) reading into the estimate.

        Returns:
            Linear acceleration, shape (3,).
        """
        sample = np.asarray(sample, dtype=np.float64)
        self._gravity = self.alpha * self._gravity + (1.0 - self.alpha) * sample
        return sample - self._gravity

    @property
    def gravity(self) -> np.ndarray:
        return self._gravity.copy()

    def reset(self):
        self._gravity = np.zeros(3, dtype=np.float64)


def magnitude_g(linear: np.ndarray, gravity: float) -> float:
    """Euclidean norm of a linear-acceleration vector in units of g."""
    return float(np.linalg.norm(linear)) / gravity
