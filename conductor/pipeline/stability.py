# conductor/pipeline/stability.py
from __future__ import annotations

from collections import deque
from typing import Optional

import numpy as np

from .config import StabilityConfig


class StabilityFilter:
    """
    Temporal smoothing of pitch readings for noisy (outdoor) capture.

    Keeps the last ``history_size`` readings. Once ``min_samples`` exist, the
    windowed mean is propagated when the window is tight (stddev below
    ``max_stddev_hz``) or the signal is strong (peak above ``strong_peak``);
    otherwise the previous accepted value is held. Rejected readings stay in
    the window, so a genuine pitch shift is accepted once it fills it.

    When disabled the filter passes readings through unchanged.
    """

    def __init__(self, config: StabilityConfig):
        self.config = config
        self._history: deque = deque(maxlen=int(config.history_size))
        self._accepted: float = 0.0
        self._last_voice_time: Optional[float] = None

    @property
    def enabled(self) -> bool:
        return bool(self.config.enabled)

    @property
    def accepted(self) -> float:
        return self._accepted

    @property
    def history(self) -> list:
        return list(self._history)

    def reset(self) -> None:
        self._history.clear()
        self._accepted = 0.0
        self._last_voice_time = None

    def update(self, frequency: float, peak: float, now: Optional[float] = None) -> float:
        """Feed one accepted reading; returns the frequency to propagate."""
        if now is not None:
            self._last_voice_time = now

        if not self.enabled:
            self._accepted = float(frequency)
            return self._accepted

        self._history.append(float(frequency))
        if len(self._history) < self.config.min_samples:
            self._accepted = float(frequency)
            return self._accepted

        window = np.asarray(self._history, dtype=np.float64)
        mean = float(np.mean(window))
        std = float(np.std(window))

        if std < self.config.max_stddev_hz or peak > self.config.strong_peak:
            self._accepted = mean
        return self._accepted

    def note_voice(self, now: float) -> None:
        self._last_voice_time = now

    def mark_silence(self, now: float) -> float:
        """
        Report a frame without voice. After ``silence_reset_s`` of silence the
        history is dropped and the output forced to 0. A disabled filter holds
        nothing, so silence is always 0.
        """
        if not self.enabled:
            return 0.0

        if self._last_voice_time is None:
            self._last_voice_time = now
            return self._accepted

        if now - self._last_voice_time > self.config.silence_reset_s:
            self._history.clear()
            self._accepted = 0.0
        return self._accepted
