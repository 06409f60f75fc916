# conductor/pipeline/frame_source.py
"""Frame sources feeding the analysis loop.

A source is pull-based and non-blocking: ``next_frame()`` returns the next
window or ``None`` when nothing new is available yet. Capture devices and
their failures belong to the source; exceptions propagate to the caller.
"""
from __future__ import annotations

import logging
import warnings
from collections import deque
from typing import Optional, Protocol, Tuple

import numpy as np
import librosa

from .models import AudioFrame

logger = logging.getLogger(__name__)

DEFAULT_WINDOW_SIZE = 8192


class FrameSource(Protocol):
    sample_rate: int

    def next_frame(self) -> Optional[AudioFrame]:
        ...


class ArrayFrameSource:
    """
    Sliding windows over an in-memory mono signal.

    Each pull advances the read position by ``hop`` samples and returns the
    ``window_size`` samples ending there, like an analyser node reading the
    most recent time-domain window. Returns ``None`` once the signal is exhausted.
    """

    def __init__(
        self,
        samples: np.ndarray,
        sample_rate: int,
        window_size: int = DEFAULT_WINDOW_SIZE,
        hop: Optional[int] = None,
    ):
        self.samples = np.asarray(samples, dtype=np.float32).reshape(-1)
        self.sample_rate = int(sample_rate)
        self.window_size = int(window_size)
        self.hop = int(hop) if hop else self.window_size
        if self.hop <= 0:
            raise ValueError("hop must be positive")
        self._end = min(self.window_size, self.samples.size)
        self._first = True

    @property
    def exhausted(self) -> bool:
        return not self._first and self._end >= self.samples.size

    def next_frame(self) -> Optional[AudioFrame]:
        if self.samples.size == 0:
            return None
        if self._first:
            self._first = False
        elif self._end >= self.samples.size:
            return None
        else:
            self._end = min(self._end + self.hop, self.samples.size)
        start = max(0, self._end - self.window_size)
        return AudioFrame(self.samples[start:self._end], self.sample_rate)


class StreamFrameSource:
    """
    Ring buffer fed by a capture callback (``push``) and pulled by the engine.

    ``next_frame`` only yields once a full window exists and new samples have
    arrived since the previous pull; older audio is dropped, never queued.
    """

    def __init__(self, sample_rate: int, window_size: int = DEFAULT_WINDOW_SIZE):
        self.sample_rate = int(sample_rate)
        self.window_size = int(window_size)
        self._buf: deque = deque(maxlen=self.window_size)
        self._fresh = 0

    def push(self, block: np.ndarray) -> None:
        block = np.asarray(block, dtype=np.float32).reshape(-1)
        self._buf.extend(block.tolist())
        self._fresh += int(block.size)

    def next_frame(self) -> Optional[AudioFrame]:
        if self._fresh == 0 or len(self._buf) < self.window_size:
            return None
        self._fresh = 0
        return AudioFrame(np.fromiter(self._buf, dtype=np.float32, count=len(self._buf)), self.sample_rate)


def load_audio(
    path: str,
    sample_rate: int = 44100,
    offset_s: float = 0.0,
    duration_s: Optional[float] = None,
) -> Tuple[np.ndarray, int]:
    """Load a file as mono float32 at ``sample_rate``."""
    try:
        with warnings.catch_warnings():
            warnings.simplefilter("ignore")
            audio, sr = librosa.load(
                path,
                sr=int(sample_rate),
                mono=True,
                offset=max(0.0, float(offset_s or 0.0)),
                duration=duration_s,
            )
    except Exception as e:
        raise RuntimeError(f"failed to load audio from {path}: {e}")

    audio = np.asarray(audio, dtype=np.float32).reshape(-1)
    if audio.size == 0:
        raise ValueError(f"audio file {path} is empty")
    logger.info(f"Loaded {path}: {audio.size / float(sr):.2f}s @ {sr} Hz")
    return audio, int(sr)


class AudioFileFrameSource(ArrayFrameSource):
    """ArrayFrameSource over a decoded audio file."""

    @classmethod
    def from_path(
        cls,
        path: str,
        sample_rate: int = 44100,
        window_size: int = DEFAULT_WINDOW_SIZE,
        hop: Optional[int] = None,
    ) -> "AudioFileFrameSource":
        audio, sr = load_audio(path, sample_rate=sample_rate)
        return cls(audio, sr, window_size=window_size, hop=hop)
