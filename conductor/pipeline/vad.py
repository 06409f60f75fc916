# conductor/pipeline/vad.py
"""Voice activity gate.

Amplitude gating alone false-triggers on wind and traffic rumble, so the
outdoor mode adds a spectral check: the voice band (80-3000 Hz) has to carry
clearly more energy than the sub-80 Hz background.
"""
from __future__ import annotations

from typing import Tuple

import numpy as np
import scipy.fft

from .config import GateConfig
from .models import AudioFrame, AnalysisMode, GateResult


def band_energies(
    samples: np.ndarray,
    sr: int,
    voice_band_hz: Tuple[float, float],
    background_max_hz: float,
) -> Tuple[float, float]:
    """
    Mean FFT magnitude in the voice band and in the background band.

    The DC bin is excluded from the background. A band with no bins reports 0.
    """
    x = np.asarray(samples, dtype=np.float32).reshape(-1)
    if x.size < 2:
        return 0.0, 0.0

    win = np.hanning(x.size).astype(np.float32)
    mag = np.abs(scipy.fft.rfft(x * win))
    freqs = scipy.fft.rfftfreq(x.size, d=1.0 / float(sr))

    lo, hi = voice_band_hz
    voice = mag[(freqs >= lo) & (freqs <= hi)]
    background = mag[(freqs > 0.0) & (freqs < background_max_hz)]

    voice_e = float(np.mean(voice)) if voice.size else 0.0
    background_e = float(np.mean(background)) if background.size else 0.0
    return voice_e, background_e


class VoiceActivityGate:
    """Decides whether a frame carries voiced speech worth analysing."""

    def __init__(self, config: GateConfig, mode: AnalysisMode = AnalysisMode.STANDARD):
        self.config = config
        self.mode = AnalysisMode(mode)

    def evaluate(self, frame: AudioFrame) -> GateResult:
        cfg = self.config
        rms = frame.rms
        peak = frame.peak
        level = min(rms * 10.0, 1.0)

        amplitude_ok = rms > cfg.rms_threshold or peak > cfg.peak_threshold

        if not (cfg.spectral_check or self.mode is AnalysisMode.OUTDOOR):
            return GateResult(has_voice=amplitude_ok, level=level, rms=rms, peak=peak)

        voice_e, background_e = band_energies(
            frame.samples, frame.sample_rate, cfg.voice_band_hz, cfg.background_max_hz
        )
        voiced = (
            voice_e > cfg.voice_to_background_ratio * background_e
            and peak > cfg.min_peak_for_voice
        )
        return GateResult(
            has_voice=bool(amplitude_ok and voiced),
            level=level,
            rms=rms,
            peak=peak,
            voice_band_energy=voice_e,
            background_energy=background_e,
        )
