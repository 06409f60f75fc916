import numpy as np
import pytest

from conductor.pipeline.config import build_config
from conductor.pipeline.models import AnalysisMode, AudioFrame
from conductor.pipeline.vad import VoiceActivityGate, band_energies
from conductor.tests.audio_utils import generate_noise, generate_silence, generate_sine_wave

WINDOW = 8192


def _gate(mode):
    return VoiceActivityGate(build_config(mode).gate, mode)


@pytest.mark.parametrize("mode", [AnalysisMode.STANDARD, AnalysisMode.OUTDOOR])
def test_silence_never_passes(mode, sr):
    result = _gate(mode).evaluate(AudioFrame(generate_silence(0.2, sr)[:WINDOW], sr))
    assert not result.has_voice
    assert result.level == 0.0


def test_standard_passes_voiced_sine(sr):
    result = _gate(AnalysisMode.STANDARD).evaluate(AudioFrame(generate_sine_wave(220.0, 0.2, sr)[:WINDOW], sr))
    assert result.has_voice
    assert result.level == pytest.approx(1.0)
    assert result.voice_band_energy is None


def test_standard_rejects_near_silent_noise(sr):
    frame = AudioFrame(generate_noise(0.2, sr, amplitude=0.0005)[:WINDOW], sr)
    assert not _gate(AnalysisMode.STANDARD).evaluate(frame).has_voice


def test_outdoor_passes_voice_band_tone(sr):
    result = _gate(AnalysisMode.OUTDOOR).evaluate(AudioFrame(generate_sine_wave(220.0, 0.2, sr)[:WINDOW], sr))
    assert result.has_voice
    assert result.voice_band_energy > 2.0 * result.background_energy


def test_outdoor_rejects_low_rumble(sr):
    """Wind/traffic rumble is loud but sits below the voice band."""
    frame = AudioFrame(generate_sine_wave(40.0, 0.2, sr)[:WINDOW], sr)

    assert _gate(AnalysisMode.STANDARD).evaluate(frame).has_voice
    outdoor = _gate(AnalysisMode.OUTDOOR).evaluate(frame)
    assert not outdoor.has_voice
    assert outdoor.background_energy > outdoor.voice_band_energy


def test_outdoor_rejects_weak_peak(sr):
    # rms clears the outdoor amplitude gate but the peak is below 0.05
    frame = AudioFrame(generate_sine_wave(220.0, 0.2, sr, amplitude=0.03)[:WINDOW], sr)
    assert _gate(AnalysisMode.STANDARD).evaluate(frame).has_voice
    assert not _gate(AnalysisMode.OUTDOOR).evaluate(frame).has_voice


def test_band_energies_empty_band_is_zero():
    x = generate_sine_wave(220.0, 0.1, 8000)
    voice, background = band_energies(x, 8000, (5000.0, 6000.0), 80.0)
    assert voice == 0.0
    assert background >= 0.0


def test_band_energies_short_input():
    assert band_energies(np.zeros(1, dtype=np.float32), 44100, (80.0, 3000.0), 80.0) == (0.0, 0.0)
