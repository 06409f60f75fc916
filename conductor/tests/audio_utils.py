import numpy as np


def generate_sine_wave(freq_hz: float, duration_sec: float, sr: int = 44100, amplitude: float = 0.5) -> np.ndarray:
    """Generates a pure sine wave."""
    t = np.arange(int(duration_sec * sr)) / float(sr)
    audio = amplitude * np.sin(2 * np.pi * freq_hz * t)
    return audio.astype(np.float32)


def generate_silence(duration_sec: float, sr: int = 44100) -> np.ndarray:
    """Generates silence."""
    return np.zeros(int(duration_sec * sr), dtype=np.float32)


def generate_noise(duration_sec: float, sr: int = 44100, amplitude: float = 0.1, seed: int = 0) -> np.ndarray:
    """Generates uniform white noise in [-amplitude, amplitude]."""
    rng = np.random.default_rng(seed)
    return (rng.uniform(-1.0, 1.0, int(duration_sec * sr)) * amplitude).astype(np.float32)


def concat(*signals: np.ndarray) -> np.ndarray:
    return np.concatenate([np.asarray(s, dtype=np.float32) for s in signals])


def generate_sawtooth(freq_hz: float, duration_sec: float, sr: int = 44100, amplitude: float = 0.5) -> np.ndarray:
    """Generates a naive sawtooth (all harmonics, 1/k amplitudes)."""
    t = np.arange(int(duration_sec * sr)) / float(sr)
    audio = amplitude * (2.0 * np.mod(t * freq_hz, 1.0) - 1.0)
    return audio.astype(np.float32)


def generate_harmonic_tone(freq_hz: float, duration_sec: float, sr: int = 44100,
                           partials=(1.0, 0.8, 0.6), amplitude: float = 0.3) -> np.ndarray:
    """Sum of harmonics k*freq_hz with the given relative amplitudes."""
    t = np.arange(int(duration_sec * sr)) / float(sr)
    audio = sum(a * np.sin(2 * np.pi * freq_hz * (k + 1) * t) for k, a in enumerate(partials))
    return (amplitude * audio).astype(np.float32)
