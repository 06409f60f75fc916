# conductor/pipeline/detectors.py
from __future__ import annotations

import logging
import math
import warnings
from typing import Any, Dict, Optional, Tuple

import numpy as np
import scipy.fft

from .config import PitchConfig
from .models import AudioFrame, DetectorType, PitchEstimate

logger = logging.getLogger(__name__)

# Module-level FFT backend so tests can swap in numpy.fft
_FFT_LIB = scipy.fft

_EPS = 1e-12


# --------------------------------------------------------------------------------------
# Utility
# --------------------------------------------------------------------------------------
def clamp(x: float, lo: float, hi: float) -> float:
    return lo if x < lo else hi if x > hi else x


def _fft_len(n: int) -> int:
    if hasattr(_FFT_LIB, "next_fast_len"):
        return int(_FFT_LIB.next_fast_len(n))
    return 1 << int(math.ceil(math.log2(max(n, 1))))


def parabolic_offset(y0: float, y1: float, y2: float) -> float:
    """Vertex offset (in samples) of the parabola through (-1,y0), (0,y1), (1,y2)."""
    a = (y0 - 2.0 * y1 + y2) / 2.0
    b = (y2 - y0) / 2.0
    if abs(a) <= 1e-4:
        return 0.0
    return -b / (2.0 * a)


def parabolic_value(y0: float, y1: float, y2: float, offset: float) -> float:
    a = (y0 - 2.0 * y1 + y2) / 2.0
    b = (y2 - y0) / 2.0
    return y1 + b * offset + a * offset * offset


def normalized_autocorrelation(x: np.ndarray) -> np.ndarray:
    """
    r(p) = 2 * sum(x[i] * x[i+p]) / sum(x[i]^2 + x[i+p]^2) over the overlap, for p in [0, n).

    The denominator grows with both halves of the overlap, which removes the
    short-period bias of plain autocorrelation. Lags with a zero denominator
    report 0 (no correlation).
    """
    x = np.asarray(x, dtype=np.float64).reshape(-1)
    n = x.size
    if n == 0:
        return np.zeros((0,), dtype=np.float64)

    fft_len = _fft_len(2 * n - 1)
    X = _FFT_LIB.rfft(x, n=fft_len)
    ac = _FFT_LIB.irfft(X * np.conj(X), n=fft_len)[:n]

    cs = np.concatenate(([0.0], np.cumsum(x * x)))
    lags = np.arange(n)
    denom = cs[n - lags] + (cs[n] - cs[lags])

    out = np.zeros((n,), dtype=np.float64)
    ok = denom > _EPS
    out[ok] = 2.0 * ac[ok] / denom[ok]
    return out


def difference_function(x: np.ndarray) -> np.ndarray:
    """
    YIN squared difference d(tau) = sum_{i<W} (x[i] - x[i+tau])^2 for tau in [0, W), W = n // 2.

    Expanded as energy(x[:W]) + energy(x[tau:tau+W]) - 2 * cross(tau) so the
    cross term comes from one FFT correlation instead of an O(W^2) loop.
    """
    x = np.asarray(x, dtype=np.float64).reshape(-1)
    w = x.size // 2
    if w == 0:
        return np.zeros((0,), dtype=np.float64)

    a = x[:w]
    b = x[: 2 * w]
    fft_len = _fft_len(3 * w)
    A = _FFT_LIB.rfft(a, n=fft_len)
    B = _FFT_LIB.rfft(b, n=fft_len)
    cross = _FFT_LIB.irfft(np.conj(A) * B, n=fft_len)[:w]

    cs = np.concatenate(([0.0], np.cumsum(b * b)))
    tau = np.arange(w)
    d = cs[w] + (cs[tau + w] - cs[tau]) - 2.0 * cross
    d = np.maximum(d, 0.0)
    d[0] = 0.0
    return d


def cmndf(d: np.ndarray) -> np.ndarray:
    """Cumulative mean normalized difference; CMNDF(0) = 1, degenerate sums map to 1."""
    d = np.asarray(d, dtype=np.float64)
    out = np.ones_like(d)
    if d.size <= 1:
        return out
    running = np.cumsum(d[1:])
    tau = np.arange(1, d.size, dtype=np.float64)
    ok = running > _EPS
    vals = np.ones_like(running)
    vals[ok] = d[1:][ok] * tau[ok] / running[ok]
    out[1:] = vals
    return out


def spectral_peak_pitch(
    x: np.ndarray,
    sr: int,
    fmin: float,
    fmax: float,
) -> Tuple[float, float]:
    """
    Low-accuracy fallback: dominant FFT magnitude peak inside [fmin, fmax].

    Returns (f0_hz or 0.0, prominence in [0, 1]).
    """
    x = np.asarray(x, dtype=np.float64).reshape(-1)
    n = x.size
    if n < 4:
        return 0.0, 0.0

    x = x - float(np.mean(x))
    win = np.hanning(n)
    mag = np.abs(_FFT_LIB.rfft(x * win))
    freqs = np.arange(mag.size) * float(sr) / n

    idx = np.nonzero((freqs >= fmin) & (freqs <= fmax))[0]
    if idx.size == 0:
        return 0.0, 0.0

    k = int(idx[int(np.argmax(mag[idx]))])
    peak = float(mag[k])
    if peak <= _EPS:
        return 0.0, 0.0

    offset = 0.0
    if 0 < k < mag.size - 1:
        offset = clamp(parabolic_offset(float(mag[k - 1]), peak, float(mag[k + 1])), -0.5, 0.5)

    f0 = (k + offset) * float(sr) / n
    prominence = clamp(1.0 - float(np.median(mag[idx])) / peak, 0.0, 1.0)
    return float(f0), float(prominence)


# --------------------------------------------------------------------------------------
# Detector base + implementations
# --------------------------------------------------------------------------------------
class BasePitchDetector:
    """
    Base class for per-frame pitch estimators.
    Must implement: estimate(frame, sample_rate=None) -> PitchEstimate
    """

    name = "base"

    def __init__(
        self,
        sr: int,
        fmin: float = 30.0,
        fmax: float = 300.0,
        window_size: int = 8192,
        threshold: float = 0.2,
        **kwargs: Any,  # absorb unknown config keys safely
    ):
        self.sr = int(sr)
        self.fmin = float(fmin)
        self.fmax = float(fmax)
        self.window_size = int(window_size)
        self.threshold = float(threshold)
        self._warned: Dict[str, bool] = {}
        self.kwargs = kwargs

    def _warn_once(self, key: str, msg: str) -> None:
        if not self._warned.get(key, False):
            warnings.warn(msg)
            self._warned[key] = True

    def max_period(self, sr: Optional[int] = None) -> int:
        return int(math.floor(float(sr or self.sr) / self.fmin))

    def min_period(self, sr: Optional[int] = None) -> int:
        return max(2, int(math.floor(float(sr or self.sr) / self.fmax)))

    def min_samples(self, sr: Optional[int] = None) -> int:
        raise NotImplementedError

    def _prepare(self, frame: AudioFrame, sample_rate: Optional[int]) -> Tuple[Optional[np.ndarray], int]:
        sr = int(sample_rate or frame.sample_rate)
        if sr != self.sr:
            self._warn_once(
                "sr_mismatch",
                f"{self.name} detector configured for {self.sr} Hz received {sr} Hz frames",
            )
        x = np.asarray(frame.samples[-self.window_size:], dtype=np.float64)
        if x.size < self.min_samples(sr):
            return None, sr
        return x, sr

    def estimate(self, frame: AudioFrame, sample_rate: Optional[int] = None) -> PitchEstimate:
        raise NotImplementedError


class AutocorrelationDetector(BasePitchDetector):
    """
    Time-domain normalized autocorrelation with parabolic refinement.

    Only interior correlation peaks are candidates. The winner is the shortest
    peak whose correlation is within ``key_max_ratio`` of the highest one, so
    period multiples (which correlate just as well) do not beat the fundamental.
    Falls back to FFT peak picking when the time-domain search finds nothing
    but the frame is loud enough to hold a voice.
    """

    name = "autocorrelation"

    def __init__(
        self,
        sr: int,
        fmin: float = 30.0,
        fmax: float = 300.0,
        window_size: int = 8192,
        threshold: float = 0.2,
        enable_fft_fallback: bool = True,
        fallback_min_rms: float = 0.01,
        key_max_ratio: float = 0.9,
        **kwargs: Any,
    ):
        super().__init__(sr=sr, fmin=fmin, fmax=fmax, window_size=window_size, threshold=threshold, **kwargs)
        self.enable_fft_fallback = bool(enable_fft_fallback)
        self.fallback_min_rms = float(fallback_min_rms)
        self.key_max_ratio = float(key_max_ratio)

    def min_samples(self, sr: Optional[int] = None) -> int:
        return self.max_period(sr) + 2

    def _time_domain(self, x: np.ndarray, sr: int) -> PitchEstimate:
        n = x.size
        lag_min = self.min_period(sr)
        lag_max = min(self.max_period(sr), n - 2)
        if lag_max <= lag_min:
            return PitchEstimate.none()

        corr = normalized_autocorrelation(x - float(np.mean(x)))

        # Interior peaks only: a band edge on a falling slope is not a period
        seg = corr[lag_min:lag_max + 1]
        left = corr[lag_min - 1:lag_max]
        right = corr[lag_min + 1:lag_max + 2]
        peaks = np.nonzero((seg > left) & (seg >= right))[0] + lag_min
        if peaks.size == 0:
            return PitchEstimate.none()

        best = float(np.max(corr[peaks]))
        if best <= self.threshold:
            return PitchEstimate.none()

        # Period multiples correlate as well as the fundamental; take the
        # shortest peak within key_max_ratio of the highest one
        period = int(peaks[np.nonzero(corr[peaks] >= self.key_max_ratio * best)[0][0]])
        value = float(corr[period])

        offset = parabolic_offset(float(corr[period - 1]), value, float(corr[period + 1]))
        if abs(offset) > 1.0:
            offset = 0.0
        refined = period + offset

        freq = clamp(float(sr) / refined, self.fmin, self.fmax)
        return PitchEstimate(frequency=freq, clarity=clamp(value, 0.0, 1.0), method="autocorrelation")

    def estimate(self, frame: AudioFrame, sample_rate: Optional[int] = None) -> PitchEstimate:
        x, sr = self._prepare(frame, sample_rate)
        if x is None:
            return PitchEstimate.none()

        est = self._time_domain(x, sr)
        if est.has_pitch or not self.enable_fft_fallback:
            return est

        rms = float(np.sqrt(np.mean(x * x))) if x.size else 0.0
        if rms < self.fallback_min_rms:
            return est

        f0, prominence = spectral_peak_pitch(x, sr, self.fmin, self.fmax)
        if f0 <= 0.0 or prominence <= self.threshold:
            return PitchEstimate.none()
        logger.debug(f"ACF found no period; spectral fallback at {f0:.1f} Hz (prominence {prominence:.2f})")
        return PitchEstimate(frequency=clamp(f0, self.fmin, self.fmax), clarity=prominence, method="fft")


class YinDetector(BasePitchDetector):
    """
    YIN / McLeod style estimator on the cumulative mean normalized difference.

    Scans for the first tau below the absolute threshold, then walks forward to
    the bottom of that dip so a shallow early dip does not report an octave low.
    """

    name = "yin"

    def __init__(
        self,
        sr: int,
        fmin: float = 30.0,
        fmax: float = 300.0,
        window_size: int = 8192,
        threshold: float = 0.5,
        yin_threshold: float = 0.15,
        **kwargs: Any,
    ):
        super().__init__(sr=sr, fmin=fmin, fmax=fmax, window_size=window_size, threshold=threshold, **kwargs)
        self.yin_threshold = float(yin_threshold)

    def min_samples(self, sr: Optional[int] = None) -> int:
        return 2 * (self.max_period(sr) + 2)

    def estimate(self, frame: AudioFrame, sample_rate: Optional[int] = None) -> PitchEstimate:
        x, sr = self._prepare(frame, sample_rate)
        if x is None:
            return PitchEstimate.none()

        curve = cmndf(difference_function(x))
        w = curve.size
        if w < 4:
            return PitchEstimate.none()

        below = np.nonzero(curve[2:] < self.yin_threshold)[0]
        if below.size == 0:
            return PitchEstimate.none()

        tau = int(below[0]) + 2
        while tau + 1 < w and curve[tau + 1] < curve[tau]:
            tau += 1

        offset = 0.0
        value = float(curve[tau])
        if 0 < tau < w - 1:
            y0, y1, y2 = float(curve[tau - 1]), float(curve[tau]), float(curve[tau + 1])
            offset = parabolic_offset(y0, y1, y2)
            if abs(offset) > 1.0:
                offset = 0.0
            value = parabolic_value(y0, y1, y2, offset)

        clarity = clamp(1.0 - value, 0.0, 1.0)
        if clarity < self.threshold:
            return PitchEstimate.none()

        freq = clamp(float(sr) / (tau + offset), self.fmin, self.fmax)
        return PitchEstimate(frequency=freq, clarity=clarity, method="yin")


def create_detector(config: PitchConfig, sample_rate: int) -> BasePitchDetector:
    """Build the detector selected by ``config.detector``."""
    fmin, fmax = config.resolved_band()
    kind = DetectorType(config.detector)
    if kind is DetectorType.AUTOCORRELATION:
        return AutocorrelationDetector(
            sr=sample_rate,
            fmin=fmin,
            fmax=fmax,
            window_size=config.window_size,
            threshold=config.correlation_threshold,
            enable_fft_fallback=config.enable_fft_fallback,
            fallback_min_rms=config.fallback_min_rms,
        )
    return YinDetector(
        sr=sample_rate,
        fmin=fmin,
        fmax=fmax,
        window_size=config.window_size,
        threshold=config.clarity_threshold,
        yin_threshold=config.yin_threshold,
    )
