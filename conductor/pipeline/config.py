from typing import Any, Dict, Mapping, Optional, Tuple
from dataclasses import dataclass, field, replace
import copy

from .models import AnalysisMode, DetectorType, StartPolicy
from .utils_config import apply_dotted_overrides, coalesce_not_none


# Named pitch bands (Hz). "conductor" is the active assessment band; "worker"
# is the wider band used by the standalone pitch-detection worker.
PITCH_BANDS: Dict[str, Tuple[float, float]] = {
    "conductor": (30.0, 300.0),
    "worker": (75.0, 1000.0),
}


# ------------------------------------------------------------
# Voice activity gate
# ------------------------------------------------------------

@dataclass
class GateConfig:
    rms_threshold: float = 0.001
    peak_threshold: float = 0.01

    # Outdoor-only spectral voice check
    spectral_check: bool = False
    voice_band_hz: Tuple[float, float] = (80.0, 3000.0)
    background_max_hz: float = 80.0
    voice_to_background_ratio: float = 2.0
    min_peak_for_voice: float = 0.05

    def validate(self) -> None:
        if self.rms_threshold < 0.0 or self.peak_threshold < 0.0:
            raise ValueError("gate thresholds must be non-negative")
        lo, hi = self.voice_band_hz
        if not 0.0 < lo < hi:
            raise ValueError(f"invalid voice band {self.voice_band_hz}")


# ------------------------------------------------------------
# Pitch estimation
# ------------------------------------------------------------

@dataclass
class PitchConfig:
    detector: DetectorType = DetectorType.YIN
    band: str = "conductor"
    # Explicit limits override the named band when set
    fmin: Optional[float] = None
    fmax: Optional[float] = None

    window_size: int = 8192

    # Autocorrelation acceptance on normalized correlation
    correlation_threshold: float = 0.2
    # YIN absolute CMNDF threshold and caller clarity floor
    yin_threshold: float = 0.15
    clarity_threshold: float = 0.5

    # Spectral fallback for the autocorrelation detector
    enable_fft_fallback: bool = True
    fallback_min_rms: float = 0.01

    def resolved_band(self) -> Tuple[float, float]:
        if self.band not in PITCH_BANDS:
            raise ValueError(f"unknown pitch band '{self.band}'")
        lo, hi = PITCH_BANDS[self.band]
        return float(coalesce_not_none(self.fmin, lo)), float(coalesce_not_none(self.fmax, hi))

    def validate(self) -> None:
        lo, hi = self.resolved_band()
        if not 0.0 < lo < hi:
            raise ValueError(f"invalid pitch band ({lo}, {hi})")
        if self.window_size < 16:
            raise ValueError("window_size too small")
        for name in ("correlation_threshold", "yin_threshold", "clarity_threshold"):
            v = getattr(self, name)
            if not 0.0 <= v <= 1.0:
                raise ValueError(f"{name} must be within [0, 1], got {v}")


# ------------------------------------------------------------
# Stability filter (outdoor)
# ------------------------------------------------------------

@dataclass
class StabilityConfig:
    enabled: bool = False
    history_size: int = 5
    min_samples: int = 3
    max_stddev_hz: float = 15.0
    strong_peak: float = 0.1
    silence_reset_s: float = 2.0

    def validate(self) -> None:
        if self.history_size < 1 or self.min_samples < 1:
            raise ValueError("history_size and min_samples must be >= 1")
        if self.min_samples > self.history_size:
            raise ValueError("min_samples cannot exceed history_size")


# ------------------------------------------------------------
# Scheduler
# ------------------------------------------------------------

@dataclass
class SchedulerConfig:
    base_interval_s: float = 15.0
    interval_variance_s: float = 5.0
    breathe_probability: float = 0.2
    breathe_duration_ms: float = 3000.0
    preset_levels: frozenset = field(default_factory=lambda: frozenset(range(1, 10)))
    default_level: int = 5

    def validate(self) -> None:
        if self.base_interval_s <= 0.0:
            raise ValueError("base_interval_s must be positive")
        if self.interval_variance_s < 0.0 or self.interval_variance_s / 2.0 >= self.base_interval_s:
            raise ValueError("interval_variance_s must be in [0, 2 * base_interval_s)")
        if not 0.0 <= self.breathe_probability <= 1.0:
            raise ValueError(f"breathe_probability must be within [0, 1], got {self.breathe_probability}")
        if self.breathe_duration_ms < 0.0:
            raise ValueError("breathe_duration_ms must be non-negative")
        if not self.preset_levels:
            raise ValueError("preset_levels cannot be empty")
        for lvl in list(self.preset_levels) + [self.default_level]:
            if not 1 <= int(lvl) <= 9:
                raise ValueError(f"energy levels must be within [1, 9], got {lvl}")


# ------------------------------------------------------------
# Engine
# ------------------------------------------------------------

@dataclass
class EngineConfig:
    mode: AnalysisMode = AnalysisMode.STANDARD
    start_policy: StartPolicy = StartPolicy.MANUAL

    gate: GateConfig = field(default_factory=GateConfig)
    pitch: PitchConfig = field(default_factory=PitchConfig)
    stability: StabilityConfig = field(default_factory=StabilityConfig)
    scheduler: SchedulerConfig = field(default_factory=SchedulerConfig)

    analysis_rate_hz: float = 30.0
    # Assessment auto-ends after this many seconds (None = caller decides)
    duration_s: Optional[float] = 60.0
    frequency_history_size: int = 150
    seed: Optional[int] = None

    def validate(self) -> None:
        if self.analysis_rate_hz <= 0.0:
            raise ValueError("analysis_rate_hz must be positive")
        if self.duration_s is not None and self.duration_s <= 0.0:
            raise ValueError("duration_s must be positive when set")
        self.gate.validate()
        self.pitch.validate()
        self.stability.validate()
        self.scheduler.validate()


# ------------------------------------------------------------
# Presets
# ------------------------------------------------------------

STANDARD_CONFIG = EngineConfig(mode=AnalysisMode.STANDARD)

OUTDOOR_CONFIG = EngineConfig(
    mode=AnalysisMode.OUTDOOR,
    gate=GateConfig(
        rms_threshold=0.01,
        peak_threshold=0.08,
        spectral_check=True,
    ),
    stability=StabilityConfig(enabled=True),
)

_PRESETS = {
    AnalysisMode.STANDARD: STANDARD_CONFIG,
    AnalysisMode.OUTDOOR: OUTDOOR_CONFIG,
}


def _coerce_enums(cfg: EngineConfig) -> EngineConfig:
    # Overrides usually arrive as plain strings
    cfg = replace(
        cfg,
        mode=AnalysisMode(cfg.mode),
        start_policy=StartPolicy(cfg.start_policy),
    )
    cfg.pitch.detector = DetectorType(cfg.pitch.detector)
    cfg.scheduler.preset_levels = frozenset(int(x) for x in cfg.scheduler.preset_levels)
    return cfg


def build_config(
    mode: Any = AnalysisMode.STANDARD,
    overrides: Optional[Mapping[str, Any]] = None,
) -> EngineConfig:
    """
    Return a fresh EngineConfig for ``mode`` with dotted-path overrides applied,
    e.g. ``{"pitch.detector": "autocorrelation", "scheduler.breathe_probability": 0.0}``.
    """
    try:
        mode = AnalysisMode(mode)
    except ValueError:
        raise ValueError(f"unknown analysis mode '{mode}'")

    cfg = copy.deepcopy(_PRESETS[mode])
    if overrides:
        apply_dotted_overrides(cfg, overrides)
    try:
        cfg = _coerce_enums(cfg)
    except ValueError as e:
        raise ValueError(f"invalid config override: {e}")
    cfg.validate()
    return cfg
