# conductor/pipeline/models.py
"""Dataclasses and enums shared by the energy-matching pipeline.

Frames, pitch estimates and events are immutable once produced; callbacks
and persistence receive the same objects the engine logged.
"""

from __future__ import annotations

from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Any, ClassVar, Dict, Optional

import numpy as np


class AnalysisMode(str, Enum):
    """Noise handling mode. ``outdoor`` raises gates and enables smoothing."""
    STANDARD = "standard"
    OUTDOOR = "outdoor"


class DetectorType(str, Enum):
    AUTOCORRELATION = "autocorrelation"
    YIN = "yin"  # YIN / McLeod cumulative-difference


class StartPolicy(str, Enum):
    MANUAL = "manual"
    AUTO = "auto"


class SchedulerState(str, Enum):
    IDLE = "idle"
    AWAITING_CHANGE = "awaiting_change"
    BREATHING = "breathing"
    STOPPED = "stopped"


@dataclass(frozen=True)
class AudioFrame:
    samples: np.ndarray  # mono float32, read-only
    sample_rate: int

    def __post_init__(self) -> None:
        arr = np.array(self.samples, dtype=np.float32).reshape(-1)
        arr.setflags(write=False)
        object.__setattr__(self, "samples", arr)
        object.__setattr__(self, "sample_rate", int(self.sample_rate))
        if self.sample_rate <= 0:
            raise ValueError(f"sample_rate must be positive, got {self.sample_rate}")

    def __len__(self) -> int:
        return int(self.samples.size)

    @property
    def duration_s(self) -> float:
        return len(self) / float(self.sample_rate)

    @property
    def rms(self) -> float:
        if self.samples.size == 0:
            return 0.0
        x = self.samples.astype(np.float64)
        return float(np.sqrt(np.mean(x * x)))

    @property
    def peak(self) -> float:
        if self.samples.size == 0:
            return 0.0
        return float(np.max(np.abs(self.samples)))


@dataclass(frozen=True)
class PitchEstimate:
    frequency: float  # Hz, 0.0 = no pitch
    clarity: float    # [0, 1]
    method: Optional[str] = None

    @classmethod
    def none(cls) -> "PitchEstimate":
        return cls(frequency=0.0, clarity=0.0)

    @property
    def has_pitch(self) -> bool:
        return self.frequency > 0.0


@dataclass(frozen=True)
class GateResult:
    has_voice: bool
    level: float  # normalized signal level for UI, not used analytically
    rms: float
    peak: float
    voice_band_energy: Optional[float] = None
    background_energy: Optional[float] = None


@dataclass(frozen=True)
class EnergyLevelInfo:
    level: int
    name: str
    description: str
    target_frequency_hz: float


@dataclass(frozen=True)
class FrameAnalysis:
    """Diagnostics for a single analysis tick."""
    relative_time_ms: float
    gate: GateResult
    estimate: PitchEstimate
    frequency: float  # after the stability filter, 0.0 = no pitch
    observed_level: Optional[int] = None


# ------------------------------------------------------------
# Events
# ------------------------------------------------------------

@dataclass(frozen=True)
class EnergyEvent:
    event_type: ClassVar[str] = "event"

    timestamp: float         # wall clock, epoch seconds
    relative_time_ms: float  # since assessment start

    def to_record(self) -> Dict[str, Any]:
        record: Dict[str, Any] = {"type": self.event_type}
        for key, value in asdict(self).items():
            record[key] = value.value if isinstance(value, Enum) else value
        return record


@dataclass(frozen=True)
class AssessmentStarted(EnergyEvent):
    event_type: ClassVar[str] = "assessment_started"

    level: int = 5
    mode: str = AnalysisMode.STANDARD.value
    detector: str = DetectorType.YIN.value


@dataclass(frozen=True)
class EnergyLevelChanged(EnergyEvent):
    event_type: ClassVar[str] = "energy_level_changed"

    previous_level: int = 5
    new_level: int = 5
    frequency: float = 0.0


@dataclass(frozen=True)
class BreatheCue(EnergyEvent):
    event_type: ClassVar[str] = "breathe_cue"

    level: int = 5
    frequency: float = 0.0


@dataclass(frozen=True)
class QuestionStarted(EnergyEvent):
    event_type: ClassVar[str] = "question_started"

    level: int = 5
    question: str = ""
    question_id: Optional[str] = None
    question_index: Optional[int] = None


@dataclass(frozen=True)
class TargetMatched(EnergyEvent):
    """Observed energy level reached the current target for the first time."""
    event_type: ClassVar[str] = "target_matched"

    level: int = 5
    frequency: float = 0.0
    response_time_ms: float = 0.0


@dataclass(frozen=True)
class AssessmentEnded(EnergyEvent):
    event_type: ClassVar[str] = "assessment_ended"

    level: int = 5
    reason: str = "stopped"


EVENT_TYPES: Dict[str, type] = {
    cls.event_type: cls
    for cls in (
        AssessmentStarted,
        EnergyLevelChanged,
        BreatheCue,
        QuestionStarted,
        TargetMatched,
        AssessmentEnded,
    )
}


@dataclass
class AssessmentSummary:
    total_changes: int = 0
    successful_transitions: int = 0
    average_response_time_s: Optional[float] = None
    energy_range: int = 0
    breathe_recoveries: int = 0
    energy_accuracy: int = 50
    overall_score: int = 0
    per_change_accuracy: list = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
