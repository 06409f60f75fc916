"""Analysis pipeline for the Conductor energy-matching exercise.

Per tick: frame source -> voice gate -> pitch detector -> stability filter
-> energy mapper, with the energy scheduler assigning targets on the same
timer service. ``ConductorEngine`` wires the pieces together.
"""

from __future__ import annotations

from .config import (
    EngineConfig,
    GateConfig,
    OUTDOOR_CONFIG,
    PITCH_BANDS,
    PitchConfig,
    SchedulerConfig,
    STANDARD_CONFIG,
    StabilityConfig,
    build_config,
)
from .detectors import AutocorrelationDetector, BasePitchDetector, YinDetector, create_detector
from .energy import ENERGY_LEVELS, LEVEL_EDGES, level_bounds, level_for_frequency, level_info
from .engine import ConductorEngine
from .event_log import EnergyEventLog, EventLogClosedError
from .frame_source import ArrayFrameSource, AudioFileFrameSource, FrameSource, StreamFrameSource, load_audio
from .instrumentation import EngineLogger
from .models import (
    AnalysisMode,
    AssessmentEnded,
    AssessmentStarted,
    AssessmentSummary,
    AudioFrame,
    BreatheCue,
    DetectorType,
    EnergyEvent,
    EnergyLevelChanged,
    EnergyLevelInfo,
    FrameAnalysis,
    GateResult,
    PitchEstimate,
    QuestionStarted,
    SchedulerState,
    StartPolicy,
    TargetMatched,
)
from .scheduler import EnergyScheduler
from .scoring import change_accuracy, summarize_assessment
from .stability import StabilityFilter
from .timers import RealtimeTimerService, SimulatedTimerService, TimerHandle, TimerService
from .vad import VoiceActivityGate

__all__ = [
    "AnalysisMode",
    "ArrayFrameSource",
    "AssessmentEnded",
    "AssessmentStarted",
    "AssessmentSummary",
    "AudioFileFrameSource",
    "AudioFrame",
    "AutocorrelationDetector",
    "BasePitchDetector",
    "BreatheCue",
    "ConductorEngine",
    "DetectorType",
    "ENERGY_LEVELS",
    "EnergyEvent",
    "EnergyEventLog",
    "EnergyLevelChanged",
    "EnergyLevelInfo",
    "EnergyScheduler",
    "EngineConfig",
    "EngineLogger",
    "EventLogClosedError",
    "FrameAnalysis",
    "FrameSource",
    "GateConfig",
    "GateResult",
    "LEVEL_EDGES",
    "OUTDOOR_CONFIG",
    "PITCH_BANDS",
    "PitchConfig",
    "PitchEstimate",
    "QuestionStarted",
    "RealtimeTimerService",
    "STANDARD_CONFIG",
    "SchedulerConfig",
    "SchedulerState",
    "SimulatedTimerService",
    "StabilityConfig",
    "StabilityFilter",
    "StartPolicy",
    "StreamFrameSource",
    "TargetMatched",
    "TimerHandle",
    "TimerService",
    "VoiceActivityGate",
    "YinDetector",
    "build_config",
    "change_accuracy",
    "create_detector",
    "level_bounds",
    "level_for_frequency",
    "level_info",
    "load_audio",
    "summarize_assessment",
]
