# conductor/pipeline/engine.py
"""
Real-time vocal energy-matching engine.

Per analysis tick:  FrameSource -> VoiceActivityGate -> PitchEstimator ->
StabilityFilter -> EnergyMapper -> comparison with the scheduler's target.
The EnergyScheduler runs on the same timer service but independently; the two
only share the current target level and the last accepted pitch.
"""
from __future__ import annotations

import logging
import random
import time
from collections import deque
from dataclasses import replace
from typing import Callable, Optional

from .config import EngineConfig, build_config
from .determinism import make_rng
from .detectors import create_detector
from .energy import level_for_frequency
from .event_log import EnergyEventLog
from .frame_source import FrameSource
from .instrumentation import EngineLogger
from .models import (
    AnalysisMode,
    AssessmentEnded,
    AssessmentStarted,
    AssessmentSummary,
    AudioFrame,
    EnergyEvent,
    EnergyLevelChanged,
    FrameAnalysis,
    PitchEstimate,
    QuestionStarted,
    StartPolicy,
    TargetMatched,
)
from .scheduler import EnergyScheduler
from .scoring import summarize_assessment
from .stability import StabilityFilter
from .timers import RealtimeTimerService, TimerService
from .vad import VoiceActivityGate

logger = logging.getLogger(__name__)

_IDLE = "idle"
_RUNNING = "running"
_STOPPED = "stopped"


class ConductorEngine:
    """One assessment attempt: analysis loop, scheduler and event log."""

    def __init__(
        self,
        frame_source: FrameSource,
        config: Optional[EngineConfig] = None,
        timers: Optional[TimerService] = None,
        rng: Optional[random.Random] = None,
        on_energy_event: Optional[Callable[[EnergyEvent], None]] = None,
        on_pitch_observed: Optional[Callable[[PitchEstimate], None]] = None,
        pipeline_logger: Optional[EngineLogger] = None,
        sample_rate: Optional[int] = None,
    ):
        self.config = config if config is not None else build_config()
        self.config.validate()
        self.mode = AnalysisMode(self.config.mode)
        self.start_policy = StartPolicy(self.config.start_policy)

        self.frame_source = frame_source
        self.timers = timers if timers is not None else RealtimeTimerService()
        self.rng = rng if rng is not None else make_rng(self.config.seed)
        self.on_energy_event = on_energy_event
        self.on_pitch_observed = on_pitch_observed
        self.pipeline_logger = pipeline_logger

        sr = int(sample_rate or getattr(frame_source, "sample_rate", 44100))
        self.gate = VoiceActivityGate(self.config.gate, self.mode)
        self.detector = create_detector(self.config.pitch, sr)
        # Smoothing only applies to outdoor capture
        self.stability = StabilityFilter(
            replace(
                self.config.stability,
                enabled=self.config.stability.enabled and self.mode is AnalysisMode.OUTDOOR,
            )
        )

        self.event_log = EnergyEventLog()
        self.scheduler: Optional[EnergyScheduler] = None
        self.frequency_history: deque = deque(maxlen=int(self.config.frequency_history_size))

        self.last_frequency = 0.0
        self.observed_level: Optional[int] = None
        self._last_estimate = PitchEstimate.none()

        self._state = _IDLE
        self._start_time: Optional[float] = None
        self._in_tick = False
        self._end_handle = None
        self._target_since_ms = 0.0
        self._target_matched = False

    # ------------------------------------------------------------
    # State
    # ------------------------------------------------------------
    @property
    def running(self) -> bool:
        return self._state == _RUNNING

    @property
    def stopped(self) -> bool:
        return self._state == _STOPPED

    @property
    def target_level(self) -> int:
        if self.scheduler is None:
            return int(self.config.scheduler.default_level)
        return self.scheduler.current_level

    def relative_time_ms(self, now: Optional[float] = None) -> float:
        if self._start_time is None:
            return 0.0
        now = self.timers.now() if now is None else now
        return (now - self._start_time) * 1000.0

    # ------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------
    def start(self) -> None:
        if self._state != _IDLE:
            raise RuntimeError(f"engine cannot start from state '{self._state}'")

        self._start_time = self.timers.now()
        self._state = _RUNNING
        self.scheduler = EnergyScheduler(
            self.config.scheduler,
            timers=self.timers,
            rng=self.rng,
            emit=self._emit,
            frequency_probe=lambda: self.last_frequency,
        )

        if self.pipeline_logger is not None:
            self.pipeline_logger.emit_config("engine", self.config)

        self._emit(
            AssessmentStarted(
                timestamp=self.timers.wall_time(),
                relative_time_ms=0.0,
                level=int(self.config.scheduler.default_level),
                mode=self.mode.value,
                detector=self.detector.name,
            )
        )
        self._arm_target(0.0)
        self.scheduler.start(start_time=self._start_time)

        if self.config.duration_s is not None:
            self._end_handle = self.timers.call_later(
                self.config.duration_s, lambda: self.stop("duration_elapsed")
            )
        logger.info(f"Assessment started ({self.mode.value}, {self.detector.name} detector)")

    def stop(self, reason: str = "stopped") -> None:
        """Cancel timers, close the event log and stop producing estimates."""
        if self._state == _STOPPED:
            return

        if self._end_handle is not None:
            self._end_handle.cancel()
            self._end_handle = None
        if self.scheduler is not None:
            self.scheduler.stop()

        if self._state == _RUNNING:
            self._emit(
                AssessmentEnded(
                    timestamp=self.timers.wall_time(),
                    relative_time_ms=self.relative_time_ms(),
                    level=self.target_level,
                    reason=reason,
                )
            )
        self._state = _STOPPED
        self.event_log.close()
        self.stability.reset()
        self._last_estimate = PitchEstimate.none()

        if self.pipeline_logger is not None:
            self.pipeline_logger.write_json("events.json", self.event_log.to_records())
            self.pipeline_logger.write_json("summary.json", self.summary().to_dict())
            self.pipeline_logger.finalize()
        logger.info(f"Assessment stopped ({reason}); {len(self.event_log)} events logged")

    def next_question(
        self,
        question: str = "",
        question_id: Optional[str] = None,
        question_index: Optional[int] = None,
    ) -> QuestionStarted:
        if self._state != _RUNNING or self.scheduler is None:
            raise RuntimeError("next_question() requires a running assessment")
        return self.scheduler.reset_for_question(question, question_id, question_index)

    def summary(self) -> AssessmentSummary:
        return summarize_assessment(
            self.event_log, self.mode, default_level=self.config.scheduler.default_level
        )

    # ------------------------------------------------------------
    # Events
    # ------------------------------------------------------------
    def _arm_target(self, relative_ms: float) -> None:
        self._target_since_ms = relative_ms
        self._target_matched = False

    def _emit(self, event: EnergyEvent) -> None:
        self.event_log.append(event)
        if isinstance(event, (EnergyLevelChanged, QuestionStarted)):
            self._arm_target(event.relative_time_ms)
        if self.pipeline_logger is not None:
            self.pipeline_logger.log_event("events", event.event_type, event.to_record())
        if self.on_energy_event is not None:
            self.on_energy_event(event)

    def _compare_to_target(self, level: int, frequency: float, relative_ms: float) -> None:
        if self.scheduler is None or self.scheduler.breathing or self._target_matched:
            return
        if level != self.scheduler.current_level:
            return
        self._target_matched = True
        self._emit(
            TargetMatched(
                timestamp=self.timers.wall_time(),
                relative_time_ms=relative_ms,
                level=level,
                frequency=frequency,
                response_time_ms=max(0.0, relative_ms - self._target_since_ms),
            )
        )

    # ------------------------------------------------------------
    # Analysis loop
    # ------------------------------------------------------------
    def tick(self) -> Optional[FrameAnalysis]:
        """
        One analysis step: fire due timers, pull at most one frame, analyse it.

        Re-entrant calls are dropped rather than queued. Frame source errors
        propagate to the caller.
        """
        if self._state == _STOPPED or self._in_tick:
            return None
        self._in_tick = True
        try:
            self.timers.poll()
            if self._state == _STOPPED:
                return None

            frame = self.frame_source.next_frame()
            if frame is None:
                return None

            if self._state == _IDLE and self.start_policy is StartPolicy.AUTO:
                self.start()

            t0 = time.perf_counter()
            result = self._analyze(frame)
            if self.pipeline_logger is not None:
                self.pipeline_logger.record_timing("analysis_tick", time.perf_counter() - t0)
            return result
        finally:
            self._in_tick = False

    def _analyze(self, frame: AudioFrame) -> Optional[FrameAnalysis]:
        if len(frame) < self.detector.min_samples(frame.sample_rate):
            return None

        now = self.timers.now()
        rel = self.relative_time_ms(now)
        gate = self.gate.evaluate(frame)

        estimate = PitchEstimate.none()
        frequency = 0.0
        level: Optional[int] = None

        if not gate.has_voice:
            # Outdoor holds the last accepted pitch; standard reports no pitch
            frequency = self.stability.mark_silence(now)
            if self.stability.enabled and frequency == 0.0:
                # Silence outlasted the hold time; drop the stale reading
                self.last_frequency = 0.0
                self.observed_level = None
                self._last_estimate = PitchEstimate.none()
        else:
            self.stability.note_voice(now)
            estimate = self.detector.estimate(frame)
            if estimate.has_pitch:
                frequency = self.stability.update(estimate.frequency, gate.peak, now)

        if frequency > 0.0:
            level = level_for_frequency(frequency, self.mode)
            self.last_frequency = frequency
            self.observed_level = level
            self.frequency_history.append(frequency)
            if estimate.has_pitch:
                self._last_estimate = estimate
                if self._state == _RUNNING:
                    self._compare_to_target(level, frequency, rel)

        if self.on_pitch_observed is not None:
            if frequency > 0.0:
                # Held readings keep the clarity and method they were accepted with
                source = estimate if estimate.has_pitch else self._last_estimate
                self.on_pitch_observed(PitchEstimate(frequency, source.clarity, source.method))
            else:
                self.on_pitch_observed(PitchEstimate.none())

        return FrameAnalysis(
            relative_time_ms=rel,
            gate=gate,
            estimate=estimate,
            frequency=frequency,
            observed_level=level,
        )

    def run(self, max_duration_s: Optional[float] = None) -> None:
        """
        Drive the loop in real time at ``analysis_rate_hz`` until stopped.

        Late ticks are not made up; the loop simply continues from now.
        """
        if not isinstance(self.timers, RealtimeTimerService):
            raise TypeError("run() needs a RealtimeTimerService; drive simulated time with advance() and tick()")
        period = 1.0 / self.config.analysis_rate_hz
        began = self.timers.now()
        while not self.stopped:
            t0 = self.timers.now()
            self.tick()
            if max_duration_s is not None and self.timers.now() - began >= max_duration_s:
                self.stop("max_duration")
                break
            self.timers.sleep_until_next(max(0.0, period - (self.timers.now() - t0)))
