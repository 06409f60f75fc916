# conductor/pipeline/scheduler.py
from __future__ import annotations

import logging
import random
from typing import Callable, Optional

from .config import SchedulerConfig
from .models import (
    BreatheCue,
    EnergyEvent,
    EnergyLevelChanged,
    QuestionStarted,
    SchedulerState,
)
from .timers import TimerHandle, TimerService

logger = logging.getLogger(__name__)


class EnergyScheduler:
    """
    Timer-driven state machine that assigns target energy levels.

    Every ``base_interval_s +/- interval_variance_s / 2`` seconds it either
    picks a new level from ``preset_levels`` or, with ``breathe_probability``,
    shows a breathe cue for ``breathe_duration_ms`` before resuming the cadence.
    At most one timer is pending at any time; each timer carries a token and a
    fire whose token or state no longer matches is ignored.
    """

    def __init__(
        self,
        config: SchedulerConfig,
        timers: TimerService,
        rng: random.Random,
        emit: Callable[[EnergyEvent], None],
        frequency_probe: Optional[Callable[[], float]] = None,
    ):
        config.validate()
        self.config = config
        self.timers = timers
        self.rng = rng
        self._emit = emit
        self._frequency_probe = frequency_probe or (lambda: 0.0)

        self.state = SchedulerState.IDLE
        self.current_level = int(config.default_level)
        self.breathing = False

        self._start_time: Optional[float] = None
        self._handle: Optional[TimerHandle] = None
        self._token = 0

    # ------------------------------------------------------------
    # Time helpers
    # ------------------------------------------------------------
    @property
    def start_time(self) -> Optional[float]:
        return self._start_time

    def relative_time_ms(self) -> float:
        if self._start_time is None:
            return 0.0
        return (self.timers.now() - self._start_time) * 1000.0

    def next_interval(self) -> float:
        half = self.config.interval_variance_s / 2.0
        return self.config.base_interval_s + self.rng.uniform(-half, half)

    @property
    def pending_timer(self) -> Optional[TimerHandle]:
        if self._handle is not None and self._handle.pending:
            return self._handle
        return None

    # ------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------
    def start(self, start_time: Optional[float] = None) -> None:
        if self.state is not SchedulerState.IDLE:
            raise RuntimeError(f"scheduler cannot start from state '{self.state.value}'")
        self._start_time = self.timers.now() if start_time is None else float(start_time)
        self.current_level = int(self.config.default_level)
        self.breathing = False
        self._schedule(self.next_interval(), self._on_change_due, SchedulerState.AWAITING_CHANGE)

    def stop(self) -> None:
        self._cancel()
        self.breathing = False
        self.state = SchedulerState.STOPPED

    def reset_for_question(
        self,
        question: str = "",
        question_id: Optional[str] = None,
        question_index: Optional[int] = None,
    ) -> QuestionStarted:
        """Reset level and cadence for a new prompt; the event history is kept."""
        if self.state in (SchedulerState.IDLE, SchedulerState.STOPPED):
            raise RuntimeError(f"no running assessment (state '{self.state.value}')")
        self._cancel()
        self.current_level = int(self.config.default_level)
        self.breathing = False
        event = QuestionStarted(
            timestamp=self.timers.wall_time(),
            relative_time_ms=self.relative_time_ms(),
            level=self.current_level,
            question=question,
            question_id=question_id,
            question_index=question_index,
        )
        self._emit(event)
        if self.state is SchedulerState.STOPPED:
            return event
        self._schedule(self.next_interval(), self._on_change_due, SchedulerState.AWAITING_CHANGE)
        return event

    # ------------------------------------------------------------
    # Timer plumbing
    # ------------------------------------------------------------
    def _cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
        self._token += 1

    def _schedule(self, delay_s: float, fire: Callable[[int], None], state: SchedulerState) -> None:
        self._cancel()
        token = self._token
        self.state = state
        self._handle = self.timers.call_later(delay_s, lambda: fire(token))
        logger.debug(f"Scheduler {state.value}: next decision in {delay_s:.2f}s")

    def _on_change_due(self, token: int) -> None:
        if token != self._token or self.state is not SchedulerState.AWAITING_CHANGE:
            return
        self._handle = None

        if self.rng.random() < self.config.breathe_probability:
            self._begin_breathe()
        else:
            self._change_level()

    def _on_breathe_done(self, token: int) -> None:
        if token != self._token or self.state is not SchedulerState.BREATHING:
            return
        self._handle = None
        self.breathing = False
        self._schedule(self.next_interval(), self._on_change_due, SchedulerState.AWAITING_CHANGE)

    # ------------------------------------------------------------
    # Decisions
    # ------------------------------------------------------------
    def _begin_breathe(self) -> None:
        self.breathing = True
        self._emit(
            BreatheCue(
                timestamp=self.timers.wall_time(),
                relative_time_ms=self.relative_time_ms(),
                level=self.current_level,
                frequency=float(self._frequency_probe()),
            )
        )
        if self.state is SchedulerState.STOPPED:
            return
        self._schedule(self.config.breathe_duration_ms / 1000.0, self._on_breathe_done, SchedulerState.BREATHING)

    def _change_level(self) -> None:
        options = sorted(int(x) for x in self.config.preset_levels)
        if len(options) > 1:
            options = [lvl for lvl in options if lvl != self.current_level]
        previous = self.current_level
        self.current_level = self.rng.choice(options)
        self._emit(
            EnergyLevelChanged(
                timestamp=self.timers.wall_time(),
                relative_time_ms=self.relative_time_ms(),
                previous_level=previous,
                new_level=self.current_level,
                frequency=float(self._frequency_probe()),
            )
        )
        if self.state is SchedulerState.STOPPED:
            return
        self._schedule(self.next_interval(), self._on_change_due, SchedulerState.AWAITING_CHANGE)
