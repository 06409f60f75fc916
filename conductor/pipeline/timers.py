# conductor/pipeline/timers.py
"""Clock and one-shot timer services.

The engine is single-threaded and cooperative: timers never fire on their
own thread. ``poll()`` runs every callback that is due, in due-time order.
``SimulatedTimerService`` drives virtual time for tests and offline replay;
``RealtimeTimerService`` follows the monotonic clock and is polled from the
analysis loop.
"""
from __future__ import annotations

import heapq
import itertools
import logging
import time
from typing import Callable, List, Optional, Tuple

logger = logging.getLogger(__name__)


class TimerHandle:
    """Cancellable reference to one pending callback."""

    __slots__ = ("due", "callback", "cancelled", "fired")

    def __init__(self, due: float, callback: Callable[[], None]):
        self.due = due
        self.callback = callback
        self.cancelled = False
        self.fired = False

    def cancel(self) -> None:
        self.cancelled = True

    @property
    def pending(self) -> bool:
        return not (self.cancelled or self.fired)


class TimerService:
    """Base timer service: a due-time heap plus a clock supplied by subclasses."""

    def __init__(self) -> None:
        self._heap: List[Tuple[float, int, TimerHandle]] = []
        self._seq = itertools.count()

    def now(self) -> float:
        """Monotonic seconds."""
        raise NotImplementedError

    def wall_time(self) -> float:
        """Wall-clock epoch seconds matching ``now()``."""
        raise NotImplementedError

    def call_later(self, delay_s: float, callback: Callable[[], None]) -> TimerHandle:
        if delay_s < 0.0:
            raise ValueError(f"delay must be non-negative, got {delay_s}")
        handle = TimerHandle(self.now() + float(delay_s), callback)
        heapq.heappush(self._heap, (handle.due, next(self._seq), handle))
        return handle

    def pending_count(self) -> int:
        return sum(1 for _, _, h in self._heap if h.pending)

    def next_due(self) -> Optional[float]:
        for due, _, h in sorted(self._heap):
            if h.pending:
                return due
        return None

    def _fire_due(self, until: float) -> int:
        fired = 0
        while self._heap and self._heap[0][0] <= until:
            _, _, handle = heapq.heappop(self._heap)
            if not handle.pending:
                continue
            handle.fired = True
            handle.callback()
            fired += 1
        return fired

    def poll(self) -> int:
        """Run every callback due at the current time; returns how many ran."""
        return self._fire_due(self.now())


class SimulatedTimerService(TimerService):
    """Virtual clock. Time only moves through ``advance``/``advance_to``."""

    def __init__(self, start_wall_time: float = 0.0):
        super().__init__()
        self._now = 0.0
        self._wall0 = float(start_wall_time)

    def now(self) -> float:
        return self._now

    def wall_time(self) -> float:
        return self._wall0 + self._now

    def advance_to(self, t: float) -> int:
        if t < self._now:
            raise ValueError(f"cannot move simulated time backwards ({t} < {self._now})")
        fired = 0
        # Step through due callbacks so now() reads their due time while they run
        while self._heap and self._heap[0][0] <= t:
            due = self._heap[0][0]
            self._now = max(self._now, due)
            fired += self._fire_due(due)
        self._now = t
        return fired

    def advance(self, dt: float) -> int:
        return self.advance_to(self._now + float(dt))


class RealtimeTimerService(TimerService):
    """Monotonic-clock timers, fired by ``poll()`` from the analysis loop."""

    def __init__(self) -> None:
        super().__init__()
        self._mono0 = time.monotonic()
        self._wall0 = time.time()

    def now(self) -> float:
        return time.monotonic() - self._mono0

    def wall_time(self) -> float:
        return self._wall0 + self.now()

    def sleep_until_next(self, max_sleep_s: float) -> None:
        """Block until the next due timer or ``max_sleep_s``, whichever is first."""
        due = self.next_due()
        delay = max_sleep_s if due is None else min(max_sleep_s, max(0.0, due - self.now()))
        if delay > 0.0:
            time.sleep(delay)
