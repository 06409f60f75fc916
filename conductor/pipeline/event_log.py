# conductor/pipeline/event_log.py
from __future__ import annotations

from typing import Any, Dict, Iterator, List, Optional, Type, TypeVar

from .models import EnergyEvent

E = TypeVar("E", bound=EnergyEvent)


class EventLogClosedError(RuntimeError):
    """Raised when appending to a log whose assessment has ended."""


class EnergyEventLog:
    """
    Append-only, time-ordered record of emitted events.

    Consumers (persistence, scoring) read it; nothing in the engine removes
    entries. Question boundaries append a marker instead of clearing.
    """

    def __init__(self) -> None:
        self._events: List[EnergyEvent] = []
        self._closed = False

    def append(self, event: EnergyEvent) -> None:
        if self._closed:
            raise EventLogClosedError(f"cannot append {event.event_type}: event log is closed")
        if self._events and event.relative_time_ms < self._events[-1].relative_time_ms:
            raise ValueError(
                f"event {event.event_type} at {event.relative_time_ms:.1f}ms precedes "
                f"last event at {self._events[-1].relative_time_ms:.1f}ms"
            )
        self._events.append(event)

    def close(self) -> None:
        self._closed = True

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def last(self) -> Optional[EnergyEvent]:
        return self._events[-1] if self._events else None

    def of_type(self, cls: Type[E]) -> List[E]:
        return [e for e in self._events if isinstance(e, cls)]

    def to_records(self) -> List[Dict[str, Any]]:
        return [e.to_record() for e in self._events]

    def __iter__(self) -> Iterator[EnergyEvent]:
        return iter(list(self._events))

    def __len__(self) -> int:
        return len(self._events)

    def __getitem__(self, idx: int) -> EnergyEvent:
        return self._events[idx]
