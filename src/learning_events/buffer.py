"""Insertion-ordered queue of events awaiting their next send attempt."""

from typing import Any

from learning_events.models import QueuedEvent


class EventBuffer:
    def __init__(self) -> None:
        self._events: list[QueuedEvent] = []

    def add(self, payload: Any) -> QueuedEvent:
        queued = QueuedEvent(payload=payload)
        self._events.append(queued)
        return queued

    def drain(self) -> list[QueuedEvent]:
        """Detach and return everything queued; later adds land in a fresh list."""
        events = self._events
        self._events = []
        return events

    def append(self, events: list[QueuedEvent]) -> None:
        """Re-queue events (retries) at the tail, keeping their retry counts."""
        self._events.extend(events)

    def is_empty(self) -> bool:
        return len(self._events) == 0

    def __len__(self) -> int:
        return len(self._events)
