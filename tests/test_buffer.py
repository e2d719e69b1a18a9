"""Tests for learning_events.buffer module."""

from learning_events.buffer import EventBuffer
from learning_events.models import QueuedEvent


def _event(kind: str = "login") -> dict:
    return {"type": kind, "learnerId": "learner-1"}


def test_add_wraps_payload():
    buf = EventBuffer()
    queued = buf.add(_event())
    assert queued.payload == _event()
    assert queued.retry_count == 0
    assert queued.enqueued_at.tzinfo is not None
    assert len(buf) == 1


def test_drain_keeps_order_and_clears():
    buf = EventBuffer()
    for kind in ("content_started", "content_completed", "module_completed"):
        buf.add(_event(kind))
    events = buf.drain()
    assert [e.payload["type"] for e in events] == [
        "content_started",
        "content_completed",
        "module_completed",
    ]
    assert buf.is_empty()


def test_add_after_drain_goes_to_fresh_queue():
    buf = EventBuffer()
    buf.add(_event("login"))
    in_flight = buf.drain()
    buf.add(_event("logout"))
    assert len(in_flight) == 1
    assert [e.payload["type"] for e in buf.drain()] == ["logout"]


def test_append_requeues_at_tail_with_retry_count():
    buf = EventBuffer()
    buf.add(_event("login"))
    buf.append([QueuedEvent(payload=_event("retry"), retry_count=2)])
    events = buf.drain()
    assert [e.payload["type"] for e in events] == ["login", "retry"]
    assert events[1].retry_count == 2


def test_is_empty():
    buf = EventBuffer()
    assert buf.is_empty()
    buf.add(_event())
    assert not buf.is_empty()
