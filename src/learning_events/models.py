"""Data types shared by the buffer and its transports."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


@dataclass
class QueuedEvent:
    payload: Any
    retry_count: int = 0
    enqueued_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class LearningEvent(BaseModel):
    """Typed learner-activity payload, serialised with camelCase keys."""

    model_config = ConfigDict(populate_by_name=True)

    type: str
    learner_id: str = Field(alias="learnerId")
    course_id: str | None = Field(default=None, alias="courseId")
    class_id: str | None = Field(default=None, alias="classId")
    content_id: str | None = Field(default=None, alias="contentId")
    score: float | None = None
    duration: int | None = None
    metadata: dict[str, Any] | None = None
    timestamp: datetime | None = None


class BatchError(BaseModel):
    index: int
    error: str


class BatchResult(BaseModel):
    created: int = 0
    failed: int = 0
    events: list[Any] = Field(default_factory=list)
    errors: list[BatchError] = Field(default_factory=list)


@dataclass
class EventLoggerStats:
    enqueued: int = 0
    delivered: int = 0
    retried: int = 0
    dropped: int = 0
    rejected_after_destroy: int = 0
    flushes: int = 0
    failed_flushes: int = 0


def event_type(payload: Any) -> str:
    """Best-effort event type for log lines; payloads stay opaque otherwise."""
    if isinstance(payload, LearningEvent):
        return payload.type
    if isinstance(payload, dict):
        return str(payload.get("type", "<unknown>"))
    return type(payload).__name__
