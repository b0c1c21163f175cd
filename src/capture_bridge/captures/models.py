"""
Records exchanged between the query engine, the normalizer and the HTTP layer.

Field names are snake_case in Python and camelCase on the wire.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _WireModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )


class InteractionRecord(_WireModel):
    """One customer contact from the historical interaction/task index."""

    interaction_id: Optional[str] = None
    task_id: Optional[str] = None
    start_time: Optional[int] = None
    end_time: Optional[int] = None
    ani: Optional[str] = None
    dnis: Optional[str] = None
    queue_name: Optional[str] = None
    disposition: Optional[str] = None
    agent_emails: tuple[str, ...] = ()

    @property
    def join_keys(self) -> tuple[str, ...]:
        return tuple(k for k in (self.interaction_id, self.task_id) if k)


class CaptureRecord(_WireModel):
    """One recorded media artifact from the capture store."""

    capture_id: str
    interaction_id: Optional[str] = None
    task_id: Optional[str] = None
    created_at: Optional[int] = None
    end_time: Optional[int] = None
    media_urls: tuple[str, ...] = ()
    duration: Optional[float] = None
    agent_emails: tuple[str, ...] = ()
    raw: dict[str, Any] = Field(default_factory=dict, exclude=True, repr=False)


class NormalizedResultItem(_WireModel):
    capture_id: str
    interaction_id: Optional[str] = None
    task_id: Optional[str] = None
    created_at: Optional[int] = None
    url: str
    ani: Optional[str] = None
    queue_name: Optional[str] = None
    disposition: Optional[str] = None
    duration_sec: Optional[int] = None


class ResultWindow(_WireModel):
    start: datetime
    end: datetime
    limit: int = Field(exclude=True)

    @property
    def start_ms(self) -> int:
        return int(self.start.timestamp() * 1000)

    @property
    def end_ms(self) -> int:
        return int(self.end.timestamp() * 1000)

    @classmethod
    def lookback(cls, hours: float, limit: int, now: datetime | None = None) -> "ResultWindow":
        end = now or datetime.now(timezone.utc)
        return cls(start=end - timedelta(hours=hours), end=end, limit=limit)


class InteractionsResponse(_WireModel):
    items: list[InteractionRecord]
    window: ResultWindow


class RecentCapturesResponse(_WireModel):
    items: list[NormalizedResultItem]
    window: ResultWindow


class RecordingMatch(_WireModel):
    recording_id: str
    url: str
    start_time: Optional[int] = None


class RecordingQuery(_WireModel):
    task_id: Optional[str] = None
    interaction_id: Optional[str] = None
