"""Notification events and the sink capability."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal, Protocol, runtime_checkable

import structlog
from pydantic import BaseModel, Field

from signal_desk.clock import utcnow

log = structlog.get_logger("notify")

EventKind = Literal[
    "signal_created",
    "tp_hit",
    "sl_hit",
    "job_summary",
    "job_error",
    "daily_summary",
]


class NotificationEvent(BaseModel):
    kind: EventKind
    coin: str | None = None
    signal_id: int | None = None
    level: int | None = None
    payload: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=utcnow)


@runtime_checkable
class NotificationSink(Protocol):
    async def notify(self, event: NotificationEvent) -> None: ...


class LogSink:
    """Writes events to the structured log only."""

    async def notify(self, event: NotificationEvent) -> None:
        log.info(
            "notification",
            kind=event.kind,
            coin=event.coin,
            signal_id=event.signal_id,
            level=event.level,
            **event.payload,
        )
