"""Outbound notification queue — state changes publish, a consumer delivers."""

from __future__ import annotations

import asyncio

import structlog

from signal_desk.notify.events import NotificationEvent, NotificationSink

log = structlog.get_logger("notify")


class NotificationDispatcher:
    """Decouples event emission from delivery.

    :meth:`publish` never blocks and never raises; delivery failures are
    logged and dropped.
    """

    def __init__(self, sink: NotificationSink, maxsize: int = 1000) -> None:
        self.sink = sink
        self.queue: asyncio.Queue[NotificationEvent] = asyncio.Queue(maxsize=maxsize)
        self.delivered = 0
        self.failed = 0

    def publish(self, event: NotificationEvent) -> None:
        try:
            self.queue.put_nowait(event)
        except asyncio.QueueFull:
            self.failed += 1
            log.warning("notification_dropped", kind=event.kind, reason="queue_full")

    def publish_all(self, events: list[NotificationEvent]) -> None:
        for event in events:
            self.publish(event)

    async def _deliver(self, event: NotificationEvent) -> None:
        try:
            await self.sink.notify(event)
            self.delivered += 1
        except Exception:
            self.failed += 1
            log.exception(
                "notification_failed",
                kind=event.kind,
                coin=event.coin,
                signal_id=event.signal_id,
            )

    async def drain(self) -> int:
        """Deliver everything currently queued; returns how many were attempted."""
        count = 0
        while not self.queue.empty():
            event = self.queue.get_nowait()
            try:
                await self._deliver(event)
            finally:
                self.queue.task_done()
            count += 1
        return count

    async def run(self, stop: asyncio.Event | None = None) -> None:
        """Consume the queue until cancelled (or *stop* is set)."""
        log.info("dispatcher_started")
        try:
            while stop is None or not stop.is_set():
                try:
                    event = await asyncio.wait_for(self.queue.get(), timeout=1.0)
                except asyncio.TimeoutError:
                    continue
                try:
                    await self._deliver(event)
                finally:
                    self.queue.task_done()
        finally:
            log.info("dispatcher_stopped", delivered=self.delivered, failed=self.failed)
