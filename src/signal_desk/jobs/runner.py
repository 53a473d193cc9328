"""Job runner — named background jobs with single-flight protection."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime
from typing import Any

import structlog

from signal_desk.clock import utcnow
from signal_desk.errors import NotFoundError
from signal_desk.logging.setup import bind_job_context, clear_job_context
from signal_desk.notify.dispatcher import NotificationDispatcher
from signal_desk.notify.events import NotificationEvent

log = structlog.get_logger("jobs")

JobFn = Callable[[], Awaitable[dict[str, Any]]]


@dataclass
class JobStatus:
    running: bool = False
    runs: int = 0
    last_started_at: datetime | None = None
    last_finished_at: datetime | None = None
    last_result: dict[str, Any] | None = None
    last_error: str | None = None

    def to_api(self) -> dict[str, Any]:
        return {
            "running": self.running,
            "runs": self.runs,
            "lastStartedAt": self.last_started_at.isoformat() if self.last_started_at else None,
            "lastFinishedAt": self.last_finished_at.isoformat() if self.last_finished_at else None,
            "lastResult": self.last_result,
            "lastError": self.last_error,
        }


class JobRunner:
    """Runs registered jobs; a job already in flight is never started twice.

    A job that raises is logged, recorded in its status and reported with a
    ``job_error`` notification; the exception does not propagate.
    """

    def __init__(self, dispatcher: NotificationDispatcher | None = None) -> None:
        self.dispatcher = dispatcher
        self._jobs: dict[str, JobFn] = {}
        self._status: dict[str, JobStatus] = {}

    @property
    def names(self) -> list[str]:
        return list(self._jobs)

    def register(self, name: str, fn: JobFn) -> None:
        self._jobs[name] = fn
        self._status.setdefault(name, JobStatus())

    def is_running(self, name: str) -> bool:
        return self._status[name].running if name in self._status else False

    async def trigger(self, name: str) -> dict[str, Any] | None:
        """Run *name* once; returns its result, or None if skipped or failed."""
        if name not in self._jobs:
            raise NotFoundError(f"Unknown job: {name}")
        status = self._status[name]
        if status.running:
            log.info("job_skipped", job=name, reason="already_running")
            return None

        status.running = True
        status.runs += 1
        status.last_started_at = utcnow()
        bind_job_context(name, run=status.runs)
        log.info("job_started")
        try:
            result = await self._jobs[name]()
        except Exception as exc:
            status.last_error = str(exc) or exc.__class__.__name__
            log.exception("job_failed")
            if self.dispatcher is not None:
                self.dispatcher.publish(NotificationEvent(
                    kind="job_error",
                    payload={"job": name, "error": status.last_error},
                ))
            return None
        else:
            status.last_result = result
            status.last_error = None
            log.info("job_finished", result=result)
            return result
        finally:
            status.running = False
            status.last_finished_at = utcnow()
            clear_job_context()

    def status(self) -> dict[str, dict[str, Any]]:
        return {name: s.to_api() for name, s in self._status.items()}
