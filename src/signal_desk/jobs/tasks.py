"""The scheduled jobs: auto-generation, price updates, grading, daily summary."""

from __future__ import annotations

from typing import Any

import structlog

from signal_desk.errors import JobFailedError
from signal_desk.jobs.runner import JobRunner
from signal_desk.models.prediction import Horizon
from signal_desk.notify.dispatcher import NotificationDispatcher
from signal_desk.notify.events import NotificationEvent
from signal_desk.service import OperationResult, SignalService

log = structlog.get_logger("jobs")

AUTO_GENERATE = "auto_generate"
UPDATE_PRICES = "update_prices"
CHECK_PREDICTIONS = "check_predictions"
DAILY_SUMMARY = "daily_summary"

# Upper bound on pages graded per horizon in one run.
MAX_PAGES_PER_HORIZON = 20


def _unwrap(job: str, result: OperationResult) -> Any:
    if not result.success:
        raise JobFailedError(f"{job}: {result.error}")
    return result.data


class SignalJobs:
    """Binds the service operations to job names and summary notifications."""

    def __init__(
        self,
        service: SignalService,
        dispatcher: NotificationDispatcher | None = None,
    ) -> None:
        self.service = service
        self.dispatcher = dispatcher

    def _summary(self, job: str, **fields: Any) -> None:
        if self.dispatcher is not None:
            self.dispatcher.publish(NotificationEvent(
                kind="job_summary",
                payload={"job": job, **fields},
            ))

    async def auto_generate(self) -> dict[str, Any]:
        data = _unwrap(AUTO_GENERATE, await self.service.auto_generate())
        summary = {
            "created": data["count"],
            "excellent": data["excellentCount"],
            "good": data["goodCount"],
            "skipped": len(data["skipped"]),
            "failed": len(data["failed"]),
        }
        self._summary(AUTO_GENERATE, **summary)
        return summary

    async def update_prices(self) -> dict[str, Any]:
        data = _unwrap(UPDATE_PRICES, await self.service.update_prices())
        return {
            "updated": data["updated"],
            "closed": len(data["closed"]),
            "failed": data["failed"],
        }

    async def check_predictions(self) -> dict[str, Any]:
        """Grade every horizon; one failing horizon does not stop the others."""
        totals: dict[str, Any] = {}
        errors: list[str] = []
        for horizon in Horizon:
            checked = correct = failed = cursor = 0
            for _ in range(MAX_PAGES_PER_HORIZON):
                result = await self.service.check_predictions(horizon.value, after_id=cursor)
                if not result.success:
                    errors.append(f"{horizon.value}: {result.error}")
                    break
                page = result.data
                checked += page["checked"]
                correct += page["correct"]
                failed += page["failed"]
                cursor = page["cursor"]
                if not page["more"]:
                    break

            rate = round(correct / checked * 100, 2) if checked else 0.0
            totals[horizon.value] = {"checked": checked, "correct": correct, "winRate": rate}
            if checked:
                self._summary(
                    CHECK_PREDICTIONS,
                    horizon=horizon.value,
                    checked=checked,
                    correct=correct,
                    failed=failed,
                    win_rate=f"{rate:.1f}%",
                )

        if errors:
            raise JobFailedError(f"{CHECK_PREDICTIONS}: " + "; ".join(errors))
        return totals

    async def daily_summary(self) -> dict[str, Any]:
        snapshot = _unwrap(DAILY_SUMMARY, await self.service.daily_summary())
        return {
            "date": snapshot.date.isoformat(),
            "currentCapital": snapshot.current_capital,
            "totalTrades": snapshot.total_trades,
        }

    def register(self, runner: JobRunner) -> JobRunner:
        runner.register(AUTO_GENERATE, self.auto_generate)
        runner.register(UPDATE_PRICES, self.update_prices)
        runner.register(CHECK_PREDICTIONS, self.check_predictions)
        runner.register(DAILY_SUMMARY, self.daily_summary)
        return runner
