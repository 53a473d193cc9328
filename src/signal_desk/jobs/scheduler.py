"""Scheduler — main async loop that triggers jobs when their interval elapses."""

from __future__ import annotations

import asyncio
import time

import structlog

from signal_desk.bootstrap import build_components
from signal_desk.config.loader import load_config
from signal_desk.config.schema import AppConfig, SchedulerConfig
from signal_desk.jobs.runner import JobRunner
from signal_desk.jobs.tasks import AUTO_GENERATE, CHECK_PREDICTIONS, DAILY_SUMMARY, UPDATE_PRICES
from signal_desk.logging.setup import setup_logging

log = structlog.get_logger("scheduler")


def job_intervals(config: SchedulerConfig) -> dict[str, float]:
    """Seconds between runs, per job name."""
    return {
        AUTO_GENERATE: config.auto_generate_minutes * 60,
        UPDATE_PRICES: config.update_prices_minutes * 60,
        CHECK_PREDICTIONS: config.check_predictions_minutes * 60,
        DAILY_SUMMARY: config.daily_summary_minutes * 60,
    }


def _should_run(
    job: str,
    interval_s: float,
    last_run: dict[str, float],
    now: float | None = None,
) -> bool:
    """Check if enough time has elapsed since the last trigger."""
    now = time.monotonic() if now is None else now
    last = last_run.get(job)
    if last is not None and now - last < interval_s:
        return False
    last_run[job] = now
    return True


async def tick(
    runner: JobRunner,
    intervals: dict[str, float],
    last_run: dict[str, float],
) -> list[asyncio.Task]:
    """Start every due job as its own task; the runner skips jobs in flight."""
    started = []
    for job, interval_s in intervals.items():
        if job not in runner.names or interval_s <= 0:
            continue
        if _should_run(job, interval_s, last_run):
            started.append(asyncio.create_task(runner.trigger(job), name=f"job:{job}"))
    return started


async def run_loop(config: AppConfig) -> None:
    """Main scheduler loop — trigger due jobs, deliver notifications."""
    components = build_components(config)
    intervals = job_intervals(config.scheduler)
    log.info("scheduler_started", jobs=intervals, coins=config.coins)

    dispatcher_task = asyncio.create_task(components.dispatcher.run(), name="dispatcher")
    last_run: dict[str, float] = {}
    in_flight: set[asyncio.Task] = set()

    try:
        while True:
            try:
                for task in await tick(components.runner, intervals, last_run):
                    in_flight.add(task)
                    task.add_done_callback(in_flight.discard)
            except Exception:
                log.exception("tick_error")

            await asyncio.sleep(config.scheduler.tick_seconds)
    finally:
        for task in in_flight:
            task.cancel()
        dispatcher_task.cancel()
        await asyncio.gather(dispatcher_task, *in_flight, return_exceptions=True)
        await components.dispatcher.drain()
        await components.aclose()
        log.info("scheduler_stopped")


def main(config_path: str | None = None) -> None:
    """Entry point — load config, set up logging, run the async loop."""
    config = load_config(config_path)
    setup_logging(level=config.logging.level, log_format=config.logging.format)
    asyncio.run(run_loop(config))
