"""Composition root — builds the service, its clients and the job runner from config."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

import structlog
from sqlalchemy.orm import Session

from signal_desk.config.schema import AppConfig
from signal_desk.db.engine import get_session_factory, init_engine
from signal_desk.exchange.binance import BinanceClient
from signal_desk.exchange.coingecko import CoinGeckoClient
from signal_desk.jobs.runner import JobRunner
from signal_desk.jobs.tasks import SignalJobs
from signal_desk.notify.dispatcher import NotificationDispatcher
from signal_desk.notify.events import LogSink, NotificationSink
from signal_desk.notify.telegram import TelegramSink
from signal_desk.scoring.base import Scorer
from signal_desk.scoring.llm import LLMScorer
from signal_desk.scoring.proposer import SignalProposer
from signal_desk.service import SignalService

log = structlog.get_logger("bootstrap")


@dataclass
class Components:
    config: AppConfig
    service: SignalService
    dispatcher: NotificationDispatcher
    runner: JobRunner
    closeables: list[Any] = field(default_factory=list)

    async def aclose(self) -> None:
        for client in self.closeables:
            await client.close()


def build_scorer(config: AppConfig) -> Scorer | None:
    """The AI scorer when enabled with a key; otherwise None (rule-based only)."""
    if config.scorer.enabled and config.scorer.api_key:
        log.info("scorer_configured", scorer="llm", model=config.scorer.model)
        return LLMScorer(config.scorer)
    log.warning("scorer_disabled", reason="no api key", fallback="rules")
    return None


def build_sink(config: AppConfig) -> NotificationSink:
    tg = config.telegram
    if tg.enabled and tg.bot_token and tg.chat_id:
        return TelegramSink(tg.bot_token, tg.chat_id, api_url=tg.api_url)
    log.info("telegram_disabled", sink="log")
    return LogSink()


def build_components(
    config: AppConfig,
    session_factory: Callable[[], Session] | None = None,
) -> Components:
    """Wire everything.  Initialises the global engine unless a factory is given."""
    if session_factory is None:
        init_engine(config.database.url)
        session_factory = get_session_factory()

    market = BinanceClient(
        base_url=config.market.exchange_url,
        quote_asset=config.market.quote_asset,
        timeout_s=config.market.timeout_s,
    )
    global_metrics = CoinGeckoClient(
        base_url=config.market.global_metrics_url,
        timeout_s=config.market.timeout_s,
    )
    scorer = build_scorer(config)
    sink = build_sink(config)
    dispatcher = NotificationDispatcher(sink)

    service = SignalService(
        session_factory,
        market,
        SignalProposer(scorer, timeout_s=config.scorer.timeout_s),
        global_metrics=global_metrics,
        dispatcher=dispatcher,
        config=config,
    )
    runner = SignalJobs(service, dispatcher).register(JobRunner(dispatcher))

    closeables: list[Any] = [market, global_metrics]
    for extra in (scorer, sink):
        if hasattr(extra, "close"):
            closeables.append(extra)
    return Components(config, service, dispatcher, runner, closeables)
