"""Shared test fixtures."""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import BigInteger, Integer, JSON, create_engine, event
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from signal_desk.db.base import Base

# Import all table modules so Base.metadata sees them
import signal_desk.db.tables  # noqa: F401
from signal_desk.models.market import (
    BollingerBands,
    GlobalMetrics,
    IndicatorSnapshot,
    PriceHistory,
    STATIC_GLOBAL_METRICS,
)
from signal_desk.models.signal import SignalProposal

NOW = datetime(2025, 6, 15, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def db_engine():
    """In-memory SQLite engine with all tables created.

    Patches JSONB→JSON and BigInteger→Integer for SQLite compatibility.
    A static pool keeps one connection so every session sees the same data.
    """
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    @event.listens_for(engine, "connect")
    def _set_sqlite_pragma(dbapi_conn, _rec):
        dbapi_conn.execute("PRAGMA foreign_keys=ON")

    # SQLite doesn't support schemas, JSONB, or BigInteger autoincrement
    for table in Base.metadata.tables.values():
        table.schema = None
        for col in table.columns:
            if isinstance(col.type, JSONB):
                col.type = JSON()
            if isinstance(col.type, BigInteger):
                col.type = Integer()

    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db_session(db_engine):
    session = Session(db_engine, expire_on_commit=False)
    yield session
    session.close()


@pytest.fixture
def session_factory(db_engine):
    return sessionmaker(bind=db_engine, expire_on_commit=False)


# ── Fakes ─────────────────────────────────────────────────────


def make_snapshot(coin: str = "BTC", price: float = 100.0, **overrides) -> IndicatorSnapshot:
    fields = dict(
        coin=coin,
        current_price=price,
        price_change_24h=1.5,
        rsi=50.0,
        macd=0.5,
        macd_signal=0.5,
        macd_histogram=0.0,
        bollinger=BollingerBands(upper=price * 1.04, middle=price, lower=price * 0.96),
        support=price * 0.95,
        resistance=price * 1.12,
        volume=2_000_000.0,
        volume_trend="STABLE",
        volume_ratio=1.2,
        btc_dominance=None,
    )
    fields.update(overrides)
    return IndicatorSnapshot(**fields)


def rising_history(coin: str = "BTC", start: float = 100.0, n: int = 100) -> PriceHistory:
    prices = [start + i * 0.5 + (1.0 if i % 2 else 0.0) for i in range(n)]
    return PriceHistory(
        symbol=f"{coin}USDT",
        interval="1h",
        prices=prices,
        volumes=[1_000_000.0 + i * 10_000 for i in range(n)],
        timestamps=[1_700_000_000_000 + i * 3_600_000 for i in range(n)],
    )


class FakeMarket:
    """In-process market data source with settable prices."""

    def __init__(self, prices: dict[str, float] | None = None, history: dict | None = None):
        self.prices = dict(prices or {})
        self.history = dict(history or {})
        self.price_calls: list[list[str]] = []

    async def get_history(self, coin: str, interval: str = "1h", limit: int = 100) -> PriceHistory:
        if coin in self.history:
            return self.history[coin]
        return rising_history(coin, start=self.prices.get(coin, 100.0) * 0.7)

    async def get_current_price(self, coin: str) -> float:
        return self.prices[coin]

    async def get_current_prices(self, coins: list[str]) -> dict[str, float]:
        self.price_calls.append(list(coins))
        return {c: self.prices[c] for c in coins if c in self.prices}


class FakeGlobalMetrics:
    def __init__(self, metrics: GlobalMetrics = STATIC_GLOBAL_METRICS):
        self.metrics = metrics
        self.calls = 0

    async def get_global_metrics(self) -> GlobalMetrics:
        self.calls += 1
        return self.metrics


class RecordingSink:
    def __init__(self, fail: bool = False):
        self.events = []
        self.fail = fail

    async def notify(self, event) -> None:
        if self.fail:
            raise RuntimeError("sink down")
        self.events.append(event)


@pytest.fixture
def now():
    return NOW


class StaticScorer:
    name = "static"

    def __init__(self, proposal=None, error=None, delay=0.0):
        self.proposal = proposal
        self.error = error
        self.delay = delay
        self.calls = 0

    async def propose(self, snapshot, summary, capital):
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error:
            raise self.error
        return self.proposal


class Clock:
    """Settable clock for code that takes a ``clock`` callable."""

    def __init__(self, start: datetime = NOW):
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **delta) -> None:
        self.current += timedelta(**delta)


def buy_proposal(confidence: float = 85.0, **overrides) -> SignalProposal:
    """Entry 100, stop 97, TP3 112: R:R 4 at any capital."""
    fields = dict(
        action="BUY", confidence=confidence, entry_price=100.0, stop_loss=97.0,
        take_profit_1=103.0, take_profit_2=106.0, take_profit_3=112.0,
        reasoning="Momentum continuation", key_factors=["MACD positive"],
    )
    fields.update(overrides)
    return SignalProposal(**fields)


def hold_proposal() -> SignalProposal:
    return SignalProposal(
        action="HOLD", confidence=40.0, entry_price=100.0, stop_loss=100.0,
        take_profit_1=100.0, take_profit_2=100.0, take_profit_3=100.0,
    )
