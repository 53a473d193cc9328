"""Tests for the signal service boundary operations (SQLite, fake market)."""

from __future__ import annotations

import asyncio

import pytest
from sqlalchemy.exc import OperationalError

from conftest import (
    Clock,
    FakeGlobalMetrics,
    FakeMarket,
    RecordingSink,
    StaticScorer,
    buy_proposal,
    hold_proposal,
)
from signal_desk.config.schema import AppConfig
from signal_desk.jobs import SignalJobs
from signal_desk.errors import DataUnavailableError
from signal_desk.notify import NotificationDispatcher
from signal_desk.scoring import SignalProposer
from signal_desk.service import OperationResult, SignalService


class Harness:
    def __init__(self, session_factory, proposal=None, prices=None, coins=("BTC", "ETH", "SOL")):
        self.clock = Clock()
        self.market = FakeMarket(prices or {"BTC": 100.0, "ETH": 100.0, "SOL": 100.0})
        self.scorer = StaticScorer(proposal=proposal or buy_proposal())
        self.sink = RecordingSink()
        self.dispatcher = NotificationDispatcher(self.sink)
        self.service = SignalService(
            session_factory,
            self.market,
            SignalProposer(self.scorer),
            global_metrics=FakeGlobalMetrics(),
            dispatcher=self.dispatcher,
            config=AppConfig(coins=list(coins)),
            clock=self.clock,
        )

    def run(self, coro) -> OperationResult:
        return asyncio.run(coro)

    def delivered(self) -> list:
        asyncio.run(self.dispatcher.drain())
        events = list(self.sink.events)
        self.sink.events.clear()
        return events


@pytest.fixture
def h(session_factory):
    return Harness(session_factory)


def _open_btc(h: Harness):
    result = h.run(h.service.generate_signal("btc"))
    assert result.success, result.error
    return result.data["signal"]


class TestOperationResult:
    def test_success_envelope_uses_camel_case(self, h):
        result = h.run(h.service.generate_signal("BTC"))
        body = result.to_api()
        assert body["success"] is True
        assert body["data"]["signal"]["entryPrice"] == 100.0
        assert body["data"]["quality"]["rating"] == "GOOD"

    def test_failure_envelope(self):
        body = OperationResult.from_error(DataUnavailableError("down")).to_api()
        assert body == {"success": False, "error": "down", "retryable": True}


class TestGenerateSignal:
    def test_creates_signal_and_notifies(self, h):
        result = h.run(h.service.generate_signal("btc"))
        assert result.success
        signal = result.data["signal"]
        assert signal.coin == "BTC"
        assert signal.status == "ACTIVE"
        assert signal.position_size == pytest.approx(20 / 3)
        assert result.data["quality"].score == 70
        assert result.data["potentialProfits"]["tp3"] == pytest.approx(80.0)
        assert result.data["potentialProfits"]["sl"] == pytest.approx(20.0)
        assert result.data["predictionId"] is not None

        events = h.delivered()
        assert [e.kind for e in events] == ["signal_created"]
        assert events[0].signal_id == signal.id
        assert events[0].payload["quality_rating"] == "GOOD"

    def test_duplicate_is_conflict(self, h):
        _open_btc(h)
        result = h.run(h.service.generate_signal("BTC"))
        assert not result.success
        assert result.status_code == 409

    def test_invalid_input(self, h):
        assert h.run(h.service.generate_signal("")).status_code == 400
        assert h.run(h.service.generate_signal("BT-C")).status_code == 400
        assert h.run(h.service.generate_signal("BTC", capital=-5)).status_code == 400

    def test_hold_opens_nothing(self, session_factory):
        h = Harness(session_factory, proposal=hold_proposal())
        result = h.run(h.service.generate_signal("ETH"))
        assert result.success
        assert result.data["signal"] is None
        assert result.data["predictionId"] is not None
        assert h.run(h.service.get_active()).data == []
        assert h.delivered() == []

    def test_market_failure_is_retryable(self, h):
        async def unavailable(*args, **kwargs):
            raise DataUnavailableError("No historical data available for BTC")

        h.market.get_history = unavailable
        result = h.run(h.service.generate_signal("BTC"))
        assert not result.success
        assert result.status_code == 503
        assert result.retryable is True

    def test_persistence_failure_is_retryable(self):
        def broken_factory():
            raise OperationalError("SELECT 1", {}, Exception("connection refused"))

        service = SignalService(broken_factory, FakeMarket({"BTC": 100.0}), SignalProposer())
        result = asyncio.run(service.get_active())
        assert not result.success
        assert result.status_code == 503
        assert result.retryable is True


class TestPredict:
    def test_prediction_only(self, h):
        result = h.run(h.service.predict("ETH"))
        assert result.success
        assert result.data["prediction"].action == "BUY"
        assert result.data["marketData"].btc_dominance == 59.3
        assert result.data["performance"].total_predictions == 0
        assert h.run(h.service.get_active()).data == []

    def test_btc_dominance_is_100_for_btc(self, h):
        result = h.run(h.service.predict("BTC"))
        assert result.data["marketData"].btc_dominance == 100.0

    def test_latest_and_recent(self, h):
        assert h.run(h.service.latest_prediction("BTC")).status_code == 404
        h.run(h.service.predict("BTC"))
        h.clock.advance(minutes=5)
        second = h.run(h.service.predict("BTC")).data["prediction"]
        assert h.run(h.service.latest_prediction("btc")).data.id == second.id
        assert len(h.run(h.service.recent_predictions("BTC", limit=1)).data) == 1
        assert h.run(h.service.recent_predictions(limit=0)).status_code == 400


class TestAutoGenerate:
    def test_skips_active_and_creates_admitted(self, h):
        _open_btc(h)
        h.delivered()
        result = h.run(h.service.auto_generate())
        assert result.success
        data = result.data
        assert data["count"] == 2
        assert data["goodCount"] == 2
        assert {item["signal"].coin for item in data["signals"]} == {"ETH", "SOL"}
        assert data["skipped"] == [{"coin": "BTC", "reason": "active signal exists"}]
        assert [e.kind for e in h.delivered()] == ["signal_created", "signal_created"]

    def test_quality_gate_rejects_poor(self, session_factory):
        h = Harness(session_factory, proposal=buy_proposal(confidence=55))
        result = h.run(h.service.auto_generate(["BTC"]))
        assert result.data["count"] == 0
        assert result.data["skipped"][0]["reason"].startswith("quality POOR")
        assert h.run(h.service.get_active()).data == []
        assert h.delivered() == []

    def test_manual_generation_has_no_gate(self, session_factory):
        h = Harness(session_factory, proposal=buy_proposal(confidence=55))
        result = h.run(h.service.generate_signal("BTC"))
        assert result.data["quality"].rating == "POOR"
        assert result.data["signal"] is not None

    def test_one_coin_failure_is_isolated(self, h):
        original = h.market.get_history

        async def flaky(coin, *args, **kwargs):
            if coin == "ETH":
                raise DataUnavailableError("No historical data available for ETH")
            return await original(coin, *args, **kwargs)

        h.market.get_history = flaky
        result = h.run(h.service.auto_generate())
        assert result.data["count"] == 2
        assert result.data["failed"][0]["coin"] == "ETH"

    def test_hold_is_skipped(self, session_factory):
        h = Harness(session_factory, proposal=hold_proposal())
        result = h.run(h.service.auto_generate(["BTC"]))
        assert result.data["skipped"] == [{"coin": "BTC", "reason": "HOLD"}]


class TestUpdatePrices:
    def test_gap_to_tp3_closes_with_events(self, h):
        signal = _open_btc(h)
        h.delivered()
        h.market.prices["BTC"] = 112.0
        result = h.run(h.service.update_prices())
        assert result.data["updated"] == 1
        assert result.data["closed"] == [signal.id]
        updated = result.data["signals"][0]
        assert updated.status == "TP3_HIT"
        assert updated.pnl_usd == pytest.approx(80.0)

        events = h.delivered()
        assert [(e.kind, e.level) for e in events] == [("tp_hit", 1), ("tp_hit", 2), ("tp_hit", 3)]

        again = h.run(h.service.update_prices())
        assert again.data["updated"] == 0

    def test_batch_price_fetch(self, h):
        _open_btc(h)
        h.run(h.service.generate_signal("ETH"))
        h.market.price_calls.clear()
        h.run(h.service.update_prices())
        assert h.market.price_calls == [["BTC", "ETH"]]

    def test_stop_loss(self, h):
        _open_btc(h)
        h.delivered()
        h.market.prices["BTC"] = 96.0
        result = h.run(h.service.update_prices())
        assert result.data["signals"][0].status == "SL_HIT"
        assert [e.kind for e in h.delivered()] == ["sl_hit"]

    def test_missing_price_counts_as_failed(self, h):
        _open_btc(h)
        del h.market.prices["BTC"]
        result = h.run(h.service.update_prices())
        assert result.data == {"updated": 0, "failed": 1, "closed": [], "signals": []}

    def test_expiry_without_notification(self, h):
        signal = _open_btc(h)
        h.delivered()
        h.clock.advance(hours=1)
        h.market.prices["BTC"] = 101.0
        result = h.run(h.service.update_prices(signal.id))
        expired = result.data["signals"][0]
        assert expired.status == "EXPIRED"
        assert expired.close_reason == "Signal expired"
        assert h.delivered() == []

    def test_unknown_signal(self, h):
        assert h.run(h.service.update_prices(999)).status_code == 404


class TestConcurrentUpdates:
    @staticmethod
    def _yielding_market(h: Harness) -> None:
        prices, price = h.market.get_current_prices, h.market.get_current_price

        async def get_current_prices(coins):
            await asyncio.sleep(0)
            return await prices(coins)

        async def get_current_price(coin):
            await asyncio.sleep(0)
            return await price(coin)

        h.market.get_current_prices = get_current_prices
        h.market.get_current_price = get_current_price

    def test_each_level_is_hit_once(self, h):
        signal = _open_btc(h)
        h.delivered()
        self._yielding_market(h)
        h.market.prices["BTC"] = 107.0

        async def both():
            return await asyncio.gather(h.service.update_prices(), h.service.update_prices())

        first, second = asyncio.run(both())
        for result in (first, second):
            updated = result.data["signals"][0]
            assert updated.id == signal.id
            assert updated.tp1_hit and updated.tp2_hit
            assert not updated.tp3_hit
        assert [(e.kind, e.level) for e in h.delivered()] == [("tp_hit", 1), ("tp_hit", 2)]

    def test_close_loses_to_terminal_update(self, h):
        signal = _open_btc(h)
        h.market.prices["BTC"] = 107.0
        h.run(h.service.update_prices())
        h.delivered()
        self._yielding_market(h)
        h.market.prices["BTC"] = 112.0

        async def race():
            return await asyncio.gather(
                h.service.update_prices(),
                h.service.update_prices(),
                h.service.close(signal.id),
            )

        first, second, close = asyncio.run(race())
        assert first.data["closed"] == [signal.id]
        assert second.success
        assert close.status_code == 409
        final = second.data["signals"][0]
        assert final.status == "TP3_HIT"
        assert final.tp1_hit and final.tp2_hit and final.tp3_hit
        assert [(e.kind, e.level) for e in h.delivered()] == [("tp_hit", 3)]


class TestClose:
    def test_close_at_live_price(self, h):
        signal = _open_btc(h)
        h.market.prices["BTC"] = 103.0
        result = h.run(h.service.close(signal.id, "Taking profit"))
        assert result.data["signal"].status == "CLOSED"
        assert result.data["signal"].close_reason == "Taking profit"
        assert result.data["finalPnl"] == pytest.approx(20.0)

        completed = h.run(h.service.get_completed()).data
        assert [s.id for s in completed] == [signal.id]

    def test_close_twice_conflicts(self, h):
        signal = _open_btc(h)
        h.run(h.service.close(signal.id))
        assert h.run(h.service.close(signal.id)).status_code == 409

    def test_close_unknown_or_missing(self, h):
        assert h.run(h.service.close(999)).status_code == 404
        assert h.run(h.service.close(0)).status_code == 400

    def test_completed_limit_must_be_positive(self, h):
        assert h.run(h.service.get_completed(0)).status_code == 400


class TestPredictions:
    def test_check_predictions_grades_due(self, h):
        h.run(h.service.predict("BTC"))
        first = h.run(h.service.check_predictions("1h"))
        assert first.data["checked"] == 0

        h.clock.advance(hours=2)
        h.market.prices["BTC"] = 105.0
        result = h.run(h.service.check_predictions("1h"))
        assert result.data["checked"] == 1
        assert result.data["correct"] == 1
        assert result.data["winRate"] == pytest.approx(100.0)
        assert result.data["more"] is False

        again = h.run(h.service.check_predictions("1h"))
        assert again.data["checked"] == 0

    def test_check_predictions_pages(self, h):
        for _ in range(3):
            h.run(h.service.predict("BTC"))
        h.clock.advance(hours=2)
        result = h.run(h.service.check_predictions("1h", limit=2))
        assert result.data["checked"] == 2
        assert result.data["more"] is True

    def test_ungradable_records_do_not_block_newer_ones(self, h):
        dead = [h.run(h.service.predict("DEAD")).data["prediction"] for _ in range(2)]
        btc = h.run(h.service.predict("BTC")).data["prediction"]
        h.clock.advance(hours=25)
        h.market.prices.pop("DEAD", None)

        first = h.run(h.service.check_predictions("24h", limit=2))
        assert first.data["checked"] == 0
        assert first.data["failed"] == 2
        assert first.data["more"] is True
        assert first.data["cursor"] == dead[-1].id

        second = h.run(h.service.check_predictions("24h", limit=2, after_id=first.data["cursor"]))
        assert second.data["checked"] == 1
        assert second.data["cursor"] == btc.id

    def test_job_grades_past_ungradable_page(self, h):
        h.service.config.scheduler.page_size = 2
        for _ in range(2):
            h.run(h.service.predict("DEAD"))
        btc = h.run(h.service.predict("BTC")).data["prediction"]
        h.clock.advance(hours=25)
        h.market.prices.pop("DEAD", None)
        h.market.prices["BTC"] = 104.0

        totals = asyncio.run(SignalJobs(h.service).check_predictions())
        assert totals["24h"]["checked"] == 1
        graded = h.run(h.service.latest_prediction("BTC")).data
        assert graded.id == btc.id
        assert graded.outcomes["24h"].is_correct is True

    def test_unknown_horizon(self, h):
        assert h.run(h.service.check_predictions("2h")).status_code == 400

    def test_grade_with_explicit_price(self, h):
        prediction = h.run(h.service.predict("BTC")).data["prediction"]
        result = h.run(h.service.grade_prediction(prediction.id, "24h", actual_price=95.0))
        outcome = result.data.outcomes["24h"]
        assert outcome.is_correct is False
        assert outcome.profit_loss == pytest.approx(-5.0)

    def test_grade_at_live_price(self, h):
        prediction = h.run(h.service.predict("BTC")).data["prediction"]
        h.market.prices["BTC"] = 104.0
        result = h.run(h.service.grade_prediction(prediction.id, "4h"))
        assert result.data.outcomes["4h"].actual_price == 104.0

    def test_performance_reflects_grades(self, h):
        prediction = h.run(h.service.predict("BTC")).data["prediction"]
        h.run(h.service.grade_prediction(prediction.id, "24h", actual_price=110.0))
        summary = h.run(h.service.get_performance("BTC")).data
        assert summary.total_predictions == 1
        assert summary.correct_predictions == 1


class TestPortfolio:
    def test_portfolio_and_daily_summary(self, h):
        signal = _open_btc(h)
        h.market.prices["BTC"] = 107.5
        h.run(h.service.close(signal.id))
        h.delivered()

        snapshot = h.run(h.service.get_portfolio()).data
        assert snapshot.total_trades == 1
        assert snapshot.current_capital == pytest.approx(1050.0)

        daily = h.run(h.service.daily_summary()).data
        assert daily.net_profit == pytest.approx(50.0)
        events = h.delivered()
        assert [e.kind for e in events] == ["daily_summary"]
        assert events[0].payload["date"] == "2025-06-15"
