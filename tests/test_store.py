"""Tests for the signal store — persistence of the lifecycle."""

from __future__ import annotations

from datetime import timedelta

import pytest

from conftest import NOW, make_snapshot
from signal_desk.errors import InvalidTransitionError, NotFoundError
from signal_desk.models.signal import SignalProposal, SignalQuality
from signal_desk.signals.sizing import fund_proposal
from signal_desk.signals.store import SignalStore


def _funded(coin="BTC", action="BUY", timeframe="15m"):
    if action == "BUY":
        levels = dict(entry_price=100, stop_loss=97, take_profit_1=103, take_profit_2=106, take_profit_3=110)
    else:
        levels = dict(entry_price=100, stop_loss=103, take_profit_1=97, take_profit_2=94, take_profit_3=90)
    proposal = SignalProposal(
        action=action, confidence=72, timeframe=timeframe,
        reasoning="test", key_factors=["Positive MACD"], **levels,
    )
    return fund_proposal(coin, proposal, 1000)


@pytest.fixture
def store(db_session):
    return SignalStore(db_session)


class TestCreate:
    def test_creates_active_signal(self, store):
        quality = SignalQuality(rating="GOOD", score=70, reasons=["x"])
        signal = store.create(_funded(), make_snapshot(rsi=42), quality, now=NOW)
        assert signal.id > 0
        assert signal.status == "ACTIVE"
        assert signal.signal_type == "LONG"
        assert signal.current_price == 100
        assert signal.pnl_usd == 0
        assert signal.quality == quality
        assert signal.created_at == NOW
        assert signal.expires_at == NOW + timedelta(minutes=15)
        assert signal.key_factors == ["Positive MACD"]

    def test_sell_is_short(self, store):
        assert store.create(_funded(action="SELL"), now=NOW).signal_type == "SHORT"


class TestAdvance:
    def test_tp1_records_timestamp_and_event(self, store):
        signal = store.create(_funded(), now=NOW)
        later = NOW + timedelta(minutes=5)
        updated, events = store.advance(signal.id, 103.5, now=later)
        assert updated.status == "TP1_HIT"
        assert updated.tp1_hit is True
        assert updated.tp1_hit_at == later
        assert updated.current_price == 103.5
        assert [(e.kind, e.level) for e in events] == [("tp_hit", 1)]
        assert events[0].signal_id == signal.id
        assert events[0].payload["status"] == "TP1_HIT"

    def test_full_path_closes_on_tp3(self, store):
        signal = store.create(_funded(), now=NOW)
        store.advance(signal.id, 103, now=NOW + timedelta(minutes=1))
        updated, events = store.advance(signal.id, 111, now=NOW + timedelta(minutes=2))
        assert updated.status == "TP3_HIT"
        assert updated.tp2_hit and updated.tp3_hit
        assert [e.level for e in events] == [2, 3]
        assert updated.closed_at == NOW + timedelta(minutes=2)
        assert updated.pnl_usd == pytest.approx(73.33, abs=0.01)

    def test_stop_hit_event(self, store):
        signal = store.create(_funded(), now=NOW)
        updated, events = store.advance(signal.id, 96, now=NOW + timedelta(minutes=1))
        assert updated.status == "SL_HIT"
        assert [e.kind for e in events] == ["sl_hit"]
        assert updated.closed_at is not None

    def test_terminal_signal_is_left_alone(self, store):
        signal = store.create(_funded(), now=NOW)
        store.advance(signal.id, 96, now=NOW + timedelta(minutes=1))
        again, events = store.advance(signal.id, 120, now=NOW + timedelta(minutes=2))
        assert again.status == "SL_HIT"
        assert again.current_price == 96
        assert events == []

    def test_expiry(self, store):
        signal = store.create(_funded(), now=NOW)
        updated, events = store.advance(signal.id, 101, now=NOW + timedelta(minutes=20))
        assert updated.status == "EXPIRED"
        assert updated.close_reason == "Signal expired"
        assert events == []

    def test_expiry_can_be_disabled(self, store):
        signal = store.create(_funded(), now=NOW)
        updated, _ = store.advance(signal.id, 101, now=NOW + timedelta(minutes=20), expire=False)
        assert updated.status == "ACTIVE"

    def test_unknown_signal(self, store):
        with pytest.raises(NotFoundError):
            store.advance(999, 100)


class TestClose:
    def test_manual_close(self, store):
        signal = store.create(_funded(action="SELL"), now=NOW)
        closed = store.close(signal.id, 95, now=NOW + timedelta(minutes=3))
        assert closed.status == "CLOSED"
        assert closed.close_reason == "Manual close"
        assert closed.pnl_usd == pytest.approx(5 * 20 / 3)
        assert closed.closed_at == NOW + timedelta(minutes=3)

    def test_close_terminal_rejected(self, store):
        signal = store.create(_funded(), now=NOW)
        store.close(signal.id, 101, reason="first", now=NOW)
        with pytest.raises(InvalidTransitionError):
            store.close(signal.id, 101, now=NOW)


class TestReads:
    def test_has_active_and_listing(self, store):
        btc = store.create(_funded("BTC"), now=NOW)
        eth = store.create(_funded("ETH"), now=NOW + timedelta(seconds=1))
        assert store.has_active("btc")
        assert not store.has_active("SOL")
        assert [s.id for s in store.list_active()] == [eth.id, btc.id]
        assert [s.id for s in store.list_active("ETH")] == [eth.id]

        store.advance(btc.id, 96, now=NOW + timedelta(minutes=1))
        assert not store.has_active("BTC")
        assert [s.id for s in store.list_completed()] == [btc.id]

    def test_completed_newest_closed_first(self, store):
        a = store.create(_funded("BTC"), now=NOW)
        b = store.create(_funded("ETH"), now=NOW)
        store.close(b.id, 100, now=NOW + timedelta(minutes=1))
        store.close(a.id, 100, now=NOW + timedelta(minutes=2))
        assert [s.id for s in store.list_completed(limit=1)] == [a.id]

    def test_tp_hit_signal_still_active(self, store):
        signal = store.create(_funded(), now=NOW)
        store.advance(signal.id, 104, now=NOW + timedelta(minutes=1))
        assert store.has_active("BTC")
        assert store.get(signal.id).status == "TP1_HIT"

    def test_get_unknown(self, store):
        with pytest.raises(NotFoundError):
            store.get(42)
