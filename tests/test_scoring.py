"""Tests for scorers, proposal validation and the proposer's fallback/feedback."""

from __future__ import annotations

import asyncio
import json

import httpx
import pytest

from conftest import StaticScorer, make_snapshot
from signal_desk.config.schema import ScorerConfig
from signal_desk.errors import ProposalValidationError
from signal_desk.models.prediction import PerformanceSummary
from signal_desk.models.signal import SignalProposal
from signal_desk.scoring import (
    FALLBACK_MARKER,
    LLMScorer,
    RuleBasedScorer,
    SignalProposer,
    apply_feedback,
    fallback_proposal,
    parse_proposal,
    validate_proposal,
)
from signal_desk.scoring.llm import build_prompt, extract_json


def _buy(confidence=75.0, **overrides) -> SignalProposal:
    fields = dict(entry_price=100, stop_loss=97, take_profit_1=103, take_profit_2=106, take_profit_3=110)
    fields.update(overrides)
    return SignalProposal(action="BUY", confidence=confidence, **fields)


def _ordered(p: SignalProposal) -> bool:
    levels = [p.stop_loss, p.entry_price, p.take_profit_1, p.take_profit_2, p.take_profit_3]
    if p.action == "BUY":
        return all(a < b for a, b in zip(levels, levels[1:]))
    return all(a > b for a, b in zip(levels, levels[1:]))


# ── Validation and parsing ────────────────────────────────────


class TestValidateProposal:
    def test_valid_buy(self):
        assert validate_proposal(_buy()) is not None

    def test_buy_stop_above_entry_rejected(self):
        with pytest.raises(ProposalValidationError):
            validate_proposal(_buy(stop_loss=101))

    def test_equal_take_profits_rejected(self):
        with pytest.raises(ProposalValidationError):
            validate_proposal(_buy(take_profit_2=103))

    def test_valid_sell(self):
        sell = SignalProposal(
            action="SELL", confidence=60, entry_price=100, stop_loss=103,
            take_profit_1=97, take_profit_2=94, take_profit_3=90,
        )
        assert validate_proposal(sell).action == "SELL"

    def test_hold_needs_only_entry(self):
        hold = SignalProposal(
            action="HOLD", confidence=40, entry_price=100, stop_loss=100,
            take_profit_1=100, take_profit_2=100, take_profit_3=100,
        )
        assert validate_proposal(hold).action == "HOLD"

    def test_non_positive_level_rejected(self):
        with pytest.raises(ProposalValidationError):
            validate_proposal(_buy(stop_loss=-1))


class TestParseProposal:
    def test_camel_case_fields(self):
        data = {
            "action": "BUY", "confidence": 70, "entryPrice": 100, "stopLoss": 97,
            "takeProfit1": 103, "takeProfit2": 106, "takeProfit3": 110,
            "riskLevel": "MEDIUM", "keyFactors": ["a", "b"], "timeframe": "1h",
        }
        proposal = parse_proposal(data, make_snapshot())
        assert proposal.take_profit_3 == 110
        assert proposal.risk_level == "MEDIUM"
        assert proposal.key_factors == ["a", "b"]
        assert proposal.timeframe == "1h"
        assert proposal.fallback is False

    def test_target_price_fills_missing_take_profits(self):
        data = {"action": "BUY", "confidence": 70, "stopLoss": 97, "targetPrice": 105}
        proposal = parse_proposal(data, make_snapshot(price=100))
        assert proposal.entry_price == 100
        assert (proposal.take_profit_1, proposal.take_profit_2, proposal.take_profit_3) == (105, 105, 105)

    def test_hold_anchored_on_entry(self):
        proposal = parse_proposal({"action": "HOLD", "confidence": 35}, make_snapshot(price=250))
        assert proposal.action == "HOLD"
        assert proposal.stop_loss == proposal.take_profit_3 == 250

    def test_out_of_range_confidence(self):
        data = {"action": "BUY", "confidence": 150, "stopLoss": 97,
                "takeProfit1": 103, "takeProfit2": 106, "takeProfit3": 110}
        with pytest.raises(ProposalValidationError):
            parse_proposal(data, make_snapshot())

    def test_not_an_object(self):
        with pytest.raises(ProposalValidationError):
            parse_proposal(["BUY"], make_snapshot())


# ── Rule-based fallback ───────────────────────────────────────


class TestFallbackProposal:
    def test_marked_and_capped(self):
        proposal = fallback_proposal(make_snapshot(rsi=25, macd=1.0))
        assert proposal.fallback is True
        assert proposal.reasoning.startswith(FALLBACK_MARKER)
        assert proposal.confidence <= 45
        assert proposal.risk_level == "HIGH"
        assert proposal.timeframe == "15m"
        assert "Rule-based fallback" in proposal.key_factors

    def test_oversold_buys(self):
        proposal = fallback_proposal(make_snapshot(rsi=25))
        assert proposal.action == "BUY"
        assert "RSI < 30 (Oversold)" in proposal.key_factors
        assert _ordered(proposal)

    def test_overbought_sells(self):
        proposal = fallback_proposal(make_snapshot(rsi=78, macd=-0.4))
        assert proposal.action == "SELL"
        assert _ordered(proposal)

    def test_neutral_defaults_to_buy(self):
        # 30 base + 10 positive MACD + 10 near support = 50 -> capped at 45
        proposal = fallback_proposal(make_snapshot(rsi=50, macd=0.5))
        assert proposal.action == "BUY"
        assert proposal.confidence == 45

    def test_buy_levels(self):
        p = fallback_proposal(make_snapshot(price=100, rsi=25))
        assert p.entry_price == pytest.approx(99.8)
        assert p.stop_loss == pytest.approx(99.8 * 0.97)
        assert p.take_profit_1 == pytest.approx(99.8 * 1.02)
        assert p.take_profit_2 == pytest.approx(99.8 * 1.05)
        assert p.take_profit_3 == pytest.approx(99.8 * 1.10)

    def test_degenerate_levels_still_ordered(self):
        snapshot = make_snapshot(price=100, support=0.0, resistance=0.0, rsi=80)
        assert _ordered(fallback_proposal(snapshot))
        snapshot = make_snapshot(price=100, support=0.0, resistance=0.0, rsi=20)
        assert _ordered(fallback_proposal(snapshot))

    def test_rule_based_scorer(self):
        proposal = asyncio.run(RuleBasedScorer().propose(make_snapshot(), PerformanceSummary.empty("BTC"), 1000))
        assert proposal.fallback is True


# ── Proposer ──────────────────────────────────────────────────


class TestSignalProposer:
    def test_no_scorer_uses_fallback(self):
        proposal = asyncio.run(SignalProposer().propose(make_snapshot()))
        assert proposal.fallback is True
        assert proposal.reasoning.startswith(FALLBACK_MARKER)

    def test_scorer_error_uses_fallback(self):
        scorer = StaticScorer(error=RuntimeError("boom"))
        proposal = asyncio.run(SignalProposer(scorer).propose(make_snapshot()))
        assert scorer.calls == 1
        assert proposal.fallback is True
        assert proposal.confidence <= 45

    def test_scorer_timeout_uses_fallback(self):
        scorer = StaticScorer(proposal=_buy(), delay=1.0)
        proposal = asyncio.run(SignalProposer(scorer, timeout_s=0.01).propose(make_snapshot()))
        assert proposal.fallback is True

    def test_invalid_levels_use_fallback(self):
        scorer = StaticScorer(proposal=_buy(stop_loss=105))
        proposal = asyncio.run(SignalProposer(scorer).propose(make_snapshot()))
        assert proposal.fallback is True
        assert _ordered(proposal)

    def test_valid_scorer_proposal_passes_through(self):
        scorer = StaticScorer(proposal=_buy(confidence=82))
        proposal = asyncio.run(SignalProposer(scorer).propose(make_snapshot()))
        assert proposal.fallback is False
        assert proposal.confidence == 82


class TestApplyFeedback:
    def test_two_mistakes_turn_scorer_proposal_into_hold(self):
        summary = PerformanceSummary(coin="ETH", mistake_keys=["high_rsi_buy", "overconfident"])
        adjusted = apply_feedback(_buy(confidence=85), make_snapshot("ETH", rsi=75), summary)
        assert adjusted.action == "HOLD"
        assert adjusted.confidence == 65
        assert "Resembles past mistake: high_rsi_buy" in adjusted.key_factors

    def test_condition_bonus(self):
        summary = PerformanceSummary(coin="ETH", condition_keys=["neutral_rsi"])
        adjusted = apply_feedback(_buy(confidence=70), make_snapshot("ETH", rsi=50), summary)
        assert adjusted.action == "BUY"
        assert adjusted.confidence == 75

    def test_clamped_to_100(self):
        summary = PerformanceSummary(coin="ETH", condition_keys=["neutral_rsi", "clear_trend"])
        adjusted = apply_feedback(
            _buy(confidence=98), make_snapshot("ETH", rsi=50, price_change_24h=5), summary,
        )
        assert adjusted.confidence == 100

    def test_fallback_never_holds_and_stays_capped(self):
        summary = PerformanceSummary(
            coin="ETH",
            mistake_keys=["low_volume", "btc_dominance_buy"],
            condition_keys=["neutral_rsi"],
        )
        snapshot = make_snapshot("ETH", rsi=50, volume=500_000, btc_dominance=65)
        proposer = SignalProposer()
        proposal = asyncio.run(proposer.propose(snapshot, summary))
        assert proposal.fallback is True
        assert proposal.action == "BUY"
        # 45 - 2 * 10 + 5
        assert proposal.confidence == 30
        assert proposal.confidence <= 45

    def test_no_lessons_is_identity(self):
        proposal = _buy()
        assert apply_feedback(proposal, make_snapshot(), PerformanceSummary.empty("BTC")) is proposal


# ── LLM scorer ────────────────────────────────────────────────


class TestExtractJson:
    def test_plain(self):
        assert extract_json('{"action": "BUY"}') == {"action": "BUY"}

    def test_surrounded_by_text(self):
        assert extract_json('Sure!\n```json\n{"action": "SELL"}\n```') == {"action": "SELL"}

    def test_no_object(self):
        with pytest.raises(ProposalValidationError):
            extract_json("no json here")

    def test_none(self):
        with pytest.raises(ProposalValidationError):
            extract_json(None)


class TestBuildPrompt:
    def test_includes_market_and_lessons(self):
        summary = PerformanceSummary(
            coin="ETH",
            total_predictions=10,
            correct_predictions=6,
            win_rate=60.0,
            common_mistakes=["Bought 2 times when RSI > 70 (overbought) - resulted in losses"],
        )
        prompt = build_prompt(make_snapshot("ETH", rsi=75, btc_dominance=58.2), summary, 1000)
        assert "Generate a trading signal for ETH." in prompt
        assert "(OVERBOUGHT)" in prompt
        assert "BTC Dominance: 58.20%" in prompt
        assert "1. Bought 2 times when RSI > 70" in prompt
        assert "Building performance history..." in prompt
        assert "Max Risk per Trade: 2% ($20.00)" in prompt


class TestLLMScorer:
    def _scorer(self, handler) -> LLMScorer:
        scorer = LLMScorer(ScorerConfig(enabled=True, api_key="sk-test", base_url="https://llm.test/v1/"))
        scorer._http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        return scorer

    def test_requires_key(self):
        with pytest.raises(ValueError):
            LLMScorer(ScorerConfig())

    def test_posts_chat_completion_and_parses(self):
        seen = {}
        answer = {
            "action": "BUY", "confidence": 72, "entryPrice": 100, "stopLoss": 97,
            "takeProfit1": 102, "takeProfit2": 105, "takeProfit3": 109,
            "reasoning": "Momentum", "keyFactors": ["MACD"],
        }

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["auth"] = request.headers["Authorization"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"choices": [{"message": {"content": json.dumps(answer)}}]})

        scorer = self._scorer(handler)
        proposal = asyncio.run(scorer.propose(make_snapshot(), PerformanceSummary.empty("BTC"), 1000))
        assert seen["url"] == "https://llm.test/v1/chat/completions"
        assert seen["auth"] == "Bearer sk-test"
        assert seen["body"]["response_format"] == {"type": "json_object"}
        assert seen["body"]["messages"][0]["role"] == "system"
        assert proposal.action == "BUY"
        assert proposal.take_profit_3 == 109

    def test_http_error_raises(self):
        scorer = self._scorer(lambda request: httpx.Response(500))
        with pytest.raises(httpx.HTTPStatusError):
            asyncio.run(scorer.propose(make_snapshot(), PerformanceSummary.empty("BTC"), 1000))

    def test_unexpected_payload(self):
        scorer = self._scorer(lambda request: httpx.Response(200, json={"choices": []}))
        with pytest.raises(ProposalValidationError):
            asyncio.run(scorer.propose(make_snapshot(), PerformanceSummary.empty("BTC"), 1000))
