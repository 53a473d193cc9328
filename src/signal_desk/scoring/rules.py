"""Rule-based scorer — deterministic, no network, never raises."""

from __future__ import annotations

from signal_desk.models.market import IndicatorSnapshot
from signal_desk.models.prediction import PerformanceSummary
from signal_desk.models.signal import SignalProposal

FALLBACK_MARKER = "[FALLBACK]"
FALLBACK_CONFIDENCE_CAP = 45.0
_BASE_CONFIDENCE = 30.0


def _levels_buy(price: float, support: float, resistance: float) -> tuple[float, ...]:
    entry = price * 0.998
    stop = max(support * 0.995, entry * 0.97)
    if stop >= entry:
        stop = entry * 0.97
    tp1 = entry * 1.02
    tp2 = entry * 1.05
    tp3 = min(resistance * 0.995, entry * 1.10)
    if tp3 <= tp2:
        tp3 = entry * 1.10
    return entry, stop, tp1, tp2, tp3


def _levels_sell(price: float, support: float, resistance: float) -> tuple[float, ...]:
    entry = price * 1.002
    stop = min(resistance * 1.005, entry * 1.03)
    if stop <= entry:
        stop = entry * 1.03
    tp1 = entry * 0.98
    tp2 = entry * 0.95
    tp3 = max(support * 1.005, entry * 0.90)
    if tp3 >= tp2:
        tp3 = entry * 0.90
    return entry, stop, tp1, tp2, tp3


def fallback_proposal(snapshot: IndicatorSnapshot) -> SignalProposal:
    """Conservative proposal from RSI, MACD sign and position in the S/R range.

    Confidence starts at 30 and is capped at 45; levels always satisfy the
    directional ordering.
    """
    price = snapshot.current_price
    support, resistance = snapshot.support, snapshot.resistance
    action = "BUY"
    confidence = _BASE_CONFIDENCE
    notes: list[str] = []
    factors: list[str] = []

    if snapshot.rsi < 30:
        action = "BUY"
        confidence += 15
        notes.append("RSI indicates oversold conditions.")
        factors.append("RSI < 30 (Oversold)")
    elif snapshot.rsi > 70:
        action = "SELL"
        confidence += 15
        notes.append("RSI indicates overbought conditions.")
        factors.append("RSI > 70 (Overbought)")

    if snapshot.macd > 0:
        if action == "BUY":
            confidence += 10
        notes.append("MACD is positive (bullish).")
        factors.append("Positive MACD")
    else:
        if action == "SELL":
            confidence += 10
        notes.append("MACD is negative (bearish).")
        factors.append("Negative MACD")

    price_range = resistance - support
    position = (price - support) / price_range if price_range > 0 else 0.5
    if position < 0.3:
        if action == "BUY":
            confidence += 10
        notes.append("Price near support level.")
        factors.append("Near support")
    elif position > 0.7:
        if action == "SELL":
            confidence += 10
        notes.append("Price near resistance level.")
        factors.append("Near resistance")

    confidence = min(confidence, FALLBACK_CONFIDENCE_CAP)
    if action == "BUY":
        entry, stop, tp1, tp2, tp3 = _levels_buy(price, support, resistance)
    else:
        entry, stop, tp1, tp2, tp3 = _levels_sell(price, support, resistance)

    reasoning = (
        f"{FALLBACK_MARKER} AI scorer unavailable; rule-based analysis used. "
        + " ".join(notes)
        + f" Confidence {confidence:.0f}%."
    )
    return SignalProposal(
        action=action,
        confidence=confidence,
        entry_price=entry,
        stop_loss=stop,
        take_profit_1=tp1,
        take_profit_2=tp2,
        take_profit_3=tp3,
        reasoning=reasoning,
        key_factors=factors + ["Rule-based fallback"],
        risk_percentage=2.0,
        timeframe="15m",
        risk_level="HIGH",
        fallback=True,
    )


class RuleBasedScorer:
    """The no-network scorer variant."""

    name = "rules"

    async def propose(
        self,
        snapshot: IndicatorSnapshot,
        summary: PerformanceSummary,
        capital: float,
    ) -> SignalProposal:
        return fallback_proposal(snapshot)
