"""Signal quality evaluation — additive 0-100 score mapped to a rating tier."""

from __future__ import annotations

from signal_desk.models.market import IndicatorSnapshot
from signal_desk.models.signal import FundedSignal, QualityRating, SignalQuality


def rating_for_score(score: float) -> QualityRating:
    if score >= 80:
        return "EXCELLENT"
    if score >= 65:
        return "GOOD"
    if score >= 50:
        return "FAIR"
    return "POOR"


def _confidence_points(confidence: float) -> tuple[int, str]:
    if confidence >= 80:
        return 30, "Very high confidence (>=80%)"
    if confidence >= 70:
        return 20, "High confidence (>=70%)"
    if confidence >= 60:
        return 10, "Moderate confidence (>=60%)"
    return 0, "Low confidence (<60%)"


def _risk_reward_points(ratio: float) -> tuple[int, str]:
    if ratio >= 4:
        return 30, "Excellent R:R (>=4:1)"
    if ratio >= 3:
        return 25, "Great R:R (>=3:1)"
    if ratio >= 2:
        return 15, "Good R:R (>=2:1)"
    return 0, "Poor R:R (<2:1)"


def _rsi_points(action: str, rsi: float) -> tuple[int, str | None]:
    if action == "BUY":
        if rsi < 35:
            return 20, "RSI oversold (<35)"
        if rsi < 50:
            return 10, "RSI neutral (<50)"
    elif action == "SELL":
        if rsi > 65:
            return 20, "RSI overbought (>65)"
        if rsi > 50:
            return 10, "RSI neutral (>50)"
    return 0, None


def _volume_points(ratio: float) -> tuple[int, str]:
    if ratio >= 1.5:
        return 20, "High volume (1.5x+ avg)"
    if ratio >= 1.0:
        return 10, "Normal volume"
    return 0, "Low volume"


def evaluate_quality(signal: FundedSignal, snapshot: IndicatorSnapshot) -> SignalQuality:
    """Score a funded signal against the snapshot it was generated from.

    Four independent checks contribute at most 30 (confidence), 30 (R:R),
    20 (RSI relative to direction) and 20 (volume ratio) points.
    """
    checks = [
        _confidence_points(signal.confidence),
        _risk_reward_points(signal.risk_reward_ratio),
        _rsi_points(signal.action, snapshot.rsi),
        _volume_points(snapshot.volume_ratio),
    ]
    score = sum(points for points, _ in checks)
    reasons = [reason for _, reason in checks if reason]
    return SignalQuality(rating=rating_for_score(score), score=score, reasons=reasons)
