"""Mistake and best-condition patterns — decorated predicates are auto-registered.

The same predicates serve two purposes: mining narrative lessons from graded
predictions, and checking whether a fresh proposal's market conditions
resemble a lesson already learned.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Iterable, Literal, Sequence

PatternKind = Literal["mistake", "condition"]

MAX_LESSONS = 5


@dataclass(frozen=True)
class Sample:
    """Market context of one prediction, optionally with its graded P/L."""

    action: str
    rsi: float
    volume: float
    confidence: float
    price_change_24h: float
    btc_dominance: float | None = None
    profit_loss: float = 0.0


@dataclass(frozen=True)
class Pattern:
    key: str
    kind: PatternKind
    predicate: Callable[[Sample], bool]
    describe: Callable[[Sequence[Sample], int], str]
    min_count: int = 1
    min_share: float | None = None
    skip_for_btc: bool = False

    def matches(self, sample: Sample) -> bool:
        return self.predicate(sample)

    def triggered(self, samples: Sequence[Sample], coin: str) -> bool:
        if self.skip_for_btc and coin.upper() == "BTC":
            return False
        if not samples:
            return False
        hits = sum(1 for s in samples if self.predicate(s))
        if self.min_share is not None:
            return hits > len(samples) * self.min_share
        return hits >= self.min_count


PATTERN_REGISTRY: dict[str, Pattern] = {}


def _register(kind: PatternKind, key: str, describe, **kwargs):
    def decorator(fn: Callable[[Sample], bool]) -> Callable[[Sample], bool]:
        if key in PATTERN_REGISTRY:
            raise ValueError(f"Duplicate pattern key: {key!r}")
        PATTERN_REGISTRY[key] = Pattern(key=key, kind=kind, predicate=fn, describe=describe, **kwargs)
        return fn

    return decorator


def mistake(key: str, describe, **kwargs):
    return _register("mistake", key, describe, **kwargs)


def condition(key: str, describe, **kwargs):
    return _register("condition", key, describe, **kwargs)


def _avg_profit(matched: Sequence[Sample]) -> float:
    return sum(s.profit_loss for s in matched) / len(matched) if matched else 0.0


# -- mistakes (mined from incorrect predictions) ------------------------------

@mistake(
    "high_rsi_buy",
    lambda m, total: f"Bought {len(m)} times when RSI > 70 (overbought) - resulted in losses",
    min_count=2,
)
def _high_rsi_buy(s: Sample) -> bool:
    return s.action == "BUY" and s.rsi > 70


@mistake(
    "low_rsi_sell",
    lambda m, total: f"Sold {len(m)} times when RSI < 30 (oversold) - missed rebounds",
    min_count=2,
)
def _low_rsi_sell(s: Sample) -> bool:
    return s.action == "SELL" and s.rsi < 30


@mistake(
    "low_volume",
    lambda m, total: f"Made {len(m)} trades on low volume (< $1M) - low liquidity led to losses",
    min_count=3,
)
def _low_volume(s: Sample) -> bool:
    return s.volume < 1_000_000 and s.action != "HOLD"


@mistake(
    "btc_dominance_buy",
    lambda m, total: (
        f"Bought altcoins {len(m)} times when BTC dominance > 60% - altcoins underperformed"
    ),
    min_count=2,
    skip_for_btc=True,
)
def _btc_dominance_buy(s: Sample) -> bool:
    return s.btc_dominance is not None and s.btc_dominance > 60 and s.action == "BUY"


@mistake(
    "overconfident",
    lambda m, total: (
        f"Was overconfident (>80%) {len(m)} times but still wrong - need to be more cautious"
    ),
    min_count=3,
)
def _overconfident(s: Sample) -> bool:
    return s.confidence > 80


@mistake(
    "premature_reversal",
    lambda m, total: (
        f"Tried to catch {len(m)} trend reversals too early - let trends establish first"
    ),
    min_count=2,
)
def _premature_reversal(s: Sample) -> bool:
    return (s.action == "BUY" and s.price_change_24h < -10) or (
        s.action == "SELL" and s.price_change_24h > 10
    )


# -- best conditions (mined from correct predictions) -------------------------

@condition(
    "neutral_rsi",
    lambda m, total: (
        f"RSI between 35-65 (neutral zone): {len(m)} wins "
        f"({len(m) / total * 100:.0f}% of correct predictions)"
    ),
    min_share=0.5,
)
def _neutral_rsi(s: Sample) -> bool:
    return 35 <= s.rsi <= 65


@condition(
    "high_volume",
    lambda m, total: f"High volume > $5M: {len(m)} wins, avg profit {_avg_profit(m):.2f}%",
    min_share=0.4,
)
def _high_volume(s: Sample) -> bool:
    return s.volume > 5_000_000


@condition(
    "moderate_confidence",
    lambda m, total: f"Moderate confidence (60-80%): {len(m)} wins - sweet spot for accuracy",
    min_share=0.4,
)
def _moderate_confidence(s: Sample) -> bool:
    return 60 <= s.confidence <= 80


@condition(
    "clear_trend",
    lambda m, total: f"Clear trends (>3% daily move): {len(m)} wins - easier to predict",
    min_share=0.5,
)
def _clear_trend(s: Sample) -> bool:
    return abs(s.price_change_24h) > 3


@condition(
    "buy_the_dip",
    lambda m, total: (
        f"Buying dips (RSI<40, negative 24h): {len(m)} wins, avg profit {_avg_profit(m):.2f}%"
    ),
    min_count=3,
)
def _buy_the_dip(s: Sample) -> bool:
    return s.action == "BUY" and s.rsi < 40 and s.price_change_24h < 0


def patterns_of(kind: PatternKind) -> list[Pattern]:
    """Registered patterns of *kind*, in registration order."""
    return [p for p in PATTERN_REGISTRY.values() if p.kind == kind]


def mine(kind: PatternKind, samples: Sequence[Sample], coin: str) -> list[tuple[str, str]]:
    """Return ``(key, message)`` for every triggered pattern, capped at five.

    Order follows registration order, not magnitude.
    """
    lessons: list[tuple[str, str]] = []
    for pattern in patterns_of(kind):
        if not pattern.triggered(samples, coin):
            continue
        matched = [s for s in samples if pattern.matches(s)]
        lessons.append((pattern.key, pattern.describe(matched, len(samples))))
    return lessons[:MAX_LESSONS]


def matching(keys: Iterable[str], sample: Sample, coin: str) -> list[str]:
    """Keys among *keys* whose pattern matches a single *sample*."""
    found = []
    for key in keys:
        pattern = PATTERN_REGISTRY.get(key)
        if pattern is None:
            continue
        if pattern.skip_for_btc and coin.upper() == "BTC":
            continue
        if pattern.matches(sample):
            found.append(key)
    return found
