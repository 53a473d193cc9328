"""Indicator calculation, quality scoring and performance pattern mining."""

from signal_desk.analysis.indicators import compute_indicators
from signal_desk.analysis.patterns import PATTERN_REGISTRY, Sample, matching, mine
from signal_desk.analysis.quality import evaluate_quality, rating_for_score

__all__ = [
    "PATTERN_REGISTRY",
    "Sample",
    "compute_indicators",
    "evaluate_quality",
    "matching",
    "mine",
    "rating_for_score",
]
