"""Self-learning loop — prediction records, grading and performance summaries."""

from signal_desk.learning.tracker import (
    PredictionTracker,
    grade_outcome,
    recent_trend,
    risk_level_for,
)

__all__ = ["PredictionTracker", "grade_outcome", "recent_trend", "risk_level_for"]
