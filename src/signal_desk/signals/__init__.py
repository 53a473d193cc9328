"""Trading signal sizing, state machine and persistence."""

from signal_desk.signals.lifecycle import Ladder, Transition, evaluate
from signal_desk.signals.sizing import (
    calculate_pnl,
    calculate_position_size,
    calculate_risk_reward,
    expiry_for,
    fund_proposal,
)
from signal_desk.signals.store import SignalStore

__all__ = [
    "Ladder",
    "SignalStore",
    "Transition",
    "calculate_pnl",
    "calculate_position_size",
    "calculate_risk_reward",
    "evaluate",
    "expiry_for",
    "fund_proposal",
]
