"""Signal state machine — pure evaluation of one price update.

ACTIVE -> TP1_HIT -> TP2_HIT -> TP3_HIT (terminal); SL_HIT, CLOSED and
EXPIRED are terminal and reachable from any open state.  TP flags are never
cleared once set.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from signal_desk.models.signal import (
    ACTIVE,
    EXPIRED,
    SL_HIT,
    TERMINAL_STATUSES,
    TP3_HIT,
    TP_STATUS,
)
from signal_desk.signals.sizing import calculate_pnl


@dataclass(frozen=True)
class Ladder:
    """Price levels and progress of one signal."""

    action: str
    entry_price: float
    stop_loss: float
    take_profits: tuple[float, float, float]
    hits: tuple[bool, bool, bool]
    position_size: float
    status: str = ACTIVE


@dataclass
class Transition:
    status: str
    pnl_usd: float
    pnl_percentage: float
    new_levels: list[int] = field(default_factory=list)
    stop_hit: bool = False
    expired: bool = False

    @property
    def terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def changed_status(self) -> bool:
        return bool(self.new_levels) or self.stop_hit or self.expired


def _reached(action: str, price: float, level: float) -> bool:
    return price >= level if action == "BUY" else price <= level


def _stop_breached(action: str, price: float, stop: float) -> bool:
    return price <= stop if action == "BUY" else price >= stop


def evaluate(ladder: Ladder, price: float, *, expired: bool = False) -> Transition:
    """Work out the effect of *price* on an open signal.

    The stop is checked first and, once breached, no take-profit is newly
    recorded in the same pass; the one exception is a simultaneous TP3, which
    wins.  Every take-profit newly crossed is reported in ascending order.
    A signal still open after the ladder check becomes EXPIRED when *expired*.
    """
    pnl_usd, pnl_pct = calculate_pnl(
        ladder.action, ladder.entry_price, price, ladder.position_size,
    )
    transition = Transition(status=ladder.status, pnl_usd=pnl_usd, pnl_percentage=pnl_pct)
    if ladder.status in TERMINAL_STATUSES:
        return transition

    tp3_now = not ladder.hits[2] and _reached(ladder.action, price, ladder.take_profits[2])
    if _stop_breached(ladder.action, price, ladder.stop_loss) and not tp3_now:
        transition.status = SL_HIT
        transition.stop_hit = True
        return transition

    for index, level in enumerate(ladder.take_profits):
        if not ladder.hits[index] and _reached(ladder.action, price, level):
            transition.new_levels.append(index + 1)

    highest = max(
        [i + 1 for i, hit in enumerate(ladder.hits) if hit] + transition.new_levels,
        default=0,
    )
    if highest:
        transition.status = TP_STATUS[highest]

    if transition.status != TP3_HIT and expired:
        transition.status = EXPIRED
        transition.expired = True
    return transition
