"""Scorer capability and proposal validation."""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

from pydantic import ValidationError

from signal_desk.errors import ProposalValidationError
from signal_desk.models.market import IndicatorSnapshot
from signal_desk.models.prediction import PerformanceSummary
from signal_desk.models.signal import SignalProposal


@runtime_checkable
class Scorer(Protocol):
    """Anything that can turn market context into a signal proposal."""

    name: str

    async def propose(
        self,
        snapshot: IndicatorSnapshot,
        summary: PerformanceSummary,
        capital: float,
    ) -> SignalProposal: ...


def validate_proposal(proposal: SignalProposal) -> SignalProposal:
    """Check price levels are present and ordered for the proposal's direction.

    BUY:  stop < entry < tp1 < tp2 < tp3
    SELL: stop > entry > tp1 > tp2 > tp3
    HOLD only needs a positive entry price.

    Raises:
        ProposalValidationError: on any violation.
    """
    levels = [
        proposal.stop_loss,
        proposal.entry_price,
        proposal.take_profit_1,
        proposal.take_profit_2,
        proposal.take_profit_3,
    ]
    if proposal.entry_price <= 0:
        raise ProposalValidationError("Entry price must be positive")
    if proposal.action == "HOLD":
        return proposal
    if any(level <= 0 for level in levels):
        raise ProposalValidationError("All price levels must be positive")

    if proposal.action == "BUY":
        ordered = all(a < b for a, b in zip(levels, levels[1:]))
    else:
        ordered = all(a > b for a, b in zip(levels, levels[1:]))
    if not ordered:
        raise ProposalValidationError(
            f"{proposal.action} price levels out of order: "
            f"stop={proposal.stop_loss} entry={proposal.entry_price} "
            f"tp=({proposal.take_profit_1}, {proposal.take_profit_2}, {proposal.take_profit_3})"
        )
    return proposal


def parse_proposal(data: dict[str, Any], snapshot: IndicatorSnapshot) -> SignalProposal:
    """Build a proposal from a scorer's camelCase JSON object.

    A HOLD answer without explicit levels is anchored on the current price;
    a single ``targetPrice`` fills in missing take-profits.
    """
    if not isinstance(data, dict):
        raise ProposalValidationError("Scorer response is not a JSON object")

    fields = dict(data)
    entry = fields.get("entryPrice") or snapshot.current_price
    fields["entryPrice"] = entry
    target = fields.get("targetPrice")
    for key in ("takeProfit1", "takeProfit2", "takeProfit3"):
        if fields.get(key) is None and target is not None:
            fields[key] = target
    if fields.get("action") == "HOLD":
        for key in ("stopLoss", "takeProfit1", "takeProfit2", "takeProfit3"):
            if fields.get(key) is None:
                fields[key] = entry
    fields.pop("targetPrice", None)
    fields["fallback"] = False

    try:
        return SignalProposal.model_validate(fields)
    except ValidationError as exc:
        raise ProposalValidationError(f"Malformed scorer proposal: {exc.error_count()} errors") from exc
