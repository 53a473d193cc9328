"""Signal proposer — bounded scorer call, validation, performance feedback, fallback."""

from __future__ import annotations

import asyncio

import structlog

from signal_desk.analysis.patterns import Sample, matching
from signal_desk.models.market import IndicatorSnapshot
from signal_desk.models.prediction import PerformanceSummary
from signal_desk.models.signal import SignalProposal
from signal_desk.scoring.base import Scorer, validate_proposal
from signal_desk.scoring.rules import FALLBACK_CONFIDENCE_CAP, fallback_proposal

log = structlog.get_logger("proposer")

MISTAKE_PENALTY = 10.0
CONDITION_BONUS = 5.0
# A scorer proposal matching this many learned mistakes is downgraded to HOLD.
HOLD_AFTER_MISTAKES = 2


def apply_feedback(
    proposal: SignalProposal,
    snapshot: IndicatorSnapshot,
    summary: PerformanceSummary,
) -> SignalProposal:
    """Bias confidence by how the current setup resembles learned patterns."""
    if not summary.mistake_keys and not summary.condition_keys:
        return proposal

    sample = Sample(
        action=proposal.action,
        rsi=snapshot.rsi,
        volume=snapshot.volume,
        confidence=proposal.confidence,
        price_change_24h=snapshot.price_change_24h,
        btc_dominance=snapshot.btc_dominance,
    )
    mistakes = matching(summary.mistake_keys, sample, snapshot.coin)
    conditions = matching(summary.condition_keys, sample, snapshot.coin)
    if not mistakes and not conditions:
        return proposal

    confidence = proposal.confidence - MISTAKE_PENALTY * len(mistakes)
    confidence += CONDITION_BONUS * len(conditions)
    confidence = max(0.0, min(100.0, confidence))
    if proposal.fallback:
        confidence = min(confidence, FALLBACK_CONFIDENCE_CAP)

    action = proposal.action
    if not proposal.fallback and action != "HOLD" and len(mistakes) >= HOLD_AFTER_MISTAKES:
        action = "HOLD"

    factors = list(proposal.key_factors)
    factors += [f"Resembles past mistake: {key}" for key in mistakes]
    factors += [f"Resembles best condition: {key}" for key in conditions]

    log.info(
        "proposal_adjusted",
        coin=snapshot.coin,
        mistakes=mistakes,
        conditions=conditions,
        confidence_before=proposal.confidence,
        confidence_after=confidence,
        action=action,
    )
    return proposal.model_copy(
        update={"confidence": confidence, "action": action, "key_factors": factors}
    )


class SignalProposer:
    """Wraps a scorer with a timeout and the rule-based fallback.

    :meth:`propose` never raises.
    """

    def __init__(self, scorer: Scorer | None = None, timeout_s: float = 30.0) -> None:
        self.scorer = scorer
        self.timeout_s = timeout_s

    async def propose(
        self,
        snapshot: IndicatorSnapshot,
        summary: PerformanceSummary | None = None,
        capital: float = 1000.0,
    ) -> SignalProposal:
        summary = summary or PerformanceSummary.empty(snapshot.coin)
        proposal = await self._from_scorer(snapshot, summary, capital)
        if proposal is None:
            proposal = fallback_proposal(snapshot)
        return apply_feedback(proposal, snapshot, summary)

    async def _from_scorer(
        self,
        snapshot: IndicatorSnapshot,
        summary: PerformanceSummary,
        capital: float,
    ) -> SignalProposal | None:
        if self.scorer is None:
            return None
        try:
            proposal = await asyncio.wait_for(
                self.scorer.propose(snapshot, summary, capital), timeout=self.timeout_s,
            )
            return validate_proposal(proposal)
        except asyncio.TimeoutError:
            log.warning("scorer_timeout", coin=snapshot.coin, timeout_s=self.timeout_s)
        except Exception as exc:
            log.warning(
                "scorer_failed",
                coin=snapshot.coin,
                scorer=getattr(self.scorer, "name", type(self.scorer).__name__),
                error=str(exc),
            )
        return None
