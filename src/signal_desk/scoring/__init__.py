"""Pluggable signal scorers and the proposer that wraps them."""

from signal_desk.scoring.base import Scorer, parse_proposal, validate_proposal
from signal_desk.scoring.llm import LLMScorer
from signal_desk.scoring.proposer import SignalProposer, apply_feedback
from signal_desk.scoring.rules import FALLBACK_MARKER, RuleBasedScorer, fallback_proposal

__all__ = [
    "FALLBACK_MARKER",
    "LLMScorer",
    "RuleBasedScorer",
    "Scorer",
    "SignalProposer",
    "apply_feedback",
    "fallback_proposal",
    "parse_proposal",
    "validate_proposal",
]
