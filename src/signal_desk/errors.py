"""Exception taxonomy for the signal engine."""

from __future__ import annotations


class SignalDeskError(Exception):
    """Base class for engine errors surfaced to callers."""

    status_code = 500
    retryable = False


class InputValidationError(SignalDeskError):
    """Bad caller input: missing coin, non-positive capital, unknown horizon."""

    status_code = 400


class NotFoundError(SignalDeskError):
    status_code = 404


class InvalidTransitionError(SignalDeskError):
    """Operation not allowed in the signal's current state (e.g. already closed)."""

    status_code = 409


class DataUnavailableError(SignalDeskError):
    """Upstream market data could not be fetched or is insufficient."""

    status_code = 503
    retryable = True


class ProposalValidationError(SignalDeskError):
    """A scorer proposal failed validation; resolved by the rule-based fallback."""

    status_code = 422


class JobFailedError(SignalDeskError):
    """A scheduled job finished with a failed operation result."""
