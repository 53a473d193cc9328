"""Structured logging."""

from signal_desk.logging.setup import (
    bind_job_context,
    clear_job_context,
    get_logger,
    setup_logging,
)

__all__ = ["bind_job_context", "clear_job_context", "get_logger", "setup_logging"]
