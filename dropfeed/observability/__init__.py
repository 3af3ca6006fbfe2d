"""Observability module for logging."""

from dropfeed.observability.logging import (
    bind_run_context,
    bind_user_context,
    clear_run_context,
    configure_logging,
)


__all__ = [
    "bind_run_context",
    "bind_user_context",
    "clear_run_context",
    "configure_logging",
]
