"""Observability module for structured logging."""

from .logging import (
    SessionContextManager,
    client_id_var,
    get_logger,
    log_external_call_end,
    log_external_call_start,
    setup_logging,
    user_id_var,
)

__all__ = [
    # Setup
    "setup_logging",
    "get_logger",
    # Context
    "SessionContextManager",
    "client_id_var",
    "user_id_var",
    # Logging helpers
    "log_external_call_start",
    "log_external_call_end",
]
