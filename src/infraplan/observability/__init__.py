"""Observability - structured logging."""

from .logger import (
    LogContext,
    configure_from_config,
    configure_logging,
    current_context,
    get_log_level,
    log_verbose,
)

__all__ = [
    "configure_logging",
    "configure_from_config",
    "current_context",
    "get_log_level",
    "log_verbose",
    "LogContext",
]
