"""Structured logging configuration with custom verbosity levels.

Levels:
- INFO (20): Pipeline milestones only (default)
- VERBOSE (15): Per-entity detail
- DEBUG (10): Per-edge detail (references, plan wiring)
- TRACE (5): Everything
"""

import logging
import sys
from contextvars import ContextVar
from pathlib import Path
from typing import Any

import structlog

from ..config import LoggingConfig

# Context variables for planning run tracing
_log_context: ContextVar[dict[str, Any]] = ContextVar("log_context", default={})

TRACE = 5  # Below DEBUG, for extremely verbose output
VERBOSE = 15  # Between DEBUG and INFO, for per-entity detail

logging.addLevelName(TRACE, "TRACE")
logging.addLevelName(VERBOSE, "VERBOSE")


def trace(self: logging.Logger, message: str, *args: Any, **kwargs: Any) -> None:
    """Log at TRACE level (extremely verbose)."""
    if self.isEnabledFor(TRACE):
        self._log(TRACE, message, args, **kwargs)


def verbose(self: logging.Logger, message: str, *args: Any, **kwargs: Any) -> None:
    """Log at VERBOSE level (per-entity detail)."""
    if self.isEnabledFor(VERBOSE):
        self._log(VERBOSE, message, args, **kwargs)


# Add methods to Logger class
logging.Logger.trace = trace  # type: ignore
logging.Logger.verbose = verbose  # type: ignore


class PlannerBoundLogger(structlog.stdlib.BoundLogger):
    """stdlib BoundLogger with the custom TRACE and VERBOSE levels."""

    def trace(self, event: str | None = None, *args: Any, **kw: Any) -> Any:
        return self._proxy_to_logger("trace", event, *args, **kw)

    def verbose(self, event: str | None = None, *args: Any, **kw: Any) -> Any:
        return self._proxy_to_logger("verbose", event, *args, **kw)


def log_verbose(logger: Any, event: str, **kwargs: Any) -> None:
    """
    Log at VERBOSE level (per-entity detail).

    Loggers without a ``verbose`` method (structlog before configure_logging()
    runs) get the event at DEBUG.
    """
    method = getattr(logger, "verbose", None)
    if method is None:
        logger.debug(event, **kwargs)
    else:
        method(event, **kwargs)


class LogContext:
    """
    Context manager for adding context to logs.

    Usage:
        with LogContext(planning_run="3f2a9c1e"):
            logger.info("Catalog loaded")
    """

    def __init__(self, **kwargs: Any) -> None:
        """
        Initialize log context.

        Args:
            **kwargs: Key-value pairs to add to log context
        """
        self.new_context = kwargs
        self.token = None

    def __enter__(self) -> "LogContext":
        """Enter context and merge new values."""
        current = _log_context.get().copy()
        current.update(self.new_context)
        self.token = _log_context.set(current)
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Exit context and restore previous values."""
        if self.token:
            _log_context.reset(self.token)


def current_context() -> dict[str, Any]:
    """Copy of the context bound by enclosing LogContext blocks."""
    return _log_context.get().copy()


def _context_processor(
    logger: logging.Logger, method_name: str, event_dict: dict[str, Any]
) -> dict[str, Any]:
    """
    Structlog processor to inject context variables.

    Args:
        logger: Logger instance
        method_name: Logging method name
        event_dict: Event dictionary

    Returns:
        Updated event dictionary with context
    """
    context = _log_context.get()
    if context:
        event_dict.update(context)
    return event_dict


LOG_LEVELS = {
    "TRACE": TRACE,
    "DEBUG": logging.DEBUG,
    "VERBOSE": VERBOSE,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}


def get_log_level(level: str) -> int:
    """
    Get numeric log level from string.

    Args:
        level: Level name (TRACE, DEBUG, VERBOSE, INFO, WARNING, ERROR, CRITICAL)

    Returns:
        Numeric log level, INFO for unknown names
    """
    return LOG_LEVELS.get(level.upper(), logging.INFO)


def configure_logging(
    level: str = "INFO",
    json_logs: bool = False,
    log_file: str | Path | None = None,
    log_filter: str | None = None,
) -> None:
    """
    Configure structured logging.

    Args:
        level: Logging level (TRACE, DEBUG, VERBOSE, INFO, WARNING, ERROR, CRITICAL)
        json_logs: Whether to output logs in JSON format
        log_file: Optional path to write logs to file
        log_filter: Comma-separated component names to keep (e.g., "resolver,planner")
    """
    log_level = get_log_level(level)

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if log_file:
        file_path = Path(log_file)
        file_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(file_path))

    logging.basicConfig(
        format="%(message)s",
        level=log_level,
        handlers=handlers,
        force=True,
    )
    # basicConfig may not update an already configured root logger
    logging.getLogger().setLevel(log_level)

    if log_filter:
        components = [c.strip() for c in log_filter.split(",")]
        for name in list(logging.root.manager.loggerDict):
            if name.startswith("infraplan") or ".infraplan." in name:
                if not any(comp in name for comp in components):
                    logging.getLogger(name).setLevel(logging.WARNING)

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        _context_processor,
    ]

    if json_logs:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))

    structlog.configure(
        processors=processors,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=PlannerBoundLogger,
        cache_logger_on_first_use=True,
    )


def configure_from_config(config: LoggingConfig) -> None:
    """Configure logging from the ``logging`` section of PlannerConfig."""
    configure_logging(
        level=config.level,
        json_logs=config.format.lower() == "json",
        log_file=config.file,
    )
