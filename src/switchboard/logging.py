"""Structured logging for Switchboard.

structlog renders every record, either as JSON lines (production) or through
the colored console renderer (development), and hands it to the standard
library so uvicorn and httpx records share one stdout stream.

``configure_logging`` may be called any number of times; the last call wins.
Each ``Receiver`` calls it with its ``log_level`` / ``log_format`` settings.
Before any explicit call, the first ``get_logger`` applies the defaults
(INFO, JSON).
"""

from __future__ import annotations

import logging
import sys
from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from structlog.typing import Processor

_configured = False
_handler: logging.Handler | None = None


def _resolve_level(level: str | int) -> int:
    """Map a level name (case-insensitive) or number to a stdlib level.

    Unknown names fall back to INFO.
    """
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(level.strip().upper())
    return resolved if isinstance(resolved, int) else logging.INFO


def _install_handler() -> None:
    """Attach the stdout handler to the root logger once."""
    global _handler

    root = logging.getLogger()
    if _handler is None:
        _handler = logging.StreamHandler(sys.stdout)
        _handler.setFormatter(logging.Formatter("%(message)s"))
    if _handler not in root.handlers:
        root.addHandler(_handler)


def _build_processors(format: str) -> list[Processor]:
    shared: list[Processor] = [
        structlog.stdlib.filter_by_level,
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]
    if format.lower() == "text":
        return [*shared, structlog.dev.ConsoleRenderer(colors=True)]
    return [
        *shared,
        structlog.processors.format_exc_info,
        structlog.processors.JSONRenderer(),
    ]


def configure_logging(
    level: str | int = "INFO",
    format: str = "json",
) -> None:
    """Configure structured logging for Switchboard.

    The level is applied to the root logger on every call, so a receiver
    created with ``log_level="DEBUG"`` enables debug output even after
    modules were imported with the defaults.

    Args:
        level: Level name (DEBUG, INFO, WARNING, ERROR, CRITICAL) or number.
        format: "json" for production, "text" for development.

    Example:
        ```python
        from switchboard.logging import configure_logging, get_logger

        configure_logging(level="DEBUG", format="text")
        get_logger(__name__).debug("Dispatching event", event_type="app_mention")
        ```
    """
    global _configured

    _install_handler()
    logging.getLogger().setLevel(_resolve_level(level))

    structlog.configure(
        processors=_build_processors(format),
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        # Module-level loggers follow later reconfiguration
        cache_logger_on_first_use=False,
    )

    _configured = True


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Get a structured logger, applying the default configuration first if needed."""
    if not _configured:
        configure_logging()

    return structlog.get_logger(name)  # type: ignore[no-any-return]


def bind_context(**kwargs: object) -> None:
    """Bind context variables to all subsequent log messages.

    Context is task-local, so values bound while handling one request do
    not leak into concurrently handled requests.

    Example:
        ```python
        bind_context(request_path="/slack/events", event_id="evt_abc")
        logger.info("Event dispatched")  # Includes request_path and event_id
        ```
    """
    structlog.contextvars.bind_contextvars(**kwargs)


def clear_context() -> None:
    """Clear all bound context variables."""
    structlog.contextvars.clear_contextvars()


def unbind_context(*keys: str) -> None:
    """Remove specific keys from the logging context."""
    structlog.contextvars.unbind_contextvars(*keys)


logger = get_logger("switchboard")
