"""Logging setup and shared helpers for gemini-research."""

import logging
import sys

import structlog
from gemini_research.config import settings

# Event keys whose values are credentials
_SECRET_KEYS = frozenset({"api_key", "gemini_api_key", "x-goog-api-key", "authorization"})


def _redact_secrets(logger, method_name: str, event_dict: dict) -> dict:
    for key in _SECRET_KEYS.intersection(event_dict):
        event_dict[key] = "***"
    return event_dict


def _level_number(name: str) -> int:
    level = logging.getLevelName(name.upper())
    return level if isinstance(level, int) else logging.INFO


def setup_logging(level: str | None = None, log_format: str | None = None) -> None:
    """Configure structlog once per process.

    ``level`` and ``log_format`` default to the settings values. The console
    renderer is meant for a terminal; ``json`` emits one object per line for
    log collectors. Output goes to stderr so reports printed on stdout by the
    CLI can be piped.
    """
    fmt = (log_format or settings.log_format).lower()
    if fmt == "json":
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            _redact_secrets,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            _level_number(level or settings.log_level)
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )
