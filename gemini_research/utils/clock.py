"""Centralised clock helpers — single source of truth for 'now'.

Timestamps on jobs and events come from ``now_utc``; deadlines and elapsed
times come from ``monotonic`` so wall-clock adjustments never shorten or
extend a polling budget. Tests patch one function instead of many.
"""

from __future__ import annotations

import time
from datetime import datetime, timezone


def now_utc() -> datetime:
    """Return the current UTC datetime (timezone-aware)."""
    return datetime.now(timezone.utc)


def monotonic() -> float:
    """Seconds from an arbitrary fixed point; only differences are meaningful."""
    return time.monotonic()


def epoch_ms() -> int:
    """Milliseconds since the Unix epoch, used in client-issued job ids."""
    return int(time.time() * 1000)
