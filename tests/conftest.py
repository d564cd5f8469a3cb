"""Root conftest — shared pytest markers and global settings.

Markers
-------
unit        fast, no I/O, pure logic
api         drives the FastAPI app through TestClient
live        talks to the real Gemini API (set GEMINI_TEST_LIVE=1 and GEMINI_API_KEY)
"""

from __future__ import annotations

import os

import pytest


def pytest_configure(config):
    config.addinivalue_line("markers", "unit: fast, no I/O tests")
    config.addinivalue_line("markers", "api: FastAPI routes through TestClient")
    config.addinivalue_line("markers", "live: requires a real GEMINI_API_KEY and network")


# ── Skip guards ───────────────────────────────────────────────────────────────

requires_live = pytest.mark.skipif(
    not (os.getenv("GEMINI_TEST_LIVE") and os.getenv("GEMINI_API_KEY")),
    reason="Set GEMINI_TEST_LIVE=1 and GEMINI_API_KEY to run live tests",
)
