"""Unit-test conftest — shared fixtures around MockGeminiClient.

All fixtures here are available to every test under tests/unit/ without import.
The fakes themselves live in ``gemini_fakes`` (tests/unit is on pythonpath).
"""

from __future__ import annotations

from collections.abc import Callable

import pytest

from gemini_fakes import MockGeminiClient
from gemini_research.models.schemas import SourceInfo
from gemini_research.research.orchestrator import ResearchOrchestrator


# ─────────────────────────────────────────────────────────────────────────────
# Fixtures
# ─────────────────────────────────────────────────────────────────────────────

@pytest.fixture
def mock_gemini() -> MockGeminiClient:
    """A MockGeminiClient whose job completes with content "X" on the first poll."""
    return MockGeminiClient()


@pytest.fixture
def make_orchestrator() -> Callable[..., ResearchOrchestrator]:
    """Factory: ``make_orchestrator(client, poll_interval=0, deadline_seconds=60)``."""

    def _make(
        client: MockGeminiClient,
        *,
        poll_interval: float = 0.0,
        deadline_seconds: float = 60.0,
    ) -> ResearchOrchestrator:
        return ResearchOrchestrator(
            client=client,
            poll_interval=poll_interval,
            deadline_seconds=deadline_seconds,
        )

    return _make


@pytest.fixture
def source_a() -> SourceInfo:
    return SourceInfo(title="Source A", url="https://a.example/1", snippet="alpha")


@pytest.fixture
def source_b() -> SourceInfo:
    return SourceInfo(title="Source B", url="https://b.example/2")
