"""Dependency providers and the API error type."""

from __future__ import annotations

from fastapi import Request

from gemini_research.research.orchestrator import ResearchOrchestrator


class ApiError(Exception):
    """Rendered as ``{"success": false, "error": {"code", "message"}}``."""

    def __init__(self, status_code: int, code: str, message: str) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.code = code
        self.message = message


def get_orchestrator(request: Request) -> ResearchOrchestrator:
    """The app-wide orchestrator created in the lifespan (or injected by tests)."""
    orchestrator = getattr(request.app.state, "orchestrator", None)
    if orchestrator is None:
        raise ApiError(500, "NO_API_KEY", "GEMINI_API_KEY is not configured")
    return orchestrator
