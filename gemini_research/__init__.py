"""gemini-research — Gemini Deep Research client, job orchestrator, API and CLI."""

__version__ = "1.0.0"
