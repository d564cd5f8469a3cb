"""HTTP API — FastAPI app exposing research jobs.

Start with ``gemini-research serve`` or ``uvicorn gemini_research.api.app:app``.
"""

from .app import create_app

__all__ = ["create_app"]
