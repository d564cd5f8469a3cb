"""FastAPI application factory.

The orchestrator (and with it the job registry) lives on ``app.state`` for
the lifetime of the app: created in the lifespan, closed on shutdown. Tests
pass their own orchestrator to ``create_app``.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from gemini_research.utils import setup_logging

# Initialize logging on import, before any module logger is created
setup_logging()

from gemini_research import __version__  # noqa: E402
from gemini_research.api.deps import ApiError  # noqa: E402
from gemini_research.api.routes import router  # noqa: E402
from gemini_research.errors import ConfigurationError, JobNotFound, ResearchError  # noqa: E402
from gemini_research.research.orchestrator import ResearchOrchestrator, create_orchestrator  # noqa: E402

logger = structlog.get_logger(component="api.app")


def _error_response(status_code: int, code: str, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "error": {"code": code, "message": message}},
    )


async def _api_error_handler(request: Request, exc: ApiError) -> JSONResponse:
    return _error_response(exc.status_code, exc.code, exc.message)


async def _research_error_handler(request: Request, exc: ResearchError) -> JSONResponse:
    if isinstance(exc, JobNotFound):
        return _error_response(404, exc.code, "Research result not found")
    logger.warning("request_failed", path=request.url.path, code=exc.code, error=str(exc))
    return _error_response(500, exc.code, str(exc))


async def _validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    first = exc.errors()[0] if exc.errors() else {}
    field = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = f"{field}: {first.get('msg', 'invalid value')}" if field else "Invalid request"
    return _error_response(400, "INVALID_REQUEST", message)


def create_app(orchestrator: ResearchOrchestrator | None = None) -> FastAPI:
    """Build the API app; a given *orchestrator* is used as-is and not closed."""

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        owned = False
        if app.state.orchestrator is None:
            try:
                app.state.orchestrator = create_orchestrator()
                owned = True
            except ConfigurationError as exc:
                logger.warning("orchestrator_unavailable", error=str(exc))
        logger.info("api_started", version=__version__, ready=app.state.orchestrator is not None)
        try:
            yield
        finally:
            if owned and app.state.orchestrator is not None:
                await app.state.orchestrator.aclose()
                app.state.orchestrator = None

    app = FastAPI(title="gemini-research", version=__version__, lifespan=lifespan)
    app.state.orchestrator = orchestrator

    app.add_exception_handler(ApiError, _api_error_handler)
    app.add_exception_handler(ResearchError, _research_error_handler)
    app.add_exception_handler(RequestValidationError, _validation_error_handler)

    @app.get("/health", include_in_schema=False)
    async def health_check() -> dict[str, str]:
        """Return a simple health status."""
        return {"status": "ok", "version": __version__}

    app.include_router(router)
    return app


app = create_app()
