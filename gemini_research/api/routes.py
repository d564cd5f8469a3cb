"""Research routes — thin mapping from HTTP to the orchestrator.

    POST   /api/research              start a job, return its id immediately
    GET    /api/research              recent jobs, newest first
    GET    /api/research/{id}         job snapshot (200 even when the job failed)
    DELETE /api/research/{id}         forget a job (idempotent)
    POST   /api/research/{id}/cancel  cancel a job (local status applied at once)
    GET    /api/research/{id}/events  Server-Sent Events stream of the job
    GET    /api/config                supported options
"""

from __future__ import annotations

from collections.abc import AsyncIterator

import structlog
from fastapi import APIRouter, Depends, Query
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field

from gemini_research import __version__
from gemini_research.config import settings
from gemini_research.models.schemas import (
    DocumentInput,
    JobStatus,
    OutputFormat,
    ResearchDepth,
    ResearchOptions,
    SourceScope,
)
from gemini_research.api.deps import ApiError, get_orchestrator
from gemini_research.research.orchestrator import ResearchOrchestrator

logger = structlog.get_logger(component="api")

router = APIRouter(prefix="/api", tags=["research"])

MAX_DOCUMENTS = 20
MAX_DOCUMENT_BYTES = 50 * 1024 * 1024


class ResearchRequest(BaseModel):
    """Body of POST /api/research. Field names follow the browser client."""

    query: str = ""
    depth: ResearchDepth = ResearchDepth.DEEP
    format: OutputFormat = OutputFormat.MARKDOWN
    sources: SourceScope = SourceScope.ALL
    citations: bool = False
    think: bool = False
    documents: list[DocumentInput] = Field(default_factory=list)

    def to_options(self) -> ResearchOptions:
        return ResearchOptions(
            depth=self.depth,
            output_format=self.format,
            source_scope=self.sources,
            include_citations=self.citations,
            refine=self.think,
        )


@router.post("/research")
async def start_research(
    body: ResearchRequest,
    orchestrator: ResearchOrchestrator = Depends(get_orchestrator),
) -> dict:
    if not body.query.strip():
        raise ApiError(400, "INVALID_QUERY", "Query is required")
    if len(body.documents) > MAX_DOCUMENTS:
        raise ApiError(400, "TOO_MANY_DOCUMENTS", f"At most {MAX_DOCUMENTS} documents are accepted")
    oversized = [d.name for d in body.documents if len(d.content) > MAX_DOCUMENT_BYTES]
    if oversized:
        raise ApiError(400, "DOCUMENT_TOO_LARGE", f"Document too large: {oversized[0]}")

    job = orchestrator.submit(body.query, body.documents, body.to_options())
    logger.info("research_requested", job_id=job.id, documents=len(body.documents))
    return {
        "success": True,
        "data": {
            "id": job.id,
            "status": JobStatus.PROCESSING.value,
            "message": "Research started",
        },
    }


@router.get("/research")
async def list_research(
    limit: int = Query(default=settings.default_list_limit, ge=1, le=100),
    orchestrator: ResearchOrchestrator = Depends(get_orchestrator),
) -> dict:
    results = [job.public_dict() for job in orchestrator.list_jobs(limit)]
    return {"success": True, "data": {"results": results, "count": len(results)}}


@router.get("/research/{job_id}")
async def get_research(
    job_id: str,
    orchestrator: ResearchOrchestrator = Depends(get_orchestrator),
) -> dict:
    job = orchestrator.get_status(job_id)
    return {"success": True, "data": job.public_dict()}


@router.delete("/research/{job_id}")
async def delete_research(
    job_id: str,
    orchestrator: ResearchOrchestrator = Depends(get_orchestrator),
) -> dict:
    existed = job_id in orchestrator.registry
    orchestrator.delete(job_id)
    message = "Result deleted" if existed else "Result not found or already deleted"
    return {"success": True, "message": message}


@router.post("/research/{job_id}/cancel")
async def cancel_research(
    job_id: str,
    orchestrator: ResearchOrchestrator = Depends(get_orchestrator),
) -> dict:
    remote_cancelled = await orchestrator.cancel(job_id)
    job = orchestrator.get_status(job_id)
    return {
        "success": True,
        "data": {
            "id": job.id,
            "status": job.status.value,
            "remote_cancelled": remote_cancelled,
        },
    }


@router.get("/research/{job_id}/events")
async def stream_research_events(
    job_id: str,
    orchestrator: ResearchOrchestrator = Depends(get_orchestrator),
) -> StreamingResponse:
    events = orchestrator.events(job_id)

    async def _frames() -> AsyncIterator[str]:
        async for event in events:
            yield event.to_sse()

    return StreamingResponse(
        _frames(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache"},
    )


@router.get("/config")
async def get_config() -> dict:
    return {
        "success": True,
        "data": {
            "has_api_key": bool(settings.gemini_api_key),
            "version": __version__,
            "supported_depths": [d.value for d in ResearchDepth],
            "supported_formats": [f.value for f in OutputFormat],
            "supported_sources": [s.value for s in SourceScope],
            "max_document_bytes": MAX_DOCUMENT_BYTES,
            "max_documents": MAX_DOCUMENTS,
            "poll_interval_seconds": settings.poll_interval,
        },
    }
