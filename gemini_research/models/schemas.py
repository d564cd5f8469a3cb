"""Core schemas — ResearchJob, its options, documents, and shared enums."""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field

from gemini_research.utils.clock import now_utc


class ResearchDepth(str, Enum):
    QUICK = "quick"
    STANDARD = "standard"
    DEEP = "deep"
    MAXIMUM = "maximum"


class OutputFormat(str, Enum):
    SUMMARY = "summary"
    DETAILED = "detailed"
    MARKDOWN = "markdown"
    JSON = "json"


class SourceScope(str, Enum):
    WEB = "web"
    ACADEMIC = "academic"
    NEWS = "news"
    ALL = "all"


class JobStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED)


class DocumentInput(BaseModel):
    """A named document supplied as research context.

    ``content`` is decoded text for text-like mime types and base64 for
    everything else. Only text documents are inlined into the job input.
    """

    name: str
    mime_type: str = Field(default="text/plain", alias="mimeType")
    content: str = ""
    size: int = 0

    model_config = {"populate_by_name": True}


class ResearchOptions(BaseModel):
    """Per-job options. Immutable once the job is submitted."""

    depth: ResearchDepth = ResearchDepth.DEEP
    output_format: OutputFormat = OutputFormat.MARKDOWN
    source_scope: SourceScope = SourceScope.ALL
    include_citations: bool = False
    refine: bool = Field(
        default=False,
        description="Run a second thinking-model pass over completed content",
    )

    model_config = {"frozen": True}


class SourceInfo(BaseModel):
    title: str = ""
    url: str = ""
    snippet: str = ""


class ResearchMetadata(BaseModel):
    """Summary figures attached to a job once it reaches a terminal state."""

    depth: ResearchDepth
    output_format: OutputFormat
    documents_used: int = 0
    sources_found: int = 0
    processing_time_ms: int = 0
    refined: bool = False
    model: str = ""


class ResearchJob(BaseModel):
    """One client-tracked research request and its lifecycle state.

    The orchestrator mutates the same instance it registered, so a registry
    read always sees the latest progress. ``query``, ``documents`` and
    ``options`` never change after submission.
    """

    id: str
    query: str
    documents: list[DocumentInput] = Field(default_factory=list)
    options: ResearchOptions = Field(default_factory=ResearchOptions)
    remote_job_id: str | None = None
    status: JobStatus = JobStatus.PENDING
    progress: int = 0
    content: str = ""
    sources: list[SourceInfo] = Field(default_factory=list)
    error: str = ""
    metadata: ResearchMetadata | None = None
    created_at: datetime = Field(default_factory=now_utc)
    completed_at: datetime | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    def public_dict(self) -> dict:
        """JSON-safe view without the (potentially large) document bodies."""
        data = self.model_dump(mode="json", exclude={"documents"})
        data["documents_used"] = len(self.documents)
        return data
