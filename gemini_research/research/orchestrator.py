"""Research orchestrator — owns the lifecycle of every research job.

Each submitted job gets a ResearchRun: a small state machine that runs as its
own asyncio task.

    CREATED → SUBMITTING → POLLING → (REFINING) → COMPLETED
                  │            │          ╰────────→ COMPLETED (refinement is non-fatal)
                  ╰────────────┴────────────────────→ FAILED
    any non-terminal phase ─────────────────────────→ CANCELLED

1. Submitting — build the remote input, create the remote job (no retry).
2. Polling    — sleep, fetch status, repeat until a terminal remote state or
                the cumulative deadline. Progress is synthetic: +10 per poll,
                capped at 90, 100 only on completion.
3. Refining   — optional second model pass over the finished content. Any
                failure keeps the original content.
4. Terminal   — job record updated, events emitted, event stream closed.

Cancellation is cooperative. ``cancel()`` writes CANCELLED to the job record
before any network call so a status read right after sees it; the run's loop
notices the flag at its next wake-up and never overwrites CANCELLED with a
late COMPLETED or FAILED.
"""

from __future__ import annotations

import asyncio
import uuid
from enum import Enum

import structlog

from gemini_research.config import settings
from gemini_research.errors import (
    CancelAdvisoryFailure,
    DeadlineExceeded,
    RefinementError,
    TransportError,
)
from gemini_research.models.events import EventCallback, EventData, EventType, JobEventBus, ResearchEvent
from gemini_research.models.schemas import (
    DocumentInput,
    JobStatus,
    OutputFormat,
    ResearchDepth,
    ResearchJob,
    ResearchMetadata,
    ResearchOptions,
    SourceInfo,
)
from gemini_research.research.prompts import build_refine_prompt, build_research_input
from gemini_research.research.registry import JobRegistry
from gemini_research.tools.gemini_client import GeminiClient, RemoteJobStatus, RemoteState
from gemini_research.utils import clock

logger = structlog.get_logger(component="research.orchestrator")

# Synthetic progress steps.
# Non-decreasing and below 100 until completion.
_INITIAL_PROGRESS = 5
_PROGRESS_STEP = 10
_PROGRESS_CAP = 90
_REFINE_PROGRESS = 95

_EMPTY_CONTENT = "Research completed but no content returned"
_DEFAULT_FAILURE = "Research failed"


class RunPhase(str, Enum):
    CREATED = "created"
    SUBMITTING = "submitting"
    POLLING = "polling"
    REFINING = "refining"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


def new_job_id() -> str:
    return f"research_{clock.epoch_ms()}_{uuid.uuid4().hex[:9]}"


class ResearchRun:
    """Live state machine for one job. Only this object writes its job's progress and result."""

    def __init__(
        self,
        job: ResearchJob,
        client: GeminiClient,
        bus: JobEventBus,
        *,
        poll_interval: float,
        deadline_seconds: float,
    ) -> None:
        self.job = job
        self.client = client
        self.bus = bus
        self.poll_interval = poll_interval
        self.deadline_seconds = deadline_seconds
        self.phase = RunPhase.CREATED
        self.task: asyncio.Task | None = None
        self._cancel_event = asyncio.Event()
        self._started = clock.monotonic()
        self._refined = False
        self._seen_source_urls: set[str] = set()
        self._detached = False
        self.log = logger.bind(job_id=job.id)

    # ── Cancellation ──────────────────────────────────────────────────────

    @property
    def cancel_requested(self) -> bool:
        return self._cancel_event.is_set()

    def mark_cancelled(self) -> bool:
        """Apply CANCELLED to the job record synchronously. False if already terminal."""
        if self.job.is_terminal:
            return False
        self.job.status = JobStatus.CANCELLED
        self.job.completed_at = clock.now_utc()
        self.job.metadata = self._metadata()
        self.phase = RunPhase.CANCELLED
        self._cancel_event.set()
        self.bus.close(self.job.id)
        self.log.info("job_cancelled", progress=self.job.progress)
        return True

    @property
    def _cancelled(self) -> bool:
        return self.job.status is JobStatus.CANCELLED

    def detach(self) -> None:
        """Stop the run locally and stop it writing to the event bus."""
        self._detached = True
        self._cancel_event.set()
        if self.task is not None and not self.task.done():
            self.task.cancel()

    # ── Entry point ───────────────────────────────────────────────────────

    async def execute(self) -> ResearchJob:
        """Run the whole lifecycle. Nothing escapes: every failure lands on the job."""
        try:
            await self._run()
        except Exception as exc:
            self.log.exception("job_unexpected_error", error=str(exc))
            self._fail(f"Unexpected error: {exc}")
        finally:
            if not self._detached:
                self.bus.close(self.job.id)
        return self.job

    async def _run(self) -> None:
        if self._cancelled:
            return

        self.phase = RunPhase.SUBMITTING
        self.job.status = JobStatus.PROCESSING
        self._emit(EventType.START)

        input_text = build_research_input(self.job.query, self.job.options, self.job.documents)
        self.log.info(
            "job_submitting",
            depth=self.job.options.depth.value,
            documents=len(self.job.documents),
            input_chars=len(input_text),
        )
        try:
            remote_id = await self.client.create_job(input_text)
        except TransportError as exc:
            self.log.warning("job_create_failed", error=str(exc), code=exc.code)
            self._fail(str(exc))
            return

        self.job.remote_job_id = remote_id
        if self.cancel_requested:
            # Cancelled while create_job was in flight: the remote job is orphaned
            await self.client.cancel_job(remote_id)
            return

        self.phase = RunPhase.POLLING
        self._set_progress(_INITIAL_PROGRESS)

        try:
            status = await self._poll(remote_id)
        except DeadlineExceeded as exc:
            self.log.warning("job_deadline_exceeded", deadline_seconds=exc.deadline_seconds)
            self._fail(str(exc))
            return
        except TransportError as exc:
            self.log.warning("job_poll_failed", error=str(exc), code=exc.code)
            self._fail(str(exc))
            return

        if status is None:
            return
        if status.state is RemoteState.COMPLETED:
            await self._complete(status)
        elif status.state is RemoteState.FAILED:
            self._fail(status.error or _DEFAULT_FAILURE)
        else:
            self.log.info("job_cancelled_remotely", remote_job_id=remote_id)
            self.mark_cancelled()

    # ── Polling ───────────────────────────────────────────────────────────

    async def _poll(self, remote_id: str) -> RemoteJobStatus | None:
        """Poll until a terminal remote state. None means a local cancel won."""
        while self._elapsed() < self.deadline_seconds:
            remaining = self.deadline_seconds - self._elapsed()
            await self._sleep(min(self.poll_interval, remaining))
            if self.cancel_requested:
                return None

            status = await self.client.get_job_status(remote_id)
            self.log.debug("poll_status", state=status.state.value, raw_state=status.raw_state)
            self._record_sources(status.sources)

            if status.state.is_terminal:
                return status
            self._set_progress(min(self.job.progress + _PROGRESS_STEP, _PROGRESS_CAP))

        raise DeadlineExceeded(self.deadline_seconds)

    async def _sleep(self, seconds: float) -> None:
        """Sleep between polls, waking early if the job is cancelled."""
        if seconds <= 0:
            await asyncio.sleep(0)
            return
        try:
            await asyncio.wait_for(self._cancel_event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            pass

    # ── Completion ────────────────────────────────────────────────────────

    async def _complete(self, status: RemoteJobStatus) -> None:
        if self._cancelled:
            return
        content = "\n\n".join(status.outputs) or _EMPTY_CONTENT

        if self.job.options.refine:
            self.phase = RunPhase.REFINING
            self._set_progress(_REFINE_PROGRESS)
            try:
                refined = await self._refine(content)
            except RefinementError as exc:
                self.log.warning("refinement_failed", error=str(exc))
            else:
                content = refined
                self._refined = True

        # A cancel may have landed while refining
        if self._cancelled:
            return
        self.job.content = content

        self.phase = RunPhase.COMPLETED
        self.job.status = JobStatus.COMPLETED
        self.job.progress = 100
        self.job.completed_at = clock.now_utc()
        self.job.metadata = self._metadata()
        self._emit(EventType.CONTENT, EventData(content=self.job.content))
        self._emit(EventType.COMPLETE, EventData(progress=100))
        self.log.info(
            "job_completed",
            chars=len(self.job.content),
            sources=len(self.job.sources),
            refined=self._refined,
            duration_ms=self.job.metadata.processing_time_ms,
        )

    async def _refine(self, content: str) -> str:
        """One thinking-model pass; only non-thought parts replace the content."""
        self.log.info("refinement_started")
        try:
            result = await self.client.generate_once(build_refine_prompt(content))
        except Exception as exc:
            raise RefinementError(str(exc) or exc.__class__.__name__) from exc

        answer = [part.text for part in result.answer_parts]
        if not answer:
            raise RefinementError("Refinement returned no answer parts")
        return "\n".join(answer)

    def _fail(self, message: str) -> None:
        if self.job.is_terminal:
            return
        self.phase = RunPhase.FAILED
        self.job.status = JobStatus.FAILED
        self.job.error = message or _DEFAULT_FAILURE
        self.job.completed_at = clock.now_utc()
        self.job.metadata = self._metadata()
        self._emit(EventType.ERROR, EventData(error=self.job.error))
        self.log.warning("job_failed", error=self.job.error)

    # ── Helpers ───────────────────────────────────────────────────────────

    def _elapsed(self) -> float:
        return clock.monotonic() - self._started

    def _set_progress(self, value: int) -> None:
        if self._cancelled:
            return
        self.job.progress = max(self.job.progress, value)
        self._emit(EventType.PROGRESS, EventData(progress=self.job.progress))

    def _record_sources(self, sources: list[SourceInfo]) -> None:
        for source in sources:
            if self._cancelled or source.url in self._seen_source_urls:
                continue
            self._seen_source_urls.add(source.url)
            self.job.sources.append(source)
            self._emit(EventType.SOURCE, EventData(source=source))

    def _emit(self, event_type: EventType, data: EventData | None = None) -> None:
        if self._detached:
            return
        self.bus.emit(ResearchEvent(job_id=self.job.id, type=event_type, data=data))

    def _metadata(self) -> ResearchMetadata:
        return ResearchMetadata(
            depth=self.job.options.depth,
            output_format=self.job.options.output_format,
            documents_used=len(self.job.documents),
            sources_found=len(self.job.sources),
            processing_time_ms=int(self._elapsed() * 1000),
            refined=self._refined,
            model=self.client.refine_model if self._refined else self.client.agent,
        )


class ResearchOrchestrator:
    """Submits research jobs and answers status, cancel and delete requests.

    One instance per process (or per API app). It owns the registry and the
    event bus; the transport client is injected so tests can pass a fake.
    """

    def __init__(
        self,
        client: GeminiClient | None = None,
        registry: JobRegistry | None = None,
        bus: JobEventBus | None = None,
        *,
        poll_interval: float | None = None,
        deadline_seconds: float | None = None,
    ) -> None:
        self.client = client or GeminiClient()
        self.registry = registry or JobRegistry()
        self.bus = bus or JobEventBus()
        self.poll_interval = poll_interval if poll_interval is not None else settings.poll_interval
        self.deadline_seconds = (
            deadline_seconds if deadline_seconds is not None else settings.deadline_seconds
        )

    # ── Submission ────────────────────────────────────────────────────────

    def submit(
        self,
        query: str,
        documents: list[DocumentInput] | None = None,
        options: ResearchOptions | None = None,
        on_event: EventCallback | None = None,
    ) -> ResearchJob:
        """Register a new job and start its run in the background.

        Returns as soon as the job id is assigned. Must be called with an
        event loop running.
        """
        if not query or not query.strip():
            raise ValueError("Query is required")

        job = ResearchJob(
            id=new_job_id(),
            query=query,
            documents=list(documents or []),
            options=options or ResearchOptions(),
        )
        run = ResearchRun(
            job,
            self.client,
            self.bus,
            poll_interval=self.poll_interval,
            deadline_seconds=self.deadline_seconds,
        )
        self.bus.register_callback(job.id, on_event)
        self.registry.put(job.id, job, run)
        run.task = asyncio.create_task(run.execute(), name=f"research:{job.id}")
        logger.info(
            "job_submitted",
            job_id=job.id,
            depth=job.options.depth.value,
            output_format=job.options.output_format.value,
            refine=job.options.refine,
        )
        return job

    async def wait(self, job_id: str) -> ResearchJob:
        """Wait for a job's run to finish and return its final record."""
        run = self.registry.get_run(job_id)
        if run is None or run.task is None:
            return self.registry.get(job_id)
        await run.task
        return run.job

    async def research(
        self,
        query: str,
        documents: list[DocumentInput] | None = None,
        options: ResearchOptions | None = None,
        on_event: EventCallback | None = None,
    ) -> ResearchJob:
        """Submit and wait — the foreground path used by the CLI."""
        job = self.submit(query, documents, options, on_event)
        return await self.wait(job.id)

    async def quick_research(self, query: str) -> ResearchJob:
        return await self.research(
            query,
            options=ResearchOptions(depth=ResearchDepth.QUICK, output_format=OutputFormat.SUMMARY),
        )

    async def deep_research(
        self, query: str, documents: list[DocumentInput] | None = None
    ) -> ResearchJob:
        return await self.research(
            query,
            documents,
            ResearchOptions(
                depth=ResearchDepth.MAXIMUM,
                output_format=OutputFormat.MARKDOWN,
                include_citations=True,
            ),
        )

    async def analyze_documents(
        self,
        query: str,
        documents: list[DocumentInput],
        options: ResearchOptions | None = None,
    ) -> ResearchJob:
        options = options or ResearchOptions(depth=ResearchDepth.DEEP)
        return await self.research(query, documents, options)

    # ── Status / cancel / delete ──────────────────────────────────────────

    def get_status(self, job_id: str) -> ResearchJob:
        """Latest record for *job_id*; raises JobNotFound."""
        return self.registry.get(job_id)

    def list_jobs(self, limit: int | None = None) -> list[ResearchJob]:
        return self.registry.list(limit if limit is not None else settings.default_list_limit)

    def events(self, job_id: str):
        """Async iterator over the job's events (history first)."""
        self.registry.get(job_id)
        return self.bus.subscribe(job_id)

    async def cancel(self, job_id: str) -> bool:
        """Cancel a job. Returns whether the remote cancel itself succeeded.

        The local CANCELLED status is applied before the remote call and
        regardless of its outcome.
        """
        job = self.registry.get(job_id)
        run = self.registry.get_run(job_id)

        # Every submitted job has a run; an entry without one has nothing to stop
        if run is None or not run.mark_cancelled():
            logger.info("cancel_ignored", job_id=job_id, status=job.status.value)
            return False

        try:
            if not job.remote_job_id:
                raise CancelAdvisoryFailure("Job has no remote id yet; cancelled locally only")
            if not await self.client.cancel_job(job.remote_job_id):
                raise CancelAdvisoryFailure(f"Remote cancel of {job.remote_job_id} was not confirmed")
        except CancelAdvisoryFailure as exc:
            logger.warning("cancel_advisory_failure", job_id=job_id, reason=str(exc))
            return False
        return True

    def delete(self, job_id: str) -> None:
        """Forget a job. Idempotent; stops local polling but sends no remote cancel."""
        run = None
        if job_id in self.registry:
            run = self.registry.get_run(job_id)
        if run is not None:
            run.detach()
        self.registry.delete(job_id)
        self.bus.discard(job_id)
        logger.info("job_deleted", job_id=job_id)

    async def aclose(self) -> None:
        """Stop every in-flight run locally and close the transport."""
        tasks = [run.task for run in self.registry.runs() if run.task and not run.task.done()]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        await self.client.close()


def create_orchestrator(api_key: str | None = None, **kwargs) -> ResearchOrchestrator:
    """Build an orchestrator with a real GeminiClient.

    Raises ConfigurationError when no API key is given or configured.
    """
    return ResearchOrchestrator(client=GeminiClient(api_key=api_key), **kwargs)
