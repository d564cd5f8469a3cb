"""Job events — the progress channel between a research run and its consumers.

Every lifecycle step of a job produces a ResearchEvent. The JobEventBus keeps
each job's history in memory, forwards events to the optional ``on_event``
callback given at submission, and fans them out to any number of async
subscribers (the SSE route, the CLI progress display, tests).

Ordering per job is the emission order: start → progress… → content →
complete, or start → progress… → error. Subscribers that join late get the
history replayed first.
"""

from __future__ import annotations

import asyncio
from collections import defaultdict
from collections.abc import AsyncIterator, Callable
from datetime import datetime
from enum import Enum

import structlog
from pydantic import BaseModel, Field

from gemini_research.models.schemas import SourceInfo
from gemini_research.utils.clock import now_utc

logger = structlog.get_logger(component="events")


class EventType(str, Enum):
    START = "start"
    PROGRESS = "progress"
    CONTENT = "content"
    SOURCE = "source"
    COMPLETE = "complete"
    ERROR = "error"


class EventData(BaseModel):
    progress: int | None = None
    content: str | None = None
    source: SourceInfo | None = None
    error: str | None = None


class ResearchEvent(BaseModel):
    """A single event in a job's lifecycle."""

    job_id: str = Field(description="Client-issued id of the job that emitted this event")
    type: EventType
    timestamp: datetime = Field(default_factory=now_utc)
    data: EventData | None = None

    def to_sse(self) -> str:
        """Render as one Server-Sent Events frame."""
        return f"event: {self.type.value}\ndata: {self.model_dump_json(exclude_none=True)}\n\n"


EventCallback = Callable[[ResearchEvent], None]

# Sentinel pushed to subscriber queues when a job's stream ends
_END = None


class JobEventBus:
    """In-memory per-job event history with async fan-out."""

    def __init__(self) -> None:
        self._history: dict[str, list[ResearchEvent]] = defaultdict(list)
        self._callbacks: dict[str, EventCallback] = {}
        self._subscribers: dict[str, list[asyncio.Queue]] = defaultdict(list)
        self._closed: set[str] = set()

    def register_callback(self, job_id: str, callback: EventCallback | None) -> None:
        if callback is not None:
            self._callbacks[job_id] = callback

    def emit(self, event: ResearchEvent) -> None:
        """Record the event and deliver it to the callback and subscribers."""
        job_id = event.job_id
        if job_id in self._closed:
            logger.debug("event_after_close_dropped", job_id=job_id, type=event.type.value)
            return
        self._history[job_id].append(event)

        callback = self._callbacks.get(job_id)
        if callback is not None:
            try:
                callback(event)
            except Exception as exc:
                # Callback errors are logged, never raised
                logger.warning("event_callback_failed", job_id=job_id, error=str(exc))

        for queue in self._subscribers.get(job_id, []):
            queue.put_nowait(event)

    def close(self, job_id: str) -> None:
        """End the stream for a job; subscribers drain and stop."""
        if job_id in self._closed:
            return
        self._closed.add(job_id)
        self._callbacks.pop(job_id, None)
        for queue in self._subscribers.pop(job_id, []):
            queue.put_nowait(_END)

    def discard(self, job_id: str) -> None:
        """Forget everything about a job (used on delete)."""
        self.close(job_id)
        self._history.pop(job_id, None)
        self._closed.discard(job_id)

    def history(self, job_id: str) -> list[ResearchEvent]:
        return list(self._history.get(job_id, []))

    def is_closed(self, job_id: str) -> bool:
        return job_id in self._closed

    async def subscribe(self, job_id: str) -> AsyncIterator[ResearchEvent]:
        """Yield the job's past events, then live ones until the stream closes."""
        queue: asyncio.Queue = asyncio.Queue()
        for event in self._history.get(job_id, []):
            queue.put_nowait(event)
        if job_id in self._closed:
            queue.put_nowait(_END)
        else:
            self._subscribers[job_id].append(queue)

        try:
            while True:
                event = await queue.get()
                if event is _END:
                    return
                yield event
        finally:
            subscribers = self._subscribers.get(job_id)
            if subscribers and queue in subscribers:
                subscribers.remove(queue)
