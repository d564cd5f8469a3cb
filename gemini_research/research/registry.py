"""JobRegistry — in-memory lookup from client-issued job id to job + live run.

One registry per orchestrator (created at process start, dropped at stop);
there is no module-level registry. Each id maps to exactly one ResearchJob
record and the one ResearchRun that writes it, so there is no cross-job
contention. Entries are replaced whole on ``put``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

import structlog

from gemini_research.errors import JobNotFound
from gemini_research.models.schemas import ResearchJob

if TYPE_CHECKING:
    from gemini_research.research.orchestrator import ResearchRun

logger = structlog.get_logger(component="research.registry")


@dataclass(frozen=True)
class RegistryEntry:
    job: ResearchJob
    run: ResearchRun | None = None


class JobRegistry:
    """Process-wide map of job id → RegistryEntry."""

    def __init__(self) -> None:
        self._entries: dict[str, RegistryEntry] = {}

    def put(self, job_id: str, job: ResearchJob, run: ResearchRun | None = None) -> None:
        """Insert or overwrite the entry for *job_id*."""
        self._entries[job_id] = RegistryEntry(job=job, run=run)
        logger.debug("registry_put", job_id=job_id, status=job.status.value)

    def get(self, job_id: str) -> ResearchJob:
        entry = self._entries.get(job_id)
        if entry is None:
            raise JobNotFound(job_id)
        return entry.job

    def get_run(self, job_id: str) -> ResearchRun | None:
        entry = self._entries.get(job_id)
        if entry is None:
            raise JobNotFound(job_id)
        return entry.run

    def delete(self, job_id: str) -> bool:
        """Remove *job_id*. Deleting an unknown id is not an error."""
        removed = self._entries.pop(job_id, None)
        logger.debug("registry_delete", job_id=job_id, existed=removed is not None)
        return True

    def list(self, limit: int = 20) -> list[ResearchJob]:
        """Jobs ordered by ``created_at``, newest first, truncated to *limit*."""
        jobs = sorted(
            (entry.job for entry in self._entries.values()),
            key=lambda job: job.created_at,
            reverse=True,
        )
        return jobs[: max(limit, 0)]

    def runs(self) -> list[ResearchRun]:
        return [entry.run for entry in self._entries.values() if entry.run is not None]

    def __contains__(self, job_id: object) -> bool:
        return job_id in self._entries

    def __len__(self) -> int:
        return len(self._entries)
