"""Error taxonomy for gemini-research.

Transport errors are raised by GeminiClient and recovered at the
orchestrator boundary: they become a failed job with ``job.error`` set,
never an unhandled exception. Only ConfigurationError and JobNotFound
reach callers of the orchestrator.
"""

from __future__ import annotations


class ResearchError(Exception):
    """Base class for every gemini-research error."""

    code: str = "RESEARCH_ERROR"


class ConfigurationError(ResearchError):
    """A required setting (usually the API key) is missing. Never retried."""

    code = "NO_API_KEY"


class JobNotFound(ResearchError):
    """The client-issued job id is unknown to the registry."""

    code = "NOT_FOUND"

    def __init__(self, job_id: str) -> None:
        super().__init__(f"Research job not found: {job_id}")
        self.job_id = job_id


# ── Transport ────────────────────────────────────────────────────────────────


class TransportError(ResearchError):
    """A single HTTP call to the remote service failed."""

    code = "TRANSPORT_ERROR"


class TransportTimeout(TransportError):
    """One call exceeded its per-call timeout."""

    code = "TIMEOUT"


class HttpError(TransportError):
    """The remote service answered with a non-2xx status."""

    def __init__(self, status_code: int, message: str) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.code = f"HTTP_{status_code}"


class NetworkError(TransportError):
    """Connection, DNS or protocol failure before a response arrived."""

    code = "NETWORK_ERROR"


# ── Orchestration ────────────────────────────────────────────────────────────


class DeadlineExceeded(ResearchError):
    """Cumulative polling time for one job ran past its deadline.

    Distinct from TransportTimeout, which covers a single call.
    """

    code = "DEADLINE_EXCEEDED"

    def __init__(self, deadline_seconds: float) -> None:
        minutes = deadline_seconds / 60
        shown = f"{minutes:g} minutes" if minutes >= 1 else f"{deadline_seconds:g} seconds"
        super().__init__(f"Research timed out after {shown}")
        self.deadline_seconds = deadline_seconds


class RefinementError(ResearchError):
    """The optional refinement pass failed. Non-fatal: content is kept."""

    code = "REFINEMENT_ERROR"


class CancelAdvisoryFailure(ResearchError):
    """The remote cancel was not confirmed. Local cancellation still applies."""

    code = "CANCEL_ADVISORY_FAILURE"
