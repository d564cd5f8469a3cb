"""Async client for the Gemini API (Interactions + generateContent).

Stateless request execution only: no job semantics and no retries. Every
failure is classified into one of three transport errors so the
orchestrator can decide what to do:

    httpx.TimeoutException  → TransportTimeout
    httpx.HTTPStatusError   → HttpError (status code + remote message)
    httpx.RequestError      → NetworkError

Route map:
    Create job:   POST /interactions                 (background deep research)
    Job status:   GET  /interactions/{id}
    Cancel job:   POST /interactions/{id}/cancel
    Generate:     POST /models/{model}:generateContent
"""

from __future__ import annotations

from enum import Enum
from typing import Any

import httpx
import structlog
from pydantic import BaseModel, Field

from gemini_research.config import settings
from gemini_research.errors import (
    ConfigurationError,
    HttpError,
    NetworkError,
    TransportError,
    TransportTimeout,
)
from gemini_research.models.schemas import SourceInfo

logger = structlog.get_logger(component="gemini_client")


class RemoteState(str, Enum):
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self is not RemoteState.PROCESSING


# Remote spellings seen across API revisions → normalised state
_STATE_ALIASES: dict[str, RemoteState] = {
    "completed": RemoteState.COMPLETED,
    "complete": RemoteState.COMPLETED,
    "succeeded": RemoteState.COMPLETED,
    "failed": RemoteState.FAILED,
    "cancelled": RemoteState.CANCELLED,
    "canceled": RemoteState.CANCELLED,
}


class RemoteJobStatus(BaseModel):
    """Normalised view of one GET /interactions/{id} response."""

    state: RemoteState
    outputs: list[str] = Field(default_factory=list, description="Text output fragments, in order")
    sources: list[SourceInfo] = Field(default_factory=list)
    error: str = ""
    raw_state: str = ""


class GeneratedPart(BaseModel):
    text: str = ""
    thought: bool = False


class GenerationResult(BaseModel):
    """Parts of the first candidate returned by generateContent."""

    parts: list[GeneratedPart] = Field(default_factory=list)
    model: str = ""

    @property
    def answer_parts(self) -> list[GeneratedPart]:
        """Parts that belong to the final answer (thinking output removed)."""
        return [p for p in self.parts if not p.thought and p.text]


def normalise_state(raw: str | None) -> RemoteState:
    if not raw:
        return RemoteState.PROCESSING
    return _STATE_ALIASES.get(raw.strip().lower(), RemoteState.PROCESSING)


def _parse_sources(payload: dict[str, Any]) -> list[SourceInfo]:
    raw_sources = payload.get("sources")
    if raw_sources is None:
        raw_sources = (payload.get("metadata") or {}).get("sources") or []
    sources: list[SourceInfo] = []
    for item in raw_sources:
        if not isinstance(item, dict):
            continue
        url = item.get("url") or item.get("uri") or ""
        if not url:
            continue
        sources.append(SourceInfo(
            title=item.get("title") or url,
            url=url,
            snippet=item.get("snippet") or "",
        ))
    return sources


class GeminiClient:
    """Async client for the Gemini API.

    Single pooled httpx client, API key sent as ``x-goog-api-key`` on every
    request. Pass ``transport`` to route requests through an
    ``httpx.MockTransport`` in tests.
    """

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        timeout: float | None = None,
        generate_timeout: float | None = None,
        agent: str | None = None,
        refine_model: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.api_key = api_key or settings.gemini_api_key
        if not self.api_key:
            raise ConfigurationError(
                "GEMINI_API_KEY is required. Set it as an environment variable or pass it explicitly."
            )
        self.base_url = (base_url or settings.gemini_base_url).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.request_timeout
        self.generate_timeout = (
            generate_timeout if generate_timeout is not None else settings.generate_timeout
        )
        self.agent = agent or settings.research_agent
        self.refine_model = refine_model or settings.refine_model
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers={
                    "Content-Type": "application/json",
                    "x-goog-api-key": self.api_key,
                },
                timeout=self.timeout,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: dict[str, Any] | None = None,
        timeout: float | None = None,
    ) -> dict[str, Any]:
        """Execute one call and classify any failure. Never retries."""
        client = await self._get_client()
        try:
            response = await client.request(
                method, path, json=json, timeout=timeout if timeout is not None else self.timeout
            )
            response.raise_for_status()
        except httpx.TimeoutException as exc:
            logger.warning("request_timeout", method=method, path=path)
            raise TransportTimeout("Request timed out") from exc
        except httpx.HTTPStatusError as exc:
            message = _error_message(exc.response)
            logger.warning(
                "request_http_error",
                method=method,
                path=path,
                status=exc.response.status_code,
                error=message,
            )
            raise HttpError(exc.response.status_code, message) from exc
        except httpx.RequestError as exc:
            logger.warning("request_network_error", method=method, path=path, error=str(exc))
            raise NetworkError(str(exc) or exc.__class__.__name__) from exc

        if not response.content:
            return {}
        try:
            body = response.json()
        except ValueError as exc:
            raise TransportError(f"Invalid JSON from {path}") from exc
        return body if isinstance(body, dict) else {}

    # ---- Interactions (background deep research) ----

    async def create_job(self, input_text: str, *, agent: str | None = None) -> str:
        """Start a background deep-research interaction; return its remote id."""
        payload = {
            "input": input_text,
            "agent": agent or self.agent,
            "background": True,
            # Required when background=True
            "store": True,
            "agent_config": {
                "type": "deep-research",
                "thinking_summaries": "auto",
            },
        }
        data = await self._request("POST", "/interactions", json=payload)
        remote_id = data.get("id") or data.get("name") or ""
        remote_id = remote_id.removeprefix("interactions/")
        if not remote_id:
            raise TransportError("Remote service returned no interaction id")
        logger.info("interaction_created", remote_job_id=remote_id, agent=payload["agent"])
        return remote_id

    async def get_job_status(self, remote_job_id: str) -> RemoteJobStatus:
        """Fetch and normalise the state of one interaction."""
        data = await self._request("GET", f"/interactions/{remote_job_id}")
        raw_state = data.get("status") or data.get("state") or ""
        outputs = [
            o["text"]
            for o in data.get("outputs") or []
            if isinstance(o, dict) and o.get("text")
        ]
        raw_error = data.get("error")
        error = raw_error.get("message", "") if isinstance(raw_error, dict) else ""
        status = RemoteJobStatus(
            state=normalise_state(raw_state),
            outputs=outputs,
            sources=_parse_sources(data),
            error=error,
            raw_state=raw_state,
        )
        logger.debug("interaction_status", remote_job_id=remote_job_id, state=raw_state)
        return status

    async def cancel_job(self, remote_job_id: str) -> bool:
        """Ask the remote side to stop. Advisory: failures are reported, not raised."""
        try:
            await self._request("POST", f"/interactions/{remote_job_id}/cancel")
        except TransportError as exc:
            logger.warning("interaction_cancel_failed", remote_job_id=remote_job_id, error=str(exc))
            return False
        logger.info("interaction_cancelled", remote_job_id=remote_job_id)
        return True

    # ---- Single-shot generation ----

    async def generate_once(
        self,
        prompt: str,
        *,
        model: str | None = None,
        thinking_level: str = "high",
        include_thoughts: bool = True,
        temperature: float | None = None,
    ) -> GenerationResult:
        """One synchronous generateContent call with its own timeout."""
        model_name = model or self.refine_model
        model_id = model_name if model_name.startswith("models/") else f"models/{model_name}"
        generation_config: dict[str, Any] = {
            "thinkingConfig": {
                "includeThoughts": include_thoughts,
                "thinkingLevel": thinking_level,
            },
        }
        if temperature is not None:
            generation_config["temperature"] = temperature

        payload = {
            "contents": [{"role": "user", "parts": [{"text": prompt}]}],
            "generationConfig": generation_config,
        }
        data = await self._request(
            "POST", f"/{model_id}:generateContent", json=payload, timeout=self.generate_timeout
        )

        candidates = data.get("candidates") or []
        parts = ((candidates[0].get("content") or {}).get("parts") or []) if candidates else []
        result = GenerationResult(
            model=model_name,
            parts=[
                GeneratedPart(text=p.get("text") or "", thought=bool(p.get("thought")))
                for p in parts
                if isinstance(p, dict)
            ],
        )
        logger.debug(
            "generate_content",
            model=model_name,
            parts=len(result.parts),
            usage=data.get("usageMetadata"),
        )
        return result


def _error_message(response: httpx.Response) -> str:
    """Prefer the API's own error message over the bare reason phrase."""
    try:
        body = response.json()
    except ValueError:
        body = {}
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
    return response.reason_phrase or f"HTTP {response.status_code}"
