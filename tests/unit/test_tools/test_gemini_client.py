"""GeminiClient — request shapes and error classification over httpx.MockTransport."""

from __future__ import annotations

import json

import httpx
import pytest

from gemini_research.config import settings
from gemini_research.errors import (
    ConfigurationError,
    HttpError,
    NetworkError,
    TransportError,
    TransportTimeout,
)
from gemini_research.tools.gemini_client import GeminiClient, RemoteState, normalise_state

BASE_URL = "https://gemini.test/v1beta"


def make_client(handler, **kwargs) -> GeminiClient:
    return GeminiClient(
        api_key="test-key",
        base_url=BASE_URL,
        agent="test-agent",
        refine_model="test-thinker",
        transport=httpx.MockTransport(handler),
        **kwargs,
    )


# ── Construction ──────────────────────────────────────────────────────────────

def test_missing_api_key_raises(monkeypatch):
    monkeypatch.setattr(settings, "gemini_api_key", "")
    with pytest.raises(ConfigurationError) as exc_info:
        GeminiClient(api_key=None)
    assert exc_info.value.code == "NO_API_KEY"


def test_key_falls_back_to_settings(monkeypatch):
    monkeypatch.setattr(settings, "gemini_api_key", "from-env")
    assert GeminiClient().api_key == "from-env"


# ── create_job ────────────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_create_job_request_shape():
    captured = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["path"] = request.url.path
        captured["method"] = request.method
        captured["key"] = request.headers.get("x-goog-api-key")
        captured["body"] = json.loads(request.content)
        return httpx.Response(200, json={"id": "interactions/abc123", "status": "in_progress"})

    client = make_client(handler)
    try:
        remote_id = await client.create_job("research this")
    finally:
        await client.close()

    assert remote_id == "abc123"
    assert captured["method"] == "POST"
    assert captured["path"] == "/v1beta/interactions"
    assert captured["key"] == "test-key"
    body = captured["body"]
    assert body["input"] == "research this"
    assert body["agent"] == "test-agent"
    assert body["background"] is True
    assert body["store"] is True
    assert body["agent_config"]["type"] == "deep-research"


@pytest.mark.asyncio
async def test_create_job_without_id_is_transport_error():
    client = make_client(lambda request: httpx.Response(200, json={}))
    with pytest.raises(TransportError):
        await client.create_job("q")
    await client.close()


@pytest.mark.asyncio
async def test_http_error_carries_status_and_remote_message():
    def handler(request):
        return httpx.Response(500, json={"error": {"code": 500, "message": "Internal failure"}})

    client = make_client(handler)
    with pytest.raises(HttpError) as exc_info:
        await client.create_job("q")
    await client.close()

    assert exc_info.value.status_code == 500
    assert exc_info.value.code == "HTTP_500"
    assert str(exc_info.value) == "Internal failure"


@pytest.mark.asyncio
async def test_timeout_is_classified():
    def handler(request):
        raise httpx.ReadTimeout("read timed out", request=request)

    client = make_client(handler)
    with pytest.raises(TransportTimeout):
        await client.get_job_status("abc")
    await client.close()


@pytest.mark.asyncio
async def test_connection_failure_is_network_error():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    client = make_client(handler)
    with pytest.raises(NetworkError):
        await client.get_job_status("abc")
    await client.close()


# ── get_job_status ────────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_status_parses_outputs_and_sources():
    payload = {
        "id": "abc",
        "status": "COMPLETED",
        "outputs": [{"text": "first"}, {"type": "image"}, {"text": "second"}],
        "metadata": {"sources": [
            {"title": "Doc", "url": "https://x.example", "snippet": "s"},
            {"title": "no url"},
        ]},
    }
    client = make_client(lambda request: httpx.Response(200, json=payload))
    status = await client.get_job_status("abc")
    await client.close()

    assert status.state is RemoteState.COMPLETED
    assert status.outputs == ["first", "second"]
    assert [s.url for s in status.sources] == ["https://x.example"]
    assert status.raw_state == "COMPLETED"


@pytest.mark.asyncio
async def test_status_failed_carries_error_message():
    payload = {"status": "failed", "error": {"message": "quota exhausted"}}
    client = make_client(lambda request: httpx.Response(200, json=payload))
    status = await client.get_job_status("abc")
    await client.close()
    assert status.state is RemoteState.FAILED
    assert status.error == "quota exhausted"


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("in_progress", RemoteState.PROCESSING),
        ("", RemoteState.PROCESSING),
        (None, RemoteState.PROCESSING),
        ("succeeded", RemoteState.COMPLETED),
        ("canceled", RemoteState.CANCELLED),
        (" Failed ", RemoteState.FAILED),
    ],
)
def test_normalise_state(raw, expected):
    assert normalise_state(raw) is expected


# ── cancel_job ────────────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_cancel_job_success():
    seen = []

    def handler(request):
        seen.append((request.method, request.url.path))
        return httpx.Response(200, json={})

    client = make_client(handler)
    assert await client.cancel_job("abc") is True
    await client.close()
    assert seen == [("POST", "/v1beta/interactions/abc/cancel")]


@pytest.mark.asyncio
async def test_cancel_job_failure_returns_false():
    client = make_client(lambda request: httpx.Response(404, json={"error": {"message": "gone"}}))
    assert await client.cancel_job("abc") is False
    await client.close()


# ── generate_once ─────────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_generate_once_separates_thoughts():
    captured = {}

    def handler(request):
        captured["path"] = request.url.path
        captured["body"] = json.loads(request.content)
        return httpx.Response(200, json={
            "candidates": [{"content": {"parts": [
                {"text": "let me think", "thought": True},
                {"text": "final answer"},
            ]}}],
        })

    client = make_client(handler)
    result = await client.generate_once("refine this")
    await client.close()

    assert captured["path"] == "/v1beta/models/test-thinker:generateContent"
    config = captured["body"]["generationConfig"]["thinkingConfig"]
    assert config == {"includeThoughts": True, "thinkingLevel": "high"}
    assert [p.text for p in result.answer_parts] == ["final answer"]
    assert result.model == "test-thinker"


@pytest.mark.asyncio
async def test_generate_once_without_candidates():
    client = make_client(lambda request: httpx.Response(200, json={"candidates": []}))
    result = await client.generate_once("x")
    await client.close()
    assert result.parts == []
