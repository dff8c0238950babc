"""Tests for the Pipe composition root."""

from __future__ import annotations

import asyncio
from pathlib import Path

import aiohttp
import pytest
from aioresponses import aioresponses

from conftest import WEBHOOK_URL, FakeContent, FakeResponse, FakeSession, collect, item, ndjson

from n8n_chat_pipe.core.config import Valves
from n8n_chat_pipe.core import timing_logger
from n8n_chat_pipe.core.errors import (
    ModelNotEntitledError,
    StreamAbortedError,
    UnknownModelError,
    WebhookHTTPError,
)
from n8n_chat_pipe.core.logging_system import SessionLogger
from n8n_chat_pipe.models.registry import ModelRegistry, WebhookChatModel
from n8n_chat_pipe.pipe import Pipe
from n8n_chat_pipe.streaming.events import SessionState, StreamFinish, StreamStart, TextDelta


def test_pipes_lists_catalog_models(pipe_instance: Pipe) -> None:
    assert pipe_instance.pipes() == [
        {"id": "prime-intellect/intellect-3", "name": "Intellect-3"},
        {"id": "anthropic/claude-opus-4.5", "name": "Claude Opus 4.5"},
        {"id": "openai/gpt-5", "name": "GPT-5"},
    ]


def test_pipes_only_lists_registered_models(valves: Valves) -> None:
    registry = ModelRegistry({"openai/gpt-5": lambda: WebhookChatModel("openai/gpt-5", WEBHOOK_URL)})
    assert Pipe(valves=valves, registry=registry).pipes() == [{"id": "openai/gpt-5", "name": "GPT-5"}]


@pytest.mark.asyncio
async def test_stream_chat_uses_default_model(pipe_instance: Pipe) -> None:
    session = FakeSession(FakeResponse([ndjson(item("Hi"))]))
    pipe_instance._http_session = session  # type: ignore[assignment]

    stream = await pipe_instance.stream_chat([{"role": "user", "content": "hello"}])
    events = await collect(stream)

    assert events == [StreamStart(), TextDelta("Hi"), StreamFinish()]
    url, body = session.post_calls[0]
    assert url == WEBHOOK_URL
    assert body["model"] == "prime-intellect/intellect-3"
    assert body["chatInput"] == "hello"


@pytest.mark.asyncio
async def test_generate_with_explicit_model(pipe_instance: Pipe) -> None:
    session = FakeSession(FakeResponse([ndjson(item("<think>x</think>Done"))]))
    pipe_instance._http_session = session  # type: ignore[assignment]

    result = await pipe_instance.generate([{"role": "user", "content": "q"}], model_id="openai/gpt-5")

    assert result.text == "Done"
    assert session.post_calls[0][1]["model"] == "openai/gpt-5"


@pytest.mark.asyncio
async def test_unknown_model_raises_before_any_request(pipe_instance: Pipe) -> None:
    session = FakeSession()
    pipe_instance._http_session = session  # type: ignore[assignment]
    with pytest.raises(UnknownModelError):
        await pipe_instance.stream_chat([], model_id="missing/model")
    assert session.post_calls == []


@pytest.mark.asyncio
async def test_cancel_event_is_attached_to_the_session(pipe_instance: Pipe) -> None:
    content = FakeContent([ndjson(item("one"))], block_after=1)
    pipe_instance._http_session = FakeSession(FakeResponse(content=content))  # type: ignore[assignment]
    cancel_event = asyncio.Event()

    stream = await pipe_instance.stream_chat([], cancel_event=cancel_event)
    events = stream.events()
    assert await events.__anext__() == StreamStart()
    assert await events.__anext__() == TextDelta("one")
    cancel_event.set()
    with pytest.raises(StreamAbortedError):
        await events.__anext__()
    assert stream.state is SessionState.ABORTED


@pytest.mark.asyncio
async def test_request_scope_sets_and_restores_context(pipe_instance: Pipe) -> None:
    seen: dict[str, object] = {}

    with pipe_instance._request_scope("sess-9") as request_id:
        seen["request_id"] = SessionLogger.request_id.get()
        seen["session_id"] = SessionLogger.session_id.get()

    assert seen == {"request_id": request_id, "session_id": "sess-9"}
    assert SessionLogger.request_id.get() is None
    assert SessionLogger.session_id.get() is None


@pytest.mark.asyncio
async def test_end_to_end_with_real_client_session(valves: Valves) -> None:
    pipe = Pipe(valves=valves)
    try:
        with aioresponses() as mock_http:
            mock_http.post(WEBHOOK_URL, body=ndjson(item("Hello"), item(" world")))
            mock_http.post(WEBHOOK_URL, status=503, body="down")

            stream = await pipe.stream_chat([{"role": "user", "content": "hi"}])
            events = await collect(stream)
            assert [e.text for e in events if isinstance(e, TextDelta)] == ["Hello", " world"]

            with pytest.raises(WebhookHTTPError) as excinfo:
                await pipe.generate([{"role": "user", "content": "hi"}])
            assert excinfo.value.status == 503
    finally:
        await pipe.close()


@pytest.mark.asyncio
async def test_http_session_timeouts_follow_valves(valves: Valves) -> None:
    pipe = Pipe(valves=valves.model_copy(update={"HTTP_CONNECT_TIMEOUT_SECONDS": 5}))
    session = pipe._create_http_session()
    try:
        assert session.timeout.connect == 5.0
        assert session.timeout.total is None
        assert session.timeout.sock_read == 300.0
    finally:
        await session.close()

    pipe_total = Pipe(valves=valves.model_copy(update={"HTTP_TOTAL_TIMEOUT_SECONDS": 60}))
    session = pipe_total._create_http_session()
    try:
        assert session.timeout.total == 60.0
        assert session.timeout.sock_read is None
    finally:
        await session.close()


@pytest.mark.asyncio
async def test_shared_session_is_reused_and_closed(pipe_instance: Pipe) -> None:
    first = await pipe_instance._get_http_session()
    second = await pipe_instance._get_http_session()
    assert first is second
    assert isinstance(first, aiohttp.ClientSession)

    await pipe_instance.close()
    assert first.closed
    await pipe_instance.close()
    with pytest.raises(RuntimeError):
        await pipe_instance._get_http_session()


@pytest.mark.asyncio
async def test_requests_leave_no_log_or_timing_buffers(valves: Valves, tmp_path: Path) -> None:
    timing_file = tmp_path / "timing.jsonl"
    pipe = Pipe(
        valves=valves.model_copy(update={"ENABLE_TIMING_LOG": True, "TIMING_LOG_FILE": str(timing_file)})
    )
    SessionLogger.logs.clear()
    SessionLogger._last_seen.clear()
    timing_logger._timing_events.clear()
    pipe._http_session = FakeSession(FakeResponse([ndjson(item("ok"))]))  # type: ignore[assignment]

    for _ in range(5):
        result = await pipe.generate([{"role": "user", "content": "q"}])
        assert result.text == "ok"

    assert SessionLogger.logs == {}
    assert SessionLogger._last_seen == {}
    assert timing_logger._timing_events == {}
    timing_logger.close_timing_file()
    assert timing_file.read_text(encoding="utf-8").count("pipe_entry") == 5


@pytest.mark.asyncio
async def test_entitlements_are_enforced_per_user_type(pipe_instance: Pipe) -> None:
    session = FakeSession(FakeResponse([ndjson(item("ok"))]))
    pipe_instance._http_session = session  # type: ignore[assignment]

    result = await pipe_instance.generate([], model_id="openai/gpt-5", user_type="guest")
    assert result.text == "ok"

    with pytest.raises(ModelNotEntitledError) as excinfo:
        await pipe_instance.generate([], model_id="openai/gpt-5", user_type="unknown")
    assert excinfo.value.user_type == "unknown"
    assert len(session.post_calls) == 1
