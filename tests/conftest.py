"""Shared fixtures and fake aiohttp objects for unit tests."""

from __future__ import annotations

import asyncio
import json
from typing import Any, Iterable

import pytest

from n8n_chat_pipe.core.config import Valves
from n8n_chat_pipe.pipe import Pipe

WEBHOOK_URL = "https://n8n.test/webhook/chat"


def ndjson(*payloads: Any) -> bytes:
    """Encode payloads as newline-delimited JSON."""
    return b"".join(json.dumps(payload).encode("utf-8") + b"\n" for payload in payloads)


def item(content: str, **extra: Any) -> dict[str, Any]:
    return {"type": "item", "content": content, **extra}


class FakeContent:
    """Fake aiohttp StreamReader yielding preset chunks.

    ``raise_after`` raises ``exception`` once that many chunks were yielded.
    ``block_after`` suspends forever once that many chunks were yielded,
    simulating a backend that stops sending without closing the body.
    """

    def __init__(
        self,
        chunks: Iterable[bytes],
        *,
        raise_after: int | None = None,
        exception: BaseException | None = None,
        block_after: int | None = None,
    ) -> None:
        self._chunks = list(chunks)
        self._raise_after = raise_after
        self._exception = exception
        self._block_after = block_after
        self.chunk_sizes: list[int] = []

    async def iter_chunked(self, size: int):
        self.chunk_sizes.append(size)
        for idx, chunk in enumerate(self._chunks):
            if self._raise_after is not None and idx >= self._raise_after:
                raise self._exception or ConnectionResetError("connection reset")
            if self._block_after is not None and idx >= self._block_after:
                await asyncio.Event().wait()
            await asyncio.sleep(0)
            yield chunk
        if self._raise_after is not None and self._raise_after >= len(self._chunks):
            raise self._exception or ConnectionResetError("connection reset")
        if self._block_after is not None and self._block_after >= len(self._chunks):
            await asyncio.Event().wait()


class FakeResponse:
    """Fake aiohttp ClientResponse recording release/close calls."""

    def __init__(
        self,
        chunks: Iterable[bytes] = (),
        *,
        status: int = 200,
        reason: str = "OK",
        text: str = "",
        content: FakeContent | None = None,
        no_content: bool = False,
    ) -> None:
        chunk_list = list(chunks)
        self.status = status
        self.reason = reason
        self._text = text
        self._body = b"".join(chunk_list)
        self.content = None if no_content else (content or FakeContent(chunk_list))
        self.released = False
        self.closed = False

    async def text(self) -> str:
        return self._text

    async def read(self) -> bytes:
        return self._body

    def release(self) -> None:
        self.released = True

    def close(self) -> None:
        self.closed = True


class FakeSession:
    """Fake aiohttp ClientSession returning a preset response."""

    def __init__(
        self,
        response: FakeResponse | None = None,
        *,
        exception: BaseException | None = None,
    ) -> None:
        self.response = response or FakeResponse()
        self.exception = exception
        self.post_calls: list[tuple[str, Any]] = []
        self.closed = False

    async def post(self, url: str, json: Any = None, **_kwargs: Any) -> FakeResponse:
        self.post_calls.append((url, json))
        if self.exception is not None:
            raise self.exception
        return self.response

    async def close(self) -> None:
        self.closed = True


async def collect(events) -> list[Any]:
    return [event async for event in events]


@pytest.fixture
def valves() -> Valves:
    return Valves(
        WEBHOOK_URL=WEBHOOK_URL,
        ALLOWED_IFRAME_ORIGINS="https://dao.example.org,http://localhost:3000",
        IFRAME_AUTH_SECRET="test-secret",
    )


@pytest.fixture
def pipe_instance(valves: Valves):
    pipe = Pipe(valves=valves)
    yield pipe


@pytest.fixture
def fake_session_factory():
    def _factory(*payloads: Any, **kwargs: Any) -> FakeSession:
        return FakeSession(FakeResponse([ndjson(*payloads)], **kwargs))

    return _factory
