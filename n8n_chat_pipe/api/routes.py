"""HTTP surface for the chat pipe.

- /api/iframe-token: daily iframe tokens for allowed embedding origins
- /api/chat: chat requests, streamed as Server-Sent Events or buffered JSON
- /ping: liveness
"""

from __future__ import annotations

import json
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, PlainTextResponse, Response, StreamingResponse
from pydantic import BaseModel, Field
from starlette.background import BackgroundTask

from ..core.errors import (
    MissingResponseBodyError,
    StreamAbortedError,
    UnknownModelError,
    WebhookChatError,
    WebhookHTTPError,
    WebhookTransportError,
)
from ..pipe import Pipe
from .iframe_auth import cors_headers, generate_iframe_token, is_origin_allowed, token_expiry

LOGGER = logging.getLogger(__name__)

_UPSTREAM_ERRORS = (WebhookHTTPError, WebhookTransportError, MissingResponseBodyError)
_CHAT_ERRORS = (UnknownModelError, *_UPSTREAM_ERRORS)


class ChatRequest(BaseModel):
    model: Optional[str] = None
    messages: list[dict[str, Any]] = Field(default_factory=list)
    stream: bool = True


# -----------------------------------------------------------------------------
# Helpers
# -----------------------------------------------------------------------------


def _error(message: str, status_code: int, headers: Optional[dict[str, str]] = None) -> JSONResponse:
    return JSONResponse({"error": message}, status_code=status_code, headers=headers)


def _chat_error_response(exc: WebhookChatError) -> JSONResponse:
    if isinstance(exc, UnknownModelError):
        return _error(str(exc), 400)
    payload: dict[str, Any] = {"error": str(exc)}
    if isinstance(exc, WebhookHTTPError):
        payload["status"] = exc.status
    return JSONResponse(payload, status_code=502)


def _sse_line(payload: dict[str, Any]) -> str:
    return f"data: {json.dumps(payload, ensure_ascii=False)}\n\n"


def _issue_token(pipe: Pipe, origin: str, header_origin: str) -> JSONResponse:
    """Shared checks for GET and POST token requests."""
    headers = cors_headers(header_origin)
    if not origin:
        return _error("Origin required", 400, headers)
    secret = pipe.valves.iframe_secret()
    if not secret:
        return _error("Iframe authentication not configured", 500, headers)
    if not is_origin_allowed(origin, pipe.valves.allowed_origins()):
        LOGGER.info("Rejected iframe token request for origin %r", origin)
        return _error("Origin not allowed", 403, headers)
    token = generate_iframe_token(origin, secret)
    return JSONResponse(
        {"token": token, "expires": token_expiry(), "origin": origin},
        headers=headers,
    )


# -----------------------------------------------------------------------------
# App
# -----------------------------------------------------------------------------


def create_app(pipe: Optional[Pipe] = None) -> FastAPI:
    """Build the FastAPI app around ``pipe`` (a new Pipe when omitted)."""
    chat_pipe = pipe or Pipe()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        await chat_pipe.close()

    app = FastAPI(title="n8n chat pipe", lifespan=lifespan)
    app.state.pipe = chat_pipe

    @app.options("/api/iframe-token")
    async def iframe_token_preflight(request: Request) -> Response:
        origin = request.headers.get("origin") or ""
        if is_origin_allowed(origin, chat_pipe.valves.allowed_origins()):
            return Response(status_code=200, headers=cors_headers(origin))
        return Response(status_code=403)

    @app.get("/api/iframe-token")
    async def iframe_token_get(request: Request, origin: Optional[str] = None) -> JSONResponse:
        resolved = origin or request.headers.get("origin") or ""
        return _issue_token(chat_pipe, resolved, resolved)

    @app.post("/api/iframe-token")
    async def iframe_token_post(request: Request) -> JSONResponse:
        header_origin = request.headers.get("origin") or ""
        try:
            payload = await request.json()
        except ValueError:
            return _error("Invalid request", 400, cors_headers(header_origin))
        if not isinstance(payload, dict):
            return _error("Invalid request", 400, cors_headers(header_origin))
        origin = payload.get("origin")
        if origin is not None and not isinstance(origin, str):
            return _error("Invalid request", 400, cors_headers(header_origin))
        return _issue_token(chat_pipe, origin or "", header_origin)

    @app.post("/api/chat")
    async def chat(body: ChatRequest) -> Response:
        if not body.stream:
            try:
                result = await chat_pipe.generate(body.messages, model_id=body.model)
            except _CHAT_ERRORS as exc:
                return _chat_error_response(exc)
            return JSONResponse(result.to_dict())

        try:
            session = await chat_pipe.stream_chat(body.messages, model_id=body.model)
        except _CHAT_ERRORS as exc:
            return _chat_error_response(exc)

        async def _event_stream() -> AsyncIterator[str]:
            events = session.events()
            try:
                async for event in events:
                    yield _sse_line(event.to_dict())
            except StreamAbortedError as exc:
                yield _sse_line({"type": "error", "errorText": str(exc)})
            finally:
                await events.aclose()

        return StreamingResponse(
            _event_stream(),
            media_type="text/event-stream",
            headers={"Cache-Control": "no-cache"},
            background=BackgroundTask(session.aclose),
        )

    @app.get("/ping")
    async def ping() -> PlainTextResponse:
        return PlainTextResponse("pong")

    return app
