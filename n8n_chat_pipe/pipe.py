"""Chat pipe over the n8n webhook backend.

The Pipe is the composition root: it owns configuration, the model
registry, request-scoped logging and one shared aiohttp session. Each chat
request resolves a model id through the registry and hands the webhook call
to the streaming or buffered adapter.
"""

from __future__ import annotations

import asyncio
import contextlib
import contextvars
import json
import logging
import secrets
from contextvars import ContextVar
from typing import Any, Iterable, Iterator, Optional

import aiohttp

from .core.config import _DEFAULT_PIPE_ID, Valves
from .core.logging_system import SessionLogger
from .core.timing_logger import (
    clear_timing_context,
    clear_timing_events,
    ensure_timing_file_configured,
    set_timing_context,
    timed,
    timing_mark,
)
from .models.registry import (
    CHAT_MODELS,
    ModelRegistry,
    WebhookChatModel,
    build_default_registry,
    ensure_model_entitled,
)
from .requests.transformer import generate_session_id
from .streaming.event_emitter import StreamSession
from .streaming.pipeline import GenerateResult


class Pipe:
    """Manifold pipe exposing the webhook-backed chat models.

    Args:
        valves: Configuration; read from the environment when omitted.
        registry: Model registry; built from ``valves`` when omitted.
    """

    Valves = Valves

    def __init__(
        self,
        valves: Optional[Valves] = None,
        registry: Optional[ModelRegistry] = None,
    ) -> None:
        self.type = "manifold"
        self.id = _DEFAULT_PIPE_ID
        self.valves = valves or self.Valves()
        self.logger = SessionLogger.get_logger(__name__)
        self.registry = registry or build_default_registry(self.valves)

        self._http_session: Optional[aiohttp.ClientSession] = None
        self._session_lock: Optional[asyncio.Lock] = None
        self._closed = False

        SessionLogger.set_max_lines(self.valves.SESSION_LOG_MAX_LINES)
        if self.valves.ENABLE_TIMING_LOG:
            ensure_timing_file_configured(self.valves.TIMING_LOG_FILE)

    # ----------------------------------------------------------------------
    # Catalog
    # ----------------------------------------------------------------------

    def pipes(self) -> list[dict[str, str]]:
        """Return the user-facing models as ``[{"id", "name"}]``."""
        return [
            {"id": model.id, "name": model.name}
            for model in CHAT_MODELS
            if model.id in self.registry
        ]

    @timed
    def _resolve_model(self, model_id: Optional[str], user_type: Optional[str] = None) -> WebhookChatModel:
        """Look up the model; with ``user_type``, also enforce its entitlements."""
        resolved = model_id or self.valves.DEFAULT_MODEL
        model = self.registry.get(resolved)
        if user_type is not None:
            ensure_model_entitled(resolved, user_type)
        return model

    # ----------------------------------------------------------------------
    # HTTP session
    # ----------------------------------------------------------------------

    @timed
    def _create_http_session(self, valves: Optional[Valves] = None) -> aiohttp.ClientSession:
        """Return a ClientSession with connection limits and timeouts from valves."""
        valves = valves or self.valves
        connector = aiohttp.TCPConnector(
            limit=50,
            limit_per_host=10,
            keepalive_timeout=75,
            ttl_dns_cache=300,
        )
        connect_timeout = float(valves.HTTP_CONNECT_TIMEOUT_SECONDS)
        total_timeout_value = valves.HTTP_TOTAL_TIMEOUT_SECONDS
        total_timeout = float(total_timeout_value) if total_timeout_value else None
        sock_read = float(valves.HTTP_SOCK_READ_SECONDS) if total_timeout is None else None
        timeout = aiohttp.ClientTimeout(total=total_timeout, connect=connect_timeout, sock_read=sock_read)
        self.logger.debug(
            "HTTP timeouts: connect=%ss total=%s sock_read=%s",
            connect_timeout,
            total_timeout if total_timeout is not None else "disabled",
            sock_read if sock_read is not None else "disabled",
        )
        return aiohttp.ClientSession(
            connector=connector,
            timeout=timeout,
            json_serialize=json.dumps,
        )

    async def _get_http_session(self) -> aiohttp.ClientSession:
        if self._closed:
            raise RuntimeError("Pipe is closed")
        if self._session_lock is None:
            self._session_lock = asyncio.Lock()
        async with self._session_lock:
            if self._http_session is None or self._http_session.closed:
                self._http_session = self._create_http_session()
            return self._http_session

    async def close(self) -> None:
        """Close the shared HTTP session. Safe to call multiple times."""
        self._closed = True
        session, self._http_session = self._http_session, None
        if session is not None and not session.closed:
            await session.close()

    # ----------------------------------------------------------------------
    # Request scope
    # ----------------------------------------------------------------------

    @contextlib.contextmanager
    def _request_scope(self, session_id: str) -> Iterator[str]:
        """Set SessionLogger and timing contextvars for one request.

        The request's log and timing buffers are dropped on exit.
        """
        request_id = secrets.token_hex(8)
        log_level = getattr(logging, self.valves.LOG_LEVEL)
        tokens: list[tuple[ContextVar[Any], contextvars.Token[Any]]] = []
        tokens.append((SessionLogger.session_id, SessionLogger.session_id.set(session_id)))
        tokens.append((SessionLogger.request_id, SessionLogger.request_id.set(request_id)))
        tokens.append((SessionLogger.log_level, SessionLogger.log_level.set(log_level)))
        if self.valves.ENABLE_TIMING_LOG:
            ensure_timing_file_configured(self.valves.TIMING_LOG_FILE)
        set_timing_context(request_id, bool(self.valves.ENABLE_TIMING_LOG))
        timing_mark("pipe_entry")
        try:
            yield request_id
        finally:
            clear_timing_context()
            clear_timing_events(request_id)
            SessionLogger.clear(request_id)
            SessionLogger.cleanup()
            for var, token in reversed(tokens):
                var.reset(token)

    # ----------------------------------------------------------------------
    # Chat entry points
    # ----------------------------------------------------------------------

    @timed
    async def stream_chat(
        self,
        messages: Iterable[Any],
        *,
        model_id: Optional[str] = None,
        user_type: Optional[str] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> StreamSession:
        """Open a streaming chat session.

        Pre-stream failures (unknown model, transport, HTTP status, missing
        body) raise here; the returned session yields StreamStart first.
        """
        session_id = generate_session_id()
        with self._request_scope(session_id):
            model = self._resolve_model(model_id, user_type)
            self.logger.info("Streaming chat via %s", model.model_id)
            session = await self._get_http_session()
            return await model.do_stream(
                session,
                messages,
                session_id=session_id,
                cancel_event=cancel_event,
                logger=self.logger,
            )

    @timed
    async def generate(
        self,
        messages: Iterable[Any],
        *,
        model_id: Optional[str] = None,
        user_type: Optional[str] = None,
    ) -> GenerateResult:
        """Run a buffered chat request and return the complete answer."""
        session_id = generate_session_id()
        with self._request_scope(session_id):
            model = self._resolve_model(model_id, user_type)
            self.logger.info("Buffered chat via %s", model.model_id)
            session = await self._get_http_session()
            return await model.do_generate(session, messages, session_id=session_id, logger=self.logger)
