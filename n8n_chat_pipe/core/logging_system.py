"""Request-scoped logging with in-memory capture.

- SessionLogger: contextvar-aware logger factory
- Structured log events buffered per request_id (bounded deque)
- Explicit cleanup of stale request buffers

The request and session identifiers live in contextvars so that every
record emitted while a chat request is handled can be attributed to it
without threading identifiers through each call.
"""

from __future__ import annotations

import logging
import sys
import threading
import time
import traceback
from collections import deque
from contextvars import ContextVar
from typing import Any, Dict, Optional

LOGGER = logging.getLogger(__name__)


class SessionLogger:
    """Per-request logger writing to stdout and an in-memory buffer.

    Attributes:
        session_id: ContextVar storing the webhook session id of the request.
        request_id: ContextVar storing the per-request buffer key.
        log_level:  ContextVar storing the minimum console level for this request.
        logs:       Map of request_id -> bounded deque of structured events.
    """

    session_id: ContextVar[Optional[str]] = ContextVar("session_id", default=None)
    request_id: ContextVar[Optional[str]] = ContextVar("request_id", default=None)
    log_level: ContextVar[int] = ContextVar("log_level", default=logging.INFO)
    max_lines: int = 2000
    logs: Dict[str, deque[dict[str, Any]]] = {}
    _last_seen: Dict[str, float] = {}
    _state_lock = threading.Lock()
    _console_formatter = logging.Formatter(
        "%(asctime)s.%(msecs)03d | %(levelname)-8s | %(name)s:%(funcName)s:%(lineno)d - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    @staticmethod
    def _classify_event_type(message: str) -> str:
        msg = (message or "").lstrip()
        if msg.startswith("Webhook request"):
            return "webhook.request"
        if msg.startswith("Stream "):
            return "webhook.stream"
        if msg.startswith("Skipping "):
            return "webhook.decode"
        return "pipe"

    @classmethod
    def _build_event(cls, record: logging.LogRecord) -> dict[str, Any]:
        """Return a structured event extracted from a LogRecord."""
        try:
            message = record.getMessage()
        except (TypeError, ValueError):
            message = str(getattr(record, "msg", "") or "")

        event: dict[str, Any] = {
            "created": float(getattr(record, "created", time.time())),
            "level": str(getattr(record, "levelname", "INFO") or "INFO"),
            "logger": str(getattr(record, "name", "") or ""),
            "request_id": getattr(record, "request_id", None),
            "session_id": getattr(record, "session_id", None),
            "event_type": cls._classify_event_type(message),
            "func": str(getattr(record, "funcName", "") or ""),
            "lineno": int(getattr(record, "lineno", 0) or 0),
            "message": message,
        }
        if record.exc_text:
            event["exception"] = {"text": str(record.exc_text)}
        elif record.exc_info:
            event["exception"] = {"text": "".join(traceback.format_exception(*record.exc_info))}
        return event

    @classmethod
    def get_logger(cls, name: str = __name__) -> logging.Logger:
        """Create a logger wired to the current SessionLogger context.

        The returned logger stamps each record with ``request_id`` and
        ``session_id``, writes a console line when the record passes the
        per-request level, and appends a structured event to
        ``SessionLogger.logs[request_id]``.
        """
        logger = logging.getLogger(name)
        logger.handlers.clear()
        logger.filters.clear()
        logger.setLevel(logging.DEBUG)
        logger.propagate = False

        def filter(record: logging.LogRecord) -> bool:
            """Attach request metadata and the per-request console level."""
            record.session_id = cls.session_id.get()
            record.request_id = cls.request_id.get()
            record.session_log_level = cls.log_level.get()
            return True

        logger.addFilter(filter)

        handler = logging.Handler()
        handler.emit = cls.process_record  # type: ignore[assignment]
        logger.addHandler(handler)
        return logger

    @classmethod
    def set_max_lines(cls, value: int) -> None:
        """Set the maximum in-memory events retained per request."""
        cls.max_lines = max(100, min(200000, int(value)))

    @classmethod
    def process_record(cls, record: logging.LogRecord) -> None:
        session_log_level = getattr(record, "session_log_level", logging.INFO)
        if record.levelno >= int(session_log_level):
            try:
                sys.stdout.write(cls._console_formatter.format(record) + "\n")
                sys.stdout.flush()
            except (OSError, ValueError):
                pass
        request_id = getattr(record, "request_id", None)
        if not request_id:
            return
        event = cls._build_event(record)
        with cls._state_lock:
            buffer = cls.logs.get(request_id)
            if buffer is None or buffer.maxlen != cls.max_lines:
                buffer = deque(buffer or (), maxlen=cls.max_lines)
                cls.logs[request_id] = buffer
            buffer.append(event)
            cls._last_seen[request_id] = time.time()

    @classmethod
    def get_events(cls, request_id: str) -> list[dict[str, Any]]:
        with cls._state_lock:
            buffer = cls.logs.get(request_id)
            return list(buffer) if buffer else []

    @classmethod
    def clear(cls, request_id: str) -> None:
        """Drop the buffer of a finished request."""
        with cls._state_lock:
            cls.logs.pop(request_id, None)
            cls._last_seen.pop(request_id, None)

    @classmethod
    def cleanup(cls, max_age_seconds: float = 3600) -> None:
        """Remove stale request buffers to avoid unbounded growth."""
        cutoff = time.time() - max_age_seconds
        with cls._state_lock:
            stale = [rid for rid, ts in cls._last_seen.items() if ts < cutoff]
            for rid in stale:
                cls.logs.pop(rid, None)
                cls._last_seen.pop(rid, None)
        if stale:
            LOGGER.debug("Removed %d stale session log buffer(s)", len(stale))
