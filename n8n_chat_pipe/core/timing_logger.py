"""Function timing instrumentation with direct JSONL output.

Provides:
- @timed decorator for function entrance/exit logging
- timing_scope() context manager for code block timing
- timing_mark() for point-in-time events (first chunk, stream end, ...)

Usage:
    from .core.timing_logger import timed, timing_scope, timing_mark

    @timed
    async def open_stream():
        with timing_scope("webhook_post"):
            ...
        timing_mark("first_chunk")

Enable via valve: ENABLE_TIMING_LOG=True
Output file: TIMING_LOG_FILE (default: logs/timing.jsonl)
"""

from __future__ import annotations

import inspect
import datetime
import functools
import json
import threading
import time
from collections import deque
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Deque, Dict, List, Optional, TypeVar

# -----------------------------------------------------------------------------
# Global file output state
# -----------------------------------------------------------------------------

_timing_file_lock = threading.Lock()
_timing_file_path: Optional[Path] = None
_timing_file_handle: Optional[Any] = None

_timing_events: Dict[str, Deque[Dict[str, Any]]] = {}
_timing_lock = threading.Lock()

_timing_enabled: ContextVar[bool] = ContextVar("timing_enabled", default=False)
_timing_request_id: ContextVar[Optional[str]] = ContextVar(
    "timing_request_id", default=None
)

MAX_TIMING_EVENTS = 10000
_PACKAGE_PREFIX = "n8n_chat_pipe."


@dataclass(slots=True)
class TimingEvent:
    """Single timing event (enter, exit or mark)."""

    ts: float  # time.perf_counter()
    wall_ts: float  # time.time()
    event: str
    label: str
    elapsed_ms: Optional[float] = None


# -----------------------------------------------------------------------------
# Internal helpers
# -----------------------------------------------------------------------------


def _format_iso_utc(wall_ts: float) -> str:
    """Format wall clock time as ISO 8601 UTC string."""
    try:
        dt = datetime.datetime.fromtimestamp(wall_ts, tz=datetime.timezone.utc)
    except (OverflowError, OSError, ValueError):
        dt = datetime.datetime.now(datetime.timezone.utc)
    return dt.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _record_event(event: TimingEvent) -> None:
    """Append the event to the JSONL file and the per-request buffer."""
    if not _timing_enabled.get():
        return
    request_id = _timing_request_id.get()
    if not request_id:
        return

    record: Dict[str, Any] = {
        "ts": _format_iso_utc(event.wall_ts),
        "perf_ts": round(event.ts, 6),
        "event": event.event,
        "label": event.label,
        "request_id": request_id,
    }
    if event.elapsed_ms is not None:
        record["elapsed_ms"] = round(event.elapsed_ms, 3)

    with _timing_file_lock:
        if _timing_file_handle is not None:
            try:
                _timing_file_handle.write(
                    json.dumps(record, ensure_ascii=False, separators=(",", ":")) + "\n"
                )
                _timing_file_handle.flush()
            except (OSError, ValueError):
                # Timing output must never break a chat request.
                pass

    with _timing_lock:
        buffer = _timing_events.get(request_id)
        if buffer is None:
            buffer = deque(maxlen=MAX_TIMING_EVENTS)
            _timing_events[request_id] = buffer
        buffer.append(record)


def _enter(label: str) -> float:
    start = time.perf_counter()
    _record_event(TimingEvent(ts=start, wall_ts=time.time(), event="enter", label=label))
    return start


def _exit(label: str, start: float) -> None:
    end = time.perf_counter()
    _record_event(
        TimingEvent(
            ts=end,
            wall_ts=time.time(),
            event="exit",
            label=label,
            elapsed_ms=(end - start) * 1000,
        )
    )


# -----------------------------------------------------------------------------
# Public API: file configuration
# -----------------------------------------------------------------------------


def configure_timing_file(file_path: str) -> bool:
    """Open ``file_path`` for appending timing events.

    Parent directories are created when missing. Returns False when the file
    cannot be opened; timing then only fills the in-memory buffers.
    """
    global _timing_file_path, _timing_file_handle

    with _timing_file_lock:
        if _timing_file_handle is not None:
            try:
                _timing_file_handle.close()
            except OSError:
                pass
            _timing_file_handle = None
        try:
            path = Path(file_path)
            path.parent.mkdir(parents=True, exist_ok=True)
            _timing_file_handle = open(path, "a", encoding="utf-8")
            _timing_file_path = path
            return True
        except OSError:
            _timing_file_path = None
            _timing_file_handle = None
            return False


def close_timing_file() -> None:
    """Close the timing log file. Safe to call multiple times."""
    global _timing_file_handle, _timing_file_path

    with _timing_file_lock:
        if _timing_file_handle is not None:
            try:
                _timing_file_handle.close()
            except OSError:
                pass
        _timing_file_handle = None
        _timing_file_path = None


def ensure_timing_file_configured(file_path: str) -> bool:
    """Open the timing file lazily, reopening when the path changed."""
    with _timing_file_lock:
        if (
            _timing_file_handle is not None
            and _timing_file_path is not None
            and str(_timing_file_path) == str(Path(file_path))
        ):
            return True
    return configure_timing_file(file_path)


# -----------------------------------------------------------------------------
# Public API: context management
# -----------------------------------------------------------------------------


def set_timing_context(request_id: str, enabled: bool) -> None:
    """Enable or disable timing for the current request."""
    _timing_request_id.set(request_id)
    _timing_enabled.set(enabled)


def clear_timing_context() -> None:
    """Clear timing context for the current request."""
    _timing_request_id.set(None)
    _timing_enabled.set(False)


def get_timing_events(request_id: str) -> List[Dict[str, Any]]:
    """Return buffered timing events for ``request_id``."""
    with _timing_lock:
        buffer = _timing_events.get(request_id)
        return list(buffer) if buffer else []


def clear_timing_events(request_id: str) -> None:
    with _timing_lock:
        _timing_events.pop(request_id, None)


def timing_mark(label: str) -> None:
    """Record a single point-in-time event (e.g. ``first_chunk``)."""
    if not _timing_enabled.get():
        return
    _record_event(
        TimingEvent(ts=time.perf_counter(), wall_ts=time.time(), event="mark", label=label)
    )


@contextmanager
def timing_scope(label: str):
    """Record enter/exit events with elapsed time around a code block."""
    if not _timing_enabled.get():
        yield
        return
    start = _enter(label)
    try:
        yield
    finally:
        _exit(label, start)


# -----------------------------------------------------------------------------
# Public API: @timed decorator
# -----------------------------------------------------------------------------

F = TypeVar("F", bound=Callable[..., Any])


def timed(func: F) -> F:
    """Decorator recording entrance/exit of sync and async functions.

    The label is the module-relative qualified name, e.g.
    ``streaming.line_splitter.LineSplitter.feed``.
    """
    module = getattr(func, "__module__", "") or ""
    qualname = getattr(func, "__qualname__", "") or getattr(func, "__name__", "unknown")
    if module.startswith(_PACKAGE_PREFIX):
        module = module[len(_PACKAGE_PREFIX) :]
    label = f"{module}.{qualname}" if module else qualname

    if inspect.iscoroutinefunction(func):

        @functools.wraps(func)
        async def async_wrapper(*args: Any, **kwargs: Any) -> Any:
            if not _timing_enabled.get():
                return await func(*args, **kwargs)
            start = _enter(label)
            try:
                return await func(*args, **kwargs)
            finally:
                _exit(label, start)

        return async_wrapper  # type: ignore[return-value]

    @functools.wraps(func)
    def sync_wrapper(*args: Any, **kwargs: Any) -> Any:
        if not _timing_enabled.get():
            return func(*args, **kwargs)
        start = _enter(label)
        try:
            return func(*args, **kwargs)
        finally:
            _exit(label, start)

    return sync_wrapper  # type: ignore[return-value]
