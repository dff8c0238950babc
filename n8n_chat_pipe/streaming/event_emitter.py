"""Streaming event emission for one webhook response.

StreamSession turns a validated HTTP response into the ordered event
sequence expected by the chat consumer:

    StreamStart, (TextDelta | ReasoningDelta)*, StreamFinish

StreamStart is yielded before the first body read so the consumer can
render immediately, even when the backend is slow. StreamFinish is yielded
only after a clean end of the body. Cancellation and transport failures end
the iteration with StreamAbortedError instead; deltas already yielded stay
valid.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import Any, AsyncGenerator, AsyncIterator, Optional

import aiohttp

from ..core.errors import AbortCause, StreamAbortedError
from ..core.timing_logger import timing_mark
from .constants import READ_CHUNK_SIZE
from .events import SessionState, StreamEvent, StreamFinish, StreamStart, event_from_delta
from .pipeline import DeltaPipeline

LOGGER = logging.getLogger(__name__)

_TRANSPORT_ERRORS = (aiohttp.ClientError, asyncio.TimeoutError, OSError)


async def _read_next(chunks: AsyncIterator[bytes]) -> Optional[bytes]:
    """Return the next body chunk, or None at end-of-stream."""
    try:
        return await chunks.__anext__()
    except StopAsyncIteration:
        return None


class StreamSession:
    """One streaming decode session over an open webhook response.

    The session owns the response: it is released after a clean finish and
    closed when the session aborts, which abandons the transfer.

    Args:
        response: Open response exposing ``content.iter_chunked`` plus
            ``release()`` and ``close()`` (an ``aiohttp.ClientResponse``).
        pipeline: Fresh per-session decode pipeline.
        cancel_event: Cancellation signal attached at creation; setting it
            abandons the in-flight read.
        logger: Logger for session diagnostics.
        chunk_size: Read size for body chunks.
    """

    def __init__(
        self,
        response: Any,
        *,
        pipeline: DeltaPipeline,
        cancel_event: Optional[asyncio.Event] = None,
        logger: Optional[logging.Logger] = None,
        chunk_size: int = READ_CHUNK_SIZE,
    ) -> None:
        self._response = response
        self._pipeline = pipeline
        self._cancel_event = cancel_event if cancel_event is not None else asyncio.Event()
        self.logger = logger or LOGGER
        self.chunk_size = max(1, chunk_size)
        self.state = SessionState.STARTED
        self.abort_cause: Optional[AbortCause] = None
        self.delta_count = 0
        self._consumed = False
        self._released = False
        self._iterator: Optional[AsyncGenerator[StreamEvent, None]] = None
        self._closed = False

    @property
    def cancelled(self) -> bool:
        return self._cancel_event.is_set()

    def cancel(self) -> None:
        """Raise the cancellation signal."""
        self._cancel_event.set()

    def events(self) -> StreamSession:
        """Return the session as its event iterator; callable once."""
        if self._consumed:
            raise RuntimeError("StreamSession events can only be iterated once")
        self._consumed = True
        return self

    def __aiter__(self) -> StreamSession:
        self._consumed = True
        return self

    async def __anext__(self) -> StreamEvent:
        if self._closed:
            raise StopAsyncIteration
        if self._iterator is None:
            self._consumed = True
            self._iterator = self._iterate()
        return await self._iterator.__anext__()

    async def aclose(self) -> None:
        """Give up the session.

        Works at any point: before the first event, mid-stream or after the
        end. An unfinished session aborts with cause ``cancelled`` and its
        response is closed.
        """
        if self._closed:
            return
        self._closed = True
        self._consumed = True
        if self._iterator is not None:
            await self._iterator.aclose()
        self._abort("cancelled")
        self._release()

    async def _iterate(self) -> AsyncGenerator[StreamEvent, None]:
        try:
            yield StreamStart()
            chunks = self._response.content.iter_chunked(self.chunk_size)
            while True:
                chunk = await self._next_chunk(chunks)
                if chunk is None:
                    break
                if self.state is SessionState.STARTED:
                    self.state = SessionState.STREAMING
                    timing_mark("stream_first_chunk")
                for delta in self._pipeline.feed(chunk):
                    self._raise_if_cancelled()
                    self.delta_count += 1
                    yield event_from_delta(delta)

            for delta in self._pipeline.flush():
                self._raise_if_cancelled()
                self.delta_count += 1
                yield event_from_delta(delta)

            self._raise_if_cancelled()
            self.state = SessionState.FINISHED
            timing_mark("stream_finished")
            self.logger.debug(
                "Stream finished: %d delta(s), %d line(s), %d skipped",
                self.delta_count,
                self._pipeline.lines_seen,
                self._pipeline.lines_skipped,
            )
            yield StreamFinish()
        except StreamAbortedError as exc:
            self._abort(exc.cause)
            raise
        except _TRANSPORT_ERRORS as exc:
            self._abort("transport")
            self.logger.warning("Stream transport failure after %d delta(s): %s", self.delta_count, exc)
            raise StreamAbortedError("transport", str(exc) or exc.__class__.__name__) from exc
        except (asyncio.CancelledError, GeneratorExit):
            self._abort("cancelled")
            raise
        finally:
            if not self.state.terminal:
                self._abort("transport")
            self._release()

    async def _next_chunk(self, chunks: AsyncIterator[bytes]) -> Optional[bytes]:
        """Await the next chunk unless the cancellation signal fires first."""
        self._raise_if_cancelled()
        read = asyncio.ensure_future(_read_next(chunks))
        cancel_wait = asyncio.ensure_future(self._cancel_event.wait())
        try:
            done, _ = await asyncio.wait(
                {read, cancel_wait}, return_when=asyncio.FIRST_COMPLETED
            )
        finally:
            for task in (read, cancel_wait):
                if not task.done():
                    task.cancel()
        if read in done:
            return read.result()
        with contextlib.suppress(asyncio.CancelledError, *_TRANSPORT_ERRORS):
            await read
        raise StreamAbortedError("cancelled", "cancelled while awaiting the webhook")

    def _raise_if_cancelled(self) -> None:
        if self._cancel_event.is_set():
            raise StreamAbortedError("cancelled")

    def _abort(self, cause: AbortCause) -> None:
        if self.state.terminal:
            return
        self.state = SessionState.ABORTED
        self.abort_cause = cause
        self.logger.info("Stream aborted (%s) after %d delta(s)", cause, self.delta_count)

    def _release(self) -> None:
        if self._released:
            return
        self._released = True
        if self.state is SessionState.FINISHED:
            self._response.release()
        else:
            self._response.close()
