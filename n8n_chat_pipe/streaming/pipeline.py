"""Synchronous decode pipeline shared by streaming and buffered modes.

bytes -> LineSplitter -> decode_line -> TagSegmenter -> list[Delta]

DeltaPipeline holds all per-session decode state (pending tail and the
inside-reasoning flag). Both modes drive the same pipeline, so the buffered
answer is always the concatenation of the streamed answer deltas.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from ..core.timing_logger import timed
from .constants import DEFAULT_BEGIN_MARKER, DEFAULT_END_MARKER, FINISH_REASON_STOP
from .events import Usage
from .fragment_decoder import decode_line
from .line_splitter import LineSplitter
from .tag_segmenter import Delta, TagSegmenter

LOGGER = logging.getLogger(__name__)


class DeltaPipeline:
    """Per-session composition of splitter, decoder and segmenter."""

    def __init__(
        self,
        *,
        begin_marker: str = DEFAULT_BEGIN_MARKER,
        end_marker: str = DEFAULT_END_MARKER,
    ) -> None:
        self.splitter = LineSplitter()
        self.segmenter = TagSegmenter(begin_marker, end_marker)
        self.lines_seen = 0
        self.lines_skipped = 0

    @property
    def inside_reasoning(self) -> bool:
        return self.segmenter.inside_reasoning

    def feed(self, chunk: bytes) -> list[Delta]:
        """Return the deltas completed by ``chunk``."""
        return self._process_lines(self.splitter.feed(chunk))

    def flush(self) -> list[Delta]:
        """Return the deltas of the final unterminated line, if any."""
        return self._process_lines(self.splitter.flush())

    def _process_lines(self, lines: list[str]) -> list[Delta]:
        deltas: list[Delta] = []
        for line in lines:
            self.lines_seen += 1
            envelope = decode_line(line)
            if envelope.is_empty:
                self.lines_skipped += 1
                continue
            deltas.extend(self.segmenter.process(envelope))
        return deltas


@dataclass(frozen=True, slots=True)
class GenerateResult:
    """Complete answer of a buffered (non-streaming) request."""

    text: str
    finish_reason: str = FINISH_REASON_STOP
    usage: Usage = field(default_factory=Usage)

    def to_dict(self) -> dict[str, object]:
        return {
            "text": self.text,
            "finishReason": self.finish_reason,
            "usage": self.usage.to_dict(),
        }


@timed
def decode_buffered_response(
    body: bytes,
    *,
    begin_marker: str = DEFAULT_BEGIN_MARKER,
    end_marker: str = DEFAULT_END_MARKER,
) -> GenerateResult:
    """Decode a whole response body and join its answer text.

    Reasoning is segmented exactly as in streaming mode and then dropped.
    """
    pipeline = DeltaPipeline(begin_marker=begin_marker, end_marker=end_marker)
    deltas = pipeline.feed(body) + pipeline.flush()
    answer = "".join(delta.text for delta in deltas if delta.kind == "answer")
    LOGGER.debug(
        "Buffered decode: %d line(s), %d skipped, %d answer chars",
        pipeline.lines_seen,
        pipeline.lines_skipped,
        len(answer),
    )
    return GenerateResult(text=answer)
