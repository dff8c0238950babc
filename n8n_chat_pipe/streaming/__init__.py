"""Streaming decode subsystem.

bytes -> lines -> envelopes -> answer/reasoning deltas -> stream events
"""

from .event_emitter import StreamSession
from .events import (
    ReasoningDelta,
    SessionState,
    StreamEvent,
    StreamFinish,
    StreamStart,
    TextDelta,
    Usage,
)
from .fragment_decoder import Envelope, decode_line, envelope_from_payload
from .line_splitter import LineSplitter
from .pipeline import DeltaPipeline, GenerateResult, decode_buffered_response
from .streaming_core import StreamingAdapter, open_webhook_response
from .tag_segmenter import Delta, TagSegmenter

__all__ = [
    "StreamSession",
    "ReasoningDelta",
    "SessionState",
    "StreamEvent",
    "StreamFinish",
    "StreamStart",
    "TextDelta",
    "Usage",
    "Envelope",
    "decode_line",
    "envelope_from_payload",
    "LineSplitter",
    "DeltaPipeline",
    "GenerateResult",
    "decode_buffered_response",
    "StreamingAdapter",
    "open_webhook_response",
    "Delta",
    "TagSegmenter",
]
