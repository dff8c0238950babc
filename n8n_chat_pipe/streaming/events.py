"""Typed stream events and their consumer wire shape."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Union

from .constants import FINISH_REASON_STOP, TEXT_PART_ID
from .tag_segmenter import Delta


class SessionState(str, Enum):
    """Lifecycle of one decode session.

    A session is created already started; there is no observable idle state.
    """

    STARTED = "started"
    STREAMING = "streaming"
    FINISHED = "finished"
    ABORTED = "aborted"

    @property
    def terminal(self) -> bool:
        return self in (SessionState.FINISHED, SessionState.ABORTED)


@dataclass(frozen=True, slots=True)
class Usage:
    """Token usage; the webhook reports none, so counts stay zero."""

    input_tokens: int = 0
    output_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens

    def to_dict(self) -> dict[str, int]:
        return {
            "inputTokens": self.input_tokens,
            "outputTokens": self.output_tokens,
            "totalTokens": self.total_tokens,
        }


@dataclass(frozen=True, slots=True)
class StreamStart:
    id: str = TEXT_PART_ID

    def to_dict(self) -> dict[str, Any]:
        return {"type": "text-start", "id": self.id}


@dataclass(frozen=True, slots=True)
class TextDelta:
    text: str
    id: str = TEXT_PART_ID

    def to_dict(self) -> dict[str, Any]:
        return {"type": "text-delta", "id": self.id, "delta": self.text}


@dataclass(frozen=True, slots=True)
class ReasoningDelta:
    text: str
    id: str = TEXT_PART_ID

    def to_dict(self) -> dict[str, Any]:
        return {"type": "reasoning-delta", "id": self.id, "delta": self.text}


@dataclass(frozen=True, slots=True)
class StreamFinish:
    finish_reason: str = FINISH_REASON_STOP
    usage: Usage = field(default_factory=Usage)

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": "finish",
            "finishReason": self.finish_reason,
            "usage": self.usage.to_dict(),
        }


StreamEvent = Union[StreamStart, TextDelta, ReasoningDelta, StreamFinish]


def event_from_delta(delta: Delta) -> Union[TextDelta, ReasoningDelta]:
    """Map a classified delta onto its stream event."""
    if delta.kind == "reasoning":
        return ReasoningDelta(delta.text)
    return TextDelta(delta.text)
