"""Decoding of single webhook lines into envelopes.

n8n emits one JSON object per line. Recognized shapes:

    {"type": "item", "content": "..."}      streamed item
    {"output": "..."}                       single object response
    {"reasoning": "..."} / {"thinking": "..."}  co-present with either

Anything else (malformed JSON, begin/end bookkeeping items, non-object
values) decodes to the explicit empty envelope. That is routine backend
noise and never aborts a session. Only non-empty strings count as content
or reasoning, so `{"output": 42}` is empty as well.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Literal, Optional

from ..core.timing_logger import timed

LOGGER = logging.getLogger(__name__)

EnvelopeKind = Literal["item", "output", "reasoning", "empty"]

_LOG_PREVIEW_CHARS = 120


@dataclass(frozen=True, slots=True)
class Envelope:
    """Parsed form of one line.

    ``kind`` closes the union of recognized shapes:

    - ``item``: ``type == "item"`` with content
    - ``output``: ``output`` field used as content
    - ``reasoning``: only an explicit reasoning/thinking field
    - ``empty``: unrecognized or malformed; carries nothing
    """

    kind: EnvelopeKind
    content: Optional[str] = None
    reasoning: Optional[str] = None

    @classmethod
    def empty(cls) -> "Envelope":
        return _EMPTY

    @property
    def is_empty(self) -> bool:
        return self.kind == "empty"


_EMPTY = Envelope(kind="empty")


def _non_empty_str(value: Any) -> Optional[str]:
    if isinstance(value, str) and value:
        return value
    return None


@timed
def envelope_from_payload(payload: Any) -> Envelope:
    """Classify an already-parsed JSON value."""
    if not isinstance(payload, dict):
        return _EMPTY

    reasoning = _non_empty_str(payload.get("reasoning")) or _non_empty_str(payload.get("thinking"))

    item_content = _non_empty_str(payload.get("content")) if payload.get("type") == "item" else None
    if item_content is not None:
        return Envelope(kind="item", content=item_content, reasoning=reasoning)

    output = _non_empty_str(payload.get("output"))
    if output is not None:
        return Envelope(kind="output", content=output, reasoning=reasoning)

    if reasoning is not None:
        return Envelope(kind="reasoning", reasoning=reasoning)
    return _EMPTY


@timed
def decode_line(line: str) -> Envelope:
    """Parse one line into an Envelope; never raises."""
    try:
        payload = json.loads(line)
    except (ValueError, RecursionError) as exc:
        LOGGER.debug(
            "Skipping malformed webhook line (%s): %r",
            exc.__class__.__name__,
            line[:_LOG_PREVIEW_CHARS],
        )
        return _EMPTY
    return envelope_from_payload(payload)
