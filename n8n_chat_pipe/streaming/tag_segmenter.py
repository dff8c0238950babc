"""Reclassification of content text around inline reasoning markers.

Some backends inline their chain of thought inside the answer stream,
wrapped in ``<think>...</think>``. TagSegmenter tracks whether the stream is
currently inside such a segment and splits every content string into answer
and reasoning deltas.

Each content string is scanned on its own: a marker whose characters are
split across two strings (``"<thi"`` then ``"nk>"``) is not recognized and
passes through as text of the current mode.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

from ..core.timing_logger import timed
from .constants import DEFAULT_BEGIN_MARKER, DEFAULT_END_MARKER
from .fragment_decoder import Envelope

DeltaKind = Literal["answer", "reasoning"]


@dataclass(frozen=True, slots=True)
class Delta:
    """Classified unit of output text."""

    kind: DeltaKind
    text: str


class TagSegmenter:
    """Split content on begin/end markers, carrying state across envelopes.

    ``inside_reasoning`` starts False and persists for the whole decode
    session; one instance must never be shared between sessions.
    """

    def __init__(
        self,
        begin_marker: str = DEFAULT_BEGIN_MARKER,
        end_marker: str = DEFAULT_END_MARKER,
    ) -> None:
        if not begin_marker or not end_marker:
            raise ValueError("reasoning markers must be non-empty")
        self.begin_marker = begin_marker
        self.end_marker = end_marker
        self.inside_reasoning = False

    @timed
    def process(self, envelope: Envelope) -> list[Delta]:
        """Return the deltas of one envelope, explicit reasoning first."""
        deltas: list[Delta] = []
        if envelope.reasoning:
            deltas.append(Delta("reasoning", envelope.reasoning))
        if envelope.content:
            deltas.extend(self.scan(envelope.content))
        return deltas

    @timed
    def scan(self, text: str) -> list[Delta]:
        """Tag-scan a content string, left to right, updating state."""
        deltas: list[Delta] = []
        remaining = text
        while remaining:
            if not self.inside_reasoning:
                idx = remaining.find(self.begin_marker)
                if idx == -1:
                    deltas.append(Delta("answer", remaining))
                    break
                if idx > 0:
                    deltas.append(Delta("answer", remaining[:idx]))
                self.inside_reasoning = True
                remaining = remaining[idx + len(self.begin_marker) :]
            else:
                idx = remaining.find(self.end_marker)
                if idx == -1:
                    deltas.append(Delta("reasoning", remaining))
                    break
                if idx > 0:
                    deltas.append(Delta("reasoning", remaining[:idx]))
                self.inside_reasoning = False
                remaining = remaining[idx + len(self.end_marker) :]
        return deltas
