"""Byte chunk to text line reassembly.

The webhook streams newline-delimited JSON, but network reads cut the body
at arbitrary byte offsets. LineSplitter keeps the unterminated tail between
reads and only hands complete lines to the decoder.
"""

from __future__ import annotations

from ..core.timing_logger import timed


class LineSplitter:
    """Split an ordered sequence of byte chunks into complete text lines.

    Splitting happens on raw bytes, so a multi-byte UTF-8 character cut by a
    read boundary is reassembled before the line is decoded. Lines that are
    blank after trimming are padding and are never returned.
    """

    def __init__(self, encoding: str = "utf-8") -> None:
        self.encoding = encoding
        self._pending = bytearray()

    @property
    def pending(self) -> bytes:
        """Unterminated remainder after the last newline seen so far."""
        return bytes(self._pending)

    @timed
    def feed(self, chunk: bytes) -> list[str]:
        """Return the complete lines of ``pending + chunk``."""
        if not chunk:
            return []
        buf = self._pending
        buf.extend(chunk)
        lines: list[str] = []
        start_idx = 0
        while True:
            newline_idx = buf.find(b"\n", start_idx)
            if newline_idx == -1:
                break
            line = self._decode(buf[start_idx:newline_idx])
            start_idx = newline_idx + 1
            if line is not None:
                lines.append(line)
        if start_idx > 0:
            del buf[:start_idx]
        return lines

    @timed
    def flush(self) -> list[str]:
        """Return the pending tail as a final line at end-of-stream."""
        if not self._pending:
            return []
        line = self._decode(self._pending)
        self._pending.clear()
        return [line] if line is not None else []

    def _decode(self, raw: bytes | bytearray) -> str | None:
        text = bytes(raw).decode(self.encoding, errors="replace")
        if not text.strip():
            return None
        return text
