"""Shared streaming constants."""

# Default inline markers delimiting reasoning inside answer content.
DEFAULT_BEGIN_MARKER = "<think>"
DEFAULT_END_MARKER = "</think>"

# Body read size for webhook responses.
READ_CHUNK_SIZE = 4096

# Consumer protocol: all deltas of one answer share a single text part id.
TEXT_PART_ID = "0"
FINISH_REASON_STOP = "stop"
