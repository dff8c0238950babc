"""Outbound request subsystem.

- transformer: chat messages -> webhook JSON body
- nonstreaming_adapter: buffered request/response handling
"""

from .nonstreaming_adapter import NonStreamingAdapter
from .transformer import build_webhook_body, generate_session_id, transform_messages

__all__ = [
    "NonStreamingAdapter",
    "build_webhook_body",
    "generate_session_id",
    "transform_messages",
]
