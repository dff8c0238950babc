"""Chat message transformation to the n8n webhook body.

The webhook workflow receives the whole conversation plus a shortcut to the
latest user turn:

    {
        "sessionId": "<fresh random id>",
        "chatInput": "<content of the last user message>",
        "messages": [{"role": "...", "content": "..."}],
        "model": "<model id>",
    }

Only text survives the transformation; image, file and audio parts are
dropped because the workflow has no input for them.
"""

from __future__ import annotations

import logging
import secrets
from typing import Any, Iterable, Optional

from ..core.timing_logger import timed

LOGGER = logging.getLogger(__name__)

_SESSION_ID_BYTES = 16


def generate_session_id() -> str:
    """Return a fresh random webhook session id."""
    return secrets.token_hex(_SESSION_ID_BYTES)


@timed
def _extract_text_content(content: Any) -> str:
    """Flatten message content to plain text.

    Strings pass through; a list of parts keeps only ``{"type": "text"}``
    entries joined without separator; anything else becomes ``""``.
    """
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        fragments: list[str] = []
        for part in content:
            if isinstance(part, dict) and part.get("type") == "text":
                text = part.get("text")
                if isinstance(text, str):
                    fragments.append(text)
        return "".join(fragments)
    return ""


@timed
def transform_messages(messages: Iterable[Any]) -> list[dict[str, str]]:
    """Reduce chat messages to ``{role, content}`` pairs."""
    transformed: list[dict[str, str]] = []
    for message in messages or []:
        if not isinstance(message, dict):
            LOGGER.debug("Skipping non-dict chat message: %r", type(message).__name__)
            continue
        transformed.append(
            {
                "role": str(message.get("role") or ""),
                "content": _extract_text_content(message.get("content")),
            }
        )
    return transformed


@timed
def build_webhook_body(
    messages: Iterable[Any],
    model_id: str,
    *,
    session_id: Optional[str] = None,
) -> dict[str, Any]:
    """Build the JSON body POSTed to the webhook."""
    transformed = transform_messages(messages)
    chat_input = ""
    for message in reversed(transformed):
        if message["role"] == "user":
            chat_input = message["content"]
            break
    return {
        "sessionId": session_id or generate_session_id(),
        "chatInput": chat_input,
        "messages": transformed,
        "model": model_id,
    }
