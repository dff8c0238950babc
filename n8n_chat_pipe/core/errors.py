"""Error types raised by the webhook chat adapter.

The taxonomy mirrors where a failure happens in a session:
- before streaming starts (transport, HTTP status, missing body): raised
  synchronously by the adapters, no event is ever emitted;
- after streaming started: surfaced as StreamAbortedError from the event
  iterator, no finish event follows;
- line-level decode failures never raise (see fragment_decoder).
"""

from __future__ import annotations

from typing import Literal, Optional

AbortCause = Literal["transport", "cancelled"]

_MAX_ERROR_BODY_CHARS = 2000


class WebhookChatError(RuntimeError):
    """Base class for every error reported by the adapter."""


class WebhookTransportError(WebhookChatError):
    """Connection or timeout failure before any byte was streamed."""

    def __init__(self, url: str, reason: str) -> None:
        self.url = url
        self.reason = reason
        super().__init__(f"n8n webhook request to {url} failed: {reason}")


class WebhookHTTPError(WebhookChatError):
    """The webhook answered with a non-2xx status."""

    def __init__(
        self,
        *,
        status: int,
        reason: Optional[str] = None,
        url: Optional[str] = None,
        body: Optional[str] = None,
    ) -> None:
        self.status = status
        self.reason = (reason or "").strip() or None
        self.url = url
        self.body = (body or "")[:_MAX_ERROR_BODY_CHARS]
        super().__init__(f"n8n webhook failed with status {status}")


class MissingResponseBodyError(WebhookChatError):
    """The webhook reported success but supplied no readable body."""

    def __init__(self, status: int) -> None:
        self.status = status
        super().__init__("No response body")


class StreamAbortedError(WebhookChatError):
    """A started stream ended without a finish event.

    ``cause`` tells cancellation apart from transport failure; the event
    sequence observed by the consumer has the same shape for both.
    """

    def __init__(self, cause: AbortCause, detail: Optional[str] = None) -> None:
        self.cause: AbortCause = cause
        self.detail = detail
        message = f"Stream aborted ({cause})"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class UnknownModelError(WebhookChatError, KeyError):
    """Requested model id is not present in the model registry."""

    def __init__(self, model_id: str) -> None:
        self.model_id = model_id
        super().__init__(f"Unknown model: {model_id}")

    def __str__(self) -> str:
        return f"Unknown model: {self.model_id}"


class ModelNotEntitledError(WebhookChatError):
    """Model exists but is not available to the caller's user type."""

    def __init__(self, model_id: str, user_type: str) -> None:
        self.model_id = model_id
        self.user_type = user_type
        super().__init__(f"Model {model_id} is not available to {user_type} users")
