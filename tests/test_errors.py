"""Tests for the error taxonomy and the package's lazy exports."""

from __future__ import annotations

import pytest

import n8n_chat_pipe
from n8n_chat_pipe.core.errors import (
    MissingResponseBodyError,
    StreamAbortedError,
    UnknownModelError,
    WebhookChatError,
    WebhookHTTPError,
    WebhookTransportError,
)


def test_all_errors_share_a_base() -> None:
    for exc in (
        WebhookTransportError("https://x", "refused"),
        WebhookHTTPError(status=500),
        MissingResponseBodyError(204),
        StreamAbortedError("transport"),
        UnknownModelError("m"),
    ):
        assert isinstance(exc, WebhookChatError)
        assert isinstance(exc, RuntimeError)


def test_http_error_truncates_body() -> None:
    exc = WebhookHTTPError(status=500, reason="  ", body="x" * 5000)
    assert len(exc.body) == 2000
    assert exc.reason is None


def test_stream_aborted_message() -> None:
    assert str(StreamAbortedError("cancelled")) == "Stream aborted (cancelled)"
    assert str(StreamAbortedError("transport", "reset")) == "Stream aborted (transport): reset"


def test_lazy_exports_resolve() -> None:
    assert n8n_chat_pipe.StreamAbortedError is StreamAbortedError
    assert n8n_chat_pipe.Pipe.__name__ == "Pipe"
    assert isinstance(n8n_chat_pipe.__version__, str)
    with pytest.raises(AttributeError):
        n8n_chat_pipe.does_not_exist
