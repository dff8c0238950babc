"""Non-streaming request adapter for the n8n webhook.

Buffered mode reads the whole body and runs it through the same decode
pipeline as streaming mode, so the returned text always equals the
concatenated answer deltas a stream of the same bytes would have produced.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional

import aiohttp

from ..core.errors import WebhookTransportError
from ..core.timing_logger import timed
from ..streaming.constants import DEFAULT_BEGIN_MARKER, DEFAULT_END_MARKER
from ..streaming.pipeline import GenerateResult, decode_buffered_response
from ..streaming.streaming_core import open_webhook_response


class NonStreamingAdapter:
    """Adapter for buffered webhook requests."""

    def __init__(self, logger: Optional[logging.Logger] = None) -> None:
        self.logger = logger or logging.getLogger(__name__)

    @timed
    async def generate(
        self,
        session: aiohttp.ClientSession,
        url: str,
        body: dict[str, Any],
        *,
        begin_marker: str = DEFAULT_BEGIN_MARKER,
        end_marker: str = DEFAULT_END_MARKER,
    ) -> GenerateResult:
        """Send the request, read the full body and return the answer.

        Raises:
            WebhookTransportError: connection, timeout or body read failure.
            WebhookHTTPError: non-2xx status.
            MissingResponseBodyError: success without a readable body.
        """
        response = await open_webhook_response(session, url, body, logger=self.logger)
        try:
            raw = await response.read()
        except (aiohttp.ClientError, asyncio.TimeoutError, OSError) as exc:
            response.close()
            reason = str(exc) or exc.__class__.__name__
            self.logger.warning("Webhook body read from %s failed: %s", url, reason)
            raise WebhookTransportError(url, reason) from exc
        response.release()

        result = decode_buffered_response(
            raw or b"",
            begin_marker=begin_marker,
            end_marker=end_marker,
        )
        self.logger.debug("Webhook buffered response: %d bytes, %d answer chars", len(raw or b""), len(result.text))
        return result
