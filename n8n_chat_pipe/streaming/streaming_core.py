"""Opening webhook requests and starting streaming sessions.

Everything that can fail before the first event is checked here, so a
failed request never produces a StreamStart:

- connection or timeout errors -> WebhookTransportError
- non-2xx status -> WebhookHTTPError
- success status without a body -> MissingResponseBodyError
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional

import aiohttp

from ..core.errors import MissingResponseBodyError, WebhookHTTPError, WebhookTransportError
from ..core.timing_logger import timed, timing_mark, timing_scope
from .constants import DEFAULT_BEGIN_MARKER, DEFAULT_END_MARKER
from .event_emitter import StreamSession
from .pipeline import DeltaPipeline

LOGGER = logging.getLogger(__name__)

_BODYLESS_STATUSES = frozenset({204, 205})


@timed
async def open_webhook_response(
    session: aiohttp.ClientSession,
    url: str,
    body: dict[str, Any],
    *,
    logger: Optional[logging.Logger] = None,
) -> aiohttp.ClientResponse:
    """POST ``body`` to the webhook and return the validated open response.

    The caller owns the returned response and must release or close it.
    """
    log = logger or LOGGER
    log.debug("Webhook request: POST %s (model=%s)", url, body.get("model"))
    try:
        with timing_scope("webhook_post"):
            response = await session.post(url, json=body)
    except (aiohttp.ClientError, asyncio.TimeoutError, OSError) as exc:
        reason = str(exc) or exc.__class__.__name__
        log.warning("Webhook request to %s failed: %s", url, reason)
        raise WebhookTransportError(url, reason) from exc
    timing_mark("webhook_response_headers")

    if not 200 <= response.status < 300:
        try:
            error_body = await response.text()
        except (aiohttp.ClientError, asyncio.TimeoutError, UnicodeDecodeError, OSError):
            error_body = ""
        finally:
            response.close()
        log.warning("Webhook request failed with status %s", response.status)
        raise WebhookHTTPError(
            status=response.status,
            reason=getattr(response, "reason", None),
            url=url,
            body=error_body,
        )

    if response.status in _BODYLESS_STATUSES or getattr(response, "content", None) is None:
        response.close()
        log.warning("Webhook returned status %s without a body", response.status)
        raise MissingResponseBodyError(response.status)

    return response


class StreamingAdapter:
    """Start streaming sessions against the webhook."""

    def __init__(self, logger: Optional[logging.Logger] = None) -> None:
        self.logger = logger or LOGGER

    @timed
    async def open_stream(
        self,
        session: aiohttp.ClientSession,
        url: str,
        body: dict[str, Any],
        *,
        begin_marker: str = DEFAULT_BEGIN_MARKER,
        end_marker: str = DEFAULT_END_MARKER,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> StreamSession:
        """Send the request and return a session positioned before StreamStart.

        Raises:
            WebhookTransportError: connection or timeout failure.
            WebhookHTTPError: non-2xx status.
            MissingResponseBodyError: success without a readable body.
        """
        pipeline = DeltaPipeline(begin_marker=begin_marker, end_marker=end_marker)
        response = await open_webhook_response(session, url, body, logger=self.logger)
        self.logger.debug("Webhook stream opened (status %s)", response.status)
        return StreamSession(
            response,
            pipeline=pipeline,
            cancel_event=cancel_event,
            logger=self.logger,
        )
