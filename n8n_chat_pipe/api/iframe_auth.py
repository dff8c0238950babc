"""Iframe embedding trust boundary.

Embedding sites obtain a daily token bound to their origin:

    token = hex(HMAC-SHA256(secret, origin + "YYYY-MM-DD"))

The date is the UTC calendar day, so tokens roll over at UTC midnight.
Origin matching is intentionally loose (substring in either direction after
dropping the scheme); ``"dao.com"`` therefore also admits ``"notdao.com"``.
"""

from __future__ import annotations

import datetime
import hashlib
import hmac
from typing import Iterable, Optional
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from ..core.timing_logger import timed
from ..core.utils import _utc_today

IFRAME_TOKEN_PARAM = "iframe_token"
TOKEN_TTL = datetime.timedelta(hours=24)

_CORS_ALLOW_METHODS = "GET, POST, OPTIONS"
_CORS_ALLOW_HEADERS = "Content-Type, Authorization"


@timed
def generate_iframe_token(
    origin: str,
    secret: str,
    *,
    today: Optional[datetime.datetime] = None,
) -> str:
    """Return the hex token for ``origin`` on the current UTC day."""
    message = f"{origin}{_utc_today(today)}".encode("utf-8")
    return hmac.new(secret.encode("utf-8"), message, hashlib.sha256).hexdigest()


@timed
def verify_iframe_token(
    token: str,
    origin: str,
    secret: str,
    *,
    today: Optional[datetime.datetime] = None,
) -> bool:
    """Constant-time check of ``token``; malformed input yields False."""
    try:
        provided = bytes.fromhex(token)
    except (TypeError, ValueError):
        return False
    expected = bytes.fromhex(generate_iframe_token(origin, secret, today=today))
    return hmac.compare_digest(provided, expected)


def _strip_scheme(value: str) -> str:
    return value.replace("https://", "", 1).replace("http://", "", 1)


@timed
def is_origin_allowed(origin: str, allowed_origins: Iterable[str]) -> bool:
    clean_origin = _strip_scheme(origin)
    for allowed in allowed_origins:
        clean_allowed = _strip_scheme(allowed)
        if clean_allowed in clean_origin or clean_origin in clean_allowed:
            return True
    return False


@timed
def get_authenticated_iframe_url(
    base_url: str,
    origin: str,
    secret: str,
    *,
    today: Optional[datetime.datetime] = None,
) -> str:
    """Return ``base_url`` with the ``iframe_token`` query parameter set."""
    token = generate_iframe_token(origin, secret, today=today)
    parts = urlsplit(base_url)
    query = [(key, value) for key, value in parse_qsl(parts.query, keep_blank_values=True) if key != IFRAME_TOKEN_PARAM]
    query.append((IFRAME_TOKEN_PARAM, token))
    return urlunsplit(parts._replace(query=urlencode(query)))


def token_expiry(now: Optional[datetime.datetime] = None) -> str:
    """ISO-8601 UTC timestamp 24 hours from ``now``."""
    current = now or datetime.datetime.now(datetime.timezone.utc)
    expires = (current + TOKEN_TTL).astimezone(datetime.timezone.utc)
    return expires.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def cors_headers(origin: str) -> dict[str, str]:
    return {
        "Access-Control-Allow-Origin": origin,
        "Access-Control-Allow-Methods": _CORS_ALLOW_METHODS,
        "Access-Control-Allow-Headers": _CORS_ALLOW_HEADERS,
        "Access-Control-Allow-Credentials": "true",
    }
