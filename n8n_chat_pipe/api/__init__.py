"""HTTP surface and iframe trust boundary."""

from .iframe_auth import (
    cors_headers,
    generate_iframe_token,
    get_authenticated_iframe_url,
    is_origin_allowed,
    token_expiry,
    verify_iframe_token,
)
from .routes import ChatRequest, create_app

__all__ = [
    "cors_headers",
    "generate_iframe_token",
    "get_authenticated_iframe_url",
    "is_origin_allowed",
    "token_expiry",
    "verify_iframe_token",
    "ChatRequest",
    "create_app",
]
