"""Chat adapter for n8n webhook workflows.

This package turns an n8n chat webhook into a chat model backend:
- Core: configuration, errors, session logging, timing
- Streaming: line splitting, envelope decoding, reasoning segmentation,
  stream sessions
- Requests: webhook body construction, buffered requests
- Models: catalog, entitlements, registry
- API: iframe token trust boundary and the FastAPI surface
- Pipe: composition root

Attributes are loaded lazily on first access so that importing the package
does not pull in FastAPI or open network resources.
"""

from typing import TYPE_CHECKING

try:
    from importlib.metadata import PackageNotFoundError, version as _get_version
    __version__ = _get_version("n8n-chat-pipe")
except PackageNotFoundError:
    __version__ = "0.1.0"  # Fallback if not installed as package

if TYPE_CHECKING:
    from .pipe import Pipe
    from .core.config import Valves, EncryptedStr
    from .core.errors import (
        WebhookChatError,
        WebhookTransportError,
        WebhookHTTPError,
        MissingResponseBodyError,
        StreamAbortedError,
        ModelNotEntitledError,
        UnknownModelError,
    )
    from .core.logging_system import SessionLogger
    from .streaming.event_emitter import StreamSession
    from .streaming.events import StreamStart, TextDelta, ReasoningDelta, StreamFinish, Usage
    from .streaming.pipeline import GenerateResult, decode_buffered_response
    from .models.registry import ModelRegistry, WebhookChatModel, build_default_registry
    from .api.routes import create_app

_cache: dict[str, object] = {}

_LAZY_IMPORTS: dict[str, tuple[str, str]] = {
    # Core
    "Valves": (".core.config", "Valves"),
    "EncryptedStr": (".core.config", "EncryptedStr"),
    "WebhookChatError": (".core.errors", "WebhookChatError"),
    "WebhookTransportError": (".core.errors", "WebhookTransportError"),
    "WebhookHTTPError": (".core.errors", "WebhookHTTPError"),
    "MissingResponseBodyError": (".core.errors", "MissingResponseBodyError"),
    "StreamAbortedError": (".core.errors", "StreamAbortedError"),
    "ModelNotEntitledError": (".core.errors", "ModelNotEntitledError"),
    "UnknownModelError": (".core.errors", "UnknownModelError"),
    "SessionLogger": (".core.logging_system", "SessionLogger"),

    # Streaming
    "StreamSession": (".streaming.event_emitter", "StreamSession"),
    "StreamStart": (".streaming.events", "StreamStart"),
    "TextDelta": (".streaming.events", "TextDelta"),
    "ReasoningDelta": (".streaming.events", "ReasoningDelta"),
    "StreamFinish": (".streaming.events", "StreamFinish"),
    "Usage": (".streaming.events", "Usage"),
    "GenerateResult": (".streaming.pipeline", "GenerateResult"),
    "decode_buffered_response": (".streaming.pipeline", "decode_buffered_response"),

    # Models
    "ModelRegistry": (".models.registry", "ModelRegistry"),
    "WebhookChatModel": (".models.registry", "WebhookChatModel"),
    "build_default_registry": (".models.registry", "build_default_registry"),

    # Pipe and HTTP surface
    "Pipe": (".pipe", "Pipe"),
    "create_app": (".api.routes", "create_app"),
}


def __getattr__(name: str):
    """Lazy-load package attributes on first access."""
    if name in _cache:
        return _cache[name]

    if name in _LAZY_IMPORTS:
        module_path, attr_name = _LAZY_IMPORTS[name]
        import importlib
        module = importlib.import_module(module_path, __name__)
        value = getattr(module, attr_name)
        _cache[name] = value
        globals()[name] = value
        return value

    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


__all__ = ["__version__", *_LAZY_IMPORTS]
