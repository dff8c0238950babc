"""Core infrastructure module.

Foundation services required by all domains:
- Configuration schema (Valves, EncryptedStr)
- Error types
- Session logging
- Timing instrumentation
- Pure utility functions
"""

from .config import Valves, EncryptedStr, LOGGER
from .errors import (
    WebhookChatError,
    WebhookTransportError,
    WebhookHTTPError,
    MissingResponseBodyError,
    StreamAbortedError,
    ModelNotEntitledError,
    UnknownModelError,
)
from .logging_system import SessionLogger

__all__ = [
    "Valves",
    "EncryptedStr",
    "LOGGER",
    "WebhookChatError",
    "WebhookTransportError",
    "WebhookHTTPError",
    "MissingResponseBodyError",
    "StreamAbortedError",
    "ModelNotEntitledError",
    "UnknownModelError",
    "SessionLogger",
]
