"""Configuration management for the n8n chat pipe.

This module contains the configuration schema and constants:
- Valves: Global configuration (webhook URL, timeouts, markers, iframe auth)
- EncryptedStr: Secret value encryption wrapper
- Defaults resolved from environment variables
"""

from __future__ import annotations

import base64
import hashlib
import logging
import os
from typing import Any, Literal, Optional, cast

from cryptography.fernet import Fernet, InvalidToken
from pydantic import BaseModel, Field, GetCoreSchemaHandler, model_validator
from pydantic_core import core_schema

from ..streaming.constants import DEFAULT_BEGIN_MARKER, DEFAULT_END_MARKER
from .timing_logger import timed
from .utils import _split_csv

LOGGER = logging.getLogger(__name__)

# -----------------------------------------------------------------------------
# Constants
# -----------------------------------------------------------------------------

_DEFAULT_PIPE_ID = "n8n_chat_pipe"
_DEFAULT_WEBHOOK_URL = "https://n8n.vitadao.com/webhook/chat"
_DEFAULT_CHAT_MODEL = "prime-intellect/intellect-3"
_SECRET_KEY_ENV = "N8N_PIPE_SECRET_KEY"
_ALLOWED_LOG_LEVELS: tuple[str, ...] = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


# -----------------------------------------------------------------------------
# EncryptedStr
# -----------------------------------------------------------------------------

class EncryptedStr(str):
    """String wrapper that encrypts secret valve values at rest."""

    _ENCRYPTION_PREFIX = "encrypted:"

    @classmethod
    def _get_encryption_key(cls) -> Optional[bytes]:
        """Return the Fernet key derived from ``N8N_PIPE_SECRET_KEY`` or None."""
        secret = os.getenv(_SECRET_KEY_ENV)
        if not secret:
            return None
        hashed_key = hashlib.sha256(secret.encode()).digest()
        return base64.urlsafe_b64encode(hashed_key)

    @classmethod
    def encrypt(cls, value: str) -> str:
        """Encrypt ``value`` when an application secret is configured.

        Returns the ciphertext prefixed with ``encrypted:``, or the original
        value when no key is available or the value is already encrypted.
        """
        if not value or value.startswith(cls._ENCRYPTION_PREFIX):
            return value
        key = cls._get_encryption_key()
        if not key:
            return value
        encrypted = Fernet(key).encrypt(value.encode())
        return f"{cls._ENCRYPTION_PREFIX}{encrypted.decode()}"

    @classmethod
    def decrypt(cls, value: str) -> str:
        """Decrypt values produced by :meth:`encrypt`.

        Returns the plain text, or the original value when decryption fails.
        """
        if not value or not value.startswith(cls._ENCRYPTION_PREFIX):
            return value
        key = cls._get_encryption_key()
        if not key:
            return value[len(cls._ENCRYPTION_PREFIX) :]
        try:
            encrypted_part = value[len(cls._ENCRYPTION_PREFIX) :]
            return Fernet(key).decrypt(encrypted_part.encode()).decode()
        except InvalidToken:
            LOGGER.warning("Failed to decrypt value: invalid token or key mismatch")
            return value
        except (ValueError, UnicodeDecodeError) as exc:
            LOGGER.warning("Failed to decrypt value: %s: %s", type(exc).__name__, exc)
            return value

    @classmethod
    def __get_pydantic_core_schema__(
        cls, _source_type: Any, _handler: GetCoreSchemaHandler
    ) -> core_schema.CoreSchema:
        """Expose a union schema so plain strings auto-wrap as EncryptedStr."""
        return core_schema.union_schema(
            [
                core_schema.is_instance_schema(cls),
                core_schema.chain_schema(
                    [
                        core_schema.str_schema(),
                        core_schema.no_info_plain_validator_function(
                            lambda value: cls(cls.encrypt(value) if value else value)
                        ),
                    ]
                ),
            ],
            serialization=core_schema.plain_serializer_function_ser_schema(
                lambda instance: str(instance)
            ),
        )


# -----------------------------------------------------------------------------
# Environment defaults
# -----------------------------------------------------------------------------

@timed
def _default_iframe_secret() -> EncryptedStr:
    """Return the IFRAME_AUTH_SECRET env default as EncryptedStr."""
    return EncryptedStr((os.getenv("IFRAME_AUTH_SECRET") or "").strip())


@timed
def _resolve_log_level_default() -> Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]:
    """Normalize env-provided log level to the allowed literal set."""
    value = (os.getenv("GLOBAL_LOG_LEVEL") or "INFO").strip().upper()
    if value not in _ALLOWED_LOG_LEVELS:
        value = "INFO"
    return cast(Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"], value)


# -----------------------------------------------------------------------------
# Valves
# -----------------------------------------------------------------------------

class Valves(BaseModel):
    """Global configuration shared across chat sessions."""

    # Webhook backend
    WEBHOOK_URL: str = Field(
        default=((os.getenv("N8N_WEBHOOK_URL") or "").strip() or _DEFAULT_WEBHOOK_URL),
        description="n8n webhook endpoint that receives chat requests. Defaults to the N8N_WEBHOOK_URL environment variable.",
    )
    DEFAULT_MODEL: str = Field(
        default=_DEFAULT_CHAT_MODEL,
        description="Model id used when a chat request does not name one.",
    )
    HTTP_CONNECT_TIMEOUT_SECONDS: int = Field(
        default=10,
        ge=1,
        description="Seconds to wait for the TCP/TLS connection to the webhook before failing.",
    )
    HTTP_TOTAL_TIMEOUT_SECONDS: Optional[int] = Field(
        default=None,
        ge=1,
        description="Overall HTTP timeout (seconds). Null disables it so long-running streams are not interrupted.",
    )
    HTTP_SOCK_READ_SECONDS: int = Field(
        default=300,
        ge=1,
        description="Idle read timeout (seconds) between body chunks when the total timeout is disabled.",
    )

    # Reasoning segmentation
    REASONING_BEGIN_MARKER: str = Field(
        default=DEFAULT_BEGIN_MARKER,
        min_length=1,
        description="Inline marker that opens a reasoning segment inside answer content.",
    )
    REASONING_END_MARKER: str = Field(
        default=DEFAULT_END_MARKER,
        min_length=1,
        description="Inline marker that closes a reasoning segment inside answer content.",
    )

    # Iframe trust boundary
    ALLOWED_IFRAME_ORIGINS: str = Field(
        default=(os.getenv("ALLOWED_IFRAME_ORIGINS") or ""),
        description="Comma-separated origins allowed to embed the chat and request iframe tokens.",
    )
    IFRAME_AUTH_SECRET: EncryptedStr = Field(
        default_factory=_default_iframe_secret,
        description="HMAC secret for daily iframe tokens. Defaults to the IFRAME_AUTH_SECRET environment variable.",
    )

    # Logging
    LOG_LEVEL: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default_factory=_resolve_log_level_default,
        description="Select logging level. INFO or WARNING for production, DEBUG for development.",
    )
    SESSION_LOG_MAX_LINES: int = Field(
        default=2000,
        ge=100,
        le=200000,
        description="Maximum structured log events retained in memory per request.",
    )
    ENABLE_TIMING_LOG: bool = Field(
        default=False,
        description="When True, capture function entrance/exit timing data to TIMING_LOG_FILE.",
    )
    TIMING_LOG_FILE: str = Field(
        default="logs/timing.jsonl",
        description="JSONL file path for timing output when ENABLE_TIMING_LOG is True.",
    )

    @model_validator(mode="after")
    def _check_markers(self) -> "Valves":
        """Reject marker pairs that would make segmentation ambiguous."""
        if self.REASONING_BEGIN_MARKER == self.REASONING_END_MARKER:
            raise ValueError("REASONING_BEGIN_MARKER and REASONING_END_MARKER must differ")
        return self

    def allowed_origins(self) -> list[str]:
        """Return ALLOWED_IFRAME_ORIGINS as a list."""
        return _split_csv(self.ALLOWED_IFRAME_ORIGINS)

    def iframe_secret(self) -> str:
        """Return the decrypted iframe HMAC secret ('' when unset)."""
        return EncryptedStr.decrypt(str(self.IFRAME_AUTH_SECRET or ""))
