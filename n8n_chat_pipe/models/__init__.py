"""Model catalog, entitlements and registry."""

from .registry import (
    CHAT_MODELS,
    DEFAULT_CHAT_MODEL,
    ENTITLEMENTS,
    TASK_MODEL_ALIASES,
    ChatModel,
    Entitlements,
    ModelRegistry,
    WebhookChatModel,
    build_default_registry,
    ensure_model_entitled,
)

__all__ = [
    "CHAT_MODELS",
    "DEFAULT_CHAT_MODEL",
    "ENTITLEMENTS",
    "TASK_MODEL_ALIASES",
    "ChatModel",
    "Entitlements",
    "ModelRegistry",
    "WebhookChatModel",
    "build_default_registry",
    "ensure_model_entitled",
]
