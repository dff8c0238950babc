"""Model catalog and registry.

This module handles all model-related functionality:
- ChatModel: user-facing catalog entries
- WebhookChatModel: a model id bound to the webhook backend
- ModelRegistry: read-only id -> factory mapping handed to the Pipe
- ENTITLEMENTS: per user type quotas and model access, checked by
  ensure_model_entitled

Every catalog model is served by the same n8n workflow; the model id only
travels in the request body so the workflow can route it.
"""

from __future__ import annotations

import asyncio
import logging
import math
from dataclasses import dataclass
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Callable, Iterable, Mapping, Optional

import aiohttp

from ..core.errors import ModelNotEntitledError, UnknownModelError
from ..core.timing_logger import timed
from ..requests.nonstreaming_adapter import NonStreamingAdapter
from ..requests.transformer import build_webhook_body
from ..streaming.constants import DEFAULT_BEGIN_MARKER, DEFAULT_END_MARKER
from ..streaming.event_emitter import StreamSession
from ..streaming.pipeline import GenerateResult
from ..streaming.streaming_core import StreamingAdapter

if TYPE_CHECKING:
    from ..core.config import Valves

LOGGER = logging.getLogger(__name__)

# -----------------------------------------------------------------------------
# Catalog
# -----------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class ChatModel:
    id: str
    name: str
    description: str


DEFAULT_CHAT_MODEL = "prime-intellect/intellect-3"

CHAT_MODELS: tuple[ChatModel, ...] = (
    ChatModel(
        id="prime-intellect/intellect-3",
        name="Intellect-3",
        description="Highly capable reasoning model by Prime Intellect",
    ),
    ChatModel(
        id="anthropic/claude-opus-4.5",
        name="Claude Opus 4.5",
        description="Anthropic's most powerful model for complex tasks",
    ),
    ChatModel(
        id="openai/gpt-5",
        name="GPT-5",
        description="OpenAI's latest flagship model",
    ),
)

# Internal task models; routed to the default model, never listed.
TASK_MODEL_ALIASES: Mapping[str, str] = MappingProxyType(
    {
        "title-model": DEFAULT_CHAT_MODEL,
        "artifact-model": DEFAULT_CHAT_MODEL,
    }
)


@dataclass(frozen=True, slots=True)
class Entitlements:
    max_messages_per_day: float
    available_chat_model_ids: tuple[str, ...]


_CATALOG_IDS = tuple(model.id for model in CHAT_MODELS)

ENTITLEMENTS: Mapping[str, Entitlements] = MappingProxyType(
    {
        # Users without an account
        "guest": Entitlements(max_messages_per_day=50, available_chat_model_ids=_CATALOG_IDS),
        # Users with an account
        "regular": Entitlements(max_messages_per_day=math.inf, available_chat_model_ids=_CATALOG_IDS),
    }
)


def ensure_model_entitled(model_id: str, user_type: str) -> None:
    """Raise ModelNotEntitledError unless ``user_type`` may use ``model_id``.

    Task aliases are checked against the model they route to. Daily message
    quotas are not counted here.
    """
    entitlements = ENTITLEMENTS.get(user_type)
    target = TASK_MODEL_ALIASES.get(model_id, model_id)
    if entitlements is None or target not in entitlements.available_chat_model_ids:
        raise ModelNotEntitledError(model_id, user_type)


# -----------------------------------------------------------------------------
# Webhook-backed model
# -----------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class WebhookChatModel:
    """A chat model id served by the n8n webhook."""

    model_id: str
    webhook_url: str
    begin_marker: str = DEFAULT_BEGIN_MARKER
    end_marker: str = DEFAULT_END_MARKER

    def build_request(
        self,
        messages: Iterable[Any],
        *,
        session_id: Optional[str] = None,
    ) -> dict[str, Any]:
        return build_webhook_body(messages, self.model_id, session_id=session_id)

    @timed
    async def do_stream(
        self,
        session: aiohttp.ClientSession,
        messages: Iterable[Any],
        *,
        session_id: Optional[str] = None,
        cancel_event: Optional[asyncio.Event] = None,
        logger: Optional[logging.Logger] = None,
    ) -> StreamSession:
        """Open a streaming session; pre-stream failures raise here."""
        adapter = StreamingAdapter(logger or LOGGER)
        return await adapter.open_stream(
            session,
            self.webhook_url,
            self.build_request(messages, session_id=session_id),
            begin_marker=self.begin_marker,
            end_marker=self.end_marker,
            cancel_event=cancel_event,
        )

    @timed
    async def do_generate(
        self,
        session: aiohttp.ClientSession,
        messages: Iterable[Any],
        *,
        session_id: Optional[str] = None,
        logger: Optional[logging.Logger] = None,
    ) -> GenerateResult:
        adapter = NonStreamingAdapter(logger or LOGGER)
        return await adapter.generate(
            session,
            self.webhook_url,
            self.build_request(messages, session_id=session_id),
            begin_marker=self.begin_marker,
            end_marker=self.end_marker,
        )


# -----------------------------------------------------------------------------
# Registry
# -----------------------------------------------------------------------------

ModelFactory = Callable[[], WebhookChatModel]


class ModelRegistry:
    """Read-only mapping of model id -> model factory.

    Built once at startup and passed to the Pipe; it never changes after
    construction.
    """

    def __init__(self, factories: Mapping[str, ModelFactory]) -> None:
        self._factories: Mapping[str, ModelFactory] = MappingProxyType(dict(factories))

    def __contains__(self, model_id: object) -> bool:
        return model_id in self._factories

    def __len__(self) -> int:
        return len(self._factories)

    def model_ids(self) -> list[str]:
        return list(self._factories)

    @timed
    def get(self, model_id: str) -> WebhookChatModel:
        """Instantiate the model registered under ``model_id``.

        Raises:
            UnknownModelError: ``model_id`` is not registered.
        """
        factory = self._factories.get(model_id)
        if factory is None:
            raise UnknownModelError(model_id)
        return factory()


def _webhook_factory(
    model_id: str,
    webhook_url: str,
    begin_marker: str,
    end_marker: str,
) -> ModelFactory:
    def _factory() -> WebhookChatModel:
        return WebhookChatModel(
            model_id=model_id,
            webhook_url=webhook_url,
            begin_marker=begin_marker,
            end_marker=end_marker,
        )

    return _factory


@timed
def build_default_registry(valves: "Valves") -> ModelRegistry:
    """Register the catalog models and task aliases against the configured webhook."""
    factories: dict[str, ModelFactory] = {}
    for model in CHAT_MODELS:
        factories[model.id] = _webhook_factory(
            model.id,
            valves.WEBHOOK_URL,
            valves.REASONING_BEGIN_MARKER,
            valves.REASONING_END_MARKER,
        )
    for alias, target in TASK_MODEL_ALIASES.items():
        factories[alias] = _webhook_factory(
            target,
            valves.WEBHOOK_URL,
            valves.REASONING_BEGIN_MARKER,
            valves.REASONING_END_MARKER,
        )
    LOGGER.debug("Model registry built with %d entries", len(factories))
    return ModelRegistry(factories)
