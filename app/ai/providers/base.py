"""Abstract backend interface for chat-capable language model providers."""

from abc import ABC, abstractmethod

from app.ai.types import (
    AIResponse,
    GenerationOptions,
    ProviderCapability,
    ProviderError,
    ProviderRegistration,
)
from app.context.models import ContextWindow
from app.core.config import Settings, get_settings


class AIProvider(ABC):
    """
    One concrete backend.

    Subclasses declare a ``registration`` and implement ``initialize`` and
    ``_complete``. The chat (``generate``) and text (``generate_text``)
    capabilities are built on ``_complete`` here so every backend renders
    context windows the same way.
    """

    registration: ProviderRegistration

    def __init__(self, settings: Settings | None = None):
        self.settings = settings or get_settings()
        self._initialized = False

    @property
    def id(self) -> str:
        return self.registration.id

    @property
    def initialized(self) -> bool:
        return self._initialized

    @abstractmethod
    async def initialize(self) -> None:
        """Create clients and validate credentials."""

    @abstractmethod
    async def _complete(
        self, messages: list[dict[str, str]], options: GenerationOptions
    ) -> AIResponse:
        """Send role/content messages to the backend and return its reply."""

    async def generate(
        self, context: ContextWindow, message: str, options: GenerationOptions
    ) -> AIResponse:
        """Chat capability: the context window followed by ``message`` as the user turn."""
        self._require(ProviderCapability.CHAT)
        messages = context.as_chat_messages()
        messages.append({"role": "user", "content": message})
        return await self._complete(messages, options)

    async def generate_text(
        self, prompt: str, options: GenerationOptions, system_prompt: str | None = None
    ) -> AIResponse:
        """Text capability: a single prompt with no conversation history."""
        self._require(ProviderCapability.TEXT)
        messages = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": prompt})
        return await self._complete(messages, options)

    async def is_available(self) -> bool:
        return self._initialized

    async def close(self) -> None:
        self._initialized = False

    @property
    def default_model(self) -> str:
        return self.registration.default_model

    def resolve_model(self, options: GenerationOptions) -> str:
        return options.model or self.default_model

    def _require(self, capability: ProviderCapability) -> None:
        if not self.registration.supports(capability):
            raise ProviderError(self.id, f"provider does not support {capability.value}")
