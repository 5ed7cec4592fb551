"""Request-scoped AI provider manager.

Each request builds its own ``AIProviderManager`` from a ``ProviderSelection``
so concurrently running requests never read one another's provider or model.

State machine::

    UNINITIALIZED --initialize(p)--> INITIALIZED(p) --set_model(m)--> MODEL_SELECTED(p, m)

``initialize`` with the active provider id is a no-op; a different id closes
the current backend and sets up the new one. There is no cross-provider
fallback here: a failing backend raises ``ProviderError`` and the caller
decides what to do.
"""

import asyncio
from collections.abc import Awaitable, Callable
from enum import Enum
from typing import TypeVar

from app.ai.providers import AIProvider, create_provider
from app.ai.types import (
    AIResponse,
    GenerationOptions,
    NotInitializedError,
    ProviderSelection,
    ProviderTimeoutError,
)
from app.context.models import ContextWindow
from app.core.config import Settings, get_settings
from app.core.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

ProviderFactory = Callable[[str, Settings], AIProvider]


class ManagerState(str, Enum):
    UNINITIALIZED = "uninitialized"
    INITIALIZED = "initialized"
    MODEL_SELECTED = "model_selected"


class AIProviderManager:
    """Uniform generate() across interchangeable backends for one request."""

    def __init__(
        self,
        settings: Settings | None = None,
        provider_factory: ProviderFactory | None = None,
    ):
        self._settings = settings or get_settings()
        self._factory = provider_factory or create_provider
        self._provider: AIProvider | None = None
        self._model: str | None = None
        self._temperature = self._settings.DEFAULT_TEMPERATURE
        self._max_tokens = self._settings.DEFAULT_MAX_TOKENS

    @classmethod
    async def from_selection(
        cls,
        selection: ProviderSelection | None = None,
        settings: Settings | None = None,
        provider_factory: ProviderFactory | None = None,
    ) -> "AIProviderManager":
        """Build and initialize a manager for one request's provider selection."""
        manager = cls(settings=settings, provider_factory=provider_factory)
        selection = selection or ProviderSelection()
        await manager.initialize(selection.provider_id or manager._settings.DEFAULT_AI_PROVIDER)
        if selection.model:
            manager.set_model(selection.model)
        if selection.temperature is not None:
            manager.set_temperature(selection.temperature)
        if selection.max_tokens is not None:
            manager.set_max_tokens(selection.max_tokens)
        return manager

    @property
    def state(self) -> ManagerState:
        if self._provider is None:
            return ManagerState.UNINITIALIZED
        if self._model is None:
            return ManagerState.INITIALIZED
        return ManagerState.MODEL_SELECTED

    @property
    def provider_id(self) -> str | None:
        return self._provider.id if self._provider else None

    @property
    def model(self) -> str | None:
        """Explicitly selected model, or the provider default once initialized."""
        if self._provider is None:
            return None
        return self._model or self._provider.default_model

    @property
    def provider(self) -> AIProvider:
        return self._require_provider()

    async def initialize(self, provider_id: str) -> None:
        """Activate ``provider_id``; repeated calls with the same id skip setup."""
        if self._provider is not None and self._provider.id == provider_id:
            return

        provider = self._factory(provider_id, self._settings)
        if self._provider is not None:
            logger.info(f"Switching AI provider {self._provider.id} -> {provider_id}")
            await self.close()

        await provider.initialize()
        self._provider = provider
        self._model = None

    def set_model(self, model_id: str) -> None:
        self._require_provider()
        self._model = model_id

    def set_temperature(self, temperature: float) -> None:
        self._temperature = max(0.0, min(2.0, temperature))

    def set_max_tokens(self, max_tokens: int) -> None:
        self._max_tokens = max_tokens

    async def generate(
        self,
        context: ContextWindow,
        prompt: str,
        options: GenerationOptions | None = None,
        timeout: float | None = None,
    ) -> AIResponse:
        """Complete ``prompt`` as the next user turn after ``context``."""
        provider = self._require_provider()
        resolved = self._resolve_options(options)
        return await self._with_deadline(
            lambda: provider.generate(context, prompt, resolved), timeout
        )

    async def generate_text(
        self,
        prompt: str,
        system_prompt: str | None = None,
        options: GenerationOptions | None = None,
        timeout: float | None = None,
    ) -> AIResponse:
        """Single-prompt generation without conversation history."""
        provider = self._require_provider()
        resolved = self._resolve_options(options)
        return await self._with_deadline(
            lambda: provider.generate_text(prompt, resolved, system_prompt=system_prompt),
            timeout,
        )

    async def close(self) -> None:
        if self._provider is not None:
            await self._provider.close()
            self._provider = None
            self._model = None

    async def __aenter__(self) -> "AIProviderManager":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    def _require_provider(self) -> AIProvider:
        if self._provider is None:
            raise NotInitializedError("AI not initialized. Call initialize() first.")
        return self._provider

    def _resolve_options(self, options: GenerationOptions | None) -> GenerationOptions:
        options = options or GenerationOptions()
        return GenerationOptions(
            model=options.model or self.model,
            temperature=options.temperature if options.temperature is not None else self._temperature,
            max_tokens=options.max_tokens if options.max_tokens is not None else self._max_tokens,
            json_mode=options.json_mode,
        )

    async def _with_deadline(
        self, call: Callable[[], Awaitable[T]], timeout: float | None
    ) -> T:
        deadline = timeout if timeout is not None else self._settings.PROVIDER_TIMEOUT_SECONDS
        try:
            return await asyncio.wait_for(call(), timeout=deadline)
        except asyncio.TimeoutError as e:
            raise ProviderTimeoutError(self.provider_id or "unknown", deadline) from e
