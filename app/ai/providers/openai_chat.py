"""OpenAI Chat Completions backend (history is submitted every call)."""

import openai
from openai import AsyncOpenAI

from app.ai.providers.base import AIProvider
from app.ai.types import (
    AIModel,
    AIResponse,
    ContextMode,
    GenerationOptions,
    ProviderCapability,
    ProviderError,
    ProviderRegistration,
    ProviderTimeoutError,
    ProviderType,
    TokenUsage,
)
from app.core.logging import get_logger

logger = get_logger(__name__)


class OpenAIChatProvider(AIProvider):
    registration = ProviderRegistration(
        id="openai-chat",
        name="OpenAI (Chat)",
        type=ProviderType.CLOUD,
        context_mode=ContextMode.MANUAL,
        capabilities=frozenset(
            {ProviderCapability.CHAT, ProviderCapability.TEXT, ProviderCapability.JSON_MODE}
        ),
        models=(
            AIModel(id="gpt-4o-mini", name="GPT-4o Mini", context_window=128_000, description="Fast and affordable"),
            AIModel(id="gpt-4o", name="GPT-4o", context_window=128_000, description="Most capable"),
            AIModel(id="gpt-4-turbo", name="GPT-4 Turbo", context_window=128_000, description="High performance"),
            AIModel(id="gpt-3.5-turbo", name="GPT-3.5 Turbo", context_window=16_385, description="Legacy, fast"),
        ),
        default_model="gpt-4o",
    )

    _client: AsyncOpenAI | None = None

    @property
    def default_model(self) -> str:
        return self.settings.DEFAULT_CHAT_MODEL

    def _build_client(self) -> AsyncOpenAI:
        if not self.settings.OPENAI_API_KEY:
            raise ProviderError(
                self.id,
                "OpenAI API key not configured. Please set OPENAI_API_KEY environment variable.",
            )
        return AsyncOpenAI(
            api_key=self.settings.OPENAI_API_KEY,
            timeout=self.settings.PROVIDER_TIMEOUT_SECONDS,
            max_retries=self.settings.PROVIDER_MAX_RETRIES,
        )

    async def initialize(self) -> None:
        self._client = self._build_client()
        self._initialized = True
        logger.debug(f"Initialized provider {self.id}")

    async def _complete(
        self, messages: list[dict[str, str]], options: GenerationOptions
    ) -> AIResponse:
        if self._client is None:
            raise ProviderError(self.id, "client not initialized")

        model = self.resolve_model(options)
        params = {"model": model, "messages": messages}
        if options.temperature is not None:
            params["temperature"] = options.temperature
        if options.max_tokens is not None:
            params["max_tokens"] = options.max_tokens
        if options.json_mode and self.registration.supports(ProviderCapability.JSON_MODE):
            params["response_format"] = {"type": "json_object"}

        try:
            response = await self._client.chat.completions.create(**params)
        except openai.APITimeoutError as e:
            raise ProviderTimeoutError(self.id, self.settings.PROVIDER_TIMEOUT_SECONDS) from e
        except (openai.RateLimitError, openai.APIConnectionError) as e:
            raise ProviderError(self.id, str(e), retryable=True) from e
        except openai.APIError as e:
            raise ProviderError(self.id, str(e)) from e

        if not response.choices:
            raise ProviderError(self.id, "response contained no choices")
        choice = response.choices[0]
        usage = None
        if response.usage:
            usage = TokenUsage(
                prompt_tokens=response.usage.prompt_tokens,
                completion_tokens=response.usage.completion_tokens,
                total_tokens=response.usage.total_tokens,
            )
        return AIResponse(
            content=choice.message.content or "",
            model=response.model or model,
            provider_id=self.id,
            usage=usage,
        )

    async def close(self) -> None:
        if self._client is not None:
            await self._client.close()
            self._client = None
        await super().close()
