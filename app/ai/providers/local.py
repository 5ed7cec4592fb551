"""Local model backend served through an OpenAI-compatible endpoint (Ollama)."""

import openai
from openai import AsyncOpenAI

from app.ai.providers.openai_chat import OpenAIChatProvider
from app.ai.types import (
    AIModel,
    ContextMode,
    ProviderCapability,
    ProviderRegistration,
    ProviderType,
)
from app.core.logging import get_logger

logger = get_logger(__name__)

# Ollama ignores the key but the SDK requires one
_PLACEHOLDER_API_KEY = "ollama"


class LocalProvider(OpenAIChatProvider):
    """Offline provider; the designated target of the ``local`` summarization strategy."""

    registration = ProviderRegistration(
        id="local",
        name="Local model (Ollama)",
        type=ProviderType.LOCAL,
        context_mode=ContextMode.MANUAL,
        capabilities=frozenset({ProviderCapability.CHAT, ProviderCapability.TEXT}),
        models=(
            AIModel(id="qwen2.5:7b-instruct", name="Qwen 2.5 7B", context_window=32_768, description="Multilingual"),
            AIModel(id="llama3.2:3b", name="Llama 3.2 3B", context_window=8_192, description="Small, balanced"),
            AIModel(id="phi3.5:latest", name="Phi 3.5 Mini", context_window=4_096, description="Compact"),
        ),
        default_model="qwen2.5:7b-instruct",
    )

    @property
    def default_model(self) -> str:
        return self.settings.LOCAL_CHAT_MODEL

    def _build_client(self) -> AsyncOpenAI:
        return AsyncOpenAI(
            api_key=_PLACEHOLDER_API_KEY,
            base_url=self.settings.LOCAL_LLM_BASE_URL,
            timeout=self.settings.PROVIDER_TIMEOUT_SECONDS,
            max_retries=0,
        )

    async def is_available(self) -> bool:
        if self._client is None:
            return False
        try:
            await self._client.models.list()
        except openai.APIError as e:
            logger.warning(f"Local model server unavailable at {self.settings.LOCAL_LLM_BASE_URL}: {e}")
            return False
        return True
