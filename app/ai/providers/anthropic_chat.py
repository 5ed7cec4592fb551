"""Anthropic Messages API backend."""

import anthropic
from anthropic import AsyncAnthropic

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

# Messages API rejects a conversation that opens with an assistant turn
_CONVERSATION_START = "(The conversation begins.)"


def to_anthropic_messages(
    messages: list[dict[str, str]],
) -> tuple[str, list[dict[str, str]]]:
    """
    Split role/content messages into a system string and alternating turns.

    System entries are joined into the ``system`` parameter; consecutive
    same-role turns are merged.
    """
    system_parts: list[str] = []
    turns: list[dict[str, str]] = []
    for msg in messages:
        if msg["role"] == "system":
            system_parts.append(msg["content"])
            continue
        if turns and turns[-1]["role"] == msg["role"]:
            turns[-1] = {"role": msg["role"], "content": f"{turns[-1]['content']}\n\n{msg['content']}"}
        else:
            turns.append({"role": msg["role"], "content": msg["content"]})

    if turns and turns[0]["role"] == "assistant":
        turns.insert(0, {"role": "user", "content": _CONVERSATION_START})

    return "\n\n".join(system_parts), turns


class AnthropicProvider(AIProvider):
    registration = ProviderRegistration(
        id="anthropic",
        name="Anthropic (Claude)",
        type=ProviderType.CLOUD,
        context_mode=ContextMode.MANUAL,
        capabilities=frozenset({ProviderCapability.CHAT, ProviderCapability.TEXT}),
        models=(
            AIModel(id="claude-3-5-haiku-20241022", name="Claude 3.5 Haiku", context_window=200_000, description="Fast and cheap"),
            AIModel(id="claude-sonnet-4-5-20250929", name="Claude Sonnet 4.5", context_window=200_000, description="Most capable"),
        ),
        default_model="claude-3-5-haiku-20241022",
    )

    _client: AsyncAnthropic | None = None

    @property
    def default_model(self) -> str:
        return self.settings.ANTHROPIC_CHAT_MODEL

    async def initialize(self) -> None:
        if not self.settings.ANTHROPIC_API_KEY:
            raise ProviderError(
                self.id,
                "Anthropic API key not configured. Please set ANTHROPIC_API_KEY environment variable.",
            )
        self._client = AsyncAnthropic(
            api_key=self.settings.ANTHROPIC_API_KEY,
            timeout=self.settings.PROVIDER_TIMEOUT_SECONDS,
            max_retries=self.settings.PROVIDER_MAX_RETRIES,
        )
        self._initialized = True
        logger.debug(f"Initialized provider {self.id}")

    async def _complete(
        self, messages: list[dict[str, str]], options: GenerationOptions
    ) -> AIResponse:
        if self._client is None:
            raise ProviderError(self.id, "client not initialized")

        model = self.resolve_model(options)
        system, turns = to_anthropic_messages(messages)
        params = {
            "model": model,
            "max_tokens": options.max_tokens or self.settings.DEFAULT_MAX_TOKENS,
            "messages": turns,
        }
        if system:
            params["system"] = system
        if options.temperature is not None:
            params["temperature"] = min(options.temperature, 1.0)

        try:
            response = await self._client.messages.create(**params)
        except anthropic.APITimeoutError as e:
            raise ProviderTimeoutError(self.id, self.settings.PROVIDER_TIMEOUT_SECONDS) from e
        except (anthropic.RateLimitError, anthropic.APIConnectionError) as e:
            raise ProviderError(self.id, str(e), retryable=True) from e
        except anthropic.APIError as e:
            raise ProviderError(self.id, str(e)) from e

        content = "".join(
            block.text for block in response.content if hasattr(block, "text")
        )
        usage = TokenUsage(
            prompt_tokens=response.usage.input_tokens,
            completion_tokens=response.usage.output_tokens,
            total_tokens=response.usage.input_tokens + response.usage.output_tokens,
        )
        return AIResponse(
            content=content.strip(),
            model=response.model or model,
            provider_id=self.id,
            usage=usage,
        )

    async def close(self) -> None:
        if self._client is not None:
            await self._client.close()
            self._client = None
        await super().close()
