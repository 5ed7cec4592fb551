"""Tests for rolling conversation summarization."""

from datetime import datetime, timezone
from unittest.mock import MagicMock, patch

import pytest

from app.ai.manager import AIProviderManager
from app.ai.types import ProviderError
from app.context.models import Message, MessageRole, SummarizationStrategy
from app.context.summarizer import (
    MAX_CHARS_PER_MESSAGE,
    SUMMARIZER_SYSTEM_PROMPT,
    SummarizationFailedError,
    Summarizer,
    format_transcript,
)
from app.core.config import Settings
from tests.fakes.fake_provider import FakeProvider, provider_factory


def _messages(count: int, start: int = 0) -> list[Message]:
    return [
        Message(
            id=f"m{seq}",
            chat_id="chat-1",
            role=MessageRole.USER if seq % 2 == 0 else MessageRole.ASSISTANT,
            content=f"line {seq}",
            sequence=seq,
            created_at=datetime.now(timezone.utc),
        )
        for seq in range(start, start + count)
    ]


async def _active(provider: FakeProvider, settings: Settings | None = None) -> AIProviderManager:
    ai = AIProviderManager(settings=settings, provider_factory=provider_factory(provider))
    await ai.initialize(provider.id)
    return ai


def test_format_transcript_labels_and_clips():
    messages = _messages(2)
    long = messages[1].model_copy(update={"content": "x" * (MAX_CHARS_PER_MESSAGE + 50)})

    transcript = format_transcript([messages[0], long])
    first, second = transcript.split("\n")

    assert first == "Learner: line 0"
    assert second.startswith("Tutor: ")
    assert second.endswith("...")
    assert len(second) == len("Tutor: ") + MAX_CHARS_PER_MESSAGE + 3


class TestSameStrategy:
    @pytest.mark.asyncio
    async def test_uses_active_provider(self):
        provider = FakeProvider(responses=["  They talked about the weather.  "])
        summarizer = Summarizer(await _active(provider))

        text = await summarizer.summarize(None, _messages(6), SummarizationStrategy.SAME)

        assert text == "They talked about the weather."
        messages, options = provider.calls[0]
        assert messages[0] == {"role": "system", "content": SUMMARIZER_SYSTEM_PROMPT}
        assert "Learner: line 0" in messages[1]["content"]
        assert "EARLIER SUMMARY" not in messages[1]["content"]
        assert options.temperature == 0.3
        assert options.max_tokens == 500

    @pytest.mark.asyncio
    async def test_previous_summary_is_merged(self):
        provider = FakeProvider(responses=["merged"])
        summarizer = Summarizer(await _active(provider))

        await summarizer.summarize("Earlier they met.", _messages(3, start=6), SummarizationStrategy.SAME)

        prompt = provider.calls[0][0][-1]["content"]
        assert "EARLIER SUMMARY:\nEarlier they met." in prompt
        assert "Learner: line 6" in prompt

    @pytest.mark.asyncio
    async def test_provider_error_becomes_summarization_failure(self):
        provider = FakeProvider(error=ProviderError("fake", "quota exceeded"))
        summarizer = Summarizer(await _active(provider))

        with pytest.raises(SummarizationFailedError, match="quota exceeded"):
            await summarizer.summarize(None, _messages(6), SummarizationStrategy.SAME)

    @pytest.mark.asyncio
    async def test_unexpected_backend_error_becomes_summarization_failure(self):
        provider = FakeProvider(error=IndexError("list index out of range"))
        summarizer = Summarizer(await _active(provider))

        with pytest.raises(SummarizationFailedError, match="list index out of range") as exc_info:
            await summarizer.summarize(None, _messages(6), SummarizationStrategy.SAME)

        assert isinstance(exc_info.value.__cause__, IndexError)

    @pytest.mark.asyncio
    async def test_tokenizer_error_becomes_summarization_failure(self):
        provider = FakeProvider()
        summarizer = Summarizer(await _active(provider))
        budget = MagicMock()
        budget.truncate_text.side_effect = ConnectionError("cannot download cl100k_base")

        with patch("app.context.summarizer.get_budget_manager", return_value=budget):
            with pytest.raises(SummarizationFailedError, match="cl100k_base"):
                await summarizer.summarize(None, _messages(6), SummarizationStrategy.SAME)

        assert provider.calls == []

    @pytest.mark.asyncio
    async def test_timeout_becomes_summarization_failure(self):
        settings = Settings(SUMMARY_TIMEOUT_SECONDS=0.01)
        provider = FakeProvider(delay=1.0)
        summarizer = Summarizer(await _active(provider, settings), settings=settings)

        with pytest.raises(SummarizationFailedError, match="timed out"):
            await summarizer.summarize(None, _messages(6), SummarizationStrategy.SAME)

    @pytest.mark.asyncio
    async def test_empty_output_is_a_failure(self):
        summarizer = Summarizer(await _active(FakeProvider(responses=[""])))

        with pytest.raises(SummarizationFailedError):
            await summarizer.summarize(None, _messages(6), SummarizationStrategy.SAME)

    @pytest.mark.asyncio
    async def test_nothing_to_summarize_is_a_failure(self):
        provider = FakeProvider()
        summarizer = Summarizer(await _active(provider))

        with pytest.raises(SummarizationFailedError):
            await summarizer.summarize("prior", [], SummarizationStrategy.SAME)
        assert provider.calls == []

    @pytest.mark.asyncio
    async def test_uninitialized_manager_is_a_failure(self):
        summarizer = Summarizer(AIProviderManager())

        with pytest.raises(SummarizationFailedError, match="not initialized"):
            await summarizer.summarize(None, _messages(6), SummarizationStrategy.SAME)


class TestLocalStrategy:
    @pytest.mark.asyncio
    async def test_routes_to_local_provider(self):
        active = FakeProvider(provider_id="openai-chat")
        local = FakeProvider(provider_id="local", responses=["local summary"])
        settings = Settings(SUMMARY_LOCAL_MODEL="llama3.2:3b")
        factory = provider_factory(local)

        with patch(
            "app.context.summarizer.AIProviderManager",
            side_effect=lambda settings: AIProviderManager(settings=settings, provider_factory=factory),
        ):
            summarizer = Summarizer(await _active(active), settings=settings)
            text = await summarizer.summarize(None, _messages(6), SummarizationStrategy.LOCAL)

        assert text == "local summary"
        assert active.calls == []
        assert local.calls[0][1].model == "llama3.2:3b"
        # The secondary manager is closed after use
        assert local.closed

    @pytest.mark.asyncio
    async def test_local_provider_failure_is_reported(self):
        local = FakeProvider(provider_id="local", init_error=ProviderError("local", "connection refused"))
        factory = provider_factory(local)

        with patch(
            "app.context.summarizer.AIProviderManager",
            side_effect=lambda settings: AIProviderManager(settings=settings, provider_factory=factory),
        ):
            summarizer = Summarizer(await _active(FakeProvider()))
            with pytest.raises(SummarizationFailedError, match="connection refused"):
                await summarizer.summarize(None, _messages(6), SummarizationStrategy.LOCAL)
