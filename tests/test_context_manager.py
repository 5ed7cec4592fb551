"""Tests for per-turn context assembly.

Storage is the in-memory FakeChatStore; summarization runs through a real
Summarizer and AIProviderManager backed by a scripted FakeProvider.
"""

import pytest

from app.ai.manager import AIProviderManager
from app.ai.types import ProviderError
from app.context.context_manager import ContextManager
from app.context.models import SUMMARY_ENTRY_HEADER, ContextSettings
from app.context.token_budget import TokenBudgetManager
from tests.fakes.fake_provider import FakeProvider, provider_factory

CHAT_ID = "chat-1"
SYSTEM_PROMPT = "You are a language tutor."


async def _manager(provider: FakeProvider, **settings) -> ContextManager:
    ai = AIProviderManager(provider_factory=provider_factory(provider))
    await ai.initialize(provider.id)
    return ContextManager(ai, settings=ContextSettings(**settings))


def _summarization_calls(provider: FakeProvider):
    return [messages for messages, _ in provider.calls]


class TestVerbatimPaths:
    @pytest.mark.asyncio
    async def test_short_chat_is_sent_verbatim(self, chat_store):
        chat_store.add_messages(CHAT_ID, 9)
        provider = FakeProvider()
        manager = await _manager(provider)

        window = await manager.build_context(CHAT_ID, SYSTEM_PROMPT)

        assert window.summary is None
        assert window.verbatim_sequences == list(range(9))
        assert not window.degraded
        assert provider.calls == []

    @pytest.mark.asyncio
    async def test_head_below_threshold_is_sent_verbatim(self, chat_store):
        # head = 14 - 10 = 4 < 5
        chat_store.add_messages(CHAT_ID, 14)
        provider = FakeProvider()
        manager = await _manager(provider, recent_window_size=10, summarize_after_messages=5)

        window = await manager.build_context(CHAT_ID, SYSTEM_PROMPT)

        assert window.summary is None
        assert window.verbatim_sequences == list(range(14))
        assert provider.calls == []
        assert chat_store.put_calls == []

    @pytest.mark.asyncio
    async def test_disabled_summarization_sends_everything(self, chat_store):
        chat_store.add_messages(CHAT_ID, 1000)
        provider = FakeProvider()
        manager = await _manager(provider, disable_summarization=True)

        window = await manager.build_context(CHAT_ID, SYSTEM_PROMPT)

        assert len(window.messages) == 1000
        assert window.summary is None
        assert provider.calls == []

    @pytest.mark.asyncio
    async def test_empty_chat(self, chat_store):
        manager = await _manager(FakeProvider())

        window = await manager.build_context(CHAT_ID, SYSTEM_PROMPT)

        assert window.messages == []
        assert [e.role for e in window.entries] == ["system"]


class TestSummarization:
    @pytest.mark.asyncio
    async def test_head_at_threshold_is_summarized(self, chat_store):
        chat_store.add_messages(CHAT_ID, 16)
        provider = FakeProvider(responses=["The learner ordered coffee."])
        manager = await _manager(provider, recent_window_size=10, summarize_after_messages=5)

        window = await manager.build_context(CHAT_ID, SYSTEM_PROMPT)

        assert window.summary == "The learner ordered coffee."
        assert window.covered_range.start_seq == 0
        assert window.covered_range.end_seq == 5
        assert window.verbatim_sequences == list(range(6, 16))

        # One summarization call over exactly the head
        calls = _summarization_calls(provider)
        assert len(calls) == 1
        prompt = calls[0][-1]["content"]
        assert "Learner: message 0" in prompt
        assert "Tutor: message 5" in prompt
        assert "message 6" not in prompt

        stored = chat_store.get_latest_summary(CHAT_ID)
        assert stored.covered_range.end_seq == 5

    @pytest.mark.asyncio
    async def test_window_entries_are_ordered_and_unique(self, chat_store):
        chat_store.add_messages(CHAT_ID, 30)
        manager = await _manager(
            FakeProvider(responses=["summary"]), recent_window_size=10, summarize_after_messages=5
        )

        window = await manager.build_context(CHAT_ID, SYSTEM_PROMPT)
        entries = window.entries

        assert entries[0].role == "system"
        assert entries[0].content == SYSTEM_PROMPT
        assert entries[1].content.startswith(SUMMARY_ENTRY_HEADER)
        assert window.verbatim_sequences == sorted(set(window.verbatim_sequences))
        assert all(seq > window.covered_range.end_seq for seq in window.verbatim_sequences)
        assert len(entries) == 2 + 10

    @pytest.mark.asyncio
    async def test_repeated_builds_reuse_the_stored_summary(self, chat_store):
        chat_store.add_messages(CHAT_ID, 20)
        provider = FakeProvider(responses=["first summary"])
        manager = await _manager(provider, recent_window_size=10, summarize_after_messages=5)

        first = await manager.build_context(CHAT_ID, SYSTEM_PROMPT)
        second = await manager.build_context(CHAT_ID, SYSTEM_PROMPT)

        assert first == second
        assert len(provider.calls) == 1
        assert len(chat_store.summaries) == 1

    @pytest.mark.asyncio
    async def test_summary_is_extended_over_new_head_messages(self, chat_store):
        chat_store.add_messages(CHAT_ID, 16)
        provider = FakeProvider(responses=["first summary", "merged summary"])
        manager = await _manager(provider, recent_window_size=10, summarize_after_messages=5)
        await manager.build_context(CHAT_ID, SYSTEM_PROMPT)

        chat_store.add_messages(CHAT_ID, 3)
        window = await manager.build_context(CHAT_ID, SYSTEM_PROMPT)

        assert window.summary == "merged summary"
        assert (window.covered_range.start_seq, window.covered_range.end_seq) == (0, 8)
        assert window.verbatim_sequences == list(range(9, 19))

        # Only the uncovered messages are re-read, folded into the earlier text
        merge_prompt = provider.calls[1][0][-1]["content"]
        assert "first summary" in merge_prompt
        assert "message 6" in merge_prompt
        assert "message 8" in merge_prompt
        assert "message 5" not in merge_prompt

        assert len(chat_store.summaries) == 2
        assert chat_store.get_latest_summary(CHAT_ID).text == "merged summary"

    @pytest.mark.asyncio
    async def test_summary_past_head_boundary_is_reused_without_duplicates(self, chat_store):
        # Written by an earlier turn that ran with a smaller recent window
        chat_store.add_messages(CHAT_ID, 16)
        chat_store.add_summary(CHAT_ID, 0, 12, "long summary")
        provider = FakeProvider()
        manager = await _manager(provider, recent_window_size=10, summarize_after_messages=5)

        window = await manager.build_context(CHAT_ID, SYSTEM_PROMPT)

        assert window.summary == "long summary"
        assert window.verbatim_sequences == [13, 14, 15]
        assert provider.calls == []

    @pytest.mark.asyncio
    async def test_summary_not_anchored_at_first_message_is_ignored(self, chat_store):
        chat_store.add_messages(CHAT_ID, 16)
        chat_store.add_summary(CHAT_ID, 3, 5, "partial summary")
        provider = FakeProvider(responses=["fresh summary"])
        manager = await _manager(provider, recent_window_size=10, summarize_after_messages=5)

        window = await manager.build_context(CHAT_ID, SYSTEM_PROMPT)

        assert window.summary == "fresh summary"
        assert window.covered_range.start_seq == 0
        prompt = provider.calls[0][0][-1]["content"]
        assert "partial summary" not in prompt

    @pytest.mark.asyncio
    async def test_thread_reads_its_own_summary(self, chat_store):
        chat_store.add_messages(CHAT_ID, 16)
        chat_store.add_summary(CHAT_ID, 0, 5, "main line summary")
        provider = FakeProvider(responses=["thread summary"])
        manager = await _manager(provider, recent_window_size=10, summarize_after_messages=5)

        window = await manager.build_context(CHAT_ID, SYSTEM_PROMPT, thread_id="thread-a")

        assert window.summary == "thread summary"
        assert window.thread_id == "thread-a"
        assert chat_store.get_latest_summary(CHAT_ID, "thread-a").text == "thread summary"
        assert chat_store.get_latest_summary(CHAT_ID).text == "main line summary"


class TestWindowPartition:
    """Summary range plus verbatim messages account for every message exactly once."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("seeded", [False, True])
    @pytest.mark.parametrize("threshold", [5, 30])
    @pytest.mark.parametrize("window_size", [5, 10, 50])
    @pytest.mark.parametrize("count", range(0, 61, 3))
    async def test_every_message_is_summarized_or_verbatim(
        self, chat_store, count, window_size, threshold, seeded
    ):
        chat_store.add_messages(CHAT_ID, count)
        if seeded and count:
            chat_store.add_summary(CHAT_ID, 0, count // 3, "earlier summary")
        manager = await _manager(
            FakeProvider(), recent_window_size=window_size, summarize_after_messages=threshold
        )

        window = await manager.build_context(CHAT_ID, SYSTEM_PROMPT)

        verbatim = window.verbatim_sequences
        covered = []
        if window.covered_range is not None:
            covered = list(range(window.covered_range.start_seq, window.covered_range.end_seq + 1))

        assert all(a < b for a, b in zip(verbatim, verbatim[1:]))
        assert set(covered).isdisjoint(verbatim)
        assert covered + verbatim == list(range(count))
        assert (window.summary is None) == (window.covered_range is None)
        if not seeded:
            tail = list(range(max(count - window_size, 0), count))
            assert verbatim[len(verbatim) - len(tail):] == tail


class TestDegradedPaths:
    @pytest.mark.asyncio
    async def test_summarization_failure_falls_back_to_full_history(self, chat_store):
        chat_store.add_messages(CHAT_ID, 40)
        provider = FakeProvider(error=ProviderError("fake", "upstream unavailable"))
        manager = await _manager(provider, recent_window_size=10, summarize_after_messages=5)

        window = await manager.build_context(CHAT_ID, SYSTEM_PROMPT)

        assert window.degraded
        assert window.summary is None
        assert window.verbatim_sequences == list(range(40))
        assert chat_store.summaries == []
        assert chat_store.put_calls == []

    @pytest.mark.asyncio
    async def test_empty_summary_falls_back_to_full_history(self, chat_store):
        chat_store.add_messages(CHAT_ID, 16)
        provider = FakeProvider(responses=["   "])
        manager = await _manager(provider, recent_window_size=10, summarize_after_messages=5)

        window = await manager.build_context(CHAT_ID, SYSTEM_PROMPT)

        assert window.degraded
        assert len(window.messages) == 16
        assert chat_store.summaries == []

    @pytest.mark.asyncio
    async def test_unexpected_backend_error_falls_back_to_full_history(self, chat_store):
        chat_store.add_messages(CHAT_ID, 16)
        provider = FakeProvider(error=IndexError("list index out of range"))
        manager = await _manager(provider, recent_window_size=10, summarize_after_messages=5)

        window = await manager.build_context(CHAT_ID, SYSTEM_PROMPT)

        assert window.degraded
        assert window.verbatim_sequences == list(range(16))
        assert chat_store.put_calls == []

    @pytest.mark.asyncio
    async def test_tokenizer_load_failure_falls_back_to_full_history(self, chat_store, monkeypatch):
        for seq in range(20):
            role = "user" if seq % 2 == 0 else "assistant"
            chat_store.append_message(CHAT_ID, role, f"{seq} " + "x" * 2000)

        def offline(name):
            raise ConnectionError("cannot download cl100k_base")

        monkeypatch.setattr("app.context.token_budget.tiktoken.get_encoding", offline)
        monkeypatch.setattr(
            "app.context.summarizer.get_budget_manager", lambda: TokenBudgetManager()
        )
        provider = FakeProvider()
        manager = await _manager(provider, recent_window_size=10, summarize_after_messages=5)

        window = await manager.build_context(CHAT_ID, SYSTEM_PROMPT)

        assert window.degraded
        assert window.verbatim_sequences == list(range(20))
        assert provider.calls == []
        assert chat_store.put_calls == []

    @pytest.mark.asyncio
    async def test_persistence_failure_still_uses_the_summary(self, chat_store):
        chat_store.add_messages(CHAT_ID, 16)
        chat_store.fail_put = True
        provider = FakeProvider(responses=["unsaved summary"])
        manager = await _manager(provider, recent_window_size=10, summarize_after_messages=5)

        window = await manager.build_context(CHAT_ID, SYSTEM_PROMPT)

        assert not window.degraded
        assert window.summary == "unsaved summary"
        assert window.verbatim_sequences == list(range(6, 16))
        assert chat_store.summaries == []

    @pytest.mark.asyncio
    async def test_stale_write_yields_to_the_longer_stored_summary(self, chat_store):
        chat_store.add_messages(CHAT_ID, 16)
        provider = FakeProvider(responses=["short summary"])
        manager = await _manager(provider, recent_window_size=10, summarize_after_messages=5)

        # A concurrent writer commits a longer range between read and write
        original_put = chat_store.put_summary

        def racing_put(chat_id, thread_id, covered_range, text):
            chat_store.add_summary(chat_id, 0, 9, "longer summary")
            return original_put(chat_id, thread_id, covered_range, text)

        chat_store.put_summary = racing_put
        with chat_store.patched():
            window = await manager.build_context(CHAT_ID, SYSTEM_PROMPT)

        assert window.summary == "longer summary"
        assert window.verbatim_sequences == list(range(10, 16))
        assert chat_store.get_latest_summary(CHAT_ID).covered_range.end_seq == 9


class TestTokenEstimate:
    @pytest.mark.asyncio
    async def test_estimate_tokens_delegates_to_budget(self, chat_store, monkeypatch):
        chat_store.add_messages(CHAT_ID, 3)
        manager = await _manager(FakeProvider())
        window = await manager.build_context(CHAT_ID, SYSTEM_PROMPT)

        monkeypatch.setattr("app.context.context_manager.estimate_tokens", lambda w: 42)

        assert manager.estimate_tokens(window) == 42
