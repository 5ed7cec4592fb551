"""Per-turn conversation context assembly.

Decides how much history goes to the model for one completion:

1. Summarization disabled: every message verbatim.
2. Otherwise the newest ``recent_window_size`` messages (the tail) are always
   verbatim. The older remainder (the head) is sent verbatim while it is
   shorter than ``summarize_after_messages``.
3. Past that threshold the head is folded into a rolling Thread Summary. The
   summary is extended over the uncovered part of the head only when the
   stored one does not reach the head boundary, so repeated calls over an
   unchanged chat reuse it instead of summarizing again.

Whatever path is taken, the window holds each message at most once, in
sequence order: summary first, then every message after its covered range.
If summarization fails the turn still proceeds with head + tail verbatim and
nothing is persisted.
"""

import logging

from app.ai.manager import AIProviderManager
from app.context.models import (
    ContextSettings,
    ContextWindow,
    CoveredRange,
    Message,
    ThreadSummary,
)
from app.context.summarizer import SummarizationFailedError, Summarizer
from app.context.token_budget import estimate_tokens
from app.core.logging import get_logger, log_with_context
from app.db.chats import list_chat_messages
from app.db.thread_summaries import get_latest_summary, put_summary

logger = get_logger(__name__)


class ContextManager:
    """Builds context windows for one request.

    Args:
        ai: The request's provider manager; the ``same`` summarization
            strategy runs through it
        settings: Budget configuration for this request
        summarizer: Override the summarizer built from ``ai``
    """

    def __init__(
        self,
        ai: AIProviderManager,
        settings: ContextSettings | None = None,
        summarizer: Summarizer | None = None,
    ):
        self.settings = settings or ContextSettings.from_app_settings()
        self._summarizer = summarizer or Summarizer(ai)

    async def build_context(
        self,
        chat_id: str,
        system_prompt: str,
        thread_id: str | None = None,
    ) -> ContextWindow:
        """
        Assemble the context window for the next completion in a chat.

        Args:
            chat_id: Existing chat ID
            system_prompt: Pre-rendered tutor system prompt
            thread_id: Forked thread to read instead of the main line

        Returns:
            ContextWindow with the summary (if any) and verbatim messages
        """
        messages = list_chat_messages(chat_id, thread_id)

        if self.settings.disable_summarization:
            self._log(chat_id, thread_id, "verbatim", reason="summarization_disabled", messages=len(messages))
            return self._verbatim(chat_id, thread_id, system_prompt, messages)

        split = max(len(messages) - self.settings.recent_window_size, 0)
        head = messages[:split]

        if len(head) < self.settings.summarize_after_messages:
            self._log(chat_id, thread_id, "verbatim", reason="under_threshold", head=len(head))
            return self._verbatim(chat_id, thread_id, system_prompt, messages)

        summary = get_latest_summary(chat_id, thread_id)
        if summary is not None and not _summary_fits(summary, messages):
            logger.warning(
                f"Ignoring summary for chat {chat_id}: range "
                f"[{summary.covered_range.start_seq}, {summary.covered_range.end_seq}] "
                "is not a prefix of the message sequence"
            )
            summary = None

        head_end = head[-1].sequence
        if summary is None or summary.covered_range.end_seq < head_end:
            try:
                summary = await self._extend_summary(chat_id, thread_id, summary, head)
            except Exception as e:
                if not isinstance(e, SummarizationFailedError):
                    logger.exception(f"Unexpected error extending summary for chat {chat_id}")
                self._log(
                    chat_id,
                    thread_id,
                    "degraded",
                    level=logging.WARNING,
                    error=str(e),
                    messages=len(messages),
                )
                return self._verbatim(chat_id, thread_id, system_prompt, messages, degraded=True)
        else:
            self._log(chat_id, thread_id, "summary_reused", covered_end=summary.covered_range.end_seq)

        covered = summary.covered_range
        return ContextWindow(
            chat_id=chat_id,
            thread_id=thread_id,
            system_prompt=system_prompt,
            summary=summary.text,
            covered_range=covered,
            messages=[m for m in messages if not covered.covers(m.sequence)],
        )

    def estimate_tokens(self, window: ContextWindow) -> int:
        return estimate_tokens(window)

    async def _extend_summary(
        self,
        chat_id: str,
        thread_id: str | None,
        previous: ThreadSummary | None,
        head: list[Message],
    ) -> ThreadSummary:
        """Summarize the uncovered part of ``head`` and persist the result."""
        covered_end = previous.covered_range.end_seq if previous else None
        uncovered = [m for m in head if covered_end is None or m.sequence > covered_end]

        text = await self._summarizer.summarize(
            previous.text if previous else None,
            uncovered,
            self.settings.summarization_provider,
        )

        covered = CoveredRange(
            start_seq=previous.covered_range.start_seq if previous else head[0].sequence,
            end_seq=head[-1].sequence,
        )
        self._log(
            chat_id,
            thread_id,
            "summarized",
            summarized=len(uncovered),
            covered_start=covered.start_seq,
            covered_end=covered.end_seq,
        )

        try:
            return put_summary(chat_id, thread_id, covered, text)
        except Exception as e:
            # The text is still valid for this turn; the next call retries persistence
            logger.error(f"Failed to persist summary for chat {chat_id}: {e}")
            return ThreadSummary(
                chat_id=chat_id, thread_id=thread_id, covered_range=covered, text=text
            )

    @staticmethod
    def _verbatim(
        chat_id: str,
        thread_id: str | None,
        system_prompt: str,
        messages: list[Message],
        degraded: bool = False,
    ) -> ContextWindow:
        return ContextWindow(
            chat_id=chat_id,
            thread_id=thread_id,
            system_prompt=system_prompt,
            messages=list(messages),
            degraded=degraded,
        )

    @staticmethod
    def _log(
        chat_id: str,
        thread_id: str | None,
        path: str,
        level: int = logging.DEBUG,
        **fields,
    ) -> None:
        log_with_context(
            logger, level, f"Context built via {path}", chat_id=chat_id, thread_id=thread_id, **fields
        )


def _summary_fits(summary: ThreadSummary, messages: list[Message]) -> bool:
    """A usable summary starts at the first message and ends on a known one."""
    if not messages:
        return False
    sequences = {m.sequence for m in messages}
    rng = summary.covered_range
    return rng.start_seq == messages[0].sequence and rng.end_seq in sequences
