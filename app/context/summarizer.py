"""Rolling conversation summarization.

Condenses a contiguous run of older messages, folding in the previous summary
text when one exists. The caller picks the strategy:

- ``same``: the request's active chat provider/model
- ``local``: the designated secondary provider (SUMMARY_LOCAL_PROVIDER)

Every failure, including unexpected errors from the tokenizer or a backend,
is reported as ``SummarizationFailedError`` so the context manager can fall
back to sending messages verbatim.
"""

from app.ai.manager import AIProviderManager
from app.ai.types import (
    GenerationOptions,
    NotInitializedError,
    ProviderError,
    UnknownProviderError,
)
from app.context.models import Message, SummarizationStrategy
from app.context.token_budget import get_budget_manager
from app.core.config import Settings, get_settings
from app.core.logging import get_logger

logger = get_logger(__name__)

SUMMARIZER_SYSTEM_PROMPT = (
    "You are a summarization assistant for a language-tutoring conversation. "
    "Create concise, informative summaries."
)

SUMMARIZATION_PROMPT = """Summarize this conversation segment between a language learner and their tutor concisely, preserving:
- Key topics discussed
- Important decisions or preferences expressed
- The learner's language patterns and common mistakes
- Any roleplay context or scenario details
- Names and relationships mentioned

Write in third person past tense. Maximum {max_words} words.

CONVERSATION:
{conversation}

SUMMARY:"""

MERGE_PROMPT = """Update the running summary of a conversation between a language learner and their tutor.
Merge the earlier summary and the new conversation segment into a single, coherent summary. Keep it concise but complete, preserving:
- Key topics discussed
- Important decisions or preferences expressed
- The learner's language patterns and common mistakes
- Any roleplay context or scenario details
- Names and relationships mentioned

Write in third person past tense. Maximum {max_words} words.

EARLIER SUMMARY:
{previous_summary}

NEW CONVERSATION:
{conversation}

MERGED SUMMARY:"""

# Longer messages are clipped in the transcript; the summary only needs the gist
MAX_CHARS_PER_MESSAGE = 1000


class SummarizationFailedError(Exception):
    """Summarization could not produce text; callers degrade instead of failing."""


def format_transcript(messages: list[Message]) -> str:
    """Render messages as a Learner/Tutor transcript."""
    lines = []
    for msg in messages:
        label = "Learner" if msg.role.value == "user" else "Tutor"
        content = msg.content.strip()
        if len(content) > MAX_CHARS_PER_MESSAGE:
            content = content[:MAX_CHARS_PER_MESSAGE] + "..."
        lines.append(f"{label}: {content}")
    return "\n".join(lines)


class Summarizer:
    """Summarizes message runs through the provider the strategy designates."""

    def __init__(self, ai: AIProviderManager, settings: Settings | None = None):
        self._ai = ai
        self._settings = settings or get_settings()

    async def summarize(
        self,
        previous_summary: str | None,
        new_messages: list[Message],
        strategy: SummarizationStrategy,
    ) -> str:
        """
        Produce summary text covering ``previous_summary`` plus ``new_messages``.

        Args:
            previous_summary: Text of the summary being extended, if any
            new_messages: Contiguous, sequence-ordered messages to fold in
            strategy: Which provider performs the summarization

        Returns:
            Non-empty summary text

        Raises:
            SummarizationFailedError: On provider failure, timeout or empty output
        """
        if not new_messages:
            raise SummarizationFailedError("No messages to summarize")

        options = GenerationOptions(
            temperature=self._settings.SUMMARY_TEMPERATURE,
            max_tokens=self._settings.SUMMARY_MAX_TOKENS,
        )

        try:
            prompt = self._build_prompt(previous_summary, new_messages)
            if strategy == SummarizationStrategy.LOCAL:
                text = await self._summarize_locally(prompt, options)
            else:
                response = await self._ai.generate_text(
                    prompt,
                    system_prompt=SUMMARIZER_SYSTEM_PROMPT,
                    options=options,
                    timeout=self._settings.SUMMARY_TIMEOUT_SECONDS,
                )
                text = response.content
        except (ProviderError, UnknownProviderError, NotInitializedError) as e:
            raise SummarizationFailedError(f"Summarization via {strategy.value} failed: {e}") from e
        except Exception as e:
            logger.exception(f"Unexpected error summarizing via {strategy.value}")
            raise SummarizationFailedError(
                f"Summarization via {strategy.value} failed unexpectedly: {e}"
            ) from e

        text = (text or "").strip()
        if not text:
            raise SummarizationFailedError("Summarizer returned empty text")

        logger.debug(
            f"Summarized {len(new_messages)} messages "
            f"(seq {new_messages[0].sequence}-{new_messages[-1].sequence}) via {strategy.value}"
        )
        return text

    async def _summarize_locally(self, prompt: str, options: GenerationOptions) -> str:
        local = AIProviderManager(settings=self._settings)
        async with local:
            await local.initialize(self._settings.SUMMARY_LOCAL_PROVIDER)
            if self._settings.SUMMARY_LOCAL_MODEL:
                local.set_model(self._settings.SUMMARY_LOCAL_MODEL)
            response = await local.generate_text(
                prompt,
                system_prompt=SUMMARIZER_SYSTEM_PROMPT,
                options=options,
                timeout=self._settings.SUMMARY_TIMEOUT_SECONDS,
            )
        return response.content

    def _build_prompt(self, previous_summary: str | None, messages: list[Message]) -> str:
        budget = get_budget_manager()
        # Keep the newest part of an oversized transcript
        conversation = budget.truncate_text(
            format_transcript(messages),
            self._settings.SUMMARY_INPUT_TOKEN_LIMIT,
            keep="tail",
        )
        # Rough estimate: 0.75 words per token
        max_words = int(self._settings.SUMMARY_MAX_TOKENS * 0.75)

        if previous_summary:
            return MERGE_PROMPT.format(
                max_words=max_words,
                previous_summary=previous_summary,
                conversation=conversation,
            )
        return SUMMARIZATION_PROMPT.format(max_words=max_words, conversation=conversation)
