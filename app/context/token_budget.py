"""Token accounting for context windows and summarizer input.

Uses tiktoken's cl100k_base encoding as a provider-neutral approximation.
"""

from typing import Literal

import tiktoken
from pydantic import BaseModel

from app.context.models import ContextWindow


class ContextTokenEstimate(BaseModel):
    """Approximate token breakdown of a context window."""

    system_tokens: int
    summary_tokens: int
    message_tokens: int
    total_tokens: int
    message_count: int


class TokenBudgetManager:
    """Counts and trims text by token length."""

    # Per-entry overhead chat formats add for role markers and separators
    ENTRY_OVERHEAD = 4

    def __init__(self, encoding_name: str = "cl100k_base"):
        self._encoding_name = encoding_name
        self._encoder_instance: tiktoken.Encoding | None = None

    @property
    def _encoder(self) -> tiktoken.Encoding:
        # Loading an encoding may fetch BPE files, so defer until first use
        if self._encoder_instance is None:
            self._encoder_instance = tiktoken.get_encoding(self._encoding_name)
        return self._encoder_instance

    def count_tokens(self, text: str) -> int:
        if not text:
            return 0
        return len(self._encoder.encode(text))

    def truncate_text(
        self, text: str, max_tokens: int, keep: Literal["head", "tail"] = "head"
    ) -> str:
        """
        Truncate text to fit within a token limit.

        Args:
            text: Text to truncate
            max_tokens: Maximum tokens allowed
            keep: Keep the beginning ("head") or the end ("tail") of the text

        Returns:
            The text unchanged if it fits, otherwise the kept part with an
            ellipsis marking the cut
        """
        # Every token spans at least one character
        if not text or len(text) <= max_tokens:
            return text

        tokens = self._encoder.encode(text)
        if len(tokens) <= max_tokens:
            return text

        # No room left for content beside the cut marker
        if max_tokens <= 1:
            return "..."

        if keep == "tail":
            return "..." + self._encoder.decode(tokens[-(max_tokens - 1):])
        return self._encoder.decode(tokens[: max_tokens - 1]) + "..."

    def estimate_context(self, window: ContextWindow) -> ContextTokenEstimate:
        system_tokens = self.count_tokens(window.system_prompt) + self.ENTRY_OVERHEAD
        summary_tokens = (
            self.count_tokens(window.summary) + self.ENTRY_OVERHEAD if window.summary else 0
        )
        message_tokens = sum(
            self.count_tokens(m.content) + self.ENTRY_OVERHEAD for m in window.messages
        )
        return ContextTokenEstimate(
            system_tokens=system_tokens,
            summary_tokens=summary_tokens,
            message_tokens=message_tokens,
            total_tokens=system_tokens + summary_tokens + message_tokens,
            message_count=len(window.messages),
        )


# Singleton instance for convenience
_budget_manager: TokenBudgetManager | None = None


def get_budget_manager() -> TokenBudgetManager:
    """Get or create singleton TokenBudgetManager."""
    global _budget_manager
    if _budget_manager is None:
        _budget_manager = TokenBudgetManager()
    return _budget_manager


def estimate_tokens(window: ContextWindow) -> int:
    """Approximate total tokens a context window will occupy."""
    return get_budget_manager().estimate_context(window).total_tokens
