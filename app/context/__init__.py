"""Conversation context module.

This module provides:
- Context window assembly per turn (verbatim window, rolling summary, fallback)
- Rolling summarization of older turns through the active or local provider
- Token estimation for context windows
- Tutor system prompt rendering
"""

from app.context.models import (
    ChatProfile,
    ContextEntry,
    ContextSettings,
    ContextWindow,
    CoveredRange,
    Message,
    MessageRole,
    ProficiencyLevel,
    SummarizationStrategy,
    ThreadSummary,
    TopicType,
)

__all__ = [
    "ChatProfile",
    "ContextEntry",
    "ContextSettings",
    "ContextWindow",
    "CoveredRange",
    "Message",
    "MessageRole",
    "ProficiencyLevel",
    "SummarizationStrategy",
    "ThreadSummary",
    "TopicType",
]
