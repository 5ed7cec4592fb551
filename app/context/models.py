"""Pydantic models for conversation context management."""

from datetime import datetime
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

SUMMARY_ENTRY_HEADER = "CONVERSATION SUMMARY (earlier messages):"


class MessageRole(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


class SummarizationStrategy(str, Enum):
    """Which backend condenses older turns."""

    SAME = "same"  # the request's active chat provider/model
    LOCAL = "local"  # the designated secondary/offline provider


class ProficiencyLevel(str, Enum):
    NOVICE = "novice"
    BEGINNER = "beginner"
    INTERMEDIATE = "intermediate"
    ADVANCED = "advanced"


class TopicType(str, Enum):
    GENERAL = "general"
    ROLEPLAY = "roleplay"
    TOPIC = "topic"
    DICTIONARY = "dictionary"


class GrammarError(BaseModel):
    original: str
    correction: str
    explanation: str = ""


class MessageAnalysis(BaseModel):
    """Feedback on one learner message.

    Accepts the camelCase keys models are asked to produce as well as the
    snake_case form stored in the database.
    """

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    grammar_score: int = Field(..., ge=0, le=100, alias="grammarScore")
    grammar_errors: list[GrammarError] = Field(default_factory=list, alias="grammarErrors")
    vocabulary_score: int = Field(..., ge=0, le=100, alias="vocabularyScore")
    vocabulary_suggestions: list[str] = Field(
        default_factory=list, alias="vocabularySuggestions"
    )
    relevance_score: int = Field(..., ge=0, le=100, alias="relevanceScore")
    relevance_feedback: str | None = Field(default=None, alias="relevanceFeedback")
    overall_feedback: str = Field(default="", alias="overallFeedback")
    alternative_phrasings: list[str] = Field(default_factory=list, alias="alternativePhrasings")


class Message(BaseModel):
    """A persisted chat message. Sequence is unique and increasing per chat."""

    model_config = ConfigDict(frozen=True)

    id: str
    chat_id: str
    role: MessageRole
    content: str
    sequence: int = Field(..., ge=0)
    created_at: datetime | None = None
    thread_id: str | None = None
    # Learner messages only, when analysis succeeded
    analysis: MessageAnalysis | None = None


class ChatProfile(BaseModel):
    """The chat attributes the prompt builder needs."""

    id: str
    topic_type: TopicType = TopicType.GENERAL
    topic_details: dict[str, Any] = Field(default_factory=dict)
    language: str = "en"
    native_language: str = "en"
    level: ProficiencyLevel = ProficiencyLevel.INTERMEDIATE
    thread_id: str | None = None

    @property
    def topic_key(self) -> str | None:
        key = self.topic_details.get("topicKey") or self.topic_details.get("topic_key")
        return str(key) if key else None


class CoveredRange(BaseModel):
    """Inclusive range of message sequences folded into a summary."""

    model_config = ConfigDict(frozen=True)

    start_seq: int = Field(..., ge=0)
    end_seq: int = Field(..., ge=0)

    @model_validator(mode="after")
    def _check_order(self) -> "CoveredRange":
        if self.start_seq > self.end_seq:
            raise ValueError(f"start_seq {self.start_seq} is after end_seq {self.end_seq}")
        return self

    def covers(self, sequence: int) -> bool:
        return self.start_seq <= sequence <= self.end_seq

    def extends(self, other: "CoveredRange | None") -> bool:
        """True when this range strictly supersedes ``other``."""
        if other is None:
            return True
        return self.start_seq <= other.start_seq and self.end_seq > other.end_seq


class ThreadSummary(BaseModel):
    """One entry of the append-only summary log for a chat (or thread)."""

    id: str | None = None
    chat_id: str
    thread_id: str | None = None
    covered_range: CoveredRange
    text: str
    created_at: datetime | None = None


class ContextEntry(BaseModel):
    """A single role/content entry submitted to a model."""

    role: Literal["system", "user", "assistant"]
    content: str


class ContextSettings(BaseModel):
    """Per-request budget configuration for context assembly."""

    model_config = ConfigDict(populate_by_name=True)

    disable_summarization: bool = Field(default=False, alias="disableSummarization")
    recent_window_size: int = Field(default=20, ge=5, le=50, alias="recentWindowSize")
    summarize_after_messages: int = Field(
        default=10, ge=5, le=30, alias="summarizeAfterMessages"
    )
    summarization_provider: SummarizationStrategy = Field(
        default=SummarizationStrategy.SAME, alias="summarizationProvider"
    )

    @classmethod
    def from_app_settings(cls, overrides: dict[str, Any] | None = None) -> "ContextSettings":
        """Environment defaults with optional per-request overrides applied."""
        from app.core.config import get_settings

        settings = get_settings()
        base = cls(
            disable_summarization=settings.CONTEXT_DISABLE_SUMMARIZATION,
            recent_window_size=settings.CONTEXT_RECENT_WINDOW_SIZE,
            summarize_after_messages=settings.CONTEXT_SUMMARIZE_AFTER_MESSAGES,
            summarization_provider=settings.CONTEXT_SUMMARIZATION_PROVIDER,
        )
        if not overrides:
            return base
        merged = base.model_dump()
        merged.update(cls.model_validate(overrides).model_dump(exclude_unset=True))
        return cls.model_validate(merged)


class ContextWindow(BaseModel):
    """The transient context submitted to a model for one completion.

    ``entries`` is always: system prompt, then the summary entry (if any),
    then the raw messages in sequence order.
    """

    chat_id: str
    thread_id: str | None = None
    system_prompt: str
    summary: str | None = None
    covered_range: CoveredRange | None = None
    messages: list[Message] = Field(default_factory=list)
    degraded: bool = False

    @property
    def entries(self) -> list[ContextEntry]:
        result = [ContextEntry(role="system", content=self.system_prompt)]
        if self.summary:
            result.append(
                ContextEntry(role="system", content=f"{SUMMARY_ENTRY_HEADER}\n{self.summary}")
            )
        result.extend(
            ContextEntry(role=m.role.value, content=m.content) for m in self.messages
        )
        return result

    @property
    def verbatim_sequences(self) -> list[int]:
        return [m.sequence for m in self.messages]

    def as_chat_messages(self) -> list[dict[str, str]]:
        """Entries in the ``[{"role": ..., "content": ...}]`` shape SDKs accept."""
        return [entry.model_dump() for entry in self.entries]
