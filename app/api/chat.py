"""Tutor chat API endpoints: replies, reply suggestions, context previews."""

from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

from fastapi import APIRouter, HTTPException
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from app.ai.manager import AIProviderManager
from app.ai.types import (
    GenerationOptions,
    ProviderError,
    ProviderSelection,
    TokenUsage,
    UnknownProviderError,
)
from app.context.context_manager import ContextManager
from app.context.models import (
    ChatProfile,
    ContextSettings,
    ContextWindow,
    CoveredRange,
    Message,
    MessageAnalysis,
    MessageRole,
)
from app.context.prompt_builder import (
    build_system_prompt,
    format_analysis_request,
    get_analysis_prompt,
    get_suggestion_prompt,
)
from app.context.token_budget import ContextTokenEstimate, get_budget_manager
from app.core.config import get_settings
from app.core.llm import ModelOutputParseError, parse_llm_json
from app.core.logging import get_logger
from app.db.chats import ChatNotFoundError, append_message, get_chat

logger = get_logger(__name__)

router = APIRouter()

PROVIDER_FAILURE_DETAIL = "AI provider request failed"


class TurnRequest(BaseModel):
    """Provider selection and context budget shared by every chat request."""

    model_config = ConfigDict(populate_by_name=True)

    provider: ProviderSelection | None = None
    context_settings: dict[str, Any] | None = Field(default=None, alias="contextSettings")


class ChatReplyRequest(TurnRequest):
    message: str = Field(..., min_length=1, description="The learner's message")
    analyze: bool = Field(default=True, description="Grade the learner message")


class SuggestionRequest(TurnRequest):
    count: int = Field(default=3, ge=1, le=10)


class ContextInfo(BaseModel):
    """What the model saw for one completion."""

    summarized: bool
    covered_range: CoveredRange | None = None
    verbatim_messages: int
    degraded: bool


class AnalysisFailure(BaseModel):
    """Why a reply came back without analysis."""

    error: str
    raw: str | None = None


class ChatReplyResponse(BaseModel):
    reply: str
    user_message: Message
    assistant_message: Message
    provider_id: str
    model: str
    context: ContextInfo
    usage: TokenUsage | None = None
    analysis: MessageAnalysis | None = None
    analysis_error: AnalysisFailure | None = None


class SuggestionList(BaseModel):
    suggestions: list[str] = Field(default_factory=list)


class ContextPreview(BaseModel):
    chat_id: str
    thread_id: str | None = None
    entries: int
    context: ContextInfo
    tokens: ContextTokenEstimate


def _resolve_context_settings(overrides: dict[str, Any] | None) -> ContextSettings:
    try:
        return ContextSettings.from_app_settings(overrides)
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=f"Invalid context settings: {e.errors()}")


def _load_chat(chat_id: str) -> tuple[ChatProfile, str]:
    try:
        chat = get_chat(chat_id)
    except ChatNotFoundError:
        raise HTTPException(status_code=404, detail="Chat not found")
    system_prompt = build_system_prompt(chat.topic_type, chat.topic_key, chat.language, chat.level)
    return chat, system_prompt


@asynccontextmanager
async def _provider_session(selection: ProviderSelection | None) -> AsyncIterator[AIProviderManager]:
    """Request-scoped provider manager; closed when the request finishes."""
    try:
        ai = await AIProviderManager.from_selection(selection)
    except UnknownProviderError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except ProviderError as e:
        logger.error(f"AI provider initialization failed: {e}")
        raise HTTPException(status_code=503, detail="AI provider initialization failed")

    async with ai:
        yield ai


def _context_info(window) -> ContextInfo:
    return ContextInfo(
        summarized=window.summary is not None,
        covered_range=window.covered_range,
        verbatim_messages=len(window.messages),
        degraded=window.degraded,
    )


async def _analyze_learner_message(
    ai: AIProviderManager,
    chat: ChatProfile,
    window: ContextWindow,
    message: str,
) -> tuple[MessageAnalysis | None, AnalysisFailure | None]:
    """Grade the learner message; failures never block the reply."""
    settings = get_settings()
    tutor_message = next(
        (m.content for m in reversed(window.messages) if m.role == MessageRole.ASSISTANT), None
    )

    try:
        response = await ai.generate_text(
            format_analysis_request(message, tutor_message),
            system_prompt=get_analysis_prompt(chat.language, chat.level, chat.native_language),
            options=GenerationOptions(
                temperature=settings.ANALYSIS_TEMPERATURE,
                max_tokens=settings.ANALYSIS_MAX_TOKENS,
                json_mode=True,
            ),
        )
    except ProviderError as e:
        logger.warning(f"Analysis request failed for chat {chat.id}: {e}")
        return None, AnalysisFailure(error="Analysis request failed")

    try:
        return parse_llm_json(response.content, MessageAnalysis), None
    except ModelOutputParseError as e:
        logger.warning(f"Unparseable analysis output for chat {chat.id}: {e}")
        return None, AnalysisFailure(error="Failed to parse analysis", raw=e.raw)


@router.post("/chats/{chat_id}/reply", response_model=ChatReplyResponse)
async def reply_to_learner(chat_id: str, request: ChatReplyRequest) -> ChatReplyResponse:
    """
    Generate the tutor's reply to a learner message.

    This endpoint:
    1. Loads the chat and renders its system prompt
    2. Builds the context window (recent messages, rolling summary)
    3. Calls the selected provider with the learner message as the next turn
    4. Grades the learner message (JSON mode) unless ``analyze`` is false
    5. Persists the learner message with its analysis, then the tutor reply

    Args:
        chat_id: Chat ID
        request: Learner message, provider selection and context settings

    Returns:
        The reply, the stored messages and a description of the context used
    """
    context_settings = _resolve_context_settings(request.context_settings)
    chat, system_prompt = _load_chat(chat_id)

    try:
        async with _provider_session(request.provider) as ai:
            manager = ContextManager(ai, settings=context_settings)
            window = await manager.build_context(chat_id, system_prompt, chat.thread_id)
            response = await ai.generate(window, request.message)

            analysis, analysis_error = None, None
            if request.analyze:
                analysis, analysis_error = await _analyze_learner_message(
                    ai, chat, window, request.message
                )

        user_message = append_message(
            chat_id, MessageRole.USER, request.message, chat.thread_id, analysis=analysis
        )
        assistant_message = append_message(
            chat_id, MessageRole.ASSISTANT, response.content, chat.thread_id
        )

        return ChatReplyResponse(
            reply=response.content,
            user_message=user_message,
            assistant_message=assistant_message,
            provider_id=response.provider_id,
            model=response.model,
            context=_context_info(window),
            usage=response.usage,
            analysis=analysis,
            analysis_error=analysis_error,
        )

    except HTTPException:
        raise
    except ProviderError as e:
        logger.error(f"Provider failure replying in chat {chat_id}: {e}")
        raise HTTPException(status_code=502, detail=PROVIDER_FAILURE_DETAIL)
    except Exception as e:
        logger.exception(f"Error replying in chat {chat_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to process chat request")


@router.post("/chats/{chat_id}/suggestions")
async def suggest_replies(chat_id: str, request: SuggestionRequest) -> Any:
    """
    Suggest replies the learner could send next.

    Malformed model output is reported as a structured 502 body carrying the
    raw text rather than an unhandled error.
    """
    context_settings = _resolve_context_settings(request.context_settings)
    chat, system_prompt = _load_chat(chat_id)
    prompt = get_suggestion_prompt(request.count, chat.language, chat.level)

    try:
        async with _provider_session(request.provider) as ai:
            manager = ContextManager(ai, settings=context_settings)
            window = await manager.build_context(chat_id, system_prompt, chat.thread_id)
            response = await ai.generate(window, prompt, GenerationOptions(json_mode=True))

        try:
            parsed = parse_llm_json(response.content, SuggestionList)
        except ModelOutputParseError as e:
            logger.warning(f"Unparseable suggestion output for chat {chat_id}: {e}")
            return JSONResponse(
                status_code=502,
                content={"error": "Failed to generate suggestions", "raw": e.raw},
            )

        return {"suggestions": parsed.suggestions[: request.count]}

    except HTTPException:
        raise
    except ProviderError as e:
        logger.error(f"Provider failure generating suggestions for chat {chat_id}: {e}")
        raise HTTPException(status_code=502, detail=PROVIDER_FAILURE_DETAIL)
    except Exception as e:
        logger.exception(f"Error generating suggestions for chat {chat_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to generate suggestions")


@router.post("/chats/{chat_id}/context", response_model=ContextPreview)
async def preview_context(chat_id: str, request: TurnRequest) -> ContextPreview:
    """
    Build the context window the next turn would use, without calling the
    main completion. May trigger (and persist) summarization like a real turn.
    """
    context_settings = _resolve_context_settings(request.context_settings)
    chat, system_prompt = _load_chat(chat_id)

    try:
        async with _provider_session(request.provider) as ai:
            manager = ContextManager(ai, settings=context_settings)
            window = await manager.build_context(chat_id, system_prompt, chat.thread_id)

        return ContextPreview(
            chat_id=chat_id,
            thread_id=chat.thread_id,
            entries=len(window.entries),
            context=_context_info(window),
            tokens=get_budget_manager().estimate_context(window),
        )

    except HTTPException:
        raise
    except Exception as e:
        logger.exception(f"Error previewing context for chat {chat_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to build context")
