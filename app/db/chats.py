"""Chat and message database operations.

Messages are append-only and ordered by a per-chat ``sequence``. A forked
thread sees the shared root (rows without a thread_id) plus its own rows.
"""

import json
from typing import Any

from app.context.models import ChatProfile, Message, MessageAnalysis, MessageRole
from app.core.logging import get_logger
from app.db.supabase_client import get_supabase

logger = get_logger(__name__)

_MESSAGE_COLUMNS = "id, chat_id, role, content, sequence, created_at, thread_id, analysis"


class ChatNotFoundError(Exception):
    """The requested chat does not exist."""

    def __init__(self, chat_id: str):
        super().__init__(f"Chat not found: {chat_id}")
        self.chat_id = chat_id


def _parse_topic_details(chat_id: str, raw: Any) -> dict[str, Any]:
    if not raw:
        return {}
    if isinstance(raw, dict):
        return raw
    try:
        parsed = json.loads(raw)
    except (TypeError, ValueError):
        logger.warning(f"Failed to parse topic_details for chat {chat_id}")
        return {}
    return parsed if isinstance(parsed, dict) else {}


def get_chat(chat_id: str) -> ChatProfile:
    """
    Get the prompt-relevant profile of a chat.

    Raises:
        ChatNotFoundError: If no chat row exists
    """
    supabase = get_supabase()

    response = (
        supabase.table("chats")
        .select("id, topic_type, topic_details, language, native_language, level, thread_id")
        .eq("id", chat_id)
        .maybe_single()
        .execute()
    )
    # maybe_single() yields None (or data=None) when the row is missing
    if response is None or not response.data:
        raise ChatNotFoundError(chat_id)

    row = response.data
    return ChatProfile(
        id=row["id"],
        topic_type=row.get("topic_type") or "general",
        topic_details=_parse_topic_details(chat_id, row.get("topic_details")),
        language=row.get("language") or "en",
        native_language=row.get("native_language") or "en",
        level=row.get("level") or "intermediate",
        thread_id=row.get("thread_id"),
    )


def list_chat_messages(chat_id: str, thread_id: str | None = None) -> list[Message]:
    """
    List a chat's messages in sequence order.

    Args:
        chat_id: Chat ID
        thread_id: Restrict to the shared root plus this thread's messages;
            without one only main-line (null thread) messages are returned

    Returns:
        Messages ordered by ascending sequence, one per sequence number
    """
    supabase = get_supabase()

    try:
        query = supabase.table("chat_messages").select(_MESSAGE_COLUMNS).eq("chat_id", chat_id)
        if thread_id:
            query = query.or_(f"thread_id.is.null,thread_id.eq.{thread_id}")
        else:
            query = query.is_("thread_id", "null")
        response = query.order("sequence").execute()
    except Exception as e:
        logger.error(f"Failed to list messages for chat {chat_id}: {e}")
        raise

    messages: dict[int, Message] = {}
    for row in response.data or []:
        message = Message.model_validate(row)
        if message.sequence in messages:
            logger.warning(f"Duplicate sequence {message.sequence} in chat {chat_id}; keeping first")
            continue
        messages[message.sequence] = message

    return [messages[seq] for seq in sorted(messages)]


def get_last_sequence(chat_id: str) -> int | None:
    supabase = get_supabase()

    response = (
        supabase.table("chat_messages")
        .select("sequence")
        .eq("chat_id", chat_id)
        .order("sequence", desc=True)
        .limit(1)
        .execute()
    )
    if not response.data:
        return None
    return response.data[0]["sequence"]


def append_message(
    chat_id: str,
    role: MessageRole | str,
    content: str,
    thread_id: str | None = None,
    analysis: MessageAnalysis | None = None,
) -> Message:
    """
    Append a message at the end of a chat.

    The (chat_id, sequence) unique constraint rejects a concurrent writer that
    picked the same sequence; that writer surfaces the database error.

    Returns:
        The stored message
    """
    supabase = get_supabase()

    last = get_last_sequence(chat_id)
    data = {
        "chat_id": chat_id,
        "role": MessageRole(role).value,
        "content": content,
        "sequence": 0 if last is None else last + 1,
        "thread_id": thread_id,
    }
    if analysis is not None:
        data["analysis"] = analysis.model_dump(mode="json")

    try:
        response = supabase.table("chat_messages").insert(data).execute()
    except Exception as e:
        logger.error(f"Failed to append message to chat {chat_id}: {e}")
        raise

    if not response.data:
        raise ValueError("No data returned from append_message")

    return Message.model_validate(response.data[0])
