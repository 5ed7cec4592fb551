"""Thread summary log.

Summaries are never updated in place. Each successful summarization appends a
row; the active summary for a chat (or thread) is the row with the maximal
covered range. Writers follow a monotonic rule: a new summary is committed
only if its range strictly extends the active one, so a longer summary is
never replaced by a shorter concurrent one.
"""

from typing import Any

from app.context.models import CoveredRange, ThreadSummary
from app.core.logging import get_logger
from app.db.supabase_client import get_supabase

logger = get_logger(__name__)

_TABLE = "thread_summaries"


def _row_to_summary(row: dict[str, Any]) -> ThreadSummary:
    return ThreadSummary(
        id=row.get("id"),
        chat_id=row["chat_id"],
        thread_id=row.get("thread_id"),
        covered_range=CoveredRange(start_seq=row["start_seq"], end_seq=row["end_seq"]),
        text=row["text"],
        created_at=row.get("created_at"),
    )


def select_active_summary(summaries: list[ThreadSummary]) -> ThreadSummary | None:
    """
    Pick the summary with the maximal covered range.

    Longest range wins: highest end_seq, then lowest start_seq. Among exact
    ties the earliest written row wins, since a later equal write is a
    duplicate that should have been discarded.
    """
    best: ThreadSummary | None = None
    for summary in summaries:
        if best is None:
            best = summary
            continue
        rng, best_rng = summary.covered_range, best.covered_range
        if (rng.end_seq, -rng.start_seq) > (best_rng.end_seq, -best_rng.start_seq):
            best = summary
    return best


def get_latest_summary(chat_id: str, thread_id: str | None = None) -> ThreadSummary | None:
    """
    Get the active summary for a chat, or for one of its threads.

    Returns:
        The summary covering the longest prefix, or None if none exists
    """
    supabase = get_supabase()

    try:
        query = supabase.table(_TABLE).select("*").eq("chat_id", chat_id)
        if thread_id:
            query = query.eq("thread_id", thread_id)
        else:
            query = query.is_("thread_id", "null")
        response = (
            query.order("end_seq", desc=True)
            .order("start_seq")
            .order("created_at")
            .limit(1)
            .execute()
        )
    except Exception as e:
        logger.error(f"Failed to load summary for chat {chat_id}: {e}")
        raise

    if not response.data:
        return None
    return select_active_summary([_row_to_summary(row) for row in response.data])


def put_summary(
    chat_id: str,
    thread_id: str | None,
    covered_range: CoveredRange,
    text: str,
) -> ThreadSummary:
    """
    Append a summary if it strictly extends the active one.

    Args:
        chat_id: Chat ID
        thread_id: Thread ID for forked threads, else None
        covered_range: Message sequences the text covers
        text: Summary text

    Returns:
        The active summary after the write attempt: the new row when
        committed, otherwise the stored summary that made it stale
    """
    current = get_latest_summary(chat_id, thread_id)
    if current is not None and not covered_range.extends(current.covered_range):
        logger.info(
            f"Discarding stale summary for chat {chat_id}: "
            f"[{covered_range.start_seq}, {covered_range.end_seq}] does not extend "
            f"[{current.covered_range.start_seq}, {current.covered_range.end_seq}]"
        )
        return current

    supabase = get_supabase()
    data = {
        "chat_id": chat_id,
        "thread_id": thread_id,
        "start_seq": covered_range.start_seq,
        "end_seq": covered_range.end_seq,
        "text": text,
    }

    try:
        response = supabase.table(_TABLE).insert(data).execute()
    except Exception as e:
        logger.error(f"Failed to store summary for chat {chat_id}: {e}")
        raise

    if not response.data:
        raise ValueError("No data returned from put_summary")

    stored = _row_to_summary(response.data[0])
    logger.info(
        f"Stored summary for chat {chat_id} covering "
        f"[{covered_range.start_seq}, {covered_range.end_seq}]"
    )
    return stored
