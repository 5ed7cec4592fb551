"""Supabase client initialization."""

from functools import lru_cache

from supabase import Client, ClientOptions, create_client

from app.core.config import get_settings


@lru_cache(maxsize=1)
def get_supabase() -> Client:
    """
    Get the Supabase client backing chats, messages and thread summaries.

    The client uses the service role key, so row-level security does not
    apply; callers scope every query by chat_id.

    Raises:
        RuntimeError: If client initialization fails
    """
    settings = get_settings()
    options = ClientOptions(postgrest_client_timeout=settings.SUPABASE_TIMEOUT_SECONDS)
    try:
        return create_client(
            settings.SUPABASE_URL, settings.SUPABASE_SERVICE_ROLE_KEY, options=options
        )
    except Exception as e:
        raise RuntimeError(f"Failed to initialize Supabase client: {e}") from e
