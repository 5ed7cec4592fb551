"""Pytest configuration and fixtures."""

import os

import pytest

# Set before app modules are imported; loggers read settings at import time
os.environ["SUPABASE_URL"] = "https://test.supabase.co"
os.environ["SUPABASE_SERVICE_ROLE_KEY"] = "test-key"
os.environ["OPENAI_API_KEY"] = "test-openai-key"
os.environ["TUTOR_ENV"] = "test"


@pytest.fixture(scope="session", autouse=True)
def setup_test_env():
    """Set up test environment variables."""
    from app.core.config import get_settings

    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def chat_store():
    """In-memory replacement for the message and summary tables."""
    from tests.fakes.fake_chat_store import FakeChatStore

    store = FakeChatStore()
    with store.patched():
        yield store
