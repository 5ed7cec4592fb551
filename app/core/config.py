"""Configuration management for Lingua Tutor Engine."""

from functools import lru_cache

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load environment variables from .env file (only if accessible)
try:
    load_dotenv()
except (PermissionError, OSError):
    # In sandboxed environments, .env might not be accessible
    # Environment variables should be set directly
    pass


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore",
    )

    # Supabase configuration (required)
    SUPABASE_URL: str = Field(..., description="Supabase project URL")
    SUPABASE_SERVICE_ROLE_KEY: str = Field(..., description="Supabase service role key")
    SUPABASE_TIMEOUT_SECONDS: int = Field(default=10, description="PostgREST request timeout")

    # Environment
    TUTOR_ENV: str = Field(default="dev", description="Environment: dev, staging, prod")

    # Provider credentials
    OPENAI_API_KEY: str = Field(default="", description="OpenAI API key")
    ANTHROPIC_API_KEY: str = Field(default="", description="Anthropic API key")
    LOCAL_LLM_BASE_URL: str = Field(
        default="http://localhost:11434/v1",
        description="OpenAI-compatible endpoint of the local model server (Ollama)",
    )

    # Chat completion defaults
    DEFAULT_AI_PROVIDER: str = Field(default="openai-chat", description="Provider used when a request names none")
    DEFAULT_CHAT_MODEL: str = Field(default="gpt-4o", description="Default OpenAI chat model")
    ANTHROPIC_CHAT_MODEL: str = Field(
        default="claude-3-5-haiku-20241022", description="Default Anthropic chat model"
    )
    LOCAL_CHAT_MODEL: str = Field(default="qwen2.5:7b-instruct", description="Default local model")
    DEFAULT_TEMPERATURE: float = Field(default=0.7, ge=0.0, le=2.0)
    DEFAULT_MAX_TOKENS: int = Field(default=500, ge=1)
    PROVIDER_TIMEOUT_SECONDS: float = Field(
        default=60.0, description="Transport timeout for a single provider call"
    )
    PROVIDER_MAX_RETRIES: int = Field(default=2, description="SDK-level retries per provider call")

    # Summarization
    SUMMARY_TEMPERATURE: float = Field(default=0.3, ge=0.0, le=2.0)
    SUMMARY_MAX_TOKENS: int = Field(default=500, description="Max tokens for a generated summary")
    SUMMARY_TIMEOUT_SECONDS: float = Field(
        default=30.0, description="Deadline for one summarization call before falling back"
    )
    SUMMARY_INPUT_TOKEN_LIMIT: int = Field(
        default=8000, ge=16, description="Transcript tokens sent to the summarizer before truncation"
    )
    SUMMARY_LOCAL_PROVIDER: str = Field(
        default="local", description="Provider used by the 'local' summarization strategy"
    )
    SUMMARY_LOCAL_MODEL: str | None = Field(
        default=None, description="Model for the 'local' strategy (provider default if unset)"
    )

    # Learner message analysis
    ANALYSIS_TEMPERATURE: float = Field(default=0.3, ge=0.0, le=2.0)
    ANALYSIS_MAX_TOKENS: int = Field(default=1000, ge=1, description="Max tokens for one analysis")

    # Context window defaults (overridable per request)
    CONTEXT_RECENT_WINDOW_SIZE: int = Field(default=20, ge=5, le=50)
    CONTEXT_SUMMARIZE_AFTER_MESSAGES: int = Field(default=10, ge=5, le=30)
    CONTEXT_DISABLE_SUMMARIZATION: bool = Field(default=False)
    CONTEXT_SUMMARIZATION_PROVIDER: str = Field(
        default="same", description="Summarization strategy: same or local"
    )


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Returns:
        Settings instance

    Raises:
        ValidationError: If required environment variables are missing
    """
    return Settings()
