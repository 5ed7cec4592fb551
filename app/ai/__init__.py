"""AI provider layer: backend registry, request-scoped manager, shared types."""

from app.ai.types import (
    AIResponse,
    GenerationOptions,
    NotInitializedError,
    ProviderError,
    ProviderSelection,
    ProviderTimeoutError,
    UnknownProviderError,
)

__all__ = [
    "AIResponse",
    "GenerationOptions",
    "NotInitializedError",
    "ProviderError",
    "ProviderSelection",
    "ProviderTimeoutError",
    "UnknownProviderError",
]
