"""Process-wide registry of AI provider backends.

Built-in backends are registered when this package is imported. The registry
only maps ids to backend classes; which provider a request uses is decided by
its ``ProviderSelection``.
"""

from app.ai.providers.anthropic_chat import AnthropicProvider
from app.ai.providers.base import AIProvider
from app.ai.providers.local import LocalProvider
from app.ai.providers.openai_chat import OpenAIChatProvider
from app.ai.types import ProviderRegistration, UnknownProviderError
from app.core.config import Settings

_PROVIDERS: dict[str, type[AIProvider]] = {}


def register_provider(provider_cls: type[AIProvider]) -> type[AIProvider]:
    """Register a backend class under its registration id."""
    _PROVIDERS[provider_cls.registration.id] = provider_cls
    return provider_cls


def get_provider_class(provider_id: str) -> type[AIProvider]:
    try:
        return _PROVIDERS[provider_id]
    except KeyError:
        raise UnknownProviderError(provider_id) from None


def get_registration(provider_id: str) -> ProviderRegistration:
    return get_provider_class(provider_id).registration


def list_registrations() -> list[ProviderRegistration]:
    return [cls.registration for cls in _PROVIDERS.values()]


def create_provider(provider_id: str, settings: Settings | None = None) -> AIProvider:
    """Instantiate an (uninitialized) backend for ``provider_id``."""
    return get_provider_class(provider_id)(settings)


for _provider_cls in (OpenAIChatProvider, AnthropicProvider, LocalProvider):
    register_provider(_provider_cls)

__all__ = [
    "AIProvider",
    "AnthropicProvider",
    "LocalProvider",
    "OpenAIChatProvider",
    "create_provider",
    "get_provider_class",
    "get_registration",
    "list_registrations",
    "register_provider",
]
