"""Types shared by the AI provider manager and its backends."""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class ProviderType(str, Enum):
    """Where a backend runs."""

    CLOUD = "cloud"
    LOCAL = "local"


class ContextMode(str, Enum):
    """Who owns conversation history for a backend."""

    MANUAL = "manual"  # we submit the history every call
    MANAGED = "managed"  # the backend keeps server-side threads


class ProviderCapability(str, Enum):
    """Method contracts a backend can fulfil."""

    CHAT = "chat"  # generate(): history-aware completion
    TEXT = "text"  # generate_text(): single prompt, no history
    JSON_MODE = "json_mode"  # native JSON response format


class AIModel(BaseModel):
    """A model offered by a provider."""

    id: str
    name: str
    context_window: int
    description: str | None = None


class ProviderRegistration(BaseModel):
    """Static description of a backend in the process-wide registry."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    type: ProviderType
    context_mode: ContextMode
    capabilities: frozenset[ProviderCapability]
    models: tuple[AIModel, ...] = ()
    default_model: str

    def supports(self, capability: ProviderCapability) -> bool:
        return capability in self.capabilities


class ProviderSelection(BaseModel):
    """Request-scoped provider/model choice, threaded through each call."""

    model_config = ConfigDict(populate_by_name=True)

    provider_id: str | None = Field(default=None, alias="providerId")
    model: str | None = None
    temperature: float | None = Field(default=None, ge=0.0, le=2.0)
    max_tokens: int | None = Field(default=None, ge=1, alias="maxTokens")


class GenerationOptions(BaseModel):
    """Per-call generation options; unset fields fall back to manager defaults."""

    model: str | None = None
    temperature: float | None = None
    max_tokens: int | None = None
    json_mode: bool = False


class TokenUsage(BaseModel):
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


class AIResponse(BaseModel):
    """Result of a generate call."""

    content: str
    model: str
    provider_id: str
    usage: TokenUsage | None = None


class NotInitializedError(Exception):
    """The provider manager was used before initialize()."""


class UnknownProviderError(Exception):
    """No backend is registered under the requested id."""

    def __init__(self, provider_id: str):
        super().__init__(f"AI provider not found: {provider_id}")
        self.provider_id = provider_id


class ProviderError(Exception):
    """Upstream failure from a backend (network, auth, quota, bad request)."""

    def __init__(self, provider_id: str, message: str, retryable: bool = False):
        super().__init__(f"[{provider_id}] {message}")
        self.provider_id = provider_id
        self.retryable = retryable


class ProviderTimeoutError(ProviderError):
    """A backend call exceeded its deadline."""

    def __init__(self, provider_id: str, timeout: float):
        super().__init__(provider_id, f"request timed out after {timeout:.1f}s", retryable=True)
        self.timeout = timeout
