"""AI provider catalogue endpoint."""

from typing import Any, Dict

from fastapi import APIRouter

from app.ai.providers import list_registrations
from app.core.config import get_settings

router = APIRouter()


@router.get("/providers")
async def list_providers() -> Dict[str, Any]:
    """List registered AI providers, their capabilities and models."""
    settings = get_settings()
    providers = []
    for registration in list_registrations():
        data = registration.model_dump(mode="json")
        data["capabilities"] = sorted(data["capabilities"])
        providers.append(data)

    return {"providers": providers, "default_provider": settings.DEFAULT_AI_PROVIDER}
