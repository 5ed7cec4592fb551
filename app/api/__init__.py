"""API router for v1 endpoints."""

from fastapi import APIRouter

from app.api import chat, providers

router = APIRouter()

# Tutor replies, suggestions and context previews
router.include_router(chat.router, tags=["chat"])

# Provider catalogue
router.include_router(providers.router, tags=["providers"])
