"""FastAPI application entry point for the Lingua Tutor Engine."""

from fastapi import FastAPI

from app.api import router as api_router

VERSION = "0.1.0"

app = FastAPI(
    title="Lingua Tutor Engine",
    description="Conversation context, rolling summaries and AI provider routing for language tutoring chats",
    version=VERSION,
)

app.include_router(api_router, prefix="/v1", tags=["v1"])


@app.get("/health")
async def health_check() -> dict[str, str]:
    """Liveness check; does not touch Supabase or any provider."""
    return {"status": "ok", "version": VERSION}
