"""Health check endpoints."""
from __future__ import annotations

from typing import Any

from fastapi import APIRouter

from conductor.config import settings

router = APIRouter()


def _llm_configured() -> bool:
    """True if the configured LLM provider has an API key set (OpenRouter)."""
    return settings.llm_provider == "openrouter" and bool(settings.openrouter_api_key)


@router.get("/health")
async def health_check() -> dict[str, str]:
    """Basic health check."""
    return {
        "status": "ok",
        "service": settings.app_name,
        "version": settings.app_version,
    }


@router.get("/health/full")
async def full_health_check() -> dict[str, Any]:
    """Configuration-level readiness: model key, YouTube key, feature flags."""
    llm_ok = _llm_configured()
    return {
        "status": "ok" if llm_ok else "degraded",
        "service": settings.app_name,
        "version": settings.app_version,
        "dependencies": {
            "llm": {"status": "ok" if llm_ok else "unconfigured", "provider": settings.llm_provider},
            "youtube": {"status": "ok" if settings.youtube_api_key else "unconfigured"},
        },
        "features": {
            "videoAnalysis": settings.video_analysis_enabled,
            "styleExtraction": settings.style_extraction_enabled,
            "grounding": settings.grounding_enabled,
        },
    }
