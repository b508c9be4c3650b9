"""
Process-wide runtime for the API layer.

The tool registry, authorization gate and collaborators are built once on
first use and shared read-only by every request.  Routes receive them through
``Depends(get_runtime)`` so tests can swap the whole runtime with
``app.dependency_overrides``.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional

from fastapi import HTTPException, status

from conductor.config import settings
from conductor.core.authorization import AuthorizationGate
from conductor.core.enrichment import EnrichmentPipeline
from conductor.core.llm_client import LLMClient, ReasoningModel
from conductor.core.tools.catalog import Collaborators, build_tool_registry
from conductor.core.tools.registry import ToolRegistry
from conductor.services.faces import FaceStore
from conductor.services.feedback import FeedbackStore
from conductor.services.identity import DatabaseIdentityService, IdentityService
from conductor.services.projects import ProjectStore
from conductor.services.storage import S3StorageService
from conductor.services.style_extraction import StyleExtractor
from conductor.services.video_analysis import VideoAnalyzer
from conductor.services.youtube import YouTubeService

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Runtime:
    model: ReasoningModel
    registry: ToolRegistry
    gate: AuthorizationGate
    identity: IdentityService
    enrichment: EnrichmentPipeline
    llm: Optional[LLMClient] = None
    youtube: Optional[YouTubeService] = None
    style_extractor: Optional[StyleExtractor] = None


def build_runtime() -> Runtime:
    llm = LLMClient()
    identity = DatabaseIdentityService()
    storage = S3StorageService()
    youtube = YouTubeService(identity)
    style_extractor = StyleExtractor(llm, storage)
    registry = build_tool_registry(
        Collaborators(
            youtube=youtube,
            projects=ProjectStore(),
            feedback=FeedbackStore(),
            video_analyzer=VideoAnalyzer(llm),
            style_extractor=style_extractor,
        ),
        settings,
    )
    return Runtime(
        model=llm,
        registry=registry,
        gate=AuthorizationGate(),
        identity=identity,
        enrichment=EnrichmentPipeline(storage, FaceStore(), config=settings),
        llm=llm,
        youtube=youtube,
        style_extractor=style_extractor,
    )


@lru_cache
def _runtime() -> Runtime:
    return build_runtime()


def get_runtime() -> Runtime:
    try:
        return _runtime()
    except ValueError as e:
        logger.error(f"Runtime not configured: {e}")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={"message": "Assistant is not configured.", "code": "CONFIG_ERROR"},
        ) from e


async def close_runtime() -> None:
    """Release HTTP clients if the runtime was ever built."""
    if _runtime.cache_info().currsize == 0:
        return
    runtime = _runtime()
    if runtime.llm is not None:
        await runtime.llm.close()
    if runtime.youtube is not None:
        await runtime.youtube.close()
    if runtime.style_extractor is not None:
        await runtime.style_extractor.close()
    _runtime.cache_clear()
