"""
Side-effect tools.

Three shapes, each handled differently by the dispatcher:

- reply capture: the reply-shaping tool is never executed; its arguments
  become the structured reply and the round ends.
- resource creation: writes a project and ends the round with a composed
  reply (or an apology when required fields are missing).
- external mutations: bespoke tier/flag gating, identifier normalisation,
  and failures turned into a specific user-facing sentence that ends the
  round without another model call.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any

from sqlalchemy.exc import SQLAlchemyError

from conductor.config import Settings, settings as default_settings
from conductor.contracts.json_types import JSONObject
from conductor.core.authorization import AuthorizationDecision, require_flag, require_tier
from conductor.core.context import ExecutionContext
from conductor.core.identifiers import parse_video_id, parse_video_ids
from conductor.core.reply import (
    ADD_AS_NEW_FACE,
    ADD_TO_STYLE_REFERENCES,
    NEW_FACE_NAME,
    ReplyPayload,
    UISection,
    filter_ui_sections,
    notice,
)
from conductor.core.tool_validation.params import (
    AnalyzeVideoParams,
    CreateProjectParams,
    ExtractStyleParams,
    ReplyParams,
    UpdateVideoTitleParams,
)
from conductor.services.identity import IntegrationNotConnectedError
from conductor.services.projects import ProjectStore
from conductor.services.style_extraction import MAX_VIDEOS, MIN_VIDEOS, StyleExtractionError, StyleExtractor
from conductor.services.tiers import CAPABILITY_MIN_TIER, Capability
from conductor.services.video_analysis import VideoAnalysisError, VideoAnalyzer
from conductor.services.youtube import YouTubeError, YouTubeService

logger = logging.getLogger(__name__)

MAX_SUGGESTIONS = 3


# =============================================================================
# Reply capture
# =============================================================================

def capture_reply(args: ReplyParams) -> ReplyPayload:
    """Turn validated reply-tool arguments into a ``ReplyPayload``.

    Enrichment request flags are folded into ``field_updates`` so the
    enrichment step finds them in one place; it strips them afterwards.
    """
    updates: JSONObject = dict(args.field_updates)
    if args.add_attached_images_to_style_references:
        updates[ADD_TO_STYLE_REFERENCES] = True
    if args.add_attached_image_as_new_face:
        updates[ADD_AS_NEW_FACE] = True
    if args.new_face_name:
        updates[NEW_FACE_NAME] = args.new_face_name
    suggestions = tuple(s.strip() for s in args.suggestions if s and s.strip())[:MAX_SUGGESTIONS]
    return ReplyPayload(
        message=args.message.strip(),
        ui_sections=tuple(filter_ui_sections(args.ui_sections)),
        field_updates=updates,
        suggestions=suggestions,
        offer_upgrade=args.offer_upgrade,
    )


# =============================================================================
# Resource creation
# =============================================================================

MISSING_PROJECT_NAME = "I need a name for the project before I can create it. What should it be called?"
PROJECT_CREATE_FAILED = "Sorry, I couldn't create the project right now. Please try again in a moment."


class CreateProjectHandler:
    """Creates a project.  The model is trusted to have asked for confirmation
    in an earlier round; this handler only checks required fields."""

    def __init__(self, store: ProjectStore):
        self.store = store

    async def __call__(self, caller_id: str, args: CreateProjectParams, ctx: ExecutionContext) -> ReplyPayload:
        name = args.name.strip()
        if not name:
            return notice(MISSING_PROJECT_NAME)
        description = (args.description or "").strip() or None
        try:
            project = await self.store.create(caller_id, name[:200], description)
        except SQLAlchemyError:
            logger.exception(f"[{ctx.trace_id[:8]}] create_project failed")
            return notice(PROJECT_CREATE_FAILED)
        return ReplyPayload(
            message=f"Done! I created the project \"{project.name}\" and selected it for you.",
            ui_sections=(UISection.PROJECT_SELECTOR,),
            field_updates={"projectId": project.id},
        )


# =============================================================================
# External mutations
# =============================================================================

class MutationFailed(Exception):
    """Raised by an external mutation with the exact sentence to show the user."""


class ExternalMutation(ABC):
    action: str = ""
    failure_message: str = "Sorry, that didn't work. Please try again."

    def __init__(self, config: Settings | None = None):
        self.config = config or default_settings

    @abstractmethod
    def preflight(self, ctx: ExecutionContext) -> AuthorizationDecision:
        """Tier / feature-flag checks specific to this mutation."""

    @abstractmethod
    async def run(self, caller_id: str, args: Any, ctx: ExecutionContext) -> JSONObject:
        """Normalise inputs and call the collaborator. Raise ``MutationFailed``."""

    async def __call__(self, caller_id: str, args: Any, ctx: ExecutionContext) -> JSONObject:
        return await self.run(caller_id, args, ctx)


def _require_capability(ctx: ExecutionContext, capability: Capability, action: str) -> AuthorizationDecision:
    return require_tier(ctx, CAPABILITY_MIN_TIER[capability], action)


class AnalyzeVideo(ExternalMutation):
    action = "Video analysis"
    failure_message = "I couldn't analyze that video right now. Please try again in a moment."

    def __init__(self, analyzer: VideoAnalyzer, config: Settings | None = None):
        super().__init__(config)
        self.analyzer = analyzer

    def preflight(self, ctx: ExecutionContext) -> AuthorizationDecision:
        decision = require_flag(self.config.video_analysis_enabled, self.action)
        if not decision.allowed:
            return decision
        return _require_capability(ctx, Capability.VIDEO_ANALYSIS, self.action)

    async def run(self, caller_id: str, args: AnalyzeVideoParams, ctx: ExecutionContext) -> JSONObject:
        video_id = parse_video_id(args.video)
        if video_id is None:
            raise MutationFailed(
                "I couldn't find a YouTube video in that link. Paste the full video URL or its 11-character id."
            )
        try:
            return await self.analyzer.analyze(video_id)
        except VideoAnalysisError as e:
            logger.warning(f"[{ctx.trace_id[:8]}] analyze_video({video_id}) failed: {e}")
            raise MutationFailed(
                "I couldn't analyze that video. It may be private, age-restricted or still processing."
            ) from e


class ExtractStyleFromVideos(ExternalMutation):
    action = "Creating custom styles"
    failure_message = "I couldn't create a style from those videos right now. Please try again."

    def __init__(self, extractor: StyleExtractor, config: Settings | None = None):
        super().__init__(config)
        self.extractor = extractor

    def preflight(self, ctx: ExecutionContext) -> AuthorizationDecision:
        decision = require_flag(self.config.style_extraction_enabled, self.action)
        if not decision.allowed:
            return decision
        return _require_capability(ctx, Capability.CREATE_CUSTOM, self.action)

    async def run(self, caller_id: str, args: ExtractStyleParams, ctx: ExecutionContext) -> JSONObject:
        video_ids = parse_video_ids(args.videos)
        if len(video_ids) < MIN_VIDEOS:
            raise MutationFailed(
                f"I need at least {MIN_VIDEOS} different YouTube videos to find a common style, "
                f"but I could only read {len(video_ids)}."
            )
        if len(video_ids) > MAX_VIDEOS:
            raise MutationFailed(f"Pick at most {MAX_VIDEOS} videos and I'll find their common style.")
        try:
            return await self.extractor.extract(caller_id, video_ids, args.name)
        except StyleExtractionError as e:
            logger.warning(f"[{ctx.trace_id[:8]}] style extraction failed at {e.stage}: {e}")
            if e.stage == "fetch":
                raise MutationFailed(
                    "I couldn't download the thumbnails for those videos. Check that they're public."
                ) from e
            if e.stage == "upload":
                raise MutationFailed("I couldn't save the thumbnails for the new style. Please try again.") from e
            raise MutationFailed(
                "I couldn't work out a common style from those thumbnails. Try a different set of videos."
            ) from e


class UpdateVideoTitle(ExternalMutation):
    action = "Editing videos on YouTube"
    failure_message = "YouTube didn't accept the new title right now. Please try again later."

    def __init__(self, youtube: YouTubeService, config: Settings | None = None):
        super().__init__(config)
        self.youtube = youtube

    def preflight(self, ctx: ExecutionContext) -> AuthorizationDecision:
        return _require_capability(ctx, Capability.CHANNEL_AGENT, self.action)

    async def run(self, caller_id: str, args: UpdateVideoTitleParams, ctx: ExecutionContext) -> JSONObject:
        video_id = parse_video_id(args.video)
        if video_id is None:
            raise MutationFailed("I couldn't tell which video you mean. Paste its link or 11-character id.")
        try:
            return await self.youtube.update_video_title(caller_id, video_id, args.title)
        except IntegrationNotConnectedError as e:
            raise MutationFailed(
                "Your YouTube connection has expired. Reconnect your channel in Settings and try again."
            ) from e
        except YouTubeError as e:
            if e.status_code == 404:
                raise MutationFailed("I couldn't find that video on your channel.") from e
            if e.status_code in (401, 403):
                raise MutationFailed(
                    "YouTube didn't allow the change. Reconnecting your channel in Settings usually fixes this."
                ) from e
            raise MutationFailed(self.failure_message) from e
