"""
Data-tool handlers.

Each handler takes ``(caller_id, args, ctx)`` and returns JSON data for the
tool-response turn, or raises ``ToolExecutionError`` with a short sentence the
model can relay.  Collaborator errors are translated here so nothing below
this layer leaks into the transcript.
"""

from __future__ import annotations

import logging

from conductor.contracts.json_types import JSONObject
from conductor.core.context import ExecutionContext
from conductor.core.identifiers import parse_video_id
from conductor.core.tool_validation.params import (
    DateRangeParams,
    ListMyVideosParams,
    NoParams,
    PlaylistParams,
    SearchVideosParams,
    SubmitFeedbackParams,
    VideoAnalyticsParams,
    VideoCommentsParams,
    VideoParams,
)
from conductor.core.tools.registry import ToolExecutionError
from conductor.services.feedback import FeedbackStore, FeedbackValidationError, validate_feedback
from conductor.services.identity import IntegrationNotConnectedError
from conductor.services.youtube import YouTubeError, YouTubeService

logger = logging.getLogger(__name__)


def _video_id(value: str) -> str:
    vid = parse_video_id(value)
    if vid is None:
        raise ToolExecutionError(f"'{value}' is not a YouTube video id or URL", code="INVALID_ARGUMENTS")
    return vid


async def check_youtube_connection(caller_id: str, args: NoParams, ctx: ExecutionContext) -> JSONObject:
    return {"connected": ctx.integration_connected, "tier": ctx.tier.value}


class ChannelDataHandlers:
    """Handlers for the YouTube data tools, bound to one ``YouTubeService``."""

    def __init__(self, youtube: YouTubeService):
        self.youtube = youtube

    async def _call(self, coro) -> JSONObject:  # type: ignore[no-untyped-def]
        try:
            return await coro
        except IntegrationNotConnectedError as e:
            raise ToolExecutionError(
                "The YouTube channel is not connected or the connection expired. "
                "Ask the user to reconnect it in settings.",
                code="NOT_CONNECTED",
            ) from e
        except YouTubeError as e:
            raise ToolExecutionError(str(e)) from e

    async def list_my_videos(self, caller_id: str, args: ListMyVideosParams, ctx: ExecutionContext) -> JSONObject:
        return await self._call(self.youtube.list_my_videos(caller_id, args.max_results, args.page_token))

    async def get_video_details(self, caller_id: str, args: VideoParams, ctx: ExecutionContext) -> JSONObject:
        return await self._call(self.youtube.get_video_details(caller_id, _video_id(args.video_id)))

    async def search_videos(self, caller_id: str, args: SearchVideosParams, ctx: ExecutionContext) -> JSONObject:
        return await self._call(self.youtube.search_videos(args.query, args.max_results, args.order))

    async def get_playlist_videos(self, caller_id: str, args: PlaylistParams, ctx: ExecutionContext) -> JSONObject:
        return await self._call(
            self.youtube.get_playlist_videos(args.playlist_id, args.max_results, args.page_token)
        )

    async def get_video_comments(self, caller_id: str, args: VideoCommentsParams, ctx: ExecutionContext) -> JSONObject:
        return await self._call(
            self.youtube.get_video_comments(caller_id, _video_id(args.video_id), args.max_results)
        )

    async def get_channel_analytics(self, caller_id: str, args: DateRangeParams, ctx: ExecutionContext) -> JSONObject:
        start, end = args.resolve()
        return await self._call(self.youtube.get_channel_analytics(caller_id, start, end))

    async def get_video_analytics(self, caller_id: str, args: VideoAnalyticsParams, ctx: ExecutionContext) -> JSONObject:
        start, end = args.resolve()
        return await self._call(
            self.youtube.get_video_analytics(caller_id, _video_id(args.video_id), start, end)
        )

    async def get_my_channel_info(self, caller_id: str, args: NoParams, ctx: ExecutionContext) -> JSONObject:
        return await self._call(self.youtube.get_channel_info(caller_id))


class FeedbackHandler:
    def __init__(self, store: FeedbackStore):
        self.store = store

    async def __call__(self, caller_id: str, args: SubmitFeedbackParams, ctx: ExecutionContext) -> JSONObject:
        try:
            submission = validate_feedback(
                args.message,
                args.category,
                args.email,
                page_url=ctx.client.page_url,
                user_agent=ctx.client.user_agent,
                app_version=ctx.client.app_version,
            )
        except FeedbackValidationError as e:
            raise ToolExecutionError(str(e), code="INVALID_ARGUMENTS") from e
        feedback_id = await self.store.submit(caller_id, submission)
        return {"submitted": True, "feedbackId": feedback_id, "category": submission.category}
