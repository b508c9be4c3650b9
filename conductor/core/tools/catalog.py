"""Build the process-wide tool registry from its collaborators."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from conductor.config import Settings, settings as default_settings
from conductor.core.side_effects import (
    AnalyzeVideo,
    CreateProjectHandler,
    ExtractStyleFromVideos,
    UpdateVideoTitle,
)
from conductor.core.tool_validation.params import (
    AnalyzeVideoParams,
    CreateProjectParams,
    DateRangeParams,
    ExtractStyleParams,
    ListMyVideosParams,
    NoParams,
    PlaylistParams,
    ReplyParams,
    SearchVideosParams,
    SubmitFeedbackParams,
    UpdateVideoTitleParams,
    VideoAnalyticsParams,
    VideoCommentsParams,
    VideoParams,
)
from conductor.core.tools import definitions as d
from conductor.core.tools.handlers import ChannelDataHandlers, FeedbackHandler, check_youtube_connection
from conductor.core.tools.metadata import ToolKind, ToolMeta
from conductor.core.tools.registry import ToolEntry, ToolRegistry
from conductor.services.feedback import FeedbackStore
from conductor.services.projects import ProjectStore
from conductor.services.style_extraction import StyleExtractor
from conductor.services.tiers import Tier
from conductor.services.video_analysis import VideoAnalyzer
from conductor.services.youtube import YouTubeService

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Collaborators:
    youtube: YouTubeService
    projects: ProjectStore
    feedback: FeedbackStore
    video_analyzer: VideoAnalyzer
    style_extractor: StyleExtractor


def _data(name: str, label: str, *, channel: bool = False, own: bool = False, direct: bool = True) -> ToolMeta:
    return ToolMeta(
        name=name,
        kind=ToolKind.DATA,
        min_tier=Tier.PRO if channel else Tier.FREE,
        requires_integration=own,
        directly_executable=direct,
        label=label,
    )


def build_tool_registry(collab: Collaborators, config: Settings | None = None) -> ToolRegistry:
    config = config or default_settings
    channel = ChannelDataHandlers(collab.youtube)

    entries = [
        ToolEntry(
            ToolMeta("check_youtube_connection", ToolKind.DATA, live=False, directly_executable=True,
                     label="Checking YouTube connection"),
            d.CHECK_YOUTUBE_CONNECTION, NoParams, check_youtube_connection,
        ),
        ToolEntry(_data("list_my_videos", "Listing your videos", channel=True, own=True),
                  d.LIST_MY_VIDEOS, ListMyVideosParams, channel.list_my_videos),
        ToolEntry(_data("get_video_details", "Reading video details", channel=True, own=True),
                  d.GET_VIDEO_DETAILS, VideoParams, channel.get_video_details),
        ToolEntry(_data("search_videos", "Searching YouTube", channel=True),
                  d.SEARCH_VIDEOS, SearchVideosParams, channel.search_videos),
        ToolEntry(_data("get_playlist_videos", "Reading playlist", channel=True),
                  d.GET_PLAYLIST_VIDEOS, PlaylistParams, channel.get_playlist_videos),
        ToolEntry(_data("get_video_comments", "Reading comments", channel=True, own=True),
                  d.GET_VIDEO_COMMENTS, VideoCommentsParams, channel.get_video_comments),
        ToolEntry(_data("get_channel_analytics", "Channel analytics", channel=True, own=True),
                  d.GET_CHANNEL_ANALYTICS, DateRangeParams, channel.get_channel_analytics),
        ToolEntry(_data("get_video_analytics", "Video analytics", channel=True, own=True),
                  d.GET_VIDEO_ANALYTICS, VideoAnalyticsParams, channel.get_video_analytics),
        ToolEntry(_data("get_my_channel_info", "Reading channel info", channel=True, own=True),
                  d.GET_MY_CHANNEL_INFO, NoParams, channel.get_my_channel_info),
        ToolEntry(_data("submit_feedback", "Sending feedback", direct=False),
                  d.SUBMIT_FEEDBACK, SubmitFeedbackParams, FeedbackHandler(collab.feedback)),
        ToolEntry(
            ToolMeta("create_project", ToolKind.RESOURCE_CREATION, label="Creating project"),
            d.CREATE_PROJECT, CreateProjectParams, CreateProjectHandler(collab.projects),
        ),
        ToolEntry(
            ToolMeta("analyze_video", ToolKind.EXTERNAL_MUTATION, label="Analyzing video"),
            d.ANALYZE_VIDEO, AnalyzeVideoParams, AnalyzeVideo(collab.video_analyzer, config),
        ),
        ToolEntry(
            ToolMeta("extract_style_from_videos", ToolKind.EXTERNAL_MUTATION, label="Extracting style"),
            d.EXTRACT_STYLE_FROM_VIDEOS, ExtractStyleParams, ExtractStyleFromVideos(collab.style_extractor, config),
        ),
        ToolEntry(
            ToolMeta("update_video_title", ToolKind.EXTERNAL_MUTATION, requires_integration=True,
                     label="Updating video title"),
            d.UPDATE_VIDEO_TITLE, UpdateVideoTitleParams, UpdateVideoTitle(collab.youtube, config),
        ),
        ToolEntry(
            ToolMeta("generate_assistant_response", ToolKind.REPLY, label="Composing reply"),
            d.GENERATE_ASSISTANT_RESPONSE, ReplyParams,
        ),
    ]
    registry = ToolRegistry(entries)
    logger.info(f"Tool registry built: {len(registry)} tools")
    return registry
