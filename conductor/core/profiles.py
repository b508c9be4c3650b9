"""
Conversation surfaces.

A profile fixes which registry tools a surface offers, whether a tool call
is mandatory each round, and what tier the surface as a whole requires.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from conductor.config import Settings
from conductor.contracts.llm_types import OpenAIToolChoice
from conductor.services.tiers import Tier


@dataclass(frozen=True)
class ToolProfile:
    name: str
    tool_names: tuple[str, ...]
    tool_choice: OpenAIToolChoice
    required_tier: Optional[Tier] = None
    surface_action: str = ""
    grounding: bool = False

    @property
    def offered(self) -> frozenset[str]:
        return frozenset(self.tool_names)


AGENT_TOOLS: tuple[str, ...] = (
    "list_my_videos",
    "get_video_details",
    "search_videos",
    "get_playlist_videos",
    "get_video_comments",
    "get_channel_analytics",
    "get_video_analytics",
    "get_my_channel_info",
    "submit_feedback",
    "analyze_video",
    "update_video_title",
)

STUDIO_TOOLS: tuple[str, ...] = (
    "generate_assistant_response",
    "create_project",
    "submit_feedback",
    "analyze_video",
    "extract_style_from_videos",
    "search_videos",
)


def agent_profile(config: Settings) -> ToolProfile:
    return ToolProfile(
        name="agent",
        tool_names=AGENT_TOOLS,
        tool_choice="auto",
        required_tier=Tier.parse(config.agent_required_tier),
        surface_action="The YouTube assistant",
    )


def studio_profile(config: Settings) -> ToolProfile:
    return ToolProfile(
        name="studio",
        tool_names=STUDIO_TOOLS,
        tool_choice="required",
        grounding=config.grounding_enabled,
    )
