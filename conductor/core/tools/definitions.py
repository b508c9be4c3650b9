"""
Tool descriptors in OpenAI function-calling format.

Pure data: names, purposes and parameter schemas.  What each tool may do and
who may call it lives in the registry; these dicts are only what the model sees.
"""

from __future__ import annotations

from conductor.contracts.llm_types import PropertyDef, ToolSchemaDict
from conductor.core.reply import UI_SECTION_VALUES
from conductor.services.feedback import FEEDBACK_CATEGORIES, MESSAGE_MAX_LENGTH


def _tool(name: str, description: str, properties: dict[str, PropertyDef], required: list[str] | None = None) -> ToolSchemaDict:
    return {
        "type": "function",
        "function": {
            "name": name,
            "description": description,
            "parameters": {
                "type": "object",
                "properties": properties,
                "required": required or [],
            },
        },
    }


_DATE: PropertyDef = {"type": "string", "pattern": r"^\d{4}-\d{2}-\d{2}$", "description": "YYYY-MM-DD"}
_DAYS: PropertyDef = {
    "type": "integer", "minimum": 1, "maximum": 365, "default": 28,
    "description": "Look-back window in days when no explicit dates are given",
}
_VIDEO: PropertyDef = {"type": "string", "description": "Video id or any YouTube URL for the video"}


# =============================================================================
# Channel data (YouTube)
# =============================================================================

CHECK_YOUTUBE_CONNECTION = _tool(
    "check_youtube_connection",
    "Report whether the user's YouTube channel is connected and their plan tier.",
    {},
)

LIST_MY_VIDEOS = _tool(
    "list_my_videos",
    "List the user's most recent uploads with view, like and comment counts.",
    {
        "maxResults": {"type": "integer", "minimum": 1, "maximum": 50, "default": 10},
        "pageToken": {"type": "string", "description": "Token from a previous call for the next page"},
    },
)

GET_VIDEO_DETAILS = _tool(
    "get_video_details",
    "Get title, description, tags, duration and statistics for one of the user's videos.",
    {"video_id": _VIDEO},
    ["video_id"],
)

SEARCH_VIDEOS = _tool(
    "search_videos",
    "Search public YouTube videos. Use for competitor research or finding reference videos.",
    {
        "query": {"type": "string", "description": "Search terms"},
        "maxResults": {"type": "integer", "minimum": 1, "maximum": 50, "default": 10},
        "order": {"type": "string", "enum": ["relevance", "date", "viewCount", "rating"], "default": "relevance"},
    },
    ["query"],
)

GET_PLAYLIST_VIDEOS = _tool(
    "get_playlist_videos",
    "List the videos in a public playlist.",
    {
        "playlist_id": {"type": "string", "description": "Playlist id"},
        "maxResults": {"type": "integer", "minimum": 1, "maximum": 50, "default": 20},
        "pageToken": {"type": "string"},
    },
    ["playlist_id"],
)

GET_VIDEO_COMMENTS = _tool(
    "get_video_comments",
    "Read the top comments on one of the user's videos.",
    {
        "video_id": _VIDEO,
        "maxResults": {"type": "integer", "minimum": 1, "maximum": 100, "default": 20},
    },
    ["video_id"],
)

GET_CHANNEL_ANALYTICS = _tool(
    "get_channel_analytics",
    "Channel-level analytics (views, watch time, subscribers, engagement) for a date range.",
    {"start_date": _DATE, "end_date": _DATE, "days": _DAYS},
)

GET_VIDEO_ANALYTICS = _tool(
    "get_video_analytics",
    "Analytics for a single video, with a daily views time series.",
    {"video_id": _VIDEO, "start_date": _DATE, "end_date": _DATE, "days": _DAYS},
    ["video_id"],
)

GET_MY_CHANNEL_INFO = _tool(
    "get_my_channel_info",
    "The user's channel title, description and lifetime statistics.",
    {},
)


# =============================================================================
# Side effects
# =============================================================================

SUBMIT_FEEDBACK = _tool(
    "submit_feedback",
    "Send the user's feedback, bug report or feature request to the product team. "
    "Only call this when the user explicitly asks to send feedback.",
    {
        "message": {"type": "string", "maxLength": MESSAGE_MAX_LENGTH, "description": "The feedback, in the user's words"},
        "category": {"type": "string", "enum": list(FEEDBACK_CATEGORIES)},
        "email": {"type": "string", "description": "Optional reply-to address the user provided"},
    },
    ["message", "category"],
)

CREATE_PROJECT = _tool(
    "create_project",
    "Create a new project. Only call this AFTER the user has explicitly confirmed they want "
    "the project created; ask first in a previous turn.",
    {
        "name": {"type": "string", "description": "Project name"},
        "description": {"type": "string"},
    },
    ["name"],
)

ANALYZE_VIDEO = _tool(
    "analyze_video",
    "Watch a YouTube video and return a structured analysis (summary, topic, tone, hooks, "
    "key moments, thumbnail notes).",
    {"video": _VIDEO},
    ["video"],
)

EXTRACT_STYLE_FROM_VIDEOS = _tool(
    "extract_style_from_videos",
    "Create a reusable visual style from the thumbnails of 2 to 10 YouTube videos.",
    {
        "videos": {
            "type": "array", "minItems": 2, "maxItems": 10,
            "items": {"type": "string"},
            "description": "Video ids or URLs",
        },
        "name": {"type": "string", "description": "Optional name for the new style"},
    },
    ["videos"],
)

UPDATE_VIDEO_TITLE = _tool(
    "update_video_title",
    "Change the title of one of the user's videos on YouTube. Only call this after the user "
    "has confirmed the exact new title.",
    {
        "video": _VIDEO,
        "title": {"type": "string", "maxLength": 100, "description": "The new title"},
    },
    ["video", "title"],
)


# =============================================================================
# Reply shaping
# =============================================================================

GENERATE_ASSISTANT_RESPONSE = _tool(
    "generate_assistant_response",
    "Reply to the user. Use this for every answer: the message is shown in chat, ui_sections "
    "choose which form controls to surface, and field_updates pre-fill the form.",
    {
        "message": {"type": "string", "description": "What to say to the user"},
        "ui_sections": {
            "type": "array",
            "items": {"type": "string", "enum": list(UI_SECTION_VALUES)},
            "description": "Form sections to show alongside the message",
        },
        "field_updates": {
            "type": "object",
            "description": "Form fields to pre-fill, keyed by field name",
            "properties": {
                "title": {"type": "string"},
                "customInstructions": {"type": "string"},
                "selectedStyle": {"type": "string", "description": "Id of one of the available styles"},
                "selectedPalette": {"type": "string", "description": "Id of one of the available palettes"},
                "selectedAspectRatio": {"type": "string"},
                "selectedResolution": {"type": "string"},
                "variations": {"type": "integer", "minimum": 1, "maximum": 4},
                "includeFace": {"type": "boolean"},
            },
        },
        "suggestions": {
            "type": "array",
            "items": {"type": "string"},
            "description": "Up to 3 short follow-up prompts the user can click",
        },
        "offer_upgrade": {"type": "boolean", "description": "True when the user asked for something their plan lacks"},
        "add_attached_images_to_style_references": {
            "type": "boolean",
            "description": "True when the user wants their attached images used as style references",
        },
        "add_attached_image_as_new_face": {
            "type": "boolean",
            "description": "True when the user wants their attached photo registered as a face",
        },
        "new_face_name": {"type": "string", "description": "Name for the new face, if the user gave one"},
    },
    ["message"],
)


ALL_TOOLS: list[ToolSchemaDict] = [
    CHECK_YOUTUBE_CONNECTION,
    LIST_MY_VIDEOS,
    GET_VIDEO_DETAILS,
    SEARCH_VIDEOS,
    GET_PLAYLIST_VIDEOS,
    GET_VIDEO_COMMENTS,
    GET_CHANNEL_ANALYTICS,
    GET_VIDEO_ANALYTICS,
    GET_MY_CHANNEL_INFO,
    SUBMIT_FEEDBACK,
    CREATE_PROJECT,
    ANALYZE_VIDEO,
    EXTRACT_STYLE_FROM_VIDEOS,
    UPDATE_VIDEO_TITLE,
    GENERATE_ASSISTANT_RESPONSE,
]

TOOL_SCHEMAS: dict[str, ToolSchemaDict] = {t["function"]["name"]: t for t in ALL_TOOLS}
