"""
Prompt assembly.

The model never "remembers" anything between calls: every request restates
the system instruction, the live ``ExecutionContext`` facts and the whole
conversation in a single user-role turn, and the transcript grows from there.
"""

from __future__ import annotations

from typing import Any, Iterable, Mapping, Optional, Sequence

from conductor.contracts.llm_types import UserMessage
from conductor.core.context import ExecutionContext
from conductor.core.reply import UI_SECTION_VALUES
from conductor.core.sanitize import normalise_user_input
from conductor.models.requests import ChatMessageIn, NamedOption


def format_history(messages: Sequence[ChatMessageIn]) -> str:
    lines = []
    for m in messages:
        speaker = "User" if m.role == "user" else "Assistant"
        lines.append(f"{speaker}: {normalise_user_input(m.content)}")
    return "\n\n".join(lines)


def build_initial_turn(instruction: str, messages: Sequence[ChatMessageIn]) -> UserMessage:
    """System instruction + serialized history as one user turn."""
    return {
        "role": "user",
        "content": f"{instruction}\n\nConversation history:\n\n{format_history(messages)}",
    }


# =============================================================================
# Agent surface
# =============================================================================

def build_agent_instruction(ctx: ExecutionContext, locked_tools: Iterable[str] = ()) -> str:
    locked = sorted(locked_tools)
    focus = f"\n- focused video: {ctx.focused_resource_id}" if ctx.focused_resource_id else ""
    locked_line = (
        f"\n- tools unavailable to this user: {', '.join(locked)}" if locked else ""
    )
    return f"""You are a helpful YouTube assistant for creators. Answer questions about the user's channel, videos, analytics and search results using the tools provided.

User context (use this; do NOT call check_youtube_connection):
- tier={ctx.tier.value}, YouTube connected={str(ctx.integration_connected).lower()}{focus}{locked_line}

Rules:
- If connected is false and the user asks about their own videos or analytics, reply briefly asking them to connect their YouTube channel in Settings.
- If connected is true and the user asks about their videos, analytics or channel, call the matching tool, then reply with a short summary and the key numbers.
- Call at most one tool at a time. After receiving tool results, always finish with a concise text reply; do not end your turn with only tool calls.
- Only change a video's title when the user explicitly asked for it."""


# =============================================================================
# Studio surface
# =============================================================================

_FORM_FIELDS: tuple[tuple[str, str, Any], ...] = (
    ("title", "Title", "(not set)"),
    ("includeFace", "Include Face", False),
    ("selectedFaces", "Selected Faces", []),
    ("styleReferences", "Style References", []),
    ("selectedStyle", "Selected Style", None),
    ("selectedPalette", "Selected Palette", None),
    ("aspectRatio", "Aspect Ratio", "16:9"),
    ("resolution", "Resolution", "1K"),
    ("variations", "Variations", 1),
    ("customInstructions", "Custom Instructions", "(not set)"),
    ("projectId", "Project", None),
)


def _describe(value: Any, default: Any) -> str:
    if value is None or value == "":
        value = default
    if isinstance(value, bool):
        return "Yes" if value else "No"
    if isinstance(value, list):
        return f"{len(value)} item(s)" if value else "None"
    if value is None:
        return "None"
    return str(value)


def format_form_state(form_state: Mapping[str, Any]) -> str:
    return "\n".join(
        f"- {label}: {_describe(form_state.get(key), default)}" for key, label, default in _FORM_FIELDS
    )


def _format_options(label: str, options: Sequence[NamedOption]) -> str:
    if not options:
        return f"Available {label}: (not provided)"
    return f"Available {label}: " + ", ".join(f"{o.name} (ID: {o.id})" for o in options)


def build_studio_instruction(
    ctx: ExecutionContext,
    form_state: Mapping[str, Any],
    styles: Sequence[NamedOption] = (),
    palettes: Sequence[NamedOption] = (),
    attachment_count: int = 0,
    locked_tools: Iterable[str] = (),
    grounding: Optional[str] = None,
) -> str:
    sections = ", ".join(UI_SECTION_VALUES)
    instruction = f"""You are an expert at creating viral thumbnails with short, catchy titles. Guide the user through setting up a thumbnail by reasoning about their intent and surfacing the right UI sections.

Always answer by calling generate_assistant_response, unless another tool is clearly needed first.

UI sections (return only the 1-2 that match the user's latest message): {sections}

When you surface a section, also set field_updates so that section is pre-filled (for example TitleSection with {{"title": "..."}}). Suggest 2-3 next steps.

Only call create_project after the user has confirmed they want a new project and given it a name.

User context: tier={ctx.tier.value}

CURRENT FORM STATE:
{format_form_state(form_state)}

AVAILABLE OPTIONS:
{_format_options("Styles", styles)}
{_format_options("Palettes", palettes)}"""

    locked = sorted(locked_tools)
    if locked:
        instruction += f"\n\nTools unavailable to this user (explain and set offer_upgrade instead): {', '.join(locked)}"
    if attachment_count:
        instruction += (
            f"\n\nThe user attached {attachment_count} image(s). If they ask to add them to their style "
            "references, surface StyleReferencesSection and set add_attached_images_to_style_references. "
            "If they ask to use the image as their face, surface FaceSection or RegisterFaceCard, set "
            "add_attached_image_as_new_face and optionally new_face_name."
        )
    if grounding:
        instruction += f"\n\nBackground research (may be incomplete):\n{grounding}"
    return instruction


def build_grounding_prompt(messages: Sequence[ChatMessageIn]) -> str:
    return (
        "Briefly list facts, current trends or title ideas that would help answer the latest "
        "message in this conversation about a YouTube thumbnail. Plain text, at most 5 bullet points.\n\n"
        f"{format_history(messages)}"
    )
