"""Typed structures for OpenAI-format chat messages and API boundaries.

Every shape used by ``LLMClient`` is defined here as a TypedDict so that
field access can be verified statically.

Organisation:
  Chat messages          → ``UserMessage``, ``AssistantMessage``,
                           ``ToolResultMessage``, ``ChatMessage`` (union)
  Multimodal content     → ``TextPart``, ``ImageUrlPart``, ``ContentPart``
  Tool schemas           → ``PropertyDef``, ``ToolParametersDict``,
                           ``ToolFunctionDict``, ``ToolSchemaDict``,
                           ``OpenAIToolChoiceDict``, ``ToolCallFunction``,
                           ``ToolCallEntry``
  Token usage            → ``UsageStats``
  Request payload        → ``OpenAIRequestPayload``
  Response               → ``ResponseFunction``, ``ResponseToolCall``,
                           ``ResponseMessage``, ``ResponseChoice``,
                           ``OpenAIResponse``
"""
from __future__ import annotations

from typing import Literal, Union

from typing_extensions import NotRequired, Required, TypedDict

from conductor.contracts.json_types import JSONValue


# ── Chat message shapes ────────────────────────────────────────────────────────


class ToolCallFunction(TypedDict):
    """The ``function`` field inside an OpenAI tool call.

    ``arguments`` is a JSON-encoded string; callers must ``json.loads`` it.
    """

    name: str
    arguments: str


class ToolCallEntry(TypedDict):
    """One tool call in an assistant message."""

    id: str
    type: str
    function: ToolCallFunction


class TextPart(TypedDict):
    type: Literal["text"]
    text: str


class ImageUrlPart(TypedDict):
    type: Literal["image_url"]
    image_url: dict[str, str]  # {"url": "..."}


ContentPart = Union[TextPart, ImageUrlPart]


class UserMessage(TypedDict):
    """A user-role message (plain text or multimodal parts)."""

    role: Literal["user"]
    content: str | list[ContentPart]


class AssistantMessage(TypedDict, total=False):
    """An assistant reply; may be text-only or contain a tool call."""

    role: Required[Literal["assistant"]]
    content: str | None
    tool_calls: list[ToolCallEntry]


class ToolResultMessage(TypedDict):
    """A tool result message returned to the model after a tool call."""

    role: Literal["tool"]
    tool_call_id: str
    content: str


ChatMessage = Union[UserMessage, AssistantMessage, ToolResultMessage]
"""Union of the chat message shapes the orchestrator sends."""


# ── Tool schema shapes (OpenAI function-calling format) ───────────────────────


class PropertyDef(TypedDict, total=False):
    """JSON Schema definition for a single function parameter."""

    type: Required[str]       # "string", "number", "integer", "boolean", "array", "object"
    description: str
    enum: list[str]
    minimum: float
    maximum: float
    minItems: int
    maxItems: int
    maxLength: int
    pattern: str
    default: JSONValue
    items: dict[str, JSONValue]
    properties: dict[str, "PropertyDef"]


class ToolParametersDict(TypedDict, total=False):
    """JSON Schema ``parameters`` block inside a tool definition."""

    type: str
    properties: dict[str, PropertyDef]
    required: list[str]


class OpenAIToolChoiceDict(TypedDict):
    """Structured ``tool_choice`` when forcing a specific tool call."""

    type: str      # always "function"
    function: dict[str, str]  # {"name": "<tool_name>"}


class ToolFunctionDict(TypedDict):
    """The ``function`` field of a tool definition."""

    name: str
    description: str
    parameters: NotRequired[ToolParametersDict]


class ToolSchemaDict(TypedDict):
    """A single OpenAI-format tool definition (``{type: function, function: {...}}``)."""

    type: str
    function: ToolFunctionDict


OpenAIToolChoice = str | OpenAIToolChoiceDict
"""``"auto"`` / ``"none"`` / ``"required"`` or a forced-function dict."""


# ── Token usage ───────────────────────────────────────────────────────────────


class UsageStats(TypedDict, total=False):
    """Token usage returned by OpenRouter. All fields optional."""

    prompt_tokens: int
    completion_tokens: int
    total_tokens: int


# ── Request payload ───────────────────────────────────────────────────────────


class OpenAIRequestPayload(TypedDict, total=False):
    """Body of a ``/v1/chat/completions`` request."""

    model: Required[str]
    messages: Required[list[ChatMessage]]
    temperature: float
    max_tokens: int
    stream: bool
    tools: list[ToolSchemaDict]
    tool_choice: OpenAIToolChoice


# ── Response shapes ───────────────────────────────────────────────────────────


class ResponseFunction(TypedDict, total=False):
    name: str
    arguments: str


class ResponseToolCall(TypedDict, total=False):
    id: str
    type: str
    function: ResponseFunction


class ResponseMessage(TypedDict, total=False):
    content: str | None
    tool_calls: list[ResponseToolCall]


class ResponseChoice(TypedDict, total=False):
    message: ResponseMessage
    finish_reason: str | None


class OpenAIResponse(TypedDict, total=False):
    """Full (non-streaming) response body from an OpenAI-compatible API."""

    choices: list[ResponseChoice]
    usage: UsageStats
