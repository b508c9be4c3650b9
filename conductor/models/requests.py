"""Request models for the Conductor API."""
from __future__ import annotations

import base64
import binascii
import logging
from typing import Literal

from pydantic import Field, JsonValue, field_validator

from conductor.config import settings
from conductor.models.base import CamelModel

logger = logging.getLogger(__name__)

_MAX_MESSAGE_CHARS = 16_000
_MAX_MESSAGES = 100


class ChatMessageIn(CamelModel):
    """One turn of caller-supplied conversation history."""

    role: Literal["user", "assistant"]
    content: str = Field(..., max_length=_MAX_MESSAGE_CHARS)

    @field_validator("content")
    @classmethod
    def no_null_bytes(cls, v: str) -> str:
        if "\x00" in v:
            raise ValueError("Message must not contain null bytes")
        return v


class NamedOption(CamelModel):
    """A selectable style or palette the caller already owns."""

    id: str
    name: str


class AvailableOptions(CamelModel):
    styles: list[NamedOption] = Field(default_factory=list)
    palettes: list[NamedOption] = Field(default_factory=list)


class AttachmentIn(CamelModel):
    """Base64-encoded image attached to a studio message."""

    data: str = Field(..., description="Base64 bytes, optionally as a data: URL")
    mime_type: str

    @field_validator("data")
    @classmethod
    def strip_data_url(cls, v: str) -> str:
        if v.startswith("data:") and "," in v:
            return v.split(",", 1)[1]
        return v

    def decode(self) -> bytes:
        try:
            return base64.b64decode(self.data, validate=True)
        except (binascii.Error, ValueError) as e:
            raise ValueError("Attachment is not valid base64") from e


class AgentChatRequest(CamelModel):
    """Request to the channel-data assistant."""

    messages: list[ChatMessageIn] = Field(..., min_length=1, max_length=_MAX_MESSAGES)
    focused_resource_id: str | None = Field(
        default=None,
        description="Video the user is currently looking at, if any",
    )


class AssistantChatRequest(CamelModel):
    """Request to the thumbnail studio assistant."""

    messages: list[ChatMessageIn] = Field(..., min_length=1, max_length=_MAX_MESSAGES)
    focused_resource_id: str | None = None
    form_state: dict[str, JsonValue] = Field(default_factory=dict)
    available_options: AvailableOptions = Field(default_factory=AvailableOptions)
    attachments: list[AttachmentIn] = Field(default_factory=list)

    @field_validator("attachments")
    @classmethod
    def cap_attachments(cls, v: list[AttachmentIn]) -> list[AttachmentIn]:
        if len(v) > settings.max_attachments:
            raise ValueError(f"At most {settings.max_attachments} attachments per message")
        return v


class ExecuteToolRequest(CamelModel):
    """Run one data tool directly, outside the conversation loop."""

    tool: str = Field(..., min_length=1, max_length=100)
    params: dict[str, JsonValue] = Field(default_factory=dict)
