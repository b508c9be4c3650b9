"""Conductor stream event models: single source of truth for SSE wire format.

Every SSE event the backend emits is an instance of a ``ConductorEvent``
subclass.  Raw dicts are forbidden; the emitter serializes through these
models so the wire format cannot drift.

Wire format rules:
  - All keys are camelCase (via CamelModel alias_generator)
  - Every event has: type, seq (injected by the stream writer), protocolVersion
  - JSON serialization uses model_dump(by_alias=True, exclude_none=True)
  - Events use extra="forbid"
"""

from __future__ import annotations

from typing import Literal

from pydantic import ConfigDict, Field, JsonValue

from conductor.models.base import CamelModel
from conductor.protocol.version import PROTOCOL_VERSION


class ConductorEvent(CamelModel):
    """Base class for all SSE events."""

    model_config = ConfigDict(extra="forbid")

    type: str
    seq: int = -1
    protocol_version: str = PROTOCOL_VERSION


class StatusEvent(ConductorEvent):
    """Coarse phase change."""

    type: Literal["status"] = "status"
    phase: Literal["analyzing", "searching", "invoking", "summarizing", "enriching"]
    message: str


class ToolCallEvent(ConductorEvent):
    """Start/end marker for one dispatched tool."""

    type: Literal["tool_call"] = "tool_call"
    tool: str
    status: Literal["calling", "complete", "error"]
    round: int = Field(ge=1)
    label: str | None = None


class TextChunkEvent(ConductorEvent):
    """One slice of the final message, in order."""

    type: Literal["text_chunk"] = "text_chunk"
    content: str
    index: int = Field(ge=0)


class ToolResultWire(CamelModel):
    model_config = ConfigDict(extra="forbid")

    tool: str
    result: JsonValue = None
    error: str | None = None
    code: str | None = None


class CompleteEvent(ConductorEvent):
    """Stream termination with the full result. Always the final event."""

    type: Literal["complete"] = "complete"
    message: str
    tool_results: list[ToolResultWire] = Field(default_factory=list)
    ui_sections: list[str] = Field(default_factory=list)
    field_updates: dict[str, JsonValue] = Field(default_factory=dict)
    suggestions: list[str] = Field(default_factory=list)
    offer_upgrade: bool = False
    code: str | None = None
    trace_id: str | None = None


class ErrorEvent(ConductorEvent):
    """Unrecoverable failure. Terminal, like ``complete``."""

    type: Literal["error"] = "error"
    message: str
    code: str
    trace_id: str | None = None


TERMINAL_EVENT_TYPES: frozenset[str] = frozenset({"complete", "error"})
