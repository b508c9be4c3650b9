"""Progress items yielded by the orchestration pipeline.

Delivery surfaces consume these: the buffered surface ignores everything but
the final ``OrchestrationResult``; the streaming surface maps each item to a
wire event.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union

from conductor.contracts.json_types import JSONObject, JSONValue
from conductor.core.reply import ReplyPayload


class Phase(str, Enum):
    ANALYZING = "analyzing"
    SEARCHING = "searching"
    INVOKING = "invoking"
    SUMMARIZING = "summarizing"
    ENRICHING = "enriching"


class ToolStatus(str, Enum):
    CALLING = "calling"
    COMPLETE = "complete"
    ERROR = "error"


@dataclass(frozen=True)
class StatusUpdate:
    phase: Phase
    message: str


@dataclass(frozen=True)
class ToolProgress:
    tool: str
    status: ToolStatus
    round: int
    label: str = ""


@dataclass(frozen=True)
class ToolResult:
    """``{data}`` or ``{error}`` for one dispatched tool."""

    tool: str
    data: JSONValue = None
    error: Optional[str] = None
    code: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_model_content(self) -> str:
        """Body of the tool-response turn."""
        if self.error is not None:
            return json.dumps({"error": self.error, "code": self.code})
        return json.dumps(self.data, default=str)

    def to_dict(self) -> JSONObject:
        if self.error is not None:
            return {"tool": self.tool, "error": self.error, "code": self.code}
        return {"tool": self.tool, "result": self.data}


@dataclass(frozen=True)
class OrchestrationResult:
    """The single externally visible outcome of one request."""

    message: str
    tool_results: tuple[ToolResult, ...] = ()
    side_effect_payload: Optional[ReplyPayload] = None
    rounds: int = 0
    used_fallback: bool = False
    code: Optional[str] = None

    @property
    def offer_upgrade(self) -> bool:
        return bool(self.side_effect_payload and self.side_effect_payload.offer_upgrade)


Progress = Union[StatusUpdate, ToolProgress, OrchestrationResult]
