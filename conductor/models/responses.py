"""Response models for the Conductor API."""
from __future__ import annotations

from pydantic import Field, JsonValue

from conductor.core.progress import OrchestrationResult
from conductor.models.base import CamelModel


class ToolResultOut(CamelModel):
    tool: str
    result: JsonValue = None
    error: str | None = None
    code: str | None = None


class ChatResponse(CamelModel):
    """Buffered reply: message plus the flattened reply payload."""

    message: str
    tool_results: list[ToolResultOut] = Field(default_factory=list)
    ui_sections: list[str] = Field(default_factory=list)
    field_updates: dict[str, JsonValue] = Field(default_factory=dict)
    suggestions: list[str] = Field(default_factory=list)
    offer_upgrade: bool = False
    code: str | None = None

    @classmethod
    def from_result(cls, result: OrchestrationResult) -> "ChatResponse":
        payload = result.side_effect_payload
        return cls(
            message=result.message,
            tool_results=[
                ToolResultOut(tool=r.tool, result=r.data, error=r.error, code=r.code)
                for r in result.tool_results
            ],
            ui_sections=[s.value for s in payload.ui_sections] if payload else [],
            field_updates=dict(payload.field_updates) if payload else {},
            suggestions=list(payload.suggestions) if payload else [],
            offer_upgrade=result.offer_upgrade,
            code=result.code,
        )


class ExecuteToolResponse(CamelModel):
    success: bool = True
    tool: str
    result: JsonValue = None


class ErrorBody(CamelModel):
    message: str
    code: str


class HealthResponse(CamelModel):
    status: str
    service: str
    version: str
