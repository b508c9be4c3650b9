"""Dataclass models for tool validation results."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Generic, Optional, TypeVar

from pydantic import BaseModel

from conductor.contracts.json_types import JSONObject

P = TypeVar("P", bound=BaseModel)


@dataclass
class ValidationError:
    """A single validation error."""

    field: str
    message: str
    code: str

    def __str__(self) -> str:
        return f"{self.field}: {self.message}" if self.field else self.message


@dataclass
class ValidationResult(Generic[P]):
    """Tagged result of argument validation: ``args`` is set iff ``valid``."""

    valid: bool
    tool_name: str
    original_params: JSONObject
    args: Optional[P] = None
    errors: list[ValidationError] = field(default_factory=list)

    @property
    def error_message(self) -> str:
        if not self.errors:
            return ""
        return "; ".join(str(e) for e in self.errors)
