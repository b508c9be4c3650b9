"""
Tool registry: name -> {descriptor, metadata, parameter model, handler}.

Built once at startup and shared read-only by every request.  The mapping is
a ``MappingProxyType`` so nothing can register or replace a tool after
construction.
"""

from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Awaitable, Callable, Iterable, Iterator, Optional

from conductor.contracts.json_types import JSONObject
from conductor.contracts.llm_types import ToolSchemaDict
from conductor.core.tool_validation import ValidationResult, validate_tool_arguments
from conductor.core.tool_validation.params import ToolParams
from conductor.core.tools.metadata import ToolKind, ToolMeta

# (caller_id, typed args, ExecutionContext) -> data.  Creation handlers return a
# ReplyPayload instead; external mutations are ExternalMutation instances.
ToolHandler = Callable[[str, Any, Any], Awaitable[Any]]


class ToolExecutionError(Exception):
    """A handler (or the collaborator behind it) failed.

    ``message`` is short and safe to put in a tool-response turn.
    """

    def __init__(self, message: str, code: str = "TOOL_FAILED"):
        self.code = code
        super().__init__(message)


class DuplicateToolError(ValueError):
    pass


@dataclass(frozen=True)
class ToolEntry:
    meta: ToolMeta
    schema: ToolSchemaDict
    params_model: type[ToolParams]
    handler: Optional[ToolHandler] = None

    @property
    def name(self) -> str:
        return self.meta.name

    @property
    def kind(self) -> ToolKind:
        return self.meta.kind

    def validate(self, raw: JSONObject, arguments_error: Optional[str] = None) -> ValidationResult[ToolParams]:
        return validate_tool_arguments(self.name, self.params_model, raw, arguments_error)


class ToolRegistry:
    def __init__(self, entries: Iterable[ToolEntry]):
        table: dict[str, ToolEntry] = {}
        for entry in entries:
            if entry.name in table:
                raise DuplicateToolError(f"Tool registered twice: {entry.name}")
            if entry.name != entry.schema["function"]["name"]:
                raise ValueError(f"Descriptor name mismatch for {entry.name}")
            if entry.kind is not ToolKind.REPLY and entry.handler is None:
                raise ValueError(f"Tool {entry.name} has no handler")
            table[entry.name] = entry
        self._entries = MappingProxyType(table)

    def lookup(self, name: str) -> Optional[ToolEntry]:
        return self._entries.get(name)

    def __contains__(self, name: object) -> bool:
        return name in self._entries

    def __iter__(self) -> Iterator[ToolEntry]:
        return iter(self._entries.values())

    def __len__(self) -> int:
        return len(self._entries)

    def names(self) -> frozenset[str]:
        return frozenset(self._entries)

    def descriptors(self, names: Iterable[str]) -> list[ToolSchemaDict]:
        """Descriptors to offer the model: known, live tools in the given order."""
        out: list[ToolSchemaDict] = []
        for name in names:
            entry = self._entries.get(name)
            if entry is not None and entry.meta.live:
                out.append(entry.schema)
        return out
