"""Event registry: canonical mapping of event type strings to model classes.

Invariants:
  - Every event the backend can emit has an entry.
  - Unknown event types cannot be emitted (emitter rejects them).
  - Registry is frozen at import time.
"""

from __future__ import annotations

from types import MappingProxyType
from typing import Mapping, Type

from conductor.protocol.events import (
    CompleteEvent,
    ConductorEvent,
    ErrorEvent,
    StatusEvent,
    TextChunkEvent,
    ToolCallEvent,
)

EVENT_REGISTRY: Mapping[str, Type[ConductorEvent]] = MappingProxyType({
    "status": StatusEvent,
    "tool_call": ToolCallEvent,
    "text_chunk": TextChunkEvent,
    "complete": CompleteEvent,
    "error": ErrorEvent,
})
