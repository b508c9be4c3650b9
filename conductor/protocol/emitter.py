"""Typed SSE event emitter and parser.

  ``emit(ConductorEvent)`` : serialize a typed event to SSE wire format.
  ``parse_event(dict)``    : inverse of ``emit``; used by tests and any
                             consumer that wants typed access to events.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping

from pydantic import ValidationError

from conductor.protocol.events import ConductorEvent
from conductor.protocol.registry import EVENT_REGISTRY

logger = logging.getLogger(__name__)


class ProtocolSerializationError(Exception):
    """An event is unknown or does not match its registered model."""


def emit(event: ConductorEvent) -> str:
    """Serialize an event to ``data: {json}\\n\\n``."""
    if not isinstance(event, ConductorEvent):
        raise TypeError(f"emit() requires a ConductorEvent, got {type(event).__name__}.")
    if event.type not in EVENT_REGISTRY:
        raise ValueError(f"Unknown event type '{event.type}'.")

    data = event.model_dump(by_alias=True, exclude_none=True)
    return f"data: {json.dumps(data, separators=(',', ':'), ensure_ascii=False)}\n\n"


def parse_event(data: Mapping[str, object]) -> ConductorEvent:
    event_type = data.get("type")
    if not isinstance(event_type, str):
        raise ProtocolSerializationError("Event dict missing 'type' field")
    model_class = EVENT_REGISTRY.get(event_type)
    if model_class is None:
        raise ProtocolSerializationError(f"Unknown event type '{event_type}'. Cannot deserialize.")
    try:
        return model_class.model_validate(data)
    except ValidationError as exc:
        raise ProtocolSerializationError(f"Event '{event_type}' failed deserialization: {exc}") from exc


def parse_frame(frame: str) -> ConductorEvent:
    """Parse one ``data: ...`` SSE frame."""
    line = frame.strip()
    if not line.startswith("data: "):
        raise ProtocolSerializationError(f"Not a data frame: {line[:40]!r}")
    return parse_event(json.loads(line[6:]))
