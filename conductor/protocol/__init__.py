"""Conductor stream protocol: single source of truth for the SSE wire contract.

    from conductor.protocol import PROTOCOL_VERSION, emit, parse_event, ConductorEvent
"""
from __future__ import annotations

from conductor.protocol.emitter import ProtocolSerializationError, emit, parse_event, parse_frame
from conductor.protocol.events import ConductorEvent
from conductor.protocol.version import PROTOCOL_VERSION

__all__ = [
    "PROTOCOL_VERSION",
    "ConductorEvent",
    "emit",
    "parse_event",
    "parse_frame",
    "ProtocolSerializationError",
]
