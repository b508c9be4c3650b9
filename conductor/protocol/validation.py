"""Runtime protocol guardrails.

Stateful ordering checks the stream writer runs before each event.  In
debug, violations log at ERROR level, otherwise at WARNING.  The guard
reports; the writer decides what to drop.
"""

from __future__ import annotations

import logging

from conductor.config import settings
from conductor.protocol.events import TERMINAL_EVENT_TYPES
from conductor.protocol.registry import EVENT_REGISTRY

logger = logging.getLogger(__name__)


class ProtocolGuard:
    """Tracks event ordering invariants for one stream."""

    def __init__(self) -> None:
        self._event_count = 0
        self._terminal: str | None = None
        self._next_chunk = 0

    def check_event(self, event_type: str, data: dict[str, object]) -> list[str]:
        """Validate an event before emission. Returns violations (empty = ok)."""
        violations: list[str] = []

        if event_type not in EVENT_REGISTRY:
            violations.append(f"Unregistered event type: '{event_type}'")

        if self._terminal is not None:
            violations.append(f"Event '{event_type}' emitted after '{self._terminal}' (terminal violation)")

        if event_type == "text_chunk":
            index = data.get("index")
            if index != self._next_chunk:
                violations.append(f"text_chunk index {index} out of order (expected {self._next_chunk})")
            self._next_chunk += 1

        self._event_count += 1
        if event_type in TERMINAL_EVENT_TYPES and self._terminal is None:
            self._terminal = event_type

        for v in violations:
            if settings.debug:
                logger.error(f"❌ Protocol violation: {v}")
            else:
                logger.warning(f"⚠️ Protocol violation: {v}")
        return violations

    @property
    def terminated(self) -> bool:
        return self._terminal is not None

    @property
    def count(self) -> int:
        return self._event_count
