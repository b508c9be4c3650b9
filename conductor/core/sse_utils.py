"""
SSE helpers for the streaming surface.

Centralizes sequencing and guard checks so every frame on a stream carries
a monotonic ``seq`` and passes the ordering guard before it is written.
"""

from __future__ import annotations

import logging

from conductor.protocol.emitter import emit
from conductor.protocol.events import ConductorEvent
from conductor.protocol.validation import ProtocolGuard

logger = logging.getLogger(__name__)

SSE_HEADERS: dict[str, str] = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


class SSESequencer:
    """Stamps a monotonic ``seq`` onto events and serializes them.

    Each stream creates its own instance so counters are independent.  The
    counter starts at 0.  A single sequencer is only used by the one task
    that writes the stream, so no lock is needed.
    """

    def __init__(self) -> None:
        self._seq: int = -1
        self._guard = ProtocolGuard()

    def __call__(self, event: ConductorEvent) -> str:
        self._seq += 1
        stamped = event.model_copy(update={"seq": self._seq})
        data = stamped.model_dump(by_alias=True, exclude_none=True)
        violations = self._guard.check_event(stamped.type, data)
        if violations:
            logger.error(f"❌ ProtocolGuard violations: {violations}")
        return emit(stamped)

    @property
    def count(self) -> int:
        """Last ``seq`` issued (-1 before the first event)."""
        return self._seq

    @property
    def terminated(self) -> bool:
        return self._guard.terminated
