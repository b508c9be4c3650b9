"""
Streaming delivery.

Maps pipeline progress onto wire events and writes them through a
single-writer channel:

- ``status`` and ``tool_call`` events as progress arrives
- the final message as ordered ``text_chunk`` slices with a short delay
  between them (presentation only; concatenation equals the message)
- exactly one terminal ``complete`` or ``error`` event, then the stream
  closes

The pipeline runs in its own task feeding a queue.  If the reader goes away
the channel detaches: in-flight tool and model calls run to completion, but
nothing more is written.
"""

from __future__ import annotations

import asyncio
import logging
from typing import AsyncIterator, Awaitable, Callable, Optional

from conductor.config import Settings, settings as default_settings
from conductor.core.llm_client import ModelTransportError
from conductor.core.progress import OrchestrationResult, Progress, StatusUpdate, ToolProgress
from conductor.core.sse_utils import SSESequencer
from conductor.protocol.events import (
    CompleteEvent,
    ConductorEvent,
    ErrorEvent,
    StatusEvent,
    TextChunkEvent,
    ToolCallEvent,
    ToolResultWire,
)

logger = logging.getLogger(__name__)

MODEL_UNAVAILABLE_MESSAGE = "The assistant is temporarily unavailable. Please try again in a moment."
INTERNAL_ERROR_MESSAGE = "Something went wrong while generating a response. Please try again."

# Strong references to producers whose reader has gone away.
_background_tasks: set[asyncio.Task[None]] = set()


def chunk_text(message: str, size: int) -> list[str]:
    """Fixed-size character slices, in order, covering the whole message."""
    if size < 1:
        raise ValueError("chunk size must be positive")
    return [message[i:i + size] for i in range(0, len(message), size)]


def progress_event(item: StatusUpdate | ToolProgress) -> ConductorEvent:
    if isinstance(item, StatusUpdate):
        return StatusEvent(phase=item.phase.value, message=item.message)
    return ToolCallEvent(tool=item.tool, status=item.status.value, round=item.round, label=item.label or None)


def complete_event(result: OrchestrationResult, trace_id: Optional[str] = None) -> CompleteEvent:
    payload = result.side_effect_payload
    return CompleteEvent(
        message=result.message,
        tool_results=[
            ToolResultWire(tool=r.tool, result=r.data, error=r.error, code=r.code) for r in result.tool_results
        ],
        ui_sections=[s.value for s in payload.ui_sections] if payload else [],
        field_updates=dict(payload.field_updates) if payload else {},
        suggestions=list(payload.suggestions) if payload else [],
        offer_upgrade=result.offer_upgrade,
        code=result.code,
        trace_id=trace_id,
    )


class EventChannel:
    """Single-writer, single-reader SSE channel over one pipeline run."""

    def __init__(
        self,
        source: AsyncIterator[Progress],
        *,
        trace_id: str = "",
        on_close: Optional[Callable[[], Awaitable[None]]] = None,
        config: Optional[Settings] = None,
    ):
        self.source = source
        self.trace_id = trace_id
        self.on_close = on_close
        self.config = config or default_settings
        self.detached = False
        self._queue: asyncio.Queue[Optional[str]] = asyncio.Queue()
        self._sequencer = SSESequencer()
        self._closed = False
        self._task: Optional[asyncio.Task[None]] = None

    @property
    def closed(self) -> bool:
        return self._closed

    def _write(self, event: ConductorEvent) -> None:
        if self._closed:
            logger.warning(f"[{self.trace_id[:8]}] dropped {event.type} after terminal event")
            return
        frame = self._sequencer(event)
        if isinstance(event, (CompleteEvent, ErrorEvent)):
            self._closed = True
        if not self.detached:
            self._queue.put_nowait(frame)

    async def _write_text(self, message: str) -> None:
        delay = self.config.stream_chunk_delay_ms / 1000
        for index, chunk in enumerate(chunk_text(message, self.config.stream_chunk_size)):
            if index and delay and not self.detached:
                await asyncio.sleep(delay)
            self._write(TextChunkEvent(content=chunk, index=index))

    async def _produce(self) -> None:
        tag = f"[{self.trace_id[:8]}]"
        try:
            async for item in self.source:
                if isinstance(item, OrchestrationResult):
                    await self._write_text(item.message)
                    self._write(complete_event(item, self.trace_id or None))
                    break
                self._write(progress_event(item))
            else:
                logger.error(f"{tag} pipeline ended without a result")
                self._write(ErrorEvent(message=INTERNAL_ERROR_MESSAGE, code="INTERNAL_ERROR", trace_id=self.trace_id))
        except ModelTransportError as e:
            logger.error(f"{tag} model unavailable: {e}")
            self._write(ErrorEvent(message=MODEL_UNAVAILABLE_MESSAGE, code="MODEL_UNAVAILABLE", trace_id=self.trace_id))
        except Exception:
            logger.exception(f"{tag} stream producer failed")
            self._write(ErrorEvent(message=INTERNAL_ERROR_MESSAGE, code="INTERNAL_ERROR", trace_id=self.trace_id))
        finally:
            if self.on_close is not None:
                try:
                    await self.on_close()
                except Exception:
                    logger.exception(f"{tag} stream cleanup failed")
            self._queue.put_nowait(None)
            if self.detached:
                logger.info(f"{tag} detached stream finished in background")

    def start(self) -> None:
        if self._task is None:
            self._task = asyncio.create_task(self._produce())
            _background_tasks.add(self._task)
            self._task.add_done_callback(_background_tasks.discard)

    async def frames(self) -> AsyncIterator[str]:
        """Reader side. Closing this iterator early detaches the producer."""
        self.start()
        try:
            while True:
                frame = await self._queue.get()
                if frame is None:
                    break
                yield frame
        finally:
            if self._task is not None and not self._task.done():
                self.detached = True
                logger.info(f"[{self.trace_id[:8]}] client went away; finishing in background")

    async def wait(self) -> None:
        """Wait for the producer (tests)."""
        if self._task is not None:
            await asyncio.shield(self._task)
