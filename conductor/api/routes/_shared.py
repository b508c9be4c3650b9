"""Shared helpers for the chat routes."""
from __future__ import annotations

import logging
from typing import NoReturn

from fastapi import HTTPException, Request, status
from fastapi.responses import StreamingResponse
from slowapi import Limiter
from slowapi.util import get_remote_address

from conductor.config import settings
from conductor.core.context import ClientInfo
from conductor.core.pipeline import ConversationInput, ConversationPipeline
from conductor.core.sse_utils import SSE_HEADERS
from conductor.core.streaming import MODEL_UNAVAILABLE_MESSAGE, EventChannel
from conductor.core.tracing import new_trace_id

logger = logging.getLogger(__name__)

limiter = Limiter(key_func=get_remote_address, enabled=settings.rate_limit_enabled)


def client_info(request: Request) -> ClientInfo:
    return ClientInfo(
        page_url=request.headers.get("referer"),
        user_agent=request.headers.get("user-agent"),
        app_version=request.headers.get("x-app-version"),
    )


def trace_id_for(request: Request) -> str:
    assigned = getattr(request.state, "trace_id", None)
    if assigned:
        return assigned
    return new_trace_id(request.headers.get("x-request-id"))


def model_unavailable(trace_id: str, error: Exception) -> NoReturn:
    logger.error(f"[{trace_id[:8]}] model unavailable: {error}")
    raise HTTPException(
        status_code=status.HTTP_502_BAD_GATEWAY,
        detail={"message": MODEL_UNAVAILABLE_MESSAGE, "code": "MODEL_UNAVAILABLE"},
        headers={"X-Trace-ID": trace_id},
    )


def stream_response(pipeline: ConversationPipeline, conversation: ConversationInput, trace_id: str) -> StreamingResponse:
    channel = EventChannel(pipeline.run(conversation, trace_id), trace_id=trace_id)
    logger.info(f"[{trace_id[:8]}] 🔌 SSE stream opened ({pipeline.profile.name})")
    return StreamingResponse(
        channel.frames(),
        media_type="text/event-stream",
        headers={**SSE_HEADERS, "X-Trace-ID": trace_id},
    )
