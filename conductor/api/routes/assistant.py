"""
Thumbnail studio assistant.

    POST /assistant/chat                buffered reply
    POST /assistant/chat?stream=true    same conversation as SSE
"""
from __future__ import annotations

import logging
from typing import Optional, Union

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from fastapi.responses import StreamingResponse

from conductor.api.dependencies import Runtime, get_runtime
from conductor.api.routes._shared import client_info, limiter, model_unavailable, stream_response, trace_id_for
from conductor.auth.dependencies import require_caller_id
from conductor.config import settings
from conductor.core.context import ExecutionContext
from conductor.core.enrichment import Attachment
from conductor.core.llm_client import ModelTransportError
from conductor.core.pipeline import ConversationInput, ConversationPipeline
from conductor.core.profiles import studio_profile
from conductor.core.prompts import build_studio_instruction
from conductor.models.requests import AssistantChatRequest
from conductor.models.responses import ChatResponse

router = APIRouter()
logger = logging.getLogger(__name__)


def studio_pipeline(runtime: Runtime, body: AssistantChatRequest) -> ConversationPipeline:
    options = body.available_options

    def instruction(ctx: ExecutionContext, locked: list[str], grounding: Optional[str]) -> str:
        return build_studio_instruction(
            ctx,
            body.form_state,
            styles=options.styles,
            palettes=options.palettes,
            attachment_count=len(body.attachments),
            locked_tools=locked,
            grounding=grounding,
        )

    return ConversationPipeline(
        model=runtime.model,
        registry=runtime.registry,
        gate=runtime.gate,
        identity=runtime.identity,
        profile=studio_profile(settings),
        instruction=instruction,
        enrichment=runtime.enrichment,
    )


def _attachments(body: AssistantChatRequest) -> list[Attachment]:
    decoded: list[Attachment] = []
    for index, item in enumerate(body.attachments):
        try:
            data = item.decode()
        except ValueError as e:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail={"message": f"Attachment {index + 1} is not valid base64", "code": "VALIDATION_ERROR"},
            ) from e
        if len(data) > settings.max_attachment_bytes:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail={"message": f"Attachment {index + 1} is too large", "code": "VALIDATION_ERROR"},
            )
        decoded.append(Attachment(data=data, mime_type=item.mime_type))
    return decoded


@router.post("/assistant/chat", response_model=None)
@limiter.limit(settings.chat_rate_limit)
async def assistant_chat(
    request: Request,
    body: AssistantChatRequest,
    stream: bool = Query(default=False),
    caller_id: str = Depends(require_caller_id),
    runtime: Runtime = Depends(get_runtime),
) -> Union[ChatResponse, StreamingResponse]:
    trace_id = trace_id_for(request)
    conversation = ConversationInput(
        caller_id=caller_id,
        messages=body.messages,
        focused_resource_id=body.focused_resource_id,
        form_state=body.form_state,
        attachments=_attachments(body),
        client=client_info(request),
    )
    pipeline = studio_pipeline(runtime, body)
    if stream:
        return stream_response(pipeline, conversation, trace_id)
    try:
        result = await pipeline.run_buffered(conversation, trace_id)
    except ModelTransportError as e:
        model_unavailable(trace_id, e)
    return ChatResponse.from_result(result)
