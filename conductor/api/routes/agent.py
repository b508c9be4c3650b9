"""
Channel-data assistant endpoints.

    POST /agent/chat           buffered reply
    POST /agent/chat/stream    same conversation as SSE
    POST /agent/execute-tool   run one data tool directly
"""
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import StreamingResponse

from conductor.api.dependencies import Runtime, get_runtime
from conductor.api.routes._shared import client_info, limiter, model_unavailable, stream_response, trace_id_for
from conductor.auth.dependencies import require_caller_id
from conductor.config import settings
from conductor.core.context import build_execution_context
from conductor.core.llm_client import ModelTransportError
from conductor.core.pipeline import ConversationInput, ConversationPipeline
from conductor.core.profiles import agent_profile
from conductor.core.prompts import build_agent_instruction
from conductor.core.sanitize import sanitize_error_message
from conductor.core.tools.metadata import ToolKind
from conductor.core.tools.registry import ToolExecutionError
from conductor.models.requests import AgentChatRequest, ExecuteToolRequest
from conductor.models.responses import ChatResponse, ExecuteToolResponse

router = APIRouter()
logger = logging.getLogger(__name__)


def agent_pipeline(runtime: Runtime) -> ConversationPipeline:
    return ConversationPipeline(
        model=runtime.model,
        registry=runtime.registry,
        gate=runtime.gate,
        identity=runtime.identity,
        profile=agent_profile(settings),
        instruction=lambda ctx, locked, grounding: build_agent_instruction(ctx, locked),
    )


def _conversation(request: Request, body: AgentChatRequest, caller_id: str) -> ConversationInput:
    return ConversationInput(
        caller_id=caller_id,
        messages=body.messages,
        focused_resource_id=body.focused_resource_id,
        client=client_info(request),
    )


@router.post("/agent/chat", response_model=ChatResponse)
@limiter.limit(settings.chat_rate_limit)
async def agent_chat(
    request: Request,
    body: AgentChatRequest,
    caller_id: str = Depends(require_caller_id),
    runtime: Runtime = Depends(get_runtime),
) -> ChatResponse:
    trace_id = trace_id_for(request)
    try:
        result = await agent_pipeline(runtime).run_buffered(_conversation(request, body, caller_id), trace_id)
    except ModelTransportError as e:
        model_unavailable(trace_id, e)
    return ChatResponse.from_result(result)


@router.post("/agent/chat/stream")
@limiter.limit(settings.chat_rate_limit)
async def agent_chat_stream(
    request: Request,
    body: AgentChatRequest,
    caller_id: str = Depends(require_caller_id),
    runtime: Runtime = Depends(get_runtime),
) -> StreamingResponse:
    trace_id = trace_id_for(request)
    return stream_response(agent_pipeline(runtime), _conversation(request, body, caller_id), trace_id)


def _tool_error(status_code: int, message: str, code: str) -> HTTPException:
    return HTTPException(status_code=status_code, detail={"message": message, "code": code})


@router.post("/agent/execute-tool", response_model=ExecuteToolResponse)
@limiter.limit(settings.execute_tool_rate_limit)
async def execute_tool(
    request: Request,
    body: ExecuteToolRequest,
    caller_id: str = Depends(require_caller_id),
    runtime: Runtime = Depends(get_runtime),
) -> ExecuteToolResponse:
    """Run one data tool outside the conversation loop.

    Same registry, gate and validation as the loop; only tools flagged
    ``directly_executable`` are reachable here.
    """
    trace_id = trace_id_for(request)
    entry = runtime.registry.lookup(body.tool)
    if entry is None:
        raise _tool_error(status.HTTP_404_NOT_FOUND, f"Unknown tool: {body.tool}", "UNKNOWN_TOOL")
    if entry.kind is not ToolKind.DATA or not entry.meta.directly_executable or entry.handler is None:
        raise _tool_error(
            status.HTTP_400_BAD_REQUEST, f"Tool {body.tool} cannot be executed directly", "VALIDATION_ERROR",
        )

    ctx = await build_execution_context(
        runtime.identity, caller_id, client=client_info(request), trace_id=trace_id,
    )
    decision = runtime.gate.authorize(entry.meta, ctx)
    if not decision.allowed:
        code = decision.code.value if decision.code else "FORBIDDEN"
        raise _tool_error(status.HTTP_403_FORBIDDEN, decision.reason or "Not allowed", code)

    validation = entry.validate(body.params)
    if not validation.valid:
        raise _tool_error(
            status.HTTP_400_BAD_REQUEST, f"Invalid params: {validation.error_message}", "INVALID_ARGUMENTS",
        )

    try:
        data = await entry.handler(caller_id, validation.args, ctx)
    except ToolExecutionError as e:
        logger.info(f"[{trace_id[:8]}] execute-tool {body.tool} failed: {e}")
        raise _tool_error(status.HTTP_502_BAD_GATEWAY, str(e), e.code) from e
    except Exception as e:
        logger.exception(f"[{trace_id[:8]}] execute-tool {body.tool} raised")
        raise _tool_error(status.HTTP_500_INTERNAL_SERVER_ERROR, sanitize_error_message(e), "TOOL_FAILED") from e

    logger.info(f"[{trace_id[:8]}] execute-tool {body.tool} ok")
    return ExecuteToolResponse(tool=body.tool, result=data)
