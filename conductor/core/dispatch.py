"""
Tool dispatch: one model-requested call -> one ``DispatchOutcome``.

Order is fixed: lookup, offered-set check, argument validation,
authorization, then the kind-specific path.  Nothing here raises for a bad
call; every failure is an outcome the orchestrator can append to the
transcript or turn into a reply.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, cast

from conductor.core.authorization import AuthorizationGate
from conductor.core.context import ExecutionContext
from conductor.core.llm_client import ToolCall
from conductor.core.progress import ToolResult
from conductor.core.reply import ReplyPayload, notice
from conductor.core.sanitize import sanitize_error_message
from conductor.core.side_effects import ExternalMutation, MutationFailed, capture_reply
from conductor.core.tool_validation.params import ReplyParams
from conductor.core.tools.metadata import ToolKind
from conductor.core.tools.registry import ToolExecutionError, ToolRegistry

logger = logging.getLogger(__name__)

CREATION_FAILED = "Sorry, I couldn't create that right now. Please try again in a moment."


@dataclass(frozen=True)
class DispatchOutcome:
    result: ToolResult
    reply: Optional[ReplyPayload] = None
    record: bool = True  # include in OrchestrationResult.tool_results

    @property
    def terminal(self) -> bool:
        return self.reply is not None


def _error(tool: str, message: str, code: str) -> DispatchOutcome:
    return DispatchOutcome(ToolResult(tool=tool, error=message, code=code))


class ToolDispatcher:
    def __init__(self, registry: ToolRegistry, gate: AuthorizationGate, offered: frozenset[str]):
        self.registry = registry
        self.gate = gate
        self.offered = offered

    async def dispatch(self, call: ToolCall, ctx: ExecutionContext) -> DispatchOutcome:
        tag = f"[{ctx.trace_id[:8]}]"
        entry = self.registry.lookup(call.name)
        if entry is None:
            logger.warning(f"{tag} model requested unknown tool {call.name!r}")
            return _error(call.name, f"Unknown tool: {call.name}", "UNKNOWN_TOOL")
        if entry.name not in self.offered:
            logger.warning(f"{tag} model requested tool not offered here: {call.name}")
            return _error(call.name, f"Tool {call.name} is not available in this conversation", "UNKNOWN_TOOL")

        validation = entry.validate(call.params, call.arguments_error)
        if not validation.valid:
            return _error(call.name, f"Invalid arguments: {validation.error_message}", "INVALID_ARGUMENTS")
        args = validation.args

        decision = self.gate.authorize(entry.meta, ctx)
        if not decision.allowed:
            reason = decision.reason or "Not allowed"
            code = decision.code.value if decision.code else "FORBIDDEN"
            if entry.kind is ToolKind.EXTERNAL_MUTATION:
                return DispatchOutcome(
                    ToolResult(tool=call.name, error=reason, code=code),
                    reply=notice(reason, offer_upgrade=decision.offer_upgrade),
                )
            return _error(call.name, reason, code)

        if entry.kind is ToolKind.REPLY:
            payload = capture_reply(cast(ReplyParams, args))
            return DispatchOutcome(ToolResult(tool=call.name, data={"captured": True}), reply=payload, record=False)

        assert entry.handler is not None

        if entry.kind is ToolKind.RESOURCE_CREATION:
            try:
                reply = await entry.handler(ctx.caller_id, args, ctx)
            except Exception:
                logger.exception(f"{tag} {call.name} raised")
                reply = notice(CREATION_FAILED)
            return DispatchOutcome(ToolResult(tool=call.name, data={"message": reply.message}), reply=reply)

        if entry.kind is ToolKind.EXTERNAL_MUTATION:
            return await self._mutate(cast(ExternalMutation, entry.handler), call.name, args, ctx)

        try:
            data = await entry.handler(ctx.caller_id, args, ctx)
        except ToolExecutionError as e:
            logger.info(f"{tag} {call.name} failed: {e}")
            return _error(call.name, str(e), e.code)
        except Exception as e:
            logger.exception(f"{tag} {call.name} raised")
            return _error(call.name, sanitize_error_message(e), "TOOL_FAILED")
        return DispatchOutcome(ToolResult(tool=call.name, data=data))

    async def _mutate(
        self, mutation: ExternalMutation, name: str, args: object, ctx: ExecutionContext,
    ) -> DispatchOutcome:
        decision = mutation.preflight(ctx)
        if not decision.allowed:
            reason = decision.reason or "Not allowed"
            code = decision.code.value if decision.code else "FORBIDDEN"
            logger.info(f"[{ctx.trace_id[:8]}] 🔒 {name} preflight denied: {code}")
            return DispatchOutcome(
                ToolResult(tool=name, error=reason, code=code),
                reply=notice(reason, offer_upgrade=decision.offer_upgrade),
            )
        try:
            data = await mutation(ctx.caller_id, args, ctx)
        except MutationFailed as e:
            return DispatchOutcome(ToolResult(tool=name, error=str(e), code="TOOL_FAILED"), reply=notice(str(e)))
        except Exception:
            logger.exception(f"[{ctx.trace_id[:8]}] {name} raised")
            message = mutation.failure_message
            return DispatchOutcome(ToolResult(tool=name, error=message, code="TOOL_FAILED"), reply=notice(message))
        return DispatchOutcome(ToolResult(tool=name, data=data))
