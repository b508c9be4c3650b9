"""
Bounded model-turn loop.

States:
    INIT            initial turn assembled; nothing sent yet
    AWAITING_MODEL  one model call outstanding (or about to be made)
    DISPATCH        exactly one tool call being validated/authorized/executed
    DONE            loop finished; the result is built exactly once

Invariants:
    1. At most one tool call is processed per round.
    2. The round counter only increases, and no model call is made once it
       has reached ``max_rounds``.
    3. A terminal outcome (reply capture, resource creation, failed or denied
       mutation) goes straight to DONE without another model call.
    4. The final message is never empty: reply text, else the last free text,
       else one forced-summary call, else a fixed apology.

``ModelTransportError`` from the model is not caught here: it ends the whole
request and the delivery surface turns it into an error reply or event.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from enum import Enum
from typing import AsyncIterator, Optional, Sequence, Union

from conductor.config import settings
from conductor.contracts.llm_types import (
    AssistantMessage,
    ChatMessage,
    OpenAIToolChoice,
    ToolResultMessage,
    UserMessage,
)
from conductor.core.authorization import AuthorizationGate
from conductor.core.context import ExecutionContext
from conductor.core.dispatch import DispatchOutcome, ToolDispatcher
from conductor.core.fallback import ForcedSummary
from conductor.core.llm_client import ReasoningModel, ToolCall, enforce_single_tool
from conductor.core.progress import (
    OrchestrationResult,
    Phase,
    StatusUpdate,
    ToolProgress,
    ToolResult,
    ToolStatus,
)
from conductor.core.reply import DEFAULT_REPLY_MESSAGE, ReplyPayload
from conductor.core.tools.registry import ToolRegistry

logger = logging.getLogger(__name__)


class LoopState(str, Enum):
    INIT = "init"
    AWAITING_MODEL = "awaiting_model"
    DISPATCH = "dispatch"
    DONE = "done"


_TRANSITIONS: dict[LoopState, frozenset[LoopState]] = {
    LoopState.INIT: frozenset({LoopState.AWAITING_MODEL}),
    LoopState.AWAITING_MODEL: frozenset({LoopState.DISPATCH, LoopState.DONE}),
    LoopState.DISPATCH: frozenset({LoopState.AWAITING_MODEL, LoopState.DONE}),
    LoopState.DONE: frozenset(),
}


class InvalidTransitionError(Exception):
    """Raised when the loop attempts a transition the state machine forbids."""

    def __init__(self, from_state: LoopState, to_state: LoopState):
        self.from_state = from_state
        self.to_state = to_state
        super().__init__(f"Invalid transition: {from_state.value} → {to_state.value}")


def assert_transition(from_state: LoopState, to_state: LoopState) -> None:
    if to_state not in _TRANSITIONS.get(from_state, frozenset()):
        raise InvalidTransitionError(from_state, to_state)


LoopEvent = Union[StatusUpdate, ToolProgress, OrchestrationResult]


class Orchestrator:
    """One instance per request.

    ``run`` is an async generator: it yields ``ToolProgress`` items as tools
    are dispatched, a ``StatusUpdate`` if the forced summary runs, and the
    ``OrchestrationResult`` last.
    """

    def __init__(
        self,
        model: ReasoningModel,
        registry: ToolRegistry,
        gate: AuthorizationGate,
        *,
        tool_names: Sequence[str],
        tool_choice: OpenAIToolChoice = "auto",
        max_rounds: Optional[int] = None,
    ):
        self.model = model
        self.registry = registry
        self.tool_names = tuple(tool_names)
        self.tool_choice = tool_choice
        self.max_rounds = max_rounds if max_rounds is not None else settings.max_tool_rounds
        self.dispatcher = ToolDispatcher(registry, gate, frozenset(self.tool_names))
        self.summary = ForcedSummary(model)
        self.state = LoopState.INIT
        self.rounds = 0

    def _move(self, to_state: LoopState) -> None:
        assert_transition(self.state, to_state)
        self.state = to_state

    async def run(self, initial_turn: UserMessage, ctx: ExecutionContext) -> AsyncIterator[LoopEvent]:
        tag = f"[{ctx.trace_id[:8]}]"
        tools = self.registry.descriptors(self.tool_names)
        transcript: list[ChatMessage] = [initial_turn]
        results: list[ToolResult] = []
        last_text = ""
        reply: Optional[ReplyPayload] = None

        self._move(LoopState.AWAITING_MODEL)
        while self.state is LoopState.AWAITING_MODEL:
            if self.rounds >= self.max_rounds:
                logger.warning(f"{tag} round ceiling ({self.max_rounds}) reached")
                self._move(LoopState.DONE)
                break

            response = enforce_single_tool(await self.model.chat_completion(
                messages=transcript,
                tools=tools or None,
                tool_choice=self.tool_choice if tools else None,
            ))
            if response.text:
                last_text = response.text
            if not response.has_tool_calls:
                self._move(LoopState.DONE)
                break

            self._move(LoopState.DISPATCH)
            self.rounds += 1
            call = response.tool_calls[0]
            entry = self.registry.lookup(call.name)
            label = entry.meta.label if entry else ""
            logger.info(f"{tag} round {self.rounds}: {call.name}")
            yield ToolProgress(call.name, ToolStatus.CALLING, self.rounds, label)

            outcome = await self.dispatcher.dispatch(call, ctx)
            status = ToolStatus.COMPLETE if outcome.result.ok else ToolStatus.ERROR
            yield ToolProgress(call.name, status, self.rounds, label)

            if outcome.record:
                results.append(outcome.result)
            transcript.extend(self._tool_turns(call, outcome, response.content))

            if outcome.terminal:
                reply = outcome.reply
                self._move(LoopState.DONE)
            else:
                self._move(LoopState.AWAITING_MODEL)

        used_fallback = False
        if reply is not None:
            message = reply.message or last_text or DEFAULT_REPLY_MESSAGE
            if message != reply.message:
                reply = replace(reply, message=message)
        elif last_text:
            message = last_text
        else:
            yield StatusUpdate(Phase.SUMMARIZING, "Summarizing results...")
            content = initial_turn["content"]
            context_turn = content if isinstance(content, str) else ""
            message = await self.summary.summarize(context_turn, results)
            used_fallback = True
            logger.info(f"{tag} forced summary used after {self.rounds} round(s)")

        yield OrchestrationResult(
            message=message,
            tool_results=tuple(results),
            side_effect_payload=reply,
            rounds=self.rounds,
            used_fallback=used_fallback,
        )

    def _tool_turns(
        self, call: ToolCall, outcome: DispatchOutcome, content: Optional[str],
    ) -> tuple[AssistantMessage, ToolResultMessage]:
        call_id = call.id or f"call_{self.rounds}"
        assistant: AssistantMessage = {
            "role": "assistant",
            "content": content,
            "tool_calls": [{
                "id": call_id,
                "type": "function",
                "function": {"name": call.name, "arguments": call.arguments_json()},
            }],
        }
        tool: ToolResultMessage = {
            "role": "tool",
            "tool_call_id": call_id,
            "content": outcome.result.to_model_content(),
        }
        return assistant, tool
