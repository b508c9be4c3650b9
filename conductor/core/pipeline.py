"""
Conversation pipeline: one request from raw input to ``OrchestrationResult``.

    context → surface gate → [grounding] → round loop → [enrichment] → result

Both delivery surfaces consume the same async generator: the buffered route
keeps only the final result, the streaming route maps every item to an event.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import Any, AsyncIterator, Callable, Mapping, Optional, Sequence

from conductor.config import Settings, settings as default_settings
from conductor.core.authorization import AuthorizationGate
from conductor.core.context import ClientInfo, ExecutionContext, build_execution_context
from conductor.core.enrichment import Attachment, EnrichmentPipeline
from conductor.core.llm_client import ModelTransportError, ReasoningModel
from conductor.core.orchestrator import Orchestrator
from conductor.core.profiles import ToolProfile
from conductor.core.progress import OrchestrationResult, Phase, Progress, StatusUpdate
from conductor.core.prompts import build_grounding_prompt, build_initial_turn
from conductor.core.reply import REQUEST_ONLY_FIELDS, notice
from conductor.core.tools.registry import ToolRegistry
from conductor.models.requests import ChatMessageIn
from conductor.services.identity import IdentityService

logger = logging.getLogger(__name__)

# (ctx, locked tool names, grounding text or None) -> system instruction
InstructionBuilder = Callable[[ExecutionContext, list[str], Optional[str]], str]


@dataclass(frozen=True)
class ConversationInput:
    """Validated caller input for one request."""

    caller_id: str
    messages: Sequence[ChatMessageIn]
    focused_resource_id: Optional[str] = None
    form_state: Mapping[str, Any] = field(default_factory=dict)
    attachments: Sequence[Attachment] = ()
    client: ClientInfo = ClientInfo()


class ConversationPipeline:
    def __init__(
        self,
        *,
        model: ReasoningModel,
        registry: ToolRegistry,
        gate: AuthorizationGate,
        identity: IdentityService,
        profile: ToolProfile,
        instruction: InstructionBuilder,
        enrichment: Optional[EnrichmentPipeline] = None,
        config: Optional[Settings] = None,
    ):
        self.model = model
        self.registry = registry
        self.gate = gate
        self.identity = identity
        self.profile = profile
        self.instruction = instruction
        self.enrichment = enrichment
        self.config = config or default_settings

    async def run(self, request: ConversationInput, trace_id: str = "") -> AsyncIterator[Progress]:
        tag = f"[{trace_id[:8]}]"
        yield StatusUpdate(Phase.ANALYZING, "Analyzing conversation...")

        ctx = await build_execution_context(
            self.identity,
            request.caller_id,
            focused_resource_id=request.focused_resource_id,
            client=request.client,
            trace_id=trace_id,
        )

        surface = self.gate.authorize_surface(self.profile.required_tier, ctx, self.profile.surface_action)
        if not surface.allowed:
            reason = surface.reason or "This assistant isn't available on your plan."
            yield OrchestrationResult(
                message=reason,
                side_effect_payload=notice(reason, offer_upgrade=surface.offer_upgrade),
                code=surface.code.value if surface.code else None,
            )
            return

        metas = [e.meta for e in (self.registry.lookup(n) for n in self.profile.tool_names) if e is not None]
        _, locked = self.gate.partition(metas, ctx)

        grounding: Optional[str] = None
        if self.profile.grounding:
            yield StatusUpdate(Phase.SEARCHING, "Looking up background information...")
            grounding = await self._ground(request.messages, tag)

        initial_turn = build_initial_turn(self.instruction(ctx, locked, grounding), request.messages)

        yield StatusUpdate(Phase.INVOKING, "Thinking...")
        orchestrator = Orchestrator(
            self.model,
            self.registry,
            self.gate,
            tool_names=self.profile.tool_names,
            tool_choice=self.profile.tool_choice,
            max_rounds=self.config.max_tool_rounds,
        )
        result: Optional[OrchestrationResult] = None
        async for item in orchestrator.run(initial_turn, ctx):
            if isinstance(item, OrchestrationResult):
                result = item
            else:
                yield item
        assert result is not None

        payload = result.side_effect_payload
        if payload is not None:
            wants_upload = any(payload.request_flag(k) for k in REQUEST_ONLY_FIELDS)
            if self.enrichment is not None and wants_upload and request.attachments:
                yield StatusUpdate(Phase.ENRICHING, "Saving your images...")
                payload, report = await self.enrichment.enrich(payload, request.attachments, ctx, request.form_state)
                if not report.ok:
                    logger.warning(f"{tag} enrichment degraded: {report.failures}")
            else:
                payload = payload.without_request_fields()
            result = replace(result, side_effect_payload=payload)

        logger.info(
            f"{tag} {self.profile.name} done: rounds={result.rounds} tools={len(result.tool_results)} "
            f"fallback={result.used_fallback}"
        )
        yield result

    async def run_buffered(self, request: ConversationInput, trace_id: str = "") -> OrchestrationResult:
        """Drain ``run`` and return the final result."""
        result: Optional[OrchestrationResult] = None
        async for item in self.run(request, trace_id):
            if isinstance(item, OrchestrationResult):
                result = item
        assert result is not None
        return result

    async def _ground(self, messages: Sequence[ChatMessageIn], tag: str) -> Optional[str]:
        """Tool-free background call; failure only means no extra context."""
        try:
            response = await self.model.chat_completion(
                messages=[{"role": "user", "content": build_grounding_prompt(messages)}],
            )
        except ModelTransportError as e:
            logger.warning(f"{tag} grounding call failed, continuing without it: {e}")
            return None
        return response.text or None
