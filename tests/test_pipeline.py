"""Tests for the conversation pipeline (conductor/core/pipeline.py).

Covers: surface tier gate (no model call), locked tools in the instruction,
optional grounding and its failure, enrichment hand-off, and request-only
flags never reaching the caller.
"""
from __future__ import annotations

from dataclasses import replace

from conductor.config import settings
from conductor.core.enrichment import Attachment, EnrichmentPipeline
from conductor.core.llm_client import LLMResponse, ModelTransportError, ToolCall
from conductor.core.pipeline import ConversationInput, ConversationPipeline
from conductor.core.profiles import agent_profile, studio_profile
from conductor.core.progress import OrchestrationResult, Phase, StatusUpdate
from conductor.core.reply import ADD_TO_STYLE_REFERENCES
from conductor.models.requests import ChatMessageIn
from conductor.services.tiers import Tier

PNG = Attachment(data=b"\x89PNG pipeline image", mime_type="image/png")


def _reply(**params) -> LLMResponse:
    return LLMResponse(tool_calls=[ToolCall(name="generate_assistant_response", params=params, id="c1")])


def _input(text: str = "Make me a thumbnail", **kwargs) -> ConversationInput:
    return ConversationInput(caller_id="user-1", messages=[ChatMessageIn(role="user", content=text)], **kwargs)


def _instruction(seen: list):
    def build(ctx, locked, grounding):
        seen.append({"tier": ctx.tier, "locked": list(locked), "grounding": grounding})
        return "INSTRUCTION"
    return build


def _pipeline(model, registry, gate, identity, profile, seen=None, enrichment=None) -> ConversationPipeline:
    return ConversationPipeline(
        model=model,
        registry=registry,
        gate=gate,
        identity=identity,
        profile=profile,
        instruction=_instruction(seen if seen is not None else []),
        enrichment=enrichment,
    )


def _phases(items) -> list[Phase]:
    return [i.phase for i in items if isinstance(i, StatusUpdate)]


# ---------------------------------------------------------------------------
# Surface gate
# ---------------------------------------------------------------------------


class TestSurfaceGate:

    async def test_agent_denied_below_required_tier(self, scripted_model, registry, gate, make_identity) -> None:
        model = scripted_model()
        pipeline = _pipeline(model, registry, gate, make_identity(tier=Tier.ADVANCED), agent_profile(settings))
        result = await pipeline.run_buffered(_input(), "trace-1")
        assert model.calls == []
        assert result.code == "TIER_REQUIRED"
        assert result.offer_upgrade is True
        assert result.message

    async def test_agent_allowed_for_pro(self, scripted_model, registry, gate, make_identity) -> None:
        model = scripted_model(LLMResponse(content="Hi there"))
        pipeline = _pipeline(model, registry, gate, make_identity(tier=Tier.PRO), agent_profile(settings))
        result = await pipeline.run_buffered(_input())
        assert result.message == "Hi there"
        assert result.code is None
        assert model.calls[0]["tool_choice"] == "auto"

    async def test_studio_has_no_surface_gate(self, scripted_model, registry, gate, make_identity) -> None:
        model = scripted_model(_reply(message="Let's start with a title."))
        pipeline = _pipeline(model, registry, gate, make_identity(tier=Tier.FREE), studio_profile(settings))
        result = await pipeline.run_buffered(_input())
        assert result.message == "Let's start with a title."
        assert model.calls[0]["tool_choice"] == "required"


# ---------------------------------------------------------------------------
# Instruction and grounding
# ---------------------------------------------------------------------------


class TestInstruction:

    async def test_locked_tools_listed(self, scripted_model, registry, gate, make_identity) -> None:
        seen: list = []
        model = scripted_model(_reply(message="ok"))
        pipeline = _pipeline(model, registry, gate, make_identity(tier=Tier.FREE), studio_profile(settings), seen)
        await pipeline.run_buffered(_input())
        assert "analyze_video" in seen[0]["locked"]
        assert "generate_assistant_response" not in seen[0]["locked"]
        assert model.calls[0]["messages"][0]["content"].startswith("INSTRUCTION")

    async def test_all_profile_tools_offered(self, scripted_model, registry, gate, make_identity) -> None:
        model = scripted_model(_reply(message="ok"))
        profile = studio_profile(settings)
        pipeline = _pipeline(model, registry, gate, make_identity(tier=Tier.FREE), profile)
        await pipeline.run_buffered(_input())
        offered = {t["function"]["name"] for t in model.calls[0]["tools"]}
        assert offered == set(profile.tool_names)


class TestGrounding:

    async def test_grounding_text_reaches_instruction(self, scripted_model, registry, gate, make_identity) -> None:
        seen: list = []
        model = scripted_model(LLMResponse(content="- retro styles trend"), _reply(message="ok"))
        profile = replace(studio_profile(settings), grounding=True)
        pipeline = _pipeline(model, registry, gate, make_identity(), profile, seen)
        items = [i async for i in pipeline.run(_input())]
        assert Phase.SEARCHING in _phases(items)
        assert seen[0]["grounding"] == "- retro styles trend"
        assert model.calls[0]["tools"] is None

    async def test_grounding_failure_ignored(self, scripted_model, registry, gate, make_identity) -> None:
        seen: list = []
        model = scripted_model(ModelTransportError("down"), _reply(message="still here"))
        profile = replace(studio_profile(settings), grounding=True)
        pipeline = _pipeline(model, registry, gate, make_identity(), profile, seen)
        result = await pipeline.run_buffered(_input())
        assert seen[0]["grounding"] is None
        assert result.message == "still here"

    async def test_disabled_by_default(self, scripted_model, registry, gate, make_identity) -> None:
        model = scripted_model(_reply(message="ok"))
        pipeline = _pipeline(model, registry, gate, make_identity(), studio_profile(settings))
        items = [i async for i in pipeline.run(_input())]
        assert Phase.SEARCHING not in _phases(items)
        assert len(model.calls) == 1


# ---------------------------------------------------------------------------
# Progress and enrichment
# ---------------------------------------------------------------------------


class TestProgress:

    async def test_phase_order_and_single_result(self, scripted_model, registry, gate, make_identity) -> None:
        model = scripted_model(
            LLMResponse(tool_calls=[ToolCall(name="search_videos", params={"query": "minecraft"}, id="c0")]),
            _reply(message="done"),
        )
        pipeline = _pipeline(model, registry, gate, make_identity(), studio_profile(settings))
        items = [i async for i in pipeline.run(_input())]
        assert _phases(items)[:2] == [Phase.ANALYZING, Phase.INVOKING]
        assert isinstance(items[-1], OrchestrationResult)
        assert sum(isinstance(i, OrchestrationResult) for i in items) == 1


class TestEnrichmentHandOff:

    async def test_enriches_when_flag_and_attachments(
        self, scripted_model, registry, gate, make_identity, storage, faces,
    ) -> None:
        model = scripted_model(_reply(
            message="Added to your references!",
            ui_sections=["StyleReferencesSection"],
            add_attached_images_to_style_references=True,
        ))
        pipeline = _pipeline(
            model, registry, gate, make_identity(), studio_profile(settings),
            enrichment=EnrichmentPipeline(storage, faces, config=settings),
        )
        items = [i async for i in pipeline.run(_input(attachments=[PNG]))]
        result = items[-1]
        assert Phase.ENRICHING in _phases(items)
        assert result.message == "Added to your references!"
        assert len(result.side_effect_payload.field_updates["styleReferences"]) == 1
        assert ADD_TO_STYLE_REFERENCES not in result.side_effect_payload.field_updates
        assert storage.uploads == 1

    async def test_flags_stripped_without_attachments(
        self, scripted_model, registry, gate, make_identity, storage, faces,
    ) -> None:
        model = scripted_model(_reply(message="Attach an image first.", add_attached_images_to_style_references=True))
        pipeline = _pipeline(
            model, registry, gate, make_identity(), studio_profile(settings),
            enrichment=EnrichmentPipeline(storage, faces, config=settings),
        )
        items = [i async for i in pipeline.run(_input())]
        assert Phase.ENRICHING not in _phases(items)
        assert items[-1].side_effect_payload.field_updates == {}
        assert storage.uploads == 0

    async def test_enrichment_failure_keeps_reply(
        self, scripted_model, registry, gate, make_identity, storage, faces,
    ) -> None:
        storage.fail_paths = {f"user-1/ref-{PNG.digest}.png"}
        model = scripted_model(_reply(message="Added!", add_attached_images_to_style_references=True))
        pipeline = _pipeline(
            model, registry, gate, make_identity(), studio_profile(settings),
            enrichment=EnrichmentPipeline(storage, faces, config=settings),
        )
        result = await pipeline.run_buffered(_input(attachments=[PNG]))
        assert result.message == "Added!"
        assert result.side_effect_payload.field_updates == {}
