"""Tests for the bounded model-turn loop (conductor/core/orchestrator.py).

Covers:
  1.  State machine transitions
  2.  Plain text answers and data-tool rounds (transcript shape)
  3.  The round ceiling: exactly max_rounds tool rounds, then one forced summary
  4.  Never-empty final message (summary, apology, last free text)
  5.  Invalid arguments and gated tools become tool errors; handlers untouched
  6.  Reply capture ends the loop without another model call
  7.  Tier-denied mutations compose an upgrade reply with zero collaborator calls
  8.  Single tool per round, progress ordering, transport errors propagate
"""
from __future__ import annotations

import pytest

from conductor.core.fallback import FALLBACK_APOLOGY
from conductor.core.llm_client import LLMResponse, ModelTransportError, ToolCall
from conductor.core.orchestrator import (
    InvalidTransitionError,
    LoopState,
    Orchestrator,
    assert_transition,
)
from conductor.core.profiles import AGENT_TOOLS, STUDIO_TOOLS
from conductor.core.progress import OrchestrationResult, Phase, StatusUpdate, ToolProgress, ToolStatus
from conductor.core.reply import DEFAULT_REPLY_MESSAGE, UISection
from conductor.services.tiers import Tier


def _tool(name: str, /, call_id: str = "", content: str | None = None, **params) -> LLMResponse:
    return LLMResponse(content=content, tool_calls=[ToolCall(name=name, params=params, id=call_id)])


def _text(text: str | None) -> LLMResponse:
    return LLMResponse(content=text, finish_reason="stop")


def _agent(model, registry, gate, **kwargs) -> Orchestrator:
    return Orchestrator(model, registry, gate, tool_names=AGENT_TOOLS, tool_choice="auto", **kwargs)


def _studio(model, registry, gate, **kwargs) -> Orchestrator:
    return Orchestrator(model, registry, gate, tool_names=STUDIO_TOOLS, tool_choice="required", **kwargs)


async def _run(orchestrator: Orchestrator, ctx, content: str = "Instruction\n\nUser: hi"):
    items = [item async for item in orchestrator.run({"role": "user", "content": content}, ctx)]
    result = items[-1]
    assert isinstance(result, OrchestrationResult)
    return result, items


# ===========================================================================
# 1. State machine
# ===========================================================================


class TestStateMachine:

    def test_valid_transitions(self) -> None:
        assert_transition(LoopState.INIT, LoopState.AWAITING_MODEL)
        assert_transition(LoopState.AWAITING_MODEL, LoopState.DISPATCH)
        assert_transition(LoopState.AWAITING_MODEL, LoopState.DONE)
        assert_transition(LoopState.DISPATCH, LoopState.AWAITING_MODEL)
        assert_transition(LoopState.DISPATCH, LoopState.DONE)

    @pytest.mark.parametrize("src,dst", [
        (LoopState.INIT, LoopState.DISPATCH),
        (LoopState.INIT, LoopState.DONE),
        (LoopState.DONE, LoopState.AWAITING_MODEL),
        (LoopState.DISPATCH, LoopState.DISPATCH),
    ])
    def test_invalid_transitions(self, src, dst) -> None:
        with pytest.raises(InvalidTransitionError):
            assert_transition(src, dst)

    async def test_ends_in_done(self, scripted_model, registry, gate, make_ctx) -> None:
        orchestrator = _agent(scripted_model(_text("Hello!")), registry, gate)
        await _run(orchestrator, make_ctx())
        assert orchestrator.state is LoopState.DONE


# ===========================================================================
# 2. Plain answers and data rounds
# ===========================================================================


class TestBasicRounds:

    async def test_text_only_answer(self, scripted_model, registry, gate, make_ctx) -> None:
        model = scripted_model(_text("Your channel is doing great."))
        result, _ = await _run(_agent(model, registry, gate), make_ctx())
        assert result.message == "Your channel is doing great."
        assert result.rounds == 0
        assert result.tool_results == ()
        assert result.used_fallback is False
        assert len(model.calls) == 1
        assert model.calls[0]["tool_choice"] == "auto"

    async def test_offered_descriptors(self, scripted_model, registry, gate, make_ctx) -> None:
        model = scripted_model(_text("ok"))
        await _run(_agent(model, registry, gate), make_ctx())
        offered = [t["function"]["name"] for t in model.calls[0]["tools"]]
        assert offered == list(AGENT_TOOLS)

    async def test_data_round_then_answer(self, scripted_model, registry, gate, make_ctx, collaborators) -> None:
        model = scripted_model(
            _tool("get_channel_analytics", call_id="call_abc", days=28),
            _text("You had 4,200 views in the last 28 days."),
        )
        result, _ = await _run(_agent(model, registry, gate), make_ctx())
        assert result.message == "You had 4,200 views in the last 28 days."
        assert result.rounds == 1
        assert [r.tool for r in result.tool_results] == ["get_channel_analytics"]
        assert result.tool_results[0].data == {"views": 4200, "estimatedMinutesWatched": 910}
        collaborators.youtube.get_channel_analytics.assert_awaited_once()

        transcript = model.calls[1]["messages"]
        assert len(transcript) == 3
        assistant, tool = transcript[1], transcript[2]
        assert assistant["role"] == "assistant"
        assert assistant["tool_calls"][0]["id"] == "call_abc"
        assert assistant["tool_calls"][0]["function"]["name"] == "get_channel_analytics"
        assert tool == {"role": "tool", "tool_call_id": "call_abc", "content": tool["content"]}
        assert '"views": 4200' in tool["content"]

    async def test_missing_call_id_gets_synthetic_one(self, scripted_model, registry, gate, make_ctx) -> None:
        model = scripted_model(_tool("search_videos", query="cats"), _text("done"))
        await _run(_agent(model, registry, gate), make_ctx())
        transcript = model.calls[1]["messages"]
        assert transcript[1]["tool_calls"][0]["id"] == "call_1"
        assert transcript[2]["tool_call_id"] == "call_1"

    async def test_only_first_tool_call_dispatched(self, scripted_model, registry, gate, make_ctx, collaborators) -> None:
        double = LLMResponse(tool_calls=[
            ToolCall(name="search_videos", params={"query": "a"}),
            ToolCall(name="get_my_channel_info", params={}),
        ])
        model = scripted_model(double, _text("done"))
        result, _ = await _run(_agent(model, registry, gate), make_ctx())
        assert [r.tool for r in result.tool_results] == ["search_videos"]
        collaborators.youtube.get_channel_info.assert_not_called()

    async def test_progress_order(self, scripted_model, registry, gate, make_ctx) -> None:
        model = scripted_model(_tool("search_videos", query="cats"), _tool("search_videos"), _text("done"))
        _, items = await _run(_agent(model, registry, gate), make_ctx())
        progress = [(i.tool, i.status, i.round) for i in items if isinstance(i, ToolProgress)]
        assert progress == [
            ("search_videos", ToolStatus.CALLING, 1),
            ("search_videos", ToolStatus.COMPLETE, 1),
            ("search_videos", ToolStatus.CALLING, 2),
            ("search_videos", ToolStatus.ERROR, 2),
        ]
        labels = {i.label for i in items if isinstance(i, ToolProgress)}
        assert labels == {"Searching YouTube"}


# ===========================================================================
# 3. Round ceiling
# ===========================================================================


class TestRoundCeiling:

    async def test_exactly_five_rounds_then_one_summary(
        self, scripted_model, registry, gate, make_ctx, collaborators,
    ) -> None:
        model = scripted_model(
            *[_tool("search_videos", query=f"q{i}") for i in range(5)],
            _text("Here is what I found across five searches."),
        )
        orchestrator = _agent(model, registry, gate)
        result, items = await _run(orchestrator, make_ctx())

        assert orchestrator.rounds == 5
        assert result.rounds == 5
        assert len([c for c in model.calls if c["tools"]]) == 5
        assert len(model.tool_free_calls) == 1
        assert model.calls[-1]["tools"] is None
        assert collaborators.youtube.search_videos.await_count == 5
        assert result.used_fallback is True
        assert result.message == "Here is what I found across five searches."
        assert any(isinstance(i, StatusUpdate) and i.phase is Phase.SUMMARIZING for i in items)

    async def test_summary_sees_tool_results(self, scripted_model, registry, gate, make_ctx) -> None:
        model = scripted_model(*[_tool("search_videos", query="x") for _ in range(5)], _text("summary"))
        await _run(_agent(model, registry, gate), make_ctx(), content="CONTEXT TURN")
        prompt = model.tool_free_calls[0]["messages"][0]["content"]
        assert prompt.startswith("CONTEXT TURN")
        assert "dQw4w9WgXcQ" in prompt

    async def test_custom_ceiling(self, scripted_model, registry, gate, make_ctx) -> None:
        model = scripted_model(_tool("search_videos", query="a"), _tool("search_videos", query="b"), _text("s"))
        result, _ = await _run(_agent(model, registry, gate, max_rounds=2), make_ctx())
        assert result.rounds == 2
        assert len(model.calls) == 3

    async def test_last_free_text_beats_summary(self, scripted_model, registry, gate, make_ctx) -> None:
        model = scripted_model(
            *[_tool("search_videos", query="x") for _ in range(4)],
            _tool("search_videos", content="Still digging through results...", query="y"),
        )
        result, _ = await _run(_agent(model, registry, gate), make_ctx())
        assert result.message == "Still digging through results..."
        assert result.used_fallback is False
        assert model.tool_free_calls == []


# ===========================================================================
# 4. Never-empty message
# ===========================================================================


class TestNeverEmpty:

    async def test_empty_answer_triggers_summary(self, scripted_model, registry, gate, make_ctx) -> None:
        model = scripted_model(_text(""), _text("Hi! How can I help with your channel?"))
        result, _ = await _run(_agent(model, registry, gate), make_ctx())
        assert result.message == "Hi! How can I help with your channel?"
        assert result.used_fallback is True

    async def test_summary_transport_error_apologises(self, scripted_model, registry, gate, make_ctx) -> None:
        model = scripted_model(_tool("search_videos", query="x"), _text(None), ModelTransportError("down"))
        result, _ = await _run(_agent(model, registry, gate), make_ctx())
        assert result.message == FALLBACK_APOLOGY

    async def test_summary_empty_apologises(self, scripted_model, registry, gate, make_ctx) -> None:
        model = scripted_model(_text("   "), _text(""))
        result, _ = await _run(_agent(model, registry, gate), make_ctx())
        assert result.message == FALLBACK_APOLOGY

    @pytest.mark.parametrize("script", [
        [_text("answer")],
        [_text(None), _text("summary")],
        [_text(None), _text(None)],
        [_tool("generate_assistant_response", message="")],
    ])
    async def test_message_never_empty(self, script, scripted_model, registry, gate, make_ctx) -> None:
        model = scripted_model(*script)
        result, _ = await _run(_studio(model, registry, gate), make_ctx())
        assert result.message.strip()


# ===========================================================================
# 5. Invalid arguments and gating
# ===========================================================================


class TestToolErrors:

    async def test_invalid_arguments_count_as_round(
        self, scripted_model, registry, gate, make_ctx, collaborators,
    ) -> None:
        model = scripted_model(_tool("search_videos", maxResults=5), _text("Sorry, what should I search for?"))
        result, _ = await _run(_agent(model, registry, gate), make_ctx())
        assert result.rounds == 1
        assert result.tool_results[0].code == "INVALID_ARGUMENTS"
        assert result.message == "Sorry, what should I search for?"
        collaborators.youtube.search_videos.assert_not_called()
        assert '"code": "INVALID_ARGUMENTS"' in model.calls[1]["messages"][2]["content"]

    async def test_gated_tool_never_reaches_handler(
        self, scripted_model, registry, gate, make_ctx, collaborators,
    ) -> None:
        model = scripted_model(
            _tool("get_channel_analytics"),
            _text("Connect your YouTube channel in Settings to see analytics."),
        )
        result, _ = await _run(_agent(model, registry, gate), make_ctx(connected=False))
        assert result.tool_results[0].code == "NOT_CONNECTED"
        collaborators.youtube.get_channel_analytics.assert_not_called()

    async def test_unknown_tool_is_recorded(self, scripted_model, registry, gate, make_ctx) -> None:
        model = scripted_model(_tool("delete_everything"), _text("I can't do that."))
        result, _ = await _run(_agent(model, registry, gate), make_ctx())
        assert result.tool_results[0].code == "UNKNOWN_TOOL"
        assert result.rounds == 1


# ===========================================================================
# 6. Reply capture
# ===========================================================================


class TestReplyCapture:

    async def test_launch_day_title(self, scripted_model, registry, gate, make_ctx) -> None:
        model = scripted_model(_tool(
            "generate_assistant_response",
            message="How about this title?",
            ui_sections=["TitleSection"],
            field_updates={"title": "Launch Day"},
            suggestions=["Pick a style", "Add your face"],
        ))
        result, _ = await _run(_studio(model, registry, gate), make_ctx(tier=Tier.FREE))

        assert len(model.calls) == 1
        assert model.calls[0]["tool_choice"] == "required"
        assert result.message == "How about this title?"
        assert result.tool_results == ()
        payload = result.side_effect_payload
        assert payload.field_updates == {"title": "Launch Day"}
        assert payload.ui_sections == (UISection.TITLE,)
        assert payload.suggestions == ("Pick a style", "Add your face")
        assert result.rounds == 1

    async def test_empty_reply_message_uses_last_text(self, scripted_model, registry, gate, make_ctx) -> None:
        model = scripted_model(_tool("generate_assistant_response", content="Sure thing!", message=""))
        result, _ = await _run(_studio(model, registry, gate), make_ctx())
        assert result.message == "Sure thing!"
        assert result.side_effect_payload.message == "Sure thing!"

    async def test_empty_reply_message_default(self, scripted_model, registry, gate, make_ctx) -> None:
        model = scripted_model(_tool("generate_assistant_response", message=""))
        result, _ = await _run(_studio(model, registry, gate), make_ctx())
        assert result.message == DEFAULT_REPLY_MESSAGE
        assert result.used_fallback is False

    async def test_data_round_then_reply(self, scripted_model, registry, gate, make_ctx) -> None:
        model = scripted_model(
            _tool("search_videos", query="speedrun thumbnails"),
            _tool("generate_assistant_response", message="Bold text works well.", ui_sections=["StyleSection"]),
        )
        result, _ = await _run(_studio(model, registry, gate), make_ctx())
        assert result.rounds == 2
        assert [r.tool for r in result.tool_results] == ["search_videos"]
        assert result.side_effect_payload.ui_sections == (UISection.STYLE,)

    async def test_create_project_ends_loop(self, scripted_model, registry, gate, make_ctx) -> None:
        model = scripted_model(_tool("create_project", name="Launch Day"))
        result, _ = await _run(_studio(model, registry, gate), make_ctx(tier=Tier.FREE))
        assert len(model.calls) == 1
        assert result.side_effect_payload.field_updates == {"projectId": "proj-1"}
        assert "Launch Day" in result.message


# ===========================================================================
# 7. Tier-denied mutation
# ===========================================================================


class TestDeniedMutation:

    async def test_upgrade_offer_without_collaborator_calls(
        self, scripted_model, registry, gate, make_ctx, collaborators,
    ) -> None:
        model = scripted_model(_tool("analyze_video", video="https://youtu.be/dQw4w9WgXcQ"))
        result, _ = await _run(_studio(model, registry, gate), make_ctx(tier=Tier.FREE))

        assert len(model.calls) == 1
        assert result.offer_upgrade is True
        assert "Advanced" in result.message
        assert result.tool_results[0].code == "TIER_REQUIRED"
        collaborators.video_analyzer.analyze.assert_not_called()
        collaborators.youtube.update_video_title.assert_not_called()
        collaborators.style_extractor.extract.assert_not_called()

    async def test_failed_mutation_ends_with_sentence(
        self, scripted_model, registry, gate, make_ctx, collaborators,
    ) -> None:
        model = scripted_model(_tool("extract_style_from_videos", videos=["dQw4w9WgXcQ"]))
        result, _ = await _run(_studio(model, registry, gate), make_ctx())
        assert len(model.calls) == 1
        assert "at least 2" in result.message
        collaborators.style_extractor.extract.assert_not_called()


# ===========================================================================
# 8. Transport errors
# ===========================================================================


class TestTransportErrors:

    async def test_model_error_propagates(self, scripted_model, registry, gate, make_ctx) -> None:
        model = scripted_model(ModelTransportError("upstream down", 503))
        with pytest.raises(ModelTransportError):
            await _run(_agent(model, registry, gate), make_ctx())

    async def test_model_error_mid_loop_propagates(self, scripted_model, registry, gate, make_ctx) -> None:
        model = scripted_model(_tool("search_videos", query="x"), ModelTransportError("down"))
        with pytest.raises(ModelTransportError):
            await _run(_agent(model, registry, gate), make_ctx())
