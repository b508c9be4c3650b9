"""Tests for the tool registry and catalog.

Covers: ToolRegistry construction rules (duplicates, descriptor mismatch,
missing handler), immutability, descriptor selection (non-live tools never
offered), the built catalog's metadata, and the surface profiles.
"""
from __future__ import annotations

import pytest

from conductor.config import settings
from conductor.core.profiles import AGENT_TOOLS, STUDIO_TOOLS, agent_profile, studio_profile
from conductor.core.tool_validation.params import NoParams
from conductor.core.tools import definitions as d
from conductor.core.tools.metadata import ToolKind, ToolMeta
from conductor.core.tools.registry import DuplicateToolError, ToolEntry, ToolRegistry
from conductor.services.tiers import Tier


async def _noop(caller_id, args, ctx):
    return {}


def _entry(name: str = "get_my_channel_info", kind: ToolKind = ToolKind.DATA, handler=_noop, **meta) -> ToolEntry:
    return ToolEntry(ToolMeta(name, kind, **meta), d.TOOL_SCHEMAS[name], NoParams, handler)


# ---------------------------------------------------------------------------
# ToolRegistry
# ---------------------------------------------------------------------------


class TestToolRegistry:

    def test_lookup_and_contains(self) -> None:
        registry = ToolRegistry([_entry()])
        assert "get_my_channel_info" in registry
        assert registry.lookup("get_my_channel_info") is not None
        assert registry.lookup("nope") is None
        assert len(registry) == 1

    def test_duplicate_rejected(self) -> None:
        with pytest.raises(DuplicateToolError):
            ToolRegistry([_entry(), _entry()])

    def test_descriptor_name_mismatch_rejected(self) -> None:
        bad = ToolEntry(ToolMeta("other_name", ToolKind.DATA), d.GET_MY_CHANNEL_INFO, NoParams, _noop)
        with pytest.raises(ValueError, match="mismatch"):
            ToolRegistry([bad])

    def test_handler_required_except_reply(self) -> None:
        with pytest.raises(ValueError, match="no handler"):
            ToolRegistry([_entry(handler=None)])
        reply = ToolRegistry([_entry("generate_assistant_response", ToolKind.REPLY, handler=None)])
        assert reply.lookup("generate_assistant_response").handler is None

    def test_table_is_read_only(self) -> None:
        registry = ToolRegistry([_entry()])
        with pytest.raises(TypeError):
            registry._entries["x"] = _entry()  # type: ignore[index]

    def test_descriptors_skip_unknown_and_non_live(self) -> None:
        registry = ToolRegistry([
            _entry(),
            _entry("check_youtube_connection", live=False),
        ])
        names = [s["function"]["name"] for s in registry.descriptors(
            ["check_youtube_connection", "missing", "get_my_channel_info"],
        )]
        assert names == ["get_my_channel_info"]


# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------


class TestCatalog:

    def test_every_profile_tool_is_registered(self, registry) -> None:
        for name in set(AGENT_TOOLS) | set(STUDIO_TOOLS):
            assert name in registry, name

    def test_kinds(self, registry) -> None:
        assert registry.lookup("generate_assistant_response").kind is ToolKind.REPLY
        assert registry.lookup("create_project").kind is ToolKind.RESOURCE_CREATION
        for name in ("analyze_video", "extract_style_from_videos", "update_video_title"):
            assert registry.lookup(name).kind is ToolKind.EXTERNAL_MUTATION
        assert registry.lookup("search_videos").kind is ToolKind.DATA

    def test_channel_tools_gated(self, registry) -> None:
        own = registry.lookup("get_channel_analytics").meta
        assert own.min_tier is Tier.PRO
        assert own.requires_integration is True
        public = registry.lookup("search_videos").meta
        assert public.min_tier is Tier.PRO
        assert public.requires_integration is False

    def test_connection_check_not_offered(self, registry) -> None:
        meta = registry.lookup("check_youtube_connection").meta
        assert meta.live is False
        assert meta.directly_executable is True
        offered = {s["function"]["name"] for s in registry.descriptors(registry.names())}
        assert "check_youtube_connection" not in offered

    def test_feedback_not_directly_executable(self, registry) -> None:
        assert registry.lookup("submit_feedback").meta.directly_executable is False

    def test_terminal_flags(self, registry) -> None:
        assert registry.lookup("generate_assistant_response").meta.terminal
        assert registry.lookup("create_project").meta.terminal
        assert not registry.lookup("analyze_video").meta.terminal


# ---------------------------------------------------------------------------
# Profiles
# ---------------------------------------------------------------------------


class TestProfiles:

    def test_agent_profile(self) -> None:
        profile = agent_profile(settings)
        assert profile.tool_choice == "auto"
        assert profile.required_tier is Tier.PRO
        assert "generate_assistant_response" not in profile.offered
        assert "update_video_title" in profile.offered

    def test_studio_profile(self, monkeypatch) -> None:
        monkeypatch.setattr(settings, "grounding_enabled", True)
        profile = studio_profile(settings)
        assert profile.tool_choice == "required"
        assert profile.required_tier is None
        assert profile.grounding is True
        assert "generate_assistant_response" in profile.offered
