"""Tool metadata models and enums."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from conductor.services.tiers import Tier


class ToolKind(str, Enum):
    DATA = "data"                            # returns data; failures go back to the model
    REPLY = "reply"                          # terminal; arguments captured as the reply
    RESOURCE_CREATION = "resource_creation"  # terminal; writes a resource
    EXTERNAL_MUTATION = "external_mutation"  # bespoke gating; failures end the round


TERMINAL_KINDS: frozenset[ToolKind] = frozenset({ToolKind.REPLY, ToolKind.RESOURCE_CREATION})


@dataclass(frozen=True)
class ToolMeta:
    name: str
    kind: ToolKind
    # Authorization gate inputs:
    min_tier: Tier = Tier.FREE
    requires_integration: bool = False
    # Exposure:
    live: bool = True                        # False => answered from injected context, never offered
    directly_executable: bool = False        # reachable through /agent/execute-tool
    label: str = ""                          # progress text for tool_call events

    @property
    def terminal(self) -> bool:
        return self.kind in TERMINAL_KINDS

    @property
    def gated(self) -> bool:
        return self.min_tier is not Tier.FREE or self.requires_integration
