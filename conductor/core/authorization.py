"""
Authorization gate.

Decides whether a gated tool may run for the current ``ExecutionContext``.
Denials are values, not exceptions: each carries a short user-facing reason
and a machine-readable code, so the orchestrator can either put it in a
tool-response turn or compose a reply from it directly.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Optional

from conductor.core.context import ExecutionContext
from conductor.core.tools.metadata import ToolMeta
from conductor.services.tiers import Tier, tier_at_least, upgrade_message

logger = logging.getLogger(__name__)

NOT_CONNECTED_MESSAGE = (
    "Your YouTube channel isn't connected. Connect it in Settings and I can work with your channel data."
)


class DenialCode(str, Enum):
    TIER_REQUIRED = "TIER_REQUIRED"
    NOT_CONNECTED = "NOT_CONNECTED"
    FEATURE_DISABLED = "FEATURE_DISABLED"


@dataclass(frozen=True)
class AuthorizationDecision:
    allowed: bool
    reason: Optional[str] = None
    code: Optional[DenialCode] = None

    @property
    def offer_upgrade(self) -> bool:
        return self.code is DenialCode.TIER_REQUIRED

    @classmethod
    def allow(cls) -> "AuthorizationDecision":
        return _ALLOWED

    @classmethod
    def deny(cls, code: DenialCode, reason: str) -> "AuthorizationDecision":
        return cls(allowed=False, reason=reason, code=code)


_ALLOWED = AuthorizationDecision(allowed=True)


def require_tier(ctx: ExecutionContext, required: Tier, action: str) -> AuthorizationDecision:
    if tier_at_least(ctx.tier, required):
        return AuthorizationDecision.allow()
    return AuthorizationDecision.deny(DenialCode.TIER_REQUIRED, upgrade_message(required, action))


def require_flag(enabled: bool, action: str) -> AuthorizationDecision:
    if enabled:
        return AuthorizationDecision.allow()
    return AuthorizationDecision.deny(DenialCode.FEATURE_DISABLED, f"{action} isn't available right now.")


class AuthorizationGate:
    """Stateless; one instance is shared by all requests."""

    def authorize(self, meta: ToolMeta, ctx: ExecutionContext) -> AuthorizationDecision:
        action = meta.label or meta.name
        decision = require_tier(ctx, meta.min_tier, action)
        if not decision.allowed:
            return self._log_denial(meta.name, ctx, decision)
        if meta.requires_integration and not ctx.integration_connected:
            return self._log_denial(
                meta.name, ctx, AuthorizationDecision.deny(DenialCode.NOT_CONNECTED, NOT_CONNECTED_MESSAGE),
            )
        return AuthorizationDecision.allow()

    def authorize_surface(self, required: Optional[Tier], ctx: ExecutionContext, action: str) -> AuthorizationDecision:
        """Pre-loop check for a whole conversation surface."""
        if required is None:
            return AuthorizationDecision.allow()
        decision = require_tier(ctx, required, action)
        if not decision.allowed:
            self._log_denial(f"surface:{action}", ctx, decision)
        return decision

    def partition(self, metas: Iterable[ToolMeta], ctx: ExecutionContext) -> tuple[list[str], list[str]]:
        """Split tool names into (allowed, denied) for this context."""
        allowed: list[str] = []
        denied: list[str] = []
        for meta in metas:
            (allowed if self.authorize(meta, ctx).allowed else denied).append(meta.name)
        return allowed, denied

    @staticmethod
    def _log_denial(name: str, ctx: ExecutionContext, decision: AuthorizationDecision) -> AuthorizationDecision:
        code = decision.code.value if decision.code else "?"
        logger.info(f"[{ctx.trace_id[:8]}] 🔒 {name} denied for tier={ctx.tier.value}: {code}")
        return decision
