"""
Subscription tiers and the capabilities they unlock.

Tiers are ordered: free < starter < advanced < pro.  Comparisons go through
``tier_at_least`` so that ordering lives in exactly one place.
"""

from __future__ import annotations

from enum import Enum


class Tier(str, Enum):
    FREE = "free"
    STARTER = "starter"
    ADVANCED = "advanced"
    PRO = "pro"

    @property
    def rank(self) -> int:
        return _TIER_ORDER.index(self)

    @property
    def label(self) -> str:
        return self.value.capitalize()

    @classmethod
    def parse(cls, value: str | None) -> "Tier":
        """Lenient parse; unknown or empty values fall back to FREE."""
        try:
            return cls((value or "").strip().lower())
        except ValueError:
            return cls.FREE


_TIER_ORDER: tuple[Tier, ...] = (Tier.FREE, Tier.STARTER, Tier.ADVANCED, Tier.PRO)


def tier_at_least(tier: Tier, required: Tier) -> bool:
    return tier.rank >= required.rank


class Capability(str, Enum):
    """Named product capabilities checked by bespoke handler gating."""

    CREATE_CUSTOM = "create_custom"      # faces, styles, palettes
    VIDEO_ANALYSIS = "video_analysis"
    CHANNEL_AGENT = "channel_agent"      # YouTube data tools / agent surface


CAPABILITY_MIN_TIER: dict[Capability, Tier] = {
    Capability.CREATE_CUSTOM: Tier.STARTER,
    Capability.VIDEO_ANALYSIS: Tier.ADVANCED,
    Capability.CHANNEL_AGENT: Tier.PRO,
}


def has_capability(tier: Tier, capability: Capability) -> bool:
    return tier_at_least(tier, CAPABILITY_MIN_TIER[capability])


def upgrade_message(required: Tier, action: str) -> str:
    """User-facing sentence for a tier denial."""
    return f"{action} requires the {required.label} plan or higher. Upgrade to unlock it."
