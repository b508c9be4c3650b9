"""
Per-request execution context.

Built once before the round loop from the identity collaborators and never
mutated afterwards.  The tier lookup and the integration check are
independent, so they run concurrently.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

from conductor.services.identity import IdentityService
from conductor.services.tiers import Tier

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ClientInfo:
    """Request metadata some handlers record (feedback)."""

    page_url: Optional[str] = None
    user_agent: Optional[str] = None
    app_version: Optional[str] = None


@dataclass(frozen=True)
class ExecutionContext:
    caller_id: str
    tier: Tier
    integration_connected: bool
    focused_resource_id: Optional[str] = None
    client: ClientInfo = ClientInfo()
    trace_id: str = ""


async def build_execution_context(
    identity: IdentityService,
    caller_id: str,
    *,
    focused_resource_id: Optional[str] = None,
    client: Optional[ClientInfo] = None,
    trace_id: str = "",
) -> ExecutionContext:
    tier, connected = await asyncio.gather(
        identity.get_tier(caller_id),
        identity.is_integration_connected(caller_id),
    )
    logger.debug(f"[{trace_id[:8]}] context: tier={tier.value} connected={connected}")
    return ExecutionContext(
        caller_id=caller_id,
        tier=tier,
        integration_connected=connected,
        focused_resource_id=focused_resource_id,
        client=client or ClientInfo(),
        trace_id=trace_id,
    )
