"""
Identity and integration lookups.

The orchestrator consumes these once per request, concurrently, to build the
read-only ``ExecutionContext``.  YouTube handlers also use the token lookup.
"""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Optional, Protocol

from sqlalchemy import select

from conductor.db.database import new_session
from conductor.db.models import IntegrationConnection, User
from conductor.services.tiers import Tier

logger = logging.getLogger(__name__)

YOUTUBE_PROVIDER = "youtube"


class IntegrationNotConnectedError(Exception):
    """Raised when a handler needs an integration token the caller does not have."""

    def __init__(self, provider: str, reason: str = "not connected"):
        self.provider = provider
        super().__init__(f"{provider} integration {reason}")


class IdentityService(Protocol):
    async def get_tier(self, caller_id: str) -> Tier: ...

    async def is_integration_connected(self, caller_id: str) -> bool: ...


def _is_expired(expires_at: Optional[datetime]) -> bool:
    if expires_at is None:
        return False
    if expires_at.tzinfo is None:
        expires_at = expires_at.replace(tzinfo=timezone.utc)
    return expires_at <= datetime.now(timezone.utc)


class DatabaseIdentityService:
    """Tier and connection state backed by the ``users`` and
    ``integration_connections`` tables.  Unknown callers are FREE."""

    def __init__(self, provider: str = YOUTUBE_PROVIDER):
        self.provider = provider

    async def get_tier(self, caller_id: str) -> Tier:
        async with new_session() as session:
            user = await session.get(User, caller_id)
        if user is None:
            logger.debug(f"Unknown caller {caller_id[:8]}, defaulting to free tier")
            return Tier.FREE
        return Tier.parse(user.tier)

    async def _connection(self, caller_id: str) -> Optional[IntegrationConnection]:
        async with new_session() as session:
            result = await session.execute(
                select(IntegrationConnection).where(
                    IntegrationConnection.user_id == caller_id,
                    IntegrationConnection.provider == self.provider,
                    IntegrationConnection.revoked.is_(False),
                )
            )
            return result.scalar_one_or_none()

    async def is_integration_connected(self, caller_id: str) -> bool:
        return await self._connection(caller_id) is not None

    async def get_access_token(self, caller_id: str) -> str:
        """Access token for the caller's integration.

        Raises ``IntegrationNotConnectedError`` when there is no live connection
        or the token has expired (the client must reconnect).
        """
        connection = await self._connection(caller_id)
        if connection is None:
            raise IntegrationNotConnectedError(self.provider)
        if _is_expired(connection.expires_at):
            raise IntegrationNotConnectedError(self.provider, "token expired")
        return connection.access_token
