"""Face registration used by the enrichment pipeline."""
from __future__ import annotations

import logging

from sqlalchemy import select

from conductor.db.database import new_session
from conductor.db.models import Face

logger = logging.getLogger(__name__)


class FaceStore:
    async def get_or_create(self, user_id: str, source_digest: str, name: str, image_url: str) -> str:
        """Return the face id for this (user, image digest), creating it once."""
        async with new_session() as session:
            result = await session.execute(
                select(Face).where(Face.user_id == user_id, Face.source_digest == source_digest)
            )
            face = result.scalar_one_or_none()
            if face is not None:
                return face.id
            face = Face(user_id=user_id, name=name, image_urls=[image_url], source_digest=source_digest)
            session.add(face)
            await session.commit()
            face_id = face.id
        logger.info(f"Registered face {face_id} ({name}) for {user_id[:8]}")
        return face_id
