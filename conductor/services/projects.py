"""Project persistence for the create_project tool."""
from __future__ import annotations

import logging
from typing import Optional

from conductor.db.database import new_session
from conductor.db.models import Project

logger = logging.getLogger(__name__)


class ProjectStore:
    async def create(self, user_id: str, name: str, description: Optional[str] = None) -> Project:
        async with new_session() as session:
            project = Project(user_id=user_id, name=name, description=description)
            session.add(project)
            await session.commit()
            await session.refresh(project)
        logger.info(f"Created project {project.id} for {user_id[:8]}")
        return project
