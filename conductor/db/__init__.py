"""
Database module for Conductor.

Async SQLAlchemy engine plus the ORM tables behind identity, projects,
feedback, faces and styles.
"""
from __future__ import annotations

from conductor.db.database import (
    init_db,
    close_db,
    new_session,
)
from conductor.db.models import (
    Face,
    Feedback,
    IntegrationConnection,
    Project,
    Style,
    User,
)

__all__ = [
    "init_db",
    "close_db",
    "new_session",
    "Face",
    "Feedback",
    "IntegrationConnection",
    "Project",
    "Style",
    "User",
]
