"""
Feedback submission.

Shared validation and insert logic used by the submit_feedback tool.
Validation failures raise ``FeedbackValidationError`` with a sentence that is
safe to hand back to the model.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Optional

from conductor.config import settings
from conductor.db.database import new_session
from conductor.db.models import Feedback

logger = logging.getLogger(__name__)

FEEDBACK_CATEGORIES: tuple[str, ...] = (
    "bug",
    "feature request",
    "other",
    "just a message",
)

# ~800 words
MESSAGE_MAX_LENGTH = 5000

_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


class FeedbackValidationError(ValueError):
    pass


@dataclass(frozen=True)
class FeedbackSubmission:
    message: str
    category: str
    email: Optional[str]
    page_url: str
    user_agent: str
    app_version: str


def validate_feedback(
    message: Optional[str],
    category: Optional[str],
    email: Optional[str] = None,
    *,
    page_url: Optional[str] = None,
    user_agent: Optional[str] = None,
    app_version: Optional[str] = None,
) -> FeedbackSubmission:
    """Normalise and validate a feedback payload."""
    text = (message or "").strip()
    cat = (category or "").strip().lower()
    mail = (email or "").strip() or None

    if not text:
        raise FeedbackValidationError("message is required")
    if len(text) > MESSAGE_MAX_LENGTH:
        raise FeedbackValidationError(
            f"message must be at most {MESSAGE_MAX_LENGTH} characters (approximately 800 words)"
        )
    if not cat:
        raise FeedbackValidationError("category is required")
    if cat not in FEEDBACK_CATEGORIES:
        raise FeedbackValidationError(f"category must be one of: {', '.join(FEEDBACK_CATEGORIES)}")
    if mail is not None and not _EMAIL_RE.match(mail):
        raise FeedbackValidationError("email must be a valid email address")

    return FeedbackSubmission(
        message=text,
        category=cat,
        email=mail,
        page_url=(page_url or "").strip() or "unknown",
        user_agent=(user_agent or "").strip() or "unknown",
        app_version=(app_version or "").strip() or settings.app_version,
    )


class FeedbackStore:
    async def submit(self, user_id: Optional[str], submission: FeedbackSubmission) -> str:
        """Insert one feedback row and return its id."""
        async with new_session() as session:
            row = Feedback(
                user_id=user_id,
                category=submission.category,
                message=submission.message,
                email=submission.email,
                page_url=submission.page_url,
                user_agent=submission.user_agent,
                app_version=submission.app_version,
            )
            session.add(row)
            await session.commit()
            feedback_id = row.id
        logger.info(f"Feedback {feedback_id} submitted ({submission.category})")
        return feedback_id
