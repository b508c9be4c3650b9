"""Typed parameter models, one per tool.

Field aliases match the wire names in the tool descriptors; unknown keys are
ignored.  Constraints here are schema-level only: anything that needs a
user-facing apology rather than a retry (missing project name, too few
videos) is checked by the handler instead.
"""

from __future__ import annotations

from datetime import date
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, JsonValue, model_validator

from conductor.core.identifiers import date_range_for_last_days


class ToolParams(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True, str_strip_whitespace=True)


class NoParams(ToolParams):
    pass


class ListMyVideosParams(ToolParams):
    max_results: int = Field(10, ge=1, le=50, alias="maxResults")
    page_token: Optional[str] = Field(None, alias="pageToken")


class VideoParams(ToolParams):
    video_id: str = Field(..., min_length=1)


class SearchVideosParams(ToolParams):
    query: str = Field(..., min_length=1)
    max_results: int = Field(10, ge=1, le=50, alias="maxResults")
    order: Literal["relevance", "date", "viewCount", "rating"] = "relevance"


class PlaylistParams(ToolParams):
    playlist_id: str = Field(..., min_length=1)
    max_results: int = Field(20, ge=1, le=50, alias="maxResults")
    page_token: Optional[str] = Field(None, alias="pageToken")


class VideoCommentsParams(ToolParams):
    video_id: str = Field(..., min_length=1)
    max_results: int = Field(20, ge=1, le=100, alias="maxResults")


class DateRangeParams(ToolParams):
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    days: int = Field(28, ge=1, le=365)

    @model_validator(mode="after")
    def _ordered(self) -> "DateRangeParams":
        if self.start_date and self.end_date and self.start_date > self.end_date:
            raise ValueError("start_date must be on or before end_date")
        return self

    def resolve(self) -> tuple[str, str]:
        """Explicit dates when both are given, otherwise the last ``days`` days."""
        if self.start_date and self.end_date:
            return self.start_date.isoformat(), self.end_date.isoformat()
        return date_range_for_last_days(self.days)


class VideoAnalyticsParams(DateRangeParams):
    video_id: str = Field(..., min_length=1)


class SubmitFeedbackParams(ToolParams):
    message: str
    category: str
    email: Optional[str] = None


class CreateProjectParams(ToolParams):
    name: str = ""
    description: Optional[str] = None


class AnalyzeVideoParams(ToolParams):
    video: str = Field(..., min_length=1)


class ExtractStyleParams(ToolParams):
    videos: list[str] = Field(..., min_length=1)
    name: Optional[str] = None


class UpdateVideoTitleParams(ToolParams):
    video: str = Field(..., min_length=1)
    title: str = Field(..., min_length=1, max_length=100)


class ReplyParams(ToolParams):
    """Arguments of the reply-shaping tool.

    ``ui_sections`` is a plain list of strings: unknown identifiers are
    dropped when the reply is captured rather than failing validation.
    """

    message: str = ""
    ui_sections: list[str] = Field(default_factory=list)
    field_updates: dict[str, JsonValue] = Field(default_factory=dict)
    suggestions: list[str] = Field(default_factory=list)
    offer_upgrade: bool = False
    add_attached_images_to_style_references: bool = False
    add_attached_image_as_new_face: bool = False
    new_face_name: Optional[str] = None
