"""
Structured analysis of a remote video by the reasoning model.

The model is forced to answer through the ``video_analytics_rubric`` function
so the result always has the same keys.
"""
from __future__ import annotations

import logging

from pydantic import BaseModel, ValidationError

from conductor.contracts.json_types import JSONObject
from conductor.contracts.llm_types import ToolSchemaDict
from conductor.core.llm_client import ModelTransportError, ReasoningModel, force_tool

logger = logging.getLogger(__name__)

RUBRIC_TOOL = "video_analytics_rubric"

_RUBRIC_FIELDS: dict[str, str] = {
    "summary": "2-4 sentence overview of the video content",
    "topic": "Main topic or category",
    "tone": "Overall tone of the video",
    "key_moments": "Notable moments or segments, with timestamps if useful",
    "hooks": "What grabs attention early or in the content",
    "duration_estimate": "Length or pacing note",
    "thumbnail_appeal_notes": "Notes on thumbnail alignment and visual suggestions",
    "content_type": "Content type (e.g. Tutorial, Vlog, Review)",
}

RUBRIC_SCHEMA: ToolSchemaDict = {
    "type": "function",
    "function": {
        "name": RUBRIC_TOOL,
        "description": "Structured video analytics for content creators",
        "parameters": {
            "type": "object",
            "properties": {name: {"type": "string", "description": desc} for name, desc in _RUBRIC_FIELDS.items()},
            "required": list(_RUBRIC_FIELDS),
        },
    },
}


class VideoAnalysis(BaseModel):
    summary: str
    topic: str
    tone: str
    key_moments: str
    hooks: str
    duration_estimate: str
    thumbnail_appeal_notes: str
    content_type: str


class VideoAnalysisError(Exception):
    pass


class VideoAnalyzer:
    def __init__(self, model: ReasoningModel):
        self.model = model

    async def analyze(self, video_id: str) -> JSONObject:
        url = f"https://www.youtube.com/watch?v={video_id}"
        prompt = (
            "You are a video analyst for content creators. Watch the video at the URL below and "
            "fill in every field of the rubric. Be specific and concise.\n\n"
            f"Video: {url}\n\nYou MUST call the {RUBRIC_TOOL} function."
        )
        try:
            response = await self.model.chat_completion(
                messages=[{"role": "user", "content": prompt}],
                tools=[RUBRIC_SCHEMA],
                tool_choice=force_tool(RUBRIC_TOOL),
                temperature=0.2,
            )
        except ModelTransportError as e:
            raise VideoAnalysisError("analysis model unavailable") from e

        call = next((tc for tc in response.tool_calls if tc.name == RUBRIC_TOOL), None)
        if call is None:
            raise VideoAnalysisError("model did not return a rubric")
        try:
            analysis = VideoAnalysis.model_validate(call.params)
        except ValidationError as e:
            logger.warning(f"Rubric for {video_id} failed validation: {e.error_count()} errors")
            raise VideoAnalysisError("model returned an incomplete rubric") from e
        return {"videoId": video_id, "url": url, **analysis.model_dump()}
