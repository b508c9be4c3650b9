"""
Derive a reusable visual style from several remote videos.

Fetches each video's public thumbnail, stores it under the style-references
bucket (content-addressed), asks the model for the common style through a
forced function call, and persists the result as a ``Style`` row.
"""
from __future__ import annotations

import hashlib
import logging
from typing import Optional

import httpx
from pydantic import BaseModel, Field, ValidationError

from conductor.config import settings
from conductor.contracts.json_types import JSONObject
from conductor.contracts.llm_types import ContentPart, ToolSchemaDict
from conductor.core.llm_client import ModelTransportError, ReasoningModel, force_tool
from conductor.core.retry import RetryExhaustedError, retry_with_backoff
from conductor.db.database import new_session
from conductor.db.models import Style
from conductor.services.storage import StorageError, StorageService
from conductor.services.youtube import thumbnail_url

logger = logging.getLogger(__name__)

MIN_VIDEOS = 2
MAX_VIDEOS = 10
STYLE_TOOL = "extract_style_info"

STYLE_SCHEMA: ToolSchemaDict = {
    "type": "function",
    "function": {
        "name": STYLE_TOOL,
        "description": "Extract structured style information from the common visual style across the images",
        "parameters": {
            "type": "object",
            "properties": {
                "name": {"type": "string", "description": "A catchy, memorable style name (2-4 words)"},
                "description": {
                    "type": "string",
                    "description": "A brief 1-2 sentence description of what makes this style distinctive",
                },
                "prompt": {
                    "type": "string",
                    "description": "A detailed generation prompt (100-200 words) covering colors, lighting, effects, composition and mood",
                },
            },
            "required": ["name", "description", "prompt"],
        },
    },
}

_STYLE_PROMPT = (
    "You are an expert visual style analyst for thumbnails. Analyze the {count} thumbnails together "
    "and extract the COMMON visual style: color palette and grading, lighting, composition, text "
    "treatment (styling, not words), special effects, mood. Produce a single style with a 2-4 word "
    "name, a 1-2 sentence description starting with \"This style is a\", and a 100-200 word "
    "generation prompt. Do not mention YouTube. You MUST call the {tool} function."
)


class ExtractedStyle(BaseModel):
    name: str = Field(default="Extracted Style", min_length=1)
    description: str
    prompt: str


class StyleExtractionError(Exception):
    """``stage`` is one of fetch, upload, model, save."""

    def __init__(self, stage: str, message: str):
        self.stage = stage
        super().__init__(message)


class StyleExtractor:
    def __init__(self, model: ReasoningModel, storage: StorageService, http: Optional[httpx.AsyncClient] = None):
        self.model = model
        self.storage = storage
        self._http = http

    @property
    def http(self) -> httpx.AsyncClient:
        if self._http is None:
            self._http = httpx.AsyncClient(timeout=15.0, follow_redirects=True)
        return self._http

    async def close(self) -> None:
        if self._http:
            await self._http.aclose()
            self._http = None

    async def _fetch(self, url: str) -> tuple[bytes, str]:
        async def _attempt() -> tuple[bytes, str]:
            response = await self.http.get(url)
            response.raise_for_status()
            return response.content, response.headers.get("content-type", "image/jpeg").split(";")[0]

        return await retry_with_backoff(_attempt, label="thumbnail")

    async def extract(self, caller_id: str, video_ids: list[str], name: Optional[str] = None) -> JSONObject:
        if not MIN_VIDEOS <= len(video_ids) <= MAX_VIDEOS:
            raise StyleExtractionError("fetch", f"Need between {MIN_VIDEOS} and {MAX_VIDEOS} videos")

        references: list[str] = []
        parts: list[ContentPart] = []
        for index, video_id in enumerate(video_ids, start=1):
            source = thumbnail_url(video_id)
            try:
                data, content_type = await self._fetch(source)
            except (httpx.HTTPError, RetryExhaustedError) as e:
                raise StyleExtractionError("fetch", f"Failed to fetch thumbnail {index}") from e
            digest = hashlib.sha256(data).hexdigest()[:16]
            ext = "png" if content_type == "image/png" else "jpg"
            path = f"{caller_id}/yt-{digest}.{ext}"
            try:
                if await self.storage.exists(settings.style_references_bucket, path):
                    url = await self.storage.create_signed_url(
                        settings.style_references_bucket, path, settings.signed_url_ttl_seconds,
                    )
                else:
                    url = await self.storage.upload(settings.style_references_bucket, path, data, content_type)
            except StorageError as e:
                raise StyleExtractionError("upload", f"Failed to save thumbnail {index}") from e
            references.append(url)
            parts.append({"type": "image_url", "image_url": {"url": source}})

        parts.append({"type": "text", "text": _STYLE_PROMPT.format(count=len(video_ids), tool=STYLE_TOOL)})
        try:
            response = await self.model.chat_completion(
                messages=[{"role": "user", "content": parts}],
                tools=[STYLE_SCHEMA],
                tool_choice=force_tool(STYLE_TOOL),
                temperature=0.4,
            )
        except ModelTransportError as e:
            raise StyleExtractionError("model", "style model unavailable") from e

        call = next((tc for tc in response.tool_calls if tc.name == STYLE_TOOL), None)
        if call is None:
            raise StyleExtractionError("model", "model did not describe a style")
        try:
            style = ExtractedStyle.model_validate(call.params)
        except ValidationError as e:
            raise StyleExtractionError("model", "model returned an incomplete style") from e

        style_name = (name or "").strip() or style.name
        async with new_session() as session:
            row = Style(
                user_id=caller_id,
                name=style_name,
                description=style.description,
                prompt=style.prompt,
                reference_images=references,
                source_video_ids=list(video_ids),
            )
            session.add(row)
            await session.commit()
            style_id = row.id
        logger.info(f"Extracted style {style_id} from {len(video_ids)} videos for {caller_id[:8]}")
        return {
            "styleId": style_id,
            "name": style_name,
            "description": style.description,
            "prompt": style.prompt,
            "referenceImages": references,
        }
