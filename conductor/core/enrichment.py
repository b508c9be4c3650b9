"""
Post-reply enrichment.

When the reply-shaping payload asks for it and the caller attached images,
upload them and merge durable references into ``field_updates``:

- ``add_attached_images_to_style_references`` → upload up to the remaining
  style-reference slots, append their URLs to ``styleReferences``
- ``add_attached_image_as_new_face`` → upload the first image and register
  a face (tier permitting), selecting it in the form

Object keys are content-addressed and existing objects are not re-uploaded,
so running the step twice for the same payload and attachments yields the
same references.  Failures follow ``BestEffortPolicy``: the failed step's
fields are left out, the report records why, and the reply still goes out.
Request-only flags are stripped in every case.
"""
from __future__ import annotations

import asyncio
import hashlib
import logging
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional, Sequence

from conductor.config import Settings, settings as default_settings
from conductor.contracts.json_types import JSONObject
from conductor.core.context import ExecutionContext
from conductor.core.reply import (
    ADD_AS_NEW_FACE,
    ADD_TO_STYLE_REFERENCES,
    NEW_FACE_NAME,
    ReplyPayload,
)
from conductor.services.faces import FaceStore
from conductor.services.storage import StorageError, StorageService
from conductor.services.tiers import Capability, has_capability

logger = logging.getLogger(__name__)

ALLOWED_ATTACHMENT_TYPES: dict[str, str] = {
    "image/png": "png",
    "image/jpeg": "jpg",
    "image/webp": "webp",
    "image/gif": "gif",
}

DEFAULT_FACE_NAME = "My face"


class EnrichmentError(Exception):
    """One enrichment step failed; ``step`` names it."""

    def __init__(self, step: str, message: str):
        self.step = step
        super().__init__(message)


@dataclass(frozen=True)
class Attachment:
    data: bytes
    mime_type: str

    @property
    def digest(self) -> str:
        return hashlib.sha256(self.data).hexdigest()[:16]

    @property
    def ext(self) -> str:
        return ALLOWED_ATTACHMENT_TYPES.get(self.mime_type, "bin")

    @property
    def allowed(self) -> bool:
        return self.mime_type in ALLOWED_ATTACHMENT_TYPES


@dataclass
class EnrichmentReport:
    uploaded: list[str] = field(default_factory=list)    # object keys written this run
    reused: list[str] = field(default_factory=list)      # object keys already present
    skipped: list[str] = field(default_factory=list)     # reasons a step was not attempted
    failures: list[str] = field(default_factory=list)    # "step: message"

    @property
    def ok(self) -> bool:
        return not self.failures


@dataclass(frozen=True)
class BestEffortPolicy:
    """What to do when an enrichment step fails.

    The default keeps the reply and drops the failed step's fields.  With
    ``raise_errors`` the error propagates instead (used by tests and tools
    that want a hard failure).
    """

    raise_errors: bool = False

    def handle(self, error: EnrichmentError, report: EnrichmentReport, ctx: ExecutionContext) -> None:
        report.failures.append(f"{error.step}: {error}")
        logger.warning(f"[{ctx.trace_id[:8]}] enrichment step {error.step} failed: {error}")
        if self.raise_errors:
            raise error


def _object_key(url: str) -> str:
    """Signed URLs differ per signing; compare references without the query."""
    return url.split("?", 1)[0]


def _merge_unique(existing: Sequence[Any], new: Sequence[str]) -> list[Any]:
    merged = list(existing)
    seen = {_object_key(str(v)) for v in merged}
    for url in new:
        key = _object_key(url)
        if key not in seen:
            merged.append(url)
            seen.add(key)
    return merged


def _as_list(value: Any) -> list[Any]:
    return list(value) if isinstance(value, (list, tuple)) else []


class EnrichmentPipeline:
    def __init__(
        self,
        storage: StorageService,
        faces: FaceStore,
        policy: Optional[BestEffortPolicy] = None,
        config: Optional[Settings] = None,
    ):
        self.storage = storage
        self.faces = faces
        self.policy = policy or BestEffortPolicy()
        self.config = config or default_settings

    async def enrich(
        self,
        payload: ReplyPayload,
        attachments: Sequence[Attachment],
        ctx: ExecutionContext,
        form_state: Optional[Mapping[str, Any]] = None,
    ) -> tuple[ReplyPayload, EnrichmentReport]:
        report = EnrichmentReport()
        form_state = form_state or {}
        usable = [a for a in attachments if a.allowed]
        if len(usable) < len(attachments):
            report.skipped.append(f"{len(attachments) - len(usable)} attachment(s) with unsupported type")

        updates: JSONObject = {}
        if payload.request_flag(ADD_TO_STYLE_REFERENCES) is True:
            if usable:
                try:
                    updates.update(await self._style_references(usable, ctx, form_state, payload, report))
                except EnrichmentError as e:
                    self.policy.handle(e, report, ctx)
            else:
                report.skipped.append("style references requested without attachments")

        if payload.request_flag(ADD_AS_NEW_FACE) is True:
            if not usable:
                report.skipped.append("new face requested without attachments")
            elif not has_capability(ctx.tier, Capability.CREATE_CUSTOM):
                report.skipped.append(f"new face not available on tier {ctx.tier.value}")
            else:
                try:
                    updates.update(await self._new_face(usable[0], ctx, form_state, payload, report))
                except EnrichmentError as e:
                    self.policy.handle(e, report, ctx)

        enriched = payload.with_field_updates(updates).without_request_fields()
        if report.uploaded or report.reused or report.failures:
            logger.info(
                f"[{ctx.trace_id[:8]}] enrichment: {len(report.uploaded)} uploaded, "
                f"{len(report.reused)} reused, {len(report.failures)} failed"
            )
        return enriched, report

    async def _store(self, bucket: str, path: str, attachment: Attachment, report: EnrichmentReport) -> str:
        """Upload unless the content-addressed object already exists; return a signed URL."""
        try:
            if await self.storage.exists(bucket, path):
                report.reused.append(path)
                return await self.storage.create_signed_url(bucket, path, self.config.signed_url_ttl_seconds)
            url = await self.storage.upload(bucket, path, attachment.data, attachment.mime_type)
        except StorageError as e:
            raise EnrichmentError("upload", str(e)) from e
        report.uploaded.append(path)
        return url

    async def _style_references(
        self,
        attachments: Sequence[Attachment],
        ctx: ExecutionContext,
        form_state: Mapping[str, Any],
        payload: ReplyPayload,
        report: EnrichmentReport,
    ) -> JSONObject:
        existing = _as_list(payload.field_updates.get("styleReferences")) or _as_list(form_state.get("styleReferences"))
        remaining = max(0, self.config.max_style_references - len(existing))
        if remaining == 0:
            report.skipped.append("style references already full")
            return {"includeStyleReferences": True, "styleReferences": existing}

        # Duplicate attachments in one request map to the same object.
        unique: dict[str, Attachment] = {}
        for a in attachments:
            unique.setdefault(a.digest, a)
        batch = list(unique.values())[:remaining]

        bucket = self.config.style_references_bucket
        outcomes = await asyncio.gather(
            *(self._store(bucket, f"{ctx.caller_id}/ref-{a.digest}.{a.ext}", a, report) for a in batch),
            return_exceptions=True,
        )
        urls: list[str] = []
        errors: list[EnrichmentError] = []
        for outcome in outcomes:
            if isinstance(outcome, EnrichmentError):
                errors.append(outcome)
            elif isinstance(outcome, BaseException):
                raise outcome
            else:
                urls.append(outcome)
        if errors and not urls:
            raise errors[0]
        for error in errors:
            # Partial success keeps the stored references.
            report.failures.append(f"{error.step}: {error}")
            logger.warning(f"[{ctx.trace_id[:8]}] style reference upload failed: {error}")
        return {"includeStyleReferences": True, "styleReferences": _merge_unique(existing, urls)}

    async def _new_face(
        self,
        attachment: Attachment,
        ctx: ExecutionContext,
        form_state: Mapping[str, Any],
        payload: ReplyPayload,
        report: EnrichmentReport,
    ) -> JSONObject:
        raw_name = payload.request_flag(NEW_FACE_NAME)
        name = raw_name.strip() if isinstance(raw_name, str) and raw_name.strip() else DEFAULT_FACE_NAME

        path = f"{ctx.caller_id}/face-{attachment.digest}.{attachment.ext}"
        url = await self._store(self.config.faces_bucket, path, attachment, report)
        try:
            face_id = await self.faces.get_or_create(ctx.caller_id, attachment.digest, name, url)
        except Exception as e:
            raise EnrichmentError("face", "could not register the face") from e

        selected = _as_list(payload.field_updates.get("selectedFaces")) or _as_list(form_state.get("selectedFaces"))
        if face_id not in selected:
            selected.append(face_id)
        return {"newFaceId": face_id, "includeFace": True, "selectedFaces": selected}
