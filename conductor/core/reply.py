"""
Structured replies.

The reply-shaping tool lets the model answer with a typed payload instead of
prose: a message, UI section identifiers from a closed set, form field
pre-fills, follow-up suggestions and an upgrade-offer flag.  Unknown section
identifiers are dropped here and never reach the client.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Iterable

from conductor.contracts.json_types import JSONObject, JSONValue

logger = logging.getLogger(__name__)


class UISection(str, Enum):
    TITLE = "TitleSection"
    FACE = "FaceSection"
    STYLE = "StyleSection"
    PALETTE = "PaletteSection"
    STYLE_REFERENCES = "StyleReferencesSection"
    ASPECT_RATIO = "AspectRatioSection"
    RESOLUTION = "ResolutionSection"
    ASPECT_RATIO_RESOLUTION = "AspectRatioResolutionSection"
    VARIATIONS = "VariationsSection"
    CUSTOM_INSTRUCTIONS = "CustomInstructionsSection"
    GENERATE_BUTTON = "GenerateButton"
    PROJECT_SELECTOR = "ProjectSelectorSection"
    REGISTER_FACE = "RegisterFaceCard"
    REGISTER_STYLE = "RegisterStyleCard"
    REGISTER_PALETTE = "RegisterPaletteCard"


UI_SECTION_VALUES: tuple[str, ...] = tuple(s.value for s in UISection)

# Flags the model sets to ask the enrichment step for uploads. They are
# consumed server-side and never returned to the client.
ADD_TO_STYLE_REFERENCES = "add_attached_images_to_style_references"
ADD_AS_NEW_FACE = "add_attached_image_as_new_face"
NEW_FACE_NAME = "new_face_name"
REQUEST_ONLY_FIELDS: tuple[str, ...] = (ADD_TO_STYLE_REFERENCES, ADD_AS_NEW_FACE, NEW_FACE_NAME)

DEFAULT_REPLY_MESSAGE = "I'm here to help you set up your thumbnail. What would you like to create?"


def filter_ui_sections(values: Iterable[object]) -> list[UISection]:
    """Keep known section identifiers, in order, without duplicates."""
    sections: list[UISection] = []
    for value in values:
        try:
            section = UISection(value)
        except ValueError:
            logger.debug(f"Dropping unknown UI section {value!r}")
            continue
        if section not in sections:
            sections.append(section)
    return sections


@dataclass(frozen=True)
class ReplyPayload:
    message: str
    ui_sections: tuple[UISection, ...] = ()
    field_updates: JSONObject = field(default_factory=dict)
    suggestions: tuple[str, ...] = ()
    offer_upgrade: bool = False

    def with_field_updates(self, updates: JSONObject) -> "ReplyPayload":
        return replace(self, field_updates={**self.field_updates, **updates})

    def without_request_fields(self) -> "ReplyPayload":
        if not any(k in self.field_updates for k in REQUEST_ONLY_FIELDS):
            return self
        cleaned = {k: v for k, v in self.field_updates.items() if k not in REQUEST_ONLY_FIELDS}
        return replace(self, field_updates=cleaned)

    def request_flag(self, name: str) -> JSONValue:
        return self.field_updates.get(name)

    def to_dict(self) -> JSONObject:
        return {
            "message": self.message,
            "uiSections": [s.value for s in self.ui_sections],
            "fieldUpdates": dict(self.field_updates),
            "suggestions": list(self.suggestions),
            "offerUpgrade": self.offer_upgrade,
        }


def notice(message: str, *, offer_upgrade: bool = False) -> ReplyPayload:
    """A plain reply composed by the server (denials, apologies, confirmations)."""
    return ReplyPayload(message=message, offer_upgrade=offer_upgrade)
