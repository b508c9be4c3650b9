"""Canonical type definitions for JSON data.

Use ``JSONValue`` / ``JSONObject`` only when the shape is genuinely unknown
(raw model output before validation, or an arbitrary external payload).
Known structures get a named TypedDict next to the code that owns them.

Do **not** use ``JSONValue`` or ``JSONObject`` in Pydantic ``BaseModel``
fields; Pydantic v2 cannot resolve the recursive forward references.  Use
``pydantic.JsonValue`` there instead.
"""

from __future__ import annotations

JSONScalar = str | int | float | bool | None
"""A JSON leaf value."""

JSONValue = str | int | float | bool | None | list["JSONValue"] | dict[str, "JSONValue"]
"""Recursive JSON value.  Not for Pydantic fields."""

JSONObject = dict[str, JSONValue]
"""A JSON object with string keys."""


def is_json_object(value: object) -> bool:
    """True when *value* is a dict with string keys (shallow check)."""
    return isinstance(value, dict) and all(isinstance(k, str) for k in value)
