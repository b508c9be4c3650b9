"""Boundary validation: raw model arguments -> typed parameter model."""

from __future__ import annotations

import logging
from typing import Optional

from pydantic import ValidationError as PydanticValidationError
from pydantic_core import ErrorDetails

from conductor.contracts.json_types import JSONObject
from conductor.core.tool_validation.models import P, ValidationError, ValidationResult

logger = logging.getLogger(__name__)

_RANGE_ERRORS = frozenset({
    "greater_than", "greater_than_equal", "less_than", "less_than_equal",
    "too_short", "too_long", "string_too_short", "string_too_long",
})


def _error_code(error_type: str) -> str:
    if error_type == "missing":
        return "MISSING_REQUIRED"
    if error_type in _RANGE_ERRORS:
        return "VALUE_OUT_OF_RANGE"
    if error_type.endswith("_type") or error_type.endswith("_parsing"):
        return "TYPE_MISMATCH"
    return "INVALID_VALUE"


def _convert(detail: ErrorDetails) -> ValidationError:
    field = ".".join(str(part) for part in detail["loc"])
    message = detail["msg"]
    # model_validator errors arrive as "Value error, <text>"
    if message.startswith("Value error, "):
        message = message[len("Value error, "):]
    return ValidationError(field=field, message=message, code=_error_code(detail["type"]))


def validate_tool_arguments(
    tool_name: str,
    params_model: type[P],
    raw: JSONObject,
    arguments_error: Optional[str] = None,
) -> ValidationResult[P]:
    """Validate *raw* against *params_model*.

    Never raises: every failure is reported in the returned result.
    """
    if arguments_error:
        return ValidationResult(
            valid=False,
            tool_name=tool_name,
            original_params=raw,
            errors=[ValidationError(field="", message=arguments_error, code="MALFORMED_ARGUMENTS")],
        )
    try:
        args = params_model.model_validate(raw)
    except PydanticValidationError as e:
        errors = [_convert(d) for d in e.errors()]
        logger.info(f"Validation failed for {tool_name}: {len(errors)} errors")
        return ValidationResult(valid=False, tool_name=tool_name, original_params=raw, errors=errors)
    return ValidationResult(valid=True, tool_name=tool_name, original_params=raw, args=args)
