"""
Tool argument validation for Conductor.

Model-emitted arguments are untrusted.  They are parsed into the tool's typed
parameter model before any handler sees them; failures become a
``ValidationResult`` with structured errors that the orchestrator feeds back
to the model as a tool-response turn.

Public API:
    validate_tool_arguments(tool_name, params_model, raw, arguments_error) -> ValidationResult
"""

from conductor.core.tool_validation.models import ValidationError, ValidationResult
from conductor.core.tool_validation.validators import validate_tool_arguments

__all__ = [
    "ValidationError",
    "ValidationResult",
    "validate_tool_arguments",
]
