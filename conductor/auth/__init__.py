"""
Conductor authentication module.

JWT access token generation and validation.
"""
from conductor.auth.tokens import AccessCodeError, TokenClaims, create_access_token, validate_access_code
from conductor.auth.dependencies import require_caller_id, require_valid_token

__all__ = [
    "AccessCodeError",
    "TokenClaims",
    "create_access_token",
    "validate_access_code",
    "require_caller_id",
    "require_valid_token",
]
