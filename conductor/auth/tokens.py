"""
Access token generation and validation.

Bearer JWTs signed with the shared secret.  ``sub`` is the caller id; the
caller's tier is looked up per request, never trusted from the token.
"""
from __future__ import annotations

from datetime import datetime, timedelta, timezone

import jwt
from typing_extensions import Required, TypedDict

from conductor.config import settings


class AccessCodeError(Exception):
    """Raised when access token validation fails."""


class TokenClaims(TypedDict, total=False):
    """Decoded JWT payload returned by ``validate_access_code``."""

    type: Required[str]
    iat: Required[int]
    exp: Required[int]
    sub: str


def _get_secret() -> str:
    if not settings.access_token_secret:
        raise AccessCodeError(
            "CONDUCTOR_ACCESS_TOKEN_SECRET not configured. "
            "Generate one with: openssl rand -hex 32"
        )
    return settings.access_token_secret


def create_access_token(user_id: str, expires_hours: float = 24) -> str:
    """Signed access token for ``user_id``."""
    if expires_hours <= 0:
        raise AccessCodeError("Token lifetime must be positive")
    now = datetime.now(timezone.utc)
    payload = {
        "type": "access",
        "sub": user_id,
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(hours=expires_hours)).timestamp()),
    }
    return jwt.encode(payload, _get_secret(), algorithm=settings.access_token_algorithm)


def validate_access_code(token: str) -> TokenClaims:
    """
    Validate a token and return its claims.

    Raises:
        AccessCodeError: If the token is invalid, expired, or malformed
    """
    secret = _get_secret()
    try:
        payload = jwt.decode(token, secret, algorithms=[settings.access_token_algorithm])
    except jwt.ExpiredSignatureError:
        raise AccessCodeError("Access token has expired")
    except jwt.InvalidTokenError as e:
        raise AccessCodeError(f"Invalid access token: {e}")

    # jwt.decode() returns dict[str, Any]; narrow each claim explicitly.
    raw_type = payload.get("type")
    if raw_type != "access":
        raise AccessCodeError("Invalid token type")
    raw_iat = payload.get("iat", 0)
    raw_exp = payload.get("exp", 0)
    if not isinstance(raw_iat, int) or not isinstance(raw_exp, int):
        raise AccessCodeError("Malformed token: iat/exp must be integers")
    claims = TokenClaims(type=raw_type, iat=raw_iat, exp=raw_exp)

    raw_sub = payload.get("sub")
    if raw_sub is not None:
        if not isinstance(raw_sub, str):
            raise AccessCodeError("Malformed token: sub must be a string")
        claims["sub"] = raw_sub
    return claims
