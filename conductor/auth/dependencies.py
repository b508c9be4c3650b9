"""
FastAPI authentication dependencies.
"""
from __future__ import annotations

import logging

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from conductor.auth.tokens import AccessCodeError, TokenClaims, validate_access_code

logger = logging.getLogger(__name__)

# auto_error=False so missing tokens get our own error body
security = HTTPBearer(auto_error=False)


def _unauthorized(message: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail={"message": message, "code": "UNAUTHORIZED"},
        headers={"WWW-Authenticate": "Bearer"},
    )


async def require_valid_token(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
) -> TokenClaims:
    if credentials is None:
        logger.warning("Access attempt without token")
        raise _unauthorized("Access token required.")
    try:
        claims = validate_access_code(credentials.credentials)
    except AccessCodeError as e:
        logger.warning(f"Invalid token: {e}")
        raise _unauthorized("Invalid or expired access token.") from e
    return claims


async def require_caller_id(claims: TokenClaims = Depends(require_valid_token)) -> str:
    """The authenticated caller's id (the token's ``sub``)."""
    caller_id = claims.get("sub")
    if not caller_id:
        raise _unauthorized("Access token has no user.")
    return caller_id
