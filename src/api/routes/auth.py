"""Caller identity resolution.

Production requests authenticate with a JWT bearer token carrying ``sub``
(user id) and ``role`` claims. Tokens are verified here and issued elsewhere.

For local development and tests, ``TRUST_IDENTITY_HEADERS=true`` additionally
accepts the ``X-User-Id`` / ``X-Role`` header pair. The headers are ignored
when a bearer token is present and rejected entirely when the switch is off.
"""

import logging
from typing import Annotated, Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from pydantic import ValidationError as PydanticValidationError

import config
from schemas.user import Identity

logger = logging.getLogger(__name__)

USER_ID_HEADER = "x-user-id"
ROLE_HEADER = "x-role"

# HTTP Bearer token security
security = HTTPBearer(auto_error=False)


def _unauthorized(detail: str = "Invalid authentication credentials") -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def decode_token(token: str) -> Identity:
    """Verify a JWT and extract the caller identity.

    Args:
        token: Encoded JWT.

    Returns:
        Identity from the ``sub`` and ``role`` claims.

    Raises:
        HTTPException: If the token is invalid, expired or lacks the claims.
    """
    try:
        payload = jwt.decode(
            token, config.JWT_SECRET_KEY, algorithms=[config.JWT_ALGORITHM]
        )
    except JWTError as exc:
        logger.info("Rejected bearer token: %s", exc)
        raise _unauthorized()
    try:
        return Identity(user_id=payload.get("sub"), role=payload.get("role"))
    except PydanticValidationError:
        raise _unauthorized()


def _identity_from_headers(request: Request) -> Identity:
    user_id = request.headers.get(USER_ID_HEADER)
    if not user_id:
        raise _unauthorized("Missing identity")
    role = request.headers.get(ROLE_HEADER) or "student"
    try:
        return Identity(user_id=user_id, role=role)
    except PydanticValidationError:
        raise _unauthorized("Invalid role")


def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> Identity:
    """Get the identity of the current caller.

    Args:
        request: Incoming request.
        credentials: Bearer token credentials, if supplied.

    Returns:
        Resolved Identity.

    Raises:
        HTTPException: 401 if no acceptable identity is presented.
    """
    if credentials is not None:
        return decode_token(credentials.credentials)
    if config.TRUST_IDENTITY_HEADERS:
        return _identity_from_headers(request)
    raise _unauthorized("Not authenticated")


CurrentUser = Annotated[Identity, Depends(get_current_user)]
