"""Authentication dependencies for FastAPI routes."""

from typing import Optional

import jwt
from fastapi import Depends, HTTPException, Query, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from daylight.core.jwt import jwt_verifier
from daylight.schemas.auth import CurrentUser
from daylight.utils.logging import get_logger

LOGGER = get_logger(__name__)

security = HTTPBearer(auto_error=False)


async def _user_from_token(token: str) -> CurrentUser:
    try:
        claims = await jwt_verifier.verify_token(token)
        user = CurrentUser(id=claims.sub, email=claims.email, role=claims.role or "authenticated")
        LOGGER.debug(f"Authenticated user: {user.id}")
        return user
    except jwt.InvalidTokenError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authentication token",
            headers={"WWW-Authenticate": "Bearer"},
        ) from e
    except ValueError as e:
        # sub is not a UUID
        LOGGER.warning(f"Token subject rejected: {e}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authentication token",
            headers={"WWW-Authenticate": "Bearer"},
        ) from e


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> CurrentUser:
    """Authenticated user from the ``Authorization: Bearer`` header.

    Raises:
        HTTPException: 401 if the token is missing or invalid
    """
    if not credentials:
        LOGGER.warning("No authorization credentials provided")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authorization header missing",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return await _user_from_token(credentials.credentials)


async def get_current_user_from_query(
    token: Optional[str] = Query(default=None, description="Access token for EventSource clients"),
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> CurrentUser:
    """Like ``get_current_user`` but also accepts ``?token=`` for SSE streams."""
    if credentials:
        return await _user_from_token(credentials.credentials)
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return await _user_from_token(token)
