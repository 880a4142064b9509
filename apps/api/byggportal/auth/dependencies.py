"""
Auth Dependencies

FastAPI dependencies for authentication. Access tokens are issued by the
hosted auth provider; the API only verifies them.
"""

import uuid

import jwt
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel

from byggportal.core.config import settings
from byggportal.core.errors import NotAuthenticatedError

security = HTTPBearer(auto_error=False)


class AuthenticatedUser(BaseModel):
    """The caller, as identified by the access token."""

    id: uuid.UUID
    email: str


def verify_token(token: str) -> dict:
    """
    Verify JWT access token and return decoded payload.

    Raises:
        NotAuthenticatedError: If token is expired or invalid
    """
    options = {"verify_aud": settings.jwt_audience is not None}
    try:
        return jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[settings.jwt_algorithm],
            audience=settings.jwt_audience,
            options=options,
        )
    except jwt.ExpiredSignatureError:
        raise NotAuthenticatedError("Sessionen har gått ut, logga in igen")
    except jwt.InvalidTokenError:
        raise NotAuthenticatedError("Ogiltig inloggning")


def user_from_payload(payload: dict) -> AuthenticatedUser:
    """Build the caller from the ``sub`` and ``email`` claims."""
    sub = payload.get("sub")
    email = payload.get("email")
    if not sub or not email:
        raise NotAuthenticatedError("Ogiltig inloggning")
    try:
        user_id = uuid.UUID(str(sub))
    except ValueError:
        raise NotAuthenticatedError("Ogiltig inloggning")
    return AuthenticatedUser(id=user_id, email=email)


async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
) -> AuthenticatedUser:
    """Get current authenticated user."""
    if credentials is None:
        raise NotAuthenticatedError()

    return user_from_payload(verify_token(credentials.credentials))
