"""
Tests for access token verification.
"""

import time
from uuid import uuid4

import jwt
import pytest

from byggportal.auth.dependencies import user_from_payload, verify_token
from byggportal.core.config import settings
from byggportal.core.errors import NotAuthenticatedError


def make_token(**claims) -> str:
    payload = {
        "sub": str(uuid4()),
        "email": "per@example.se",
        "aud": "authenticated",
        "exp": int(time.time()) + 3600,
    }
    payload.update(claims)
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


class TestVerifyToken:
    """Tests for verify_token."""

    def test_valid_token(self) -> None:
        """Test that a valid token decodes to its claims."""
        user_id = str(uuid4())
        payload = verify_token(make_token(sub=user_id))
        assert payload["sub"] == user_id

    def test_expired_token(self) -> None:
        """Test that expired tokens are rejected with a session message."""
        with pytest.raises(NotAuthenticatedError) as exc_info:
            verify_token(make_token(exp=int(time.time()) - 10))
        assert "gått ut" in exc_info.value.message

    def test_wrong_secret(self) -> None:
        """Test that tokens signed with another key are rejected."""
        token = jwt.encode(
            {"sub": str(uuid4()), "aud": "authenticated"},
            "another-secret-key-that-is-long-enough",
            algorithm="HS256",
        )
        with pytest.raises(NotAuthenticatedError):
            verify_token(token)

    def test_wrong_audience(self) -> None:
        """Test that tokens for another audience are rejected."""
        with pytest.raises(NotAuthenticatedError):
            verify_token(make_token(aud="anon"))

    def test_garbage(self) -> None:
        """Test that non-JWT strings are rejected."""
        with pytest.raises(NotAuthenticatedError):
            verify_token("inte-en-token")


class TestUserFromPayload:
    """Tests for building the caller from claims."""

    def test_user(self) -> None:
        """Test that sub and email become the caller."""
        user_id = uuid4()
        user = user_from_payload({"sub": str(user_id), "email": "per@example.se"})
        assert user.id == user_id
        assert user.email == "per@example.se"

    def test_missing_email(self) -> None:
        """Test that a token without email is not accepted."""
        with pytest.raises(NotAuthenticatedError):
            user_from_payload({"sub": str(uuid4())})

    def test_sub_not_uuid(self) -> None:
        """Test that a non-UUID subject is not accepted."""
        with pytest.raises(NotAuthenticatedError):
            user_from_payload({"sub": "abc", "email": "per@example.se"})
