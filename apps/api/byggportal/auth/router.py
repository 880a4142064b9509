"""
Auth API Router

Profile endpoints for the signed-in user. Sign-in itself happens against
the hosted auth provider.
"""

import logging
from datetime import datetime
from uuid import UUID

from fastapi import APIRouter, Depends, File, UploadFile
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.ext.asyncio import AsyncSession

from byggportal.auth.dependencies import AuthenticatedUser, get_current_user
from byggportal.auth.models import User
from byggportal.core.config import settings
from byggportal.core.database import get_db
from byggportal.core.errors import ExternalServiceError, InvalidOperationError
from byggportal.core.storage import build_object_path, path_from_public_url, storage_client

logger = logging.getLogger(__name__)

router = APIRouter(tags=["auth"])


class ProfileResponse(BaseModel):
    """Profile of the signed-in user."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    email: str
    full_name: str | None = None
    company: str | None = None
    phone: str | None = None
    avatar_url: str | None = None
    created_at: datetime | None = None


class ProfileUpdate(BaseModel):
    full_name: str | None = Field(default=None, max_length=255)
    company: str | None = Field(default=None, max_length=255)
    phone: str | None = Field(default=None, max_length=50)
    avatar_url: str | None = Field(default=None, max_length=500)


@router.get("/me", response_model=ProfileResponse)
async def get_me(
    db: AsyncSession = Depends(get_db),
    user: AuthenticatedUser = Depends(get_current_user),
) -> ProfileResponse:
    """Get the caller's profile, or the token identity if no profile exists yet."""
    profile = await db.get(User, user.id)
    if profile is None:
        return ProfileResponse(id=user.id, email=user.email)
    return ProfileResponse.model_validate(profile)


@router.patch("/me", response_model=ProfileResponse)
async def update_me(
    data: ProfileUpdate,
    db: AsyncSession = Depends(get_db),
    user: AuthenticatedUser = Depends(get_current_user),
) -> ProfileResponse:
    """Update the caller's profile, creating it on first use."""
    profile = await db.get(User, user.id)
    if profile is None:
        profile = User(id=user.id, email=user.email.lower())
        db.add(profile)
        logger.info(f"Created profile for user {user.id}")

    for field, value in data.model_dump(exclude_unset=True).items():
        setattr(profile, field, value)

    await db.commit()
    await db.refresh(profile)
    return ProfileResponse.model_validate(profile)


@router.post("/me/avatar", response_model=ProfileResponse)
async def upload_avatar(
    file: UploadFile = File(..., description="Profile picture"),
    db: AsyncSession = Depends(get_db),
    user: AuthenticatedUser = Depends(get_current_user),
) -> ProfileResponse:
    """Upload a profile picture to the public avatar bucket."""
    if not (file.content_type or "").startswith("image/"):
        raise InvalidOperationError("Profilbilden måste vara en bild")

    profile = await db.get(User, user.id)
    if profile is None:
        profile = User(id=user.id, email=user.email.lower())
        db.add(profile)

    path = build_object_path(str(user.id), file.filename or "avatar")
    await storage_client.upload(
        settings.avatars_bucket, path, await file.read(), file.content_type
    )
    profile.avatar_url = storage_client.public_url(settings.avatars_bucket, path)

    await db.commit()
    await db.refresh(profile)
    return ProfileResponse.model_validate(profile)


@router.delete("/me/avatar", response_model=ProfileResponse)
async def delete_avatar(
    db: AsyncSession = Depends(get_db),
    user: AuthenticatedUser = Depends(get_current_user),
) -> ProfileResponse:
    """Remove the profile picture. The stored file is removed after the profile is saved."""
    profile = await db.get(User, user.id)
    if profile is None:
        return ProfileResponse(id=user.id, email=user.email)

    path = None
    if profile.avatar_url:
        path = path_from_public_url(profile.avatar_url, settings.avatars_bucket)

    profile.avatar_url = None
    await db.commit()
    await db.refresh(profile)

    if path:
        try:
            await storage_client.delete(settings.avatars_bucket, path)
        except ExternalServiceError as e:
            logger.error(f"Could not delete avatar {path} of user {user.id}: {e.message}")

    return ProfileResponse.model_validate(profile)
