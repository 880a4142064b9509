"""
Projects Module Pydantic Schemas

API request/response schemas for projects, members, groups and invitations.
"""

from datetime import date, datetime
from typing import Any, Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from byggportal.projects.models import MemberStatus, ProjectStatus, RoleName


# =============================================================================
# User Schemas
# =============================================================================


class UserBrief(BaseModel):
    """Brief user info for embedding in other responses."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    email: str
    full_name: str | None = None
    company: str | None = None
    avatar_url: str | None = None


# =============================================================================
# Role Schemas
# =============================================================================


class RoleResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: RoleName
    display_name: str
    description: str | None = None
    permissions: dict[str, Any] = {}


# =============================================================================
# Project Schemas
# =============================================================================


class ProjectBase(BaseModel):
    """Base schema for project."""

    name: str = Field(min_length=1, max_length=255)
    description: str | None = None
    project_number: str | None = None
    address: str | None = None
    city: str | None = None
    start_date: date | None = None
    end_date: date | None = None
    image_url: str | None = None


class ProjectCreate(ProjectBase):
    """Schema for creating a project."""

    pass


class ProjectUpdate(BaseModel):
    """Schema for updating a project."""

    name: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = None
    project_number: str | None = None
    address: str | None = None
    city: str | None = None
    status: ProjectStatus | None = None
    start_date: date | None = None
    end_date: date | None = None
    image_url: str | None = None


class ProjectResponse(ProjectBase):
    """Schema for project response."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    status: ProjectStatus
    created_by: UUID | None = None
    created_at: datetime
    updated_at: datetime


class ProjectWithMembers(ProjectResponse):
    members: list["MemberResponse"] = []


class MyRoleResponse(BaseModel):
    """The caller's role in a project and what it allows."""

    role: RoleName | None
    display_name: str | None = None
    permissions: dict[str, list[str]] | None = None
    assignable_roles: list[RoleName] = []


# =============================================================================
# Member Schemas
# =============================================================================


class MemberResponse(BaseModel):
    """A membership with role, user and group embedded."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    project_id: UUID
    user_id: UUID
    role_id: UUID
    group_id: UUID | None = None
    status: MemberStatus
    invited_by: UUID | None = None
    invited_at: datetime | None = None
    joined_at: datetime | None = None
    role: RoleResponse
    user: UserBrief
    group: "GroupResponse | None" = None


class InviteMemberRequest(BaseModel):
    email: EmailStr
    role_id: UUID
    group_id: UUID | None = None


class UpdateMemberRoleRequest(BaseModel):
    role_id: UUID


class AssignGroupRequest(BaseModel):
    group_id: UUID | None = None


# =============================================================================
# Invitation Schemas
# =============================================================================


class InvitationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    email: str
    project_id: UUID
    role_id: UUID
    group_id: UUID | None = None
    invited_by: UUID | None = None
    expires_at: datetime
    accepted_at: datetime | None = None
    created_at: datetime


class InvitationDetail(InvitationResponse):
    """Invitation with project, role and inviter, shown on the accept page."""

    project: ProjectResponse
    role: RoleResponse
    inviter: UserBrief | None = None


class InviteResult(BaseModel):
    """
    Outcome of inviting an email address.

    ``added`` when the address belonged to an existing account and the user
    became a member right away, ``invited`` when an invitation was created.
    """

    type: Literal["added", "invited"]
    member: MemberResponse | None = None
    invitation: InvitationResponse | None = None
    email_sent: bool = False


class AcceptInvitationResponse(BaseModel):
    project_id: UUID


# =============================================================================
# Group Schemas
# =============================================================================


class GroupCreate(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    description: str | None = None
    color: str = Field(default="#6366f1", pattern=r"^#[0-9a-fA-F]{6}$")


class GroupUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=100)
    description: str | None = None
    color: str | None = Field(default=None, pattern=r"^#[0-9a-fA-F]{6}$")


class GroupResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    project_id: UUID
    name: str
    description: str | None = None
    color: str
    is_default: bool
    created_by: UUID | None = None
    created_at: datetime


class GroupWithCount(GroupResponse):
    member_count: int = 0


ProjectWithMembers.model_rebuild()
MemberResponse.model_rebuild()
