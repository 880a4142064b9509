"""
Projects Module Database Models

Projects, roles, memberships, groups and invitations.
"""

import uuid
from datetime import date, datetime
from enum import StrEnum
from typing import Any

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from byggportal.auth.models import User
from byggportal.core.database import Base, JSONType, enum_type


# =============================================================================
# Enums
# =============================================================================


class RoleName(StrEnum):
    """Roles a member can have in a project."""

    OWNER = "owner"  # Projektägare
    ADMIN = "admin"  # Administratör
    MEMBER = "member"  # Medlem
    VIEWER = "viewer"  # Läsbehörighet


class ProjectStatus(StrEnum):
    ACTIVE = "active"
    COMPLETED = "completed"
    ARCHIVED = "archived"


class MemberStatus(StrEnum):
    """Status of a project membership."""

    PENDING = "pending"
    ACTIVE = "active"
    REMOVED = "removed"  # Soft-removed, can be reactivated


# =============================================================================
# Models
# =============================================================================


class ProjectRole(Base):
    """A seeded project role with its permission set."""

    __tablename__ = "project_roles"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    name: Mapped[RoleName] = mapped_column(enum_type(RoleName, "role_name"), unique=True)
    display_name: Mapped[str] = mapped_column(String(100))
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    permissions: Mapped[dict[str, Any]] = mapped_column(JSONType, default=dict)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )


class Project(Base):
    """A construction project."""

    __tablename__ = "projects"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    name: Mapped[str] = mapped_column(String(255))
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    project_number: Mapped[str | None] = mapped_column(String(50), nullable=True)
    address: Mapped[str | None] = mapped_column(String(500), nullable=True)
    city: Mapped[str | None] = mapped_column(String(100), nullable=True)
    status: Mapped[ProjectStatus] = mapped_column(
        enum_type(ProjectStatus, "project_status"),
        default=ProjectStatus.ACTIVE,
    )
    start_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    end_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    image_url: Mapped[str | None] = mapped_column(String(500), nullable=True)

    created_by: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("profiles.id"), nullable=True
    )

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    # Relationships
    members: Mapped[list["ProjectMember"]] = relationship(
        back_populates="project", cascade="all, delete-orphan"
    )
    groups: Mapped[list["ProjectGroup"]] = relationship(
        back_populates="project", cascade="all, delete-orphan"
    )
    invitations: Mapped[list["Invitation"]] = relationship(
        back_populates="project", cascade="all, delete-orphan"
    )


class ProjectGroup(Base):
    """
    A group of members within a project (e.g. "Beställare", "Entreprenör").

    Default groups are created with the project and cannot be edited or
    deleted; custom groups are managed by owners and admins.
    """

    __tablename__ = "project_groups"
    __table_args__ = (
        UniqueConstraint("project_id", "name", name="uq_project_group_name"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    project_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("projects.id", ondelete="CASCADE"), index=True
    )
    name: Mapped[str] = mapped_column(String(100))
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    color: Mapped[str] = mapped_column(String(7), default="#6366f1")
    is_default: Mapped[bool] = mapped_column(Boolean, default=False)
    created_by: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("profiles.id"), nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    # Relationships
    project: Mapped["Project"] = relationship(back_populates="groups")
    members: Mapped[list["ProjectMember"]] = relationship(back_populates="group")


class ProjectMember(Base):
    """
    A user's membership in a project.

    One row per (project, user). Removing a member flips the status to
    'removed' so the row can be reactivated by a later invitation.
    """

    __tablename__ = "project_members"
    __table_args__ = (
        UniqueConstraint("project_id", "user_id", name="uq_project_member"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    project_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("projects.id", ondelete="CASCADE"), index=True
    )
    user_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("profiles.id"), index=True)
    role_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("project_roles.id"))
    group_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("project_groups.id", ondelete="SET NULL"), nullable=True
    )
    status: Mapped[MemberStatus] = mapped_column(
        enum_type(MemberStatus, "member_status"),
        default=MemberStatus.ACTIVE,
    )

    invited_by: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("profiles.id"), nullable=True
    )
    invited_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    joined_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    # Relationships
    project: Mapped["Project"] = relationship(back_populates="members")
    user: Mapped["User"] = relationship(foreign_keys=[user_id])
    role: Mapped["ProjectRole"] = relationship()
    group: Mapped["ProjectGroup | None"] = relationship(back_populates="members")
    inviter: Mapped["User | None"] = relationship(foreign_keys=[invited_by])


class Invitation(Base):
    """
    An invitation for an email address without an account.

    Pending while accepted_at is null and expires_at lies in the future.
    """

    __tablename__ = "invitations"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    email: Mapped[str] = mapped_column(String(255), index=True)
    project_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("projects.id", ondelete="CASCADE"), index=True
    )
    role_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("project_roles.id"))
    group_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("project_groups.id", ondelete="SET NULL"), nullable=True
    )
    token: Mapped[str] = mapped_column(String(128), unique=True, index=True)
    invited_by: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("profiles.id"), nullable=True
    )

    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    accepted_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    # Relationships
    project: Mapped["Project"] = relationship(back_populates="invitations")
    role: Mapped["ProjectRole"] = relationship()
    group: Mapped["ProjectGroup | None"] = relationship()
    inviter: Mapped["User | None"] = relationship(foreign_keys=[invited_by])
