"""
Projects module - projects, memberships, roles, groups and invitations.

Every project operation passes through the membership guard in
``services.ProjectAccessService``.
"""

from byggportal.projects.models import (
    Invitation,
    MemberStatus,
    Project,
    ProjectGroup,
    ProjectMember,
    ProjectRole,
    ProjectStatus,
    RoleName,
)

__all__ = [
    "Invitation",
    "MemberStatus",
    "Project",
    "ProjectGroup",
    "ProjectMember",
    "ProjectRole",
    "ProjectStatus",
    "RoleName",
]
