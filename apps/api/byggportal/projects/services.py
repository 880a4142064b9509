"""
Projects Module Services

Business logic for projects, memberships, invitations and groups. Every
mutation goes through ProjectAccessService first: the caller must hold an
active membership and a role that grants the action.
"""

import logging
import secrets
from datetime import datetime, timedelta, timezone
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from byggportal.auth.dependencies import AuthenticatedUser
from byggportal.auth.models import User
from byggportal.core.config import settings
from byggportal.core.email import send_invitation_email
from byggportal.core.errors import (
    AlreadyMemberError,
    BackendError,
    DuplicateGroupError,
    DuplicateInvitationError,
    ExternalServiceError,
    InvalidOperationError,
    InvitationEmailMismatchError,
    InvitationInvalidError,
    NotAuthenticatedError,
    NotFoundError,
    OwnerProtectedError,
    PermissionDeniedError,
    SelfModificationError,
)
from byggportal.projects.models import (
    Invitation,
    MemberStatus,
    Project,
    ProjectGroup,
    ProjectMember,
    ProjectRole,
    RoleName,
)
from byggportal.projects.permissions import (
    get_assignable_roles,
    get_role_display_name,
    has_permission,
    is_admin,
)
from byggportal.projects.schemas import GroupCreate, GroupUpdate, ProjectCreate, ProjectUpdate

logger = logging.getLogger(__name__)

# Groups every new project starts with; they cannot be edited or deleted
DEFAULT_GROUPS: list[tuple[str, str]] = [
    ("Beställare", "#2563eb"),
    ("Projektör", "#16a34a"),
    ("Entreprenör", "#ea580c"),
    ("Underentreprenör", "#9333ea"),
]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def generate_invitation_token() -> str:
    """Generate an opaque, URL-safe invitation token."""
    return secrets.token_urlsafe(48)


def normalize_email(email: str) -> str:
    return email.strip().lower()


def _member_query():
    """Membership select with role, user and group loaded."""
    return select(ProjectMember).options(
        selectinload(ProjectMember.role),
        selectinload(ProjectMember.user),
        selectinload(ProjectMember.group),
    )


# =============================================================================
# Authorization
# =============================================================================


class ProjectAccessService:
    """Membership authorization guard."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_membership(self, project_id: UUID, user_id: UUID) -> ProjectMember | None:
        """Get the caller's active membership, with its role loaded."""
        result = await self.db.execute(
            select(ProjectMember)
            .options(selectinload(ProjectMember.role))
            .where(ProjectMember.project_id == project_id)
            .where(ProjectMember.user_id == user_id)
            .where(ProjectMember.status == MemberStatus.ACTIVE)
        )
        return result.scalar_one_or_none()

    async def is_active_member(self, project_id: UUID, user_id: UUID) -> bool:
        return await self.get_membership(project_id, user_id) is not None

    async def get_user_role(self, project_id: UUID, user_id: UUID) -> RoleName | None:
        membership = await self.get_membership(project_id, user_id)
        return membership.role.name if membership else None

    async def require_project_access(self, project_id: UUID, user_id: UUID) -> ProjectMember:
        """Raise unless the user is an active member of the project."""
        membership = await self.get_membership(project_id, user_id)
        if membership is None:
            raise PermissionDeniedError("Du har inte tillgång till detta projekt")
        return membership

    async def require_permission(
        self,
        project_id: UUID,
        user_id: UUID,
        resource: str,
        action: str,
        message: str | None = None,
    ) -> ProjectMember:
        """Raise unless the user's role grants ``resource.action``."""
        membership = await self.require_project_access(project_id, user_id)
        if not has_permission(membership.role.name, resource, action):
            raise PermissionDeniedError(
                message or "Du har inte behörighet att utföra denna åtgärd"
            )
        return membership

    async def require_admin(
        self,
        project_id: UUID,
        user_id: UUID,
        message: str,
    ) -> ProjectMember:
        """Raise unless the user is owner or admin of the project."""
        membership = await self.get_membership(project_id, user_id)
        if membership is None or not is_admin(membership.role.name):
            raise PermissionDeniedError(message)
        return membership


# =============================================================================
# Roles
# =============================================================================


class RoleService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def list_roles(self) -> list[ProjectRole]:
        result = await self.db.execute(
            select(ProjectRole).order_by(ProjectRole.created_at, ProjectRole.name)
        )
        return list(result.scalars().all())

    async def get_role(self, role_id: UUID) -> ProjectRole:
        role = await self.db.get(ProjectRole, role_id)
        if role is None:
            raise NotFoundError("Rollen hittades inte")
        return role

    async def get_role_by_name(self, name: RoleName) -> ProjectRole | None:
        result = await self.db.execute(select(ProjectRole).where(ProjectRole.name == name))
        return result.scalar_one_or_none()


# =============================================================================
# Projects
# =============================================================================


class ProjectService:
    """Project CRUD. The creator becomes the project's owner."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.access = ProjectAccessService(db)

    async def list_my_projects(self, user_id: UUID) -> list[Project]:
        """Projects the user is an active member of, newest first."""
        result = await self.db.execute(
            select(Project)
            .join(ProjectMember, ProjectMember.project_id == Project.id)
            .where(ProjectMember.user_id == user_id)
            .where(ProjectMember.status == MemberStatus.ACTIVE)
            .order_by(Project.created_at.desc())
        )
        return list(result.scalars().all())

    async def get_project(self, project_id: UUID, user_id: UUID) -> Project:
        project = await self.db.get(Project, project_id)
        if project is None:
            raise NotFoundError("Projektet hittades inte")
        await self.access.require_project_access(project_id, user_id)
        return project

    async def create_project(self, data: ProjectCreate, user_id: UUID) -> Project:
        """
        Create a project and add the creator as its active owner.

        Both rows are written in the request's transaction, so a failure
        while adding the owner leaves no orphaned project behind.
        """
        owner_role = await RoleService(self.db).get_role_by_name(RoleName.OWNER)
        if owner_role is None:
            raise BackendError("Kunde inte hitta ägarrollen")

        project = Project(**data.model_dump(), created_by=user_id)
        self.db.add(project)
        await self.db.flush()

        now = utcnow()
        self.db.add(
            ProjectMember(
                project_id=project.id,
                user_id=user_id,
                role_id=owner_role.id,
                status=MemberStatus.ACTIVE,
                invited_by=user_id,
                invited_at=now,
                joined_at=now,
            )
        )
        for name, color in DEFAULT_GROUPS:
            self.db.add(
                ProjectGroup(
                    project_id=project.id,
                    name=name,
                    color=color,
                    is_default=True,
                    created_by=user_id,
                )
            )
        await self.db.flush()

        logger.info(f"Project {project.id} created by {user_id}")
        return project

    async def update_project(
        self,
        project_id: UUID,
        data: ProjectUpdate,
        user_id: UUID,
    ) -> Project:
        project = await self.get_project(project_id, user_id)
        await self.access.require_permission(
            project_id, user_id, "project", "update",
            "Du har inte behörighet att redigera projektet",
        )

        for field, value in data.model_dump(exclude_unset=True).items():
            setattr(project, field, value)
        project.updated_at = utcnow()

        await self.db.flush()
        return project

    async def delete_project(self, project_id: UUID, user_id: UUID) -> None:
        project = await self.get_project(project_id, user_id)
        await self.access.require_permission(
            project_id, user_id, "project", "delete",
            "Endast projektägaren kan radera projektet",
        )
        await self.db.delete(project)
        await self.db.flush()
        logger.info(f"Project {project_id} deleted by {user_id}")


# =============================================================================
# Members
# =============================================================================


class MemberService:
    """Listing, removing and re-roling project members."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.access = ProjectAccessService(db)

    async def get_user_id_by_email(self, email: str) -> UUID | None:
        """Look up an account by email, case-insensitively."""
        result = await self.db.execute(
            select(User.id).where(func.lower(User.email) == normalize_email(email))
        )
        return result.scalar_one_or_none()

    async def get_member(self, project_id: UUID, user_id: UUID) -> ProjectMember | None:
        """Get a membership row regardless of status, fully loaded."""
        result = await self.db.execute(
            _member_query()
            .where(ProjectMember.project_id == project_id)
            .where(ProjectMember.user_id == user_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def list_members(self, project_id: UUID, user_id: UUID) -> list[ProjectMember]:
        """Active members, earliest joined first."""
        await self.access.require_project_access(project_id, user_id)
        result = await self.db.execute(
            _member_query()
            .where(ProjectMember.project_id == project_id)
            .where(ProjectMember.status == MemberStatus.ACTIVE)
            .order_by(ProjectMember.joined_at.asc())
        )
        return list(result.scalars().all())

    async def remove_member(self, project_id: UUID, member_user_id: UUID, user_id: UUID) -> None:
        """Soft-remove a member. The owner and the caller can never be removed."""
        if member_user_id == user_id:
            raise SelfModificationError("Du kan inte ta bort dig själv från projektet")

        await self.access.require_permission(
            project_id, user_id, "members", "remove",
            "Du har inte behörighet att ta bort medlemmar",
        )

        member = await self.get_member(project_id, member_user_id)
        if member is None or member.status != MemberStatus.ACTIVE:
            raise NotFoundError("Medlemmen hittades inte")
        if member.role.name == RoleName.OWNER:
            raise OwnerProtectedError("Du kan inte ta bort projektägaren")

        member.status = MemberStatus.REMOVED
        await self.db.flush()
        logger.info(f"Member {member_user_id} removed from project {project_id} by {user_id}")

    async def update_member_role(
        self,
        project_id: UUID,
        member_user_id: UUID,
        role_id: UUID,
        user_id: UUID,
    ) -> ProjectMember:
        """Change a member's role. Owner role can neither be changed nor granted."""
        if member_user_id == user_id:
            raise SelfModificationError("Du kan inte ändra din egen roll")

        caller = await self.access.require_permission(
            project_id, user_id, "members", "change_role",
            "Du har inte behörighet att ändra roller",
        )

        member = await self.get_member(project_id, member_user_id)
        if member is None or member.status != MemberStatus.ACTIVE:
            raise NotFoundError("Medlemmen hittades inte")
        if member.role.name == RoleName.OWNER:
            raise OwnerProtectedError("Du kan inte ändra projektägarens roll")

        new_role = await RoleService(self.db).get_role(role_id)
        if new_role.name == RoleName.OWNER:
            raise OwnerProtectedError("Du kan inte tilldela ägarrollen")
        if new_role.name not in get_assignable_roles(caller.role.name):
            raise PermissionDeniedError("Du kan inte tilldela denna roll")

        member.role_id = new_role.id
        await self.db.flush()

        return await self.get_member(project_id, member_user_id)


# =============================================================================
# Invitations
# =============================================================================


class InvitationService:
    """
    Invitation issuance and acceptance.

    Issuing for an email with an account adds the user straight away; any
    other email gets a time-limited token by mail. Acceptance reconciles the
    token against the user's existing membership row.
    """

    def __init__(self, db: AsyncSession):
        self.db = db
        self.access = ProjectAccessService(db)
        self.members = MemberService(db)

    def _pending(self):
        return (
            select(Invitation)
            .where(Invitation.accepted_at.is_(None))
            .where(Invitation.expires_at > utcnow())
        )

    async def get_pending_invitation(self, project_id: UUID, email: str) -> Invitation | None:
        result = await self.db.execute(
            self._pending()
            .where(Invitation.project_id == project_id)
            .where(func.lower(Invitation.email) == normalize_email(email))
        )
        return result.scalars().first()

    async def invite_member(
        self,
        project_id: UUID,
        email: str,
        role_id: UUID,
        inviter: AuthenticatedUser,
        group_id: UUID | None = None,
    ) -> tuple[str, ProjectMember | Invitation, bool]:
        """
        Invite an email address to a project.

        Returns (kind, record, email_sent) where kind is "added" with the
        membership, or "invited" with the new invitation.
        """
        caller = await self.access.require_permission(
            project_id, inviter.id, "members", "invite",
            "Du har inte behörighet att bjuda in medlemmar",
        )

        role = await RoleService(self.db).get_role(role_id)
        if role.name not in get_assignable_roles(caller.role.name):
            if role.name == RoleName.OWNER:
                raise OwnerProtectedError("Du kan inte tilldela ägarrollen")
            raise PermissionDeniedError("Du kan inte tilldela denna roll")

        if group_id is not None:
            await GroupService(self.db).get_group_in_project(project_id, group_id)

        email = normalize_email(email)
        now = utcnow()

        existing_user_id = await self.members.get_user_id_by_email(email)
        if existing_user_id is not None:
            member = await self.members.get_member(project_id, existing_user_id)

            if member is not None and member.status == MemberStatus.ACTIVE:
                raise AlreadyMemberError()

            if member is not None:
                # Reactivate a previously removed membership
                member.role_id = role.id
                member.group_id = group_id
                member.status = MemberStatus.ACTIVE
                member.invited_by = inviter.id
                member.joined_at = now
            else:
                self.db.add(
                    ProjectMember(
                        project_id=project_id,
                        user_id=existing_user_id,
                        role_id=role.id,
                        group_id=group_id,
                        status=MemberStatus.ACTIVE,
                        invited_by=inviter.id,
                        invited_at=now,
                        joined_at=now,
                    )
                )
            await self.db.flush()

            logger.info(f"User {existing_user_id} added to project {project_id} by {inviter.id}")
            return "added", await self.members.get_member(project_id, existing_user_id), False

        if await self.get_pending_invitation(project_id, email) is not None:
            raise DuplicateInvitationError()

        invitation = Invitation(
            email=email,
            project_id=project_id,
            role_id=role.id,
            group_id=group_id,
            token=generate_invitation_token(),
            invited_by=inviter.id,
            expires_at=now + timedelta(days=settings.invitation_valid_days),
        )
        self.db.add(invitation)
        await self.db.flush()
        logger.info(f"Invitation {invitation.id} for {email} created in project {project_id}")

        email_sent = await self._send_invitation_email(invitation, role, inviter)
        return "invited", invitation, email_sent

    async def _send_invitation_email(
        self,
        invitation: Invitation,
        role: ProjectRole,
        inviter: AuthenticatedUser,
    ) -> bool:
        """Best-effort mail; the invitation stays valid if this fails."""
        project = await self.db.get(Project, invitation.project_id)
        inviter_profile = await self.db.get(User, inviter.id)
        inviter_name = (
            inviter_profile.full_name if inviter_profile and inviter_profile.full_name
            else inviter.email or "En kollega"
        )

        try:
            await send_invitation_email(
                to=invitation.email,
                token=invitation.token,
                project_name=project.name if project else "Projekt",
                inviter_name=inviter_name,
                role_name=role.display_name or get_role_display_name(role.name),
            )
        except ExternalServiceError as e:
            logger.error(f"Failed to send invitation email to {invitation.email}: {e.message}")
            return False
        return True

    async def list_pending_invitations(self, project_id: UUID, user_id: UUID) -> list[Invitation]:
        """Pending invitations of a project, newest first."""
        await self.access.require_project_access(project_id, user_id)
        result = await self.db.execute(
            self._pending()
            .where(Invitation.project_id == project_id)
            .order_by(Invitation.created_at.desc())
        )
        return list(result.scalars().all())

    async def cancel_invitation(self, invitation_id: UUID, user_id: UUID) -> None:
        invitation = await self.db.get(Invitation, invitation_id)
        if invitation is None:
            raise NotFoundError("Inbjudan hittades inte")

        await self.access.require_permission(
            invitation.project_id, user_id, "members", "invite",
            "Du har inte behörighet att avbryta inbjudningar",
        )

        await self.db.delete(invitation)
        await self.db.flush()
        logger.info(f"Invitation {invitation_id} cancelled by {user_id}")

    async def get_invitation_by_token(self, token: str) -> Invitation | None:
        """Resolve a pending invitation with project, role and inviter."""
        result = await self.db.execute(
            self._pending()
            .options(
                selectinload(Invitation.project),
                selectinload(Invitation.role),
                selectinload(Invitation.inviter),
            )
            .where(Invitation.token == token)
        )
        return result.scalar_one_or_none()

    async def accept_invitation(self, token: str, user: AuthenticatedUser | None) -> UUID:
        """
        Accept an invitation as the logged-in user.

        Returns the project id. Accepting a token that was already used by a
        user who is still an active member succeeds without changes.
        """
        if user is None:
            raise NotAuthenticatedError("Du måste vara inloggad för att acceptera inbjudan")

        result = await self.db.execute(select(Invitation).where(Invitation.token == token))
        invitation = result.scalar_one_or_none()
        if invitation is None:
            raise InvitationInvalidError()

        if normalize_email(user.email) != normalize_email(invitation.email):
            raise InvitationEmailMismatchError()

        member = await self.members.get_member(invitation.project_id, user.id)
        already_active = member is not None and member.status == MemberStatus.ACTIVE

        if invitation.accepted_at is not None:
            if already_active:
                return invitation.project_id
            raise InvitationInvalidError()

        still_pending = await self.db.execute(
            self._pending().where(Invitation.id == invitation.id)
        )
        if still_pending.scalar_one_or_none() is None:
            raise InvitationInvalidError()

        now = utcnow()
        if already_active:
            logger.info(f"User {user.id} already member of {invitation.project_id}")
        elif member is not None:
            member.role_id = invitation.role_id
            member.group_id = invitation.group_id or member.group_id
            member.status = MemberStatus.ACTIVE
            member.joined_at = now
        else:
            self.db.add(
                ProjectMember(
                    project_id=invitation.project_id,
                    user_id=user.id,
                    role_id=invitation.role_id,
                    group_id=invitation.group_id,
                    invited_by=invitation.invited_by,
                    status=MemberStatus.ACTIVE,
                    invited_at=invitation.created_at or now,
                    joined_at=now,
                )
            )

        invitation.accepted_at = now
        await self.db.flush()

        logger.info(f"Invitation {invitation.id} accepted by {user.id}")
        return invitation.project_id


# =============================================================================
# Groups
# =============================================================================


class GroupService:
    """Project groups. Default groups are read-only."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.access = ProjectAccessService(db)

    async def list_groups(self, project_id: UUID, user_id: UUID) -> list[ProjectGroup]:
        """Default groups first, then alphabetical."""
        await self.access.require_project_access(project_id, user_id)
        result = await self.db.execute(
            select(ProjectGroup)
            .where(ProjectGroup.project_id == project_id)
            .order_by(ProjectGroup.is_default.desc(), ProjectGroup.name)
        )
        return list(result.scalars().all())

    async def list_groups_with_counts(
        self,
        project_id: UUID,
        user_id: UUID,
    ) -> list[tuple[ProjectGroup, int]]:
        groups = await self.list_groups(project_id, user_id)

        result = await self.db.execute(
            select(ProjectMember.group_id, func.count(ProjectMember.id))
            .where(ProjectMember.project_id == project_id)
            .where(ProjectMember.status == MemberStatus.ACTIVE)
            .where(ProjectMember.group_id.is_not(None))
            .group_by(ProjectMember.group_id)
        )
        counts = {group_id: count for group_id, count in result.all()}

        return [(group, counts.get(group.id, 0)) for group in groups]

    async def get_group(self, group_id: UUID) -> ProjectGroup:
        group = await self.db.get(ProjectGroup, group_id)
        if group is None:
            raise NotFoundError("Grupp hittades inte")
        return group

    async def get_group_in_project(self, project_id: UUID, group_id: UUID) -> ProjectGroup:
        group = await self.db.get(ProjectGroup, group_id)
        if group is None or group.project_id != project_id:
            raise NotFoundError("Gruppen hittades inte i detta projekt")
        return group

    @staticmethod
    def _clean_name(name: str) -> str:
        name = name.strip()
        if not name:
            raise InvalidOperationError("Gruppnamn krävs")
        return name

    async def _ensure_unique_name(
        self,
        project_id: UUID,
        name: str,
        exclude_id: UUID | None = None,
    ) -> None:
        query = (
            select(ProjectGroup.id)
            .where(ProjectGroup.project_id == project_id)
            .where(ProjectGroup.name == name)
        )
        if exclude_id is not None:
            query = query.where(ProjectGroup.id != exclude_id)
        result = await self.db.execute(query)
        if result.first() is not None:
            raise DuplicateGroupError()

    async def create_group(
        self,
        project_id: UUID,
        data: GroupCreate,
        user_id: UUID,
    ) -> ProjectGroup:
        await self.access.require_admin(
            project_id, user_id, "Du har inte behörighet att skapa grupper"
        )
        name = self._clean_name(data.name)
        await self._ensure_unique_name(project_id, name)

        group = ProjectGroup(
            project_id=project_id,
            name=name,
            description=data.description,
            color=data.color,
            is_default=False,
            created_by=user_id,
        )
        self.db.add(group)
        await self.db.flush()
        return group

    async def update_group(self, group_id: UUID, data: GroupUpdate, user_id: UUID) -> ProjectGroup:
        group = await self.get_group(group_id)
        if group.is_default:
            raise InvalidOperationError("Standardgrupper kan inte redigeras")

        await self.access.require_admin(
            group.project_id, user_id, "Du har inte behörighet att redigera grupper"
        )

        updates = data.model_dump(exclude_unset=True)
        if updates.get("name") is not None:
            updates["name"] = self._clean_name(updates["name"])
            await self._ensure_unique_name(group.project_id, updates["name"], exclude_id=group.id)

        for field, value in updates.items():
            if value is not None or field == "description":
                setattr(group, field, value)
        group.updated_at = utcnow()

        await self.db.flush()
        return group

    async def delete_group(self, group_id: UUID, user_id: UUID) -> None:
        group = await self.get_group(group_id)
        if group.is_default:
            raise InvalidOperationError("Standardgrupper kan inte tas bort")

        await self.access.require_admin(
            group.project_id, user_id, "Du har inte behörighet att ta bort grupper"
        )

        # Members keep their membership, only the group link goes
        await self.db.execute(
            update(ProjectMember)
            .where(ProjectMember.group_id == group.id)
            .values(group_id=None)
            .execution_options(synchronize_session="fetch")
        )
        await self.db.delete(group)
        await self.db.flush()

    async def assign_member_to_group(
        self,
        project_id: UUID,
        member_user_id: UUID,
        group_id: UUID | None,
        user_id: UUID,
    ) -> ProjectMember:
        """Put a member in a group, or take them out with ``group_id=None``."""
        await self.access.require_admin(
            project_id, user_id, "Du har inte behörighet att tilldela grupper"
        )

        if group_id is not None:
            await self.get_group_in_project(project_id, group_id)

        members = MemberService(self.db)
        member = await members.get_member(project_id, member_user_id)
        if member is None or member.status != MemberStatus.ACTIVE:
            raise NotFoundError("Medlemmen hittades inte")

        member.group_id = group_id
        await self.db.flush()
        return await members.get_member(project_id, member_user_id)

    async def get_group_members(self, group_id: UUID, user_id: UUID) -> list[ProjectMember]:
        group = await self.get_group(group_id)
        await self.access.require_project_access(group.project_id, user_id)

        result = await self.db.execute(
            _member_query()
            .where(ProjectMember.group_id == group_id)
            .where(ProjectMember.status == MemberStatus.ACTIVE)
            .order_by(ProjectMember.joined_at)
        )
        return list(result.scalars().all())
