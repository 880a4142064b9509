"""
Projects API Router

Endpoints for projects, members, groups and invitations.
"""

from uuid import UUID

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from byggportal.auth.dependencies import AuthenticatedUser, get_current_user
from byggportal.core.database import get_db
from byggportal.core.errors import NotFoundError
from byggportal.projects.permissions import (
    get_assignable_roles,
    get_role_display_name,
    get_role_permissions,
)
from byggportal.projects.schemas import (
    AcceptInvitationResponse,
    AssignGroupRequest,
    GroupCreate,
    GroupResponse,
    GroupUpdate,
    GroupWithCount,
    InvitationDetail,
    InvitationResponse,
    InviteMemberRequest,
    InviteResult,
    MemberResponse,
    MyRoleResponse,
    ProjectCreate,
    ProjectResponse,
    ProjectUpdate,
    ProjectWithMembers,
    RoleResponse,
    UpdateMemberRoleRequest,
)
from byggportal.projects.services import (
    GroupService,
    InvitationService,
    MemberService,
    ProjectAccessService,
    ProjectService,
    RoleService,
)

router = APIRouter(prefix="/projects", tags=["projects"])
invitations_router = APIRouter(prefix="/invitations", tags=["invitations"])
groups_router = APIRouter(prefix="/groups", tags=["groups"])


# =============================================================================
# Projects
# =============================================================================


@router.get("", response_model=list[ProjectResponse])
async def list_my_projects(
    db: AsyncSession = Depends(get_db),
    current_user: AuthenticatedUser = Depends(get_current_user),
) -> list[ProjectResponse]:
    """List projects the current user is an active member of."""
    return await ProjectService(db).list_my_projects(current_user.id)


@router.post("", response_model=ProjectResponse, status_code=status.HTTP_201_CREATED)
async def create_project(
    data: ProjectCreate,
    db: AsyncSession = Depends(get_db),
    current_user: AuthenticatedUser = Depends(get_current_user),
) -> ProjectResponse:
    """Create a project. The caller becomes its owner."""
    project = await ProjectService(db).create_project(data, current_user.id)
    await db.commit()
    await db.refresh(project)
    return project


@router.get("/roles", response_model=list[RoleResponse])
async def list_roles(
    db: AsyncSession = Depends(get_db),
    current_user: AuthenticatedUser = Depends(get_current_user),
) -> list[RoleResponse]:
    """List the available project roles."""
    return await RoleService(db).list_roles()


@router.get("/{project_id}", response_model=ProjectWithMembers)
async def get_project(
    project_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: AuthenticatedUser = Depends(get_current_user),
) -> ProjectWithMembers:
    """Get a project with its active members."""
    project = await ProjectService(db).get_project(project_id, current_user.id)
    members = await MemberService(db).list_members(project_id, current_user.id)
    return ProjectWithMembers(
        **ProjectResponse.model_validate(project).model_dump(),
        members=[MemberResponse.model_validate(m) for m in members],
    )


@router.patch("/{project_id}", response_model=ProjectResponse)
async def update_project(
    project_id: UUID,
    data: ProjectUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: AuthenticatedUser = Depends(get_current_user),
) -> ProjectResponse:
    """Update a project (owner and admin)."""
    project = await ProjectService(db).update_project(project_id, data, current_user.id)
    await db.commit()
    await db.refresh(project)
    return project


@router.delete("/{project_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_project(
    project_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: AuthenticatedUser = Depends(get_current_user),
) -> None:
    """Delete a project (owner only)."""
    await ProjectService(db).delete_project(project_id, current_user.id)
    await db.commit()


@router.get("/{project_id}/my-role", response_model=MyRoleResponse)
async def get_my_role(
    project_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: AuthenticatedUser = Depends(get_current_user),
) -> MyRoleResponse:
    """The caller's role in the project, or null when not a member."""
    role = await ProjectAccessService(db).get_user_role(project_id, current_user.id)
    if role is None:
        return MyRoleResponse(role=None)
    return MyRoleResponse(
        role=role,
        display_name=get_role_display_name(role),
        permissions=get_role_permissions(role),
        assignable_roles=get_assignable_roles(role),
    )


# =============================================================================
# Members
# =============================================================================


@router.get("/{project_id}/members", response_model=list[MemberResponse])
async def list_members(
    project_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: AuthenticatedUser = Depends(get_current_user),
) -> list[MemberResponse]:
    """List active members of a project."""
    return await MemberService(db).list_members(project_id, current_user.id)


@router.post(
    "/{project_id}/members",
    response_model=InviteResult,
    status_code=status.HTTP_201_CREATED,
)
async def invite_member(
    project_id: UUID,
    data: InviteMemberRequest,
    db: AsyncSession = Depends(get_db),
    current_user: AuthenticatedUser = Depends(get_current_user),
) -> InviteResult:
    """
    Invite someone by email.

    Existing accounts are added directly; other addresses receive an
    invitation link by email.
    """
    kind, record, email_sent = await InvitationService(db).invite_member(
        project_id,
        data.email,
        data.role_id,
        current_user,
        group_id=data.group_id,
    )
    await db.commit()

    if kind == "added":
        return InviteResult(type="added", member=MemberResponse.model_validate(record))
    return InviteResult(
        type="invited",
        invitation=InvitationResponse.model_validate(record),
        email_sent=email_sent,
    )


@router.delete(
    "/{project_id}/members/{user_id}",
    status_code=status.HTTP_204_NO_CONTENT,
)
async def remove_member(
    project_id: UUID,
    user_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: AuthenticatedUser = Depends(get_current_user),
) -> None:
    """Remove a member from the project."""
    await MemberService(db).remove_member(project_id, user_id, current_user.id)
    await db.commit()


@router.patch("/{project_id}/members/{user_id}/role", response_model=MemberResponse)
async def update_member_role(
    project_id: UUID,
    user_id: UUID,
    data: UpdateMemberRoleRequest,
    db: AsyncSession = Depends(get_db),
    current_user: AuthenticatedUser = Depends(get_current_user),
) -> MemberResponse:
    """Change a member's role (owner only)."""
    member = await MemberService(db).update_member_role(
        project_id, user_id, data.role_id, current_user.id
    )
    await db.commit()
    return member


@router.patch("/{project_id}/members/{user_id}/group", response_model=MemberResponse)
async def assign_member_to_group(
    project_id: UUID,
    user_id: UUID,
    data: AssignGroupRequest,
    db: AsyncSession = Depends(get_db),
    current_user: AuthenticatedUser = Depends(get_current_user),
) -> MemberResponse:
    """Put a member in a group, or clear their group."""
    member = await GroupService(db).assign_member_to_group(
        project_id, user_id, data.group_id, current_user.id
    )
    await db.commit()
    return member


@router.get("/{project_id}/invitations", response_model=list[InvitationResponse])
async def list_invitations(
    project_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: AuthenticatedUser = Depends(get_current_user),
) -> list[InvitationResponse]:
    """List pending invitations of a project."""
    return await InvitationService(db).list_pending_invitations(project_id, current_user.id)


# =============================================================================
# Groups
# =============================================================================


@router.get("/{project_id}/groups", response_model=list[GroupWithCount])
async def list_groups(
    project_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: AuthenticatedUser = Depends(get_current_user),
) -> list[GroupWithCount]:
    """List project groups with their active member counts."""
    rows = await GroupService(db).list_groups_with_counts(project_id, current_user.id)
    return [
        GroupWithCount(**GroupResponse.model_validate(group).model_dump(), member_count=count)
        for group, count in rows
    ]


@router.post(
    "/{project_id}/groups",
    response_model=GroupResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_group(
    project_id: UUID,
    data: GroupCreate,
    db: AsyncSession = Depends(get_db),
    current_user: AuthenticatedUser = Depends(get_current_user),
) -> GroupResponse:
    """Create a custom group (owner and admin)."""
    group = await GroupService(db).create_group(project_id, data, current_user.id)
    await db.commit()
    await db.refresh(group)
    return group


@groups_router.patch("/{group_id}", response_model=GroupResponse)
async def update_group(
    group_id: UUID,
    data: GroupUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: AuthenticatedUser = Depends(get_current_user),
) -> GroupResponse:
    """Update a custom group."""
    group = await GroupService(db).update_group(group_id, data, current_user.id)
    await db.commit()
    await db.refresh(group)
    return group


@groups_router.delete("/{group_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_group(
    group_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: AuthenticatedUser = Depends(get_current_user),
) -> None:
    """Delete a custom group. Its members stay in the project."""
    await GroupService(db).delete_group(group_id, current_user.id)
    await db.commit()


@groups_router.get("/{group_id}/members", response_model=list[MemberResponse])
async def list_group_members(
    group_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: AuthenticatedUser = Depends(get_current_user),
) -> list[MemberResponse]:
    """List active members of a group."""
    return await GroupService(db).get_group_members(group_id, current_user.id)


# =============================================================================
# Invitations
# =============================================================================


@invitations_router.get("/{token}", response_model=InvitationDetail)
async def get_invitation(
    token: str,
    db: AsyncSession = Depends(get_db),
) -> InvitationDetail:
    """Resolve a pending invitation for the accept page. No login needed."""
    invitation = await InvitationService(db).get_invitation_by_token(token)
    if invitation is None:
        raise NotFoundError("Inbjudan är ogiltig eller har gått ut")
    return invitation


@invitations_router.post("/{token}/accept", response_model=AcceptInvitationResponse)
async def accept_invitation(
    token: str,
    db: AsyncSession = Depends(get_db),
    current_user: AuthenticatedUser = Depends(get_current_user),
) -> AcceptInvitationResponse:
    """Accept an invitation as the logged-in user."""
    project_id = await InvitationService(db).accept_invitation(token, current_user)
    await db.commit()
    return AcceptInvitationResponse(project_id=project_id)


@invitations_router.delete("/id/{invitation_id}", status_code=status.HTTP_204_NO_CONTENT)
async def cancel_invitation(
    invitation_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: AuthenticatedUser = Depends(get_current_user),
) -> None:
    """Cancel (delete) a pending invitation."""
    await InvitationService(db).cancel_invitation(invitation_id, current_user.id)
    await db.commit()
