"""
Project Role Permissions

Static permission matrix for the four project roles plus helpers used by
the services and exposed to clients for building role pickers.
"""

from byggportal.projects.models import RoleName

# Permission matrix: role -> resource -> allowed actions
ROLE_PERMISSIONS: dict[RoleName, dict[str, list[str]]] = {
    RoleName.OWNER: {
        "project": ["read", "update", "delete", "transfer"],
        "members": ["read", "invite", "remove", "change_role"],
        "groups": ["read", "create", "update", "delete", "assign"],
        "protocols": ["read", "create", "update", "delete"],
    },
    RoleName.ADMIN: {
        "project": ["read", "update"],
        "members": ["read", "invite", "remove"],
        "groups": ["read", "create", "update", "delete", "assign"],
        "protocols": ["read", "create", "update", "delete"],
    },
    RoleName.MEMBER: {
        "project": ["read"],
        "members": ["read"],
        "groups": ["read"],
        "protocols": ["read", "create", "update", "delete"],
    },
    RoleName.VIEWER: {
        "project": ["read"],
        "members": ["read"],
        "groups": ["read"],
        "protocols": ["read"],
    },
}

ROLE_DISPLAY_NAMES: dict[RoleName, str] = {
    RoleName.OWNER: "Projektägare",
    RoleName.ADMIN: "Administratör",
    RoleName.MEMBER: "Medlem",
    RoleName.VIEWER: "Läsbehörighet",
}

ROLE_DESCRIPTIONS: dict[RoleName, str] = {
    RoleName.OWNER: "Full kontroll över projektet inklusive radering och överföring av ägandeskap",
    RoleName.ADMIN: "Kan hantera medlemmar och har full tillgång till alla moduler",
    RoleName.MEMBER: "Kan skapa och redigera innehåll i projektet",
    RoleName.VIEWER: "Kan endast visa projektinnehåll",
}


def has_permission(role: str, resource: str, action: str) -> bool:
    """Check if a role may perform an action on a resource."""
    permissions = ROLE_PERMISSIONS.get(role)
    if not permissions:
        return False
    return action in permissions.get(resource, [])


def can_manage_members(role: str) -> bool:
    return has_permission(role, "members", "invite")


def can_delete_project(role: str) -> bool:
    return has_permission(role, "project", "delete")


def can_update_project(role: str) -> bool:
    return has_permission(role, "project", "update")


def can_change_roles(role: str) -> bool:
    return has_permission(role, "members", "change_role")


def is_admin(role: str) -> bool:
    """Owner or admin."""
    return role in (RoleName.OWNER, RoleName.ADMIN)


def is_owner(role: str) -> bool:
    return role == RoleName.OWNER


def get_role_permissions(role: str) -> dict[str, list[str]] | None:
    return ROLE_PERMISSIONS.get(role)


def get_role_display_name(role: str) -> str:
    return ROLE_DISPLAY_NAMES.get(role, str(role))


def get_role_description(role: str) -> str:
    return ROLE_DESCRIPTIONS.get(role, "")


def get_all_roles() -> list[RoleName]:
    """All roles, most privileged first."""
    return [RoleName.OWNER, RoleName.ADMIN, RoleName.MEMBER, RoleName.VIEWER]


def get_assignable_roles(role: str) -> list[RoleName]:
    """
    Roles a user holding ``role`` may hand out to others.

    The owner role is never assignable.
    """
    if role == RoleName.OWNER:
        return [RoleName.ADMIN, RoleName.MEMBER, RoleName.VIEWER]
    if role == RoleName.ADMIN:
        return [RoleName.MEMBER, RoleName.VIEWER]
    return []
