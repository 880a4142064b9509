"""
Tests for the role permission matrix.
"""

import pytest

from byggportal.projects.models import RoleName
from byggportal.projects.permissions import (
    can_change_roles,
    can_delete_project,
    can_manage_members,
    can_update_project,
    get_all_roles,
    get_assignable_roles,
    get_role_display_name,
    has_permission,
    is_admin,
    is_owner,
)


class TestProjectPermissions:
    """Tests for project-level permissions."""

    def test_only_owner_can_delete_project(self) -> None:
        """Test that delete is reserved for the owner."""
        assert can_delete_project(RoleName.OWNER)
        assert not can_delete_project(RoleName.ADMIN)
        assert not can_delete_project(RoleName.MEMBER)
        assert not can_delete_project(RoleName.VIEWER)

    def test_owner_and_admin_can_update_project(self) -> None:
        """Test that owner and admin may edit project details."""
        assert can_update_project(RoleName.OWNER)
        assert can_update_project(RoleName.ADMIN)
        assert not can_update_project(RoleName.MEMBER)
        assert not can_update_project(RoleName.VIEWER)

    @pytest.mark.parametrize("role", list(RoleName))
    def test_every_role_can_read(self, role: RoleName) -> None:
        """Test that every role can read the project and its members."""
        assert has_permission(role, "project", "read")
        assert has_permission(role, "members", "read")
        assert has_permission(role, "protocols", "read")


class TestMemberPermissions:
    """Tests for member management permissions."""

    def test_owner_and_admin_manage_members(self) -> None:
        """Test invite rights."""
        assert can_manage_members(RoleName.OWNER)
        assert can_manage_members(RoleName.ADMIN)
        assert not can_manage_members(RoleName.MEMBER)
        assert not can_manage_members(RoleName.VIEWER)

    def test_only_owner_changes_roles(self) -> None:
        """Test that changing roles is owner-only."""
        assert can_change_roles(RoleName.OWNER)
        assert not can_change_roles(RoleName.ADMIN)

    def test_owner_is_never_assignable(self) -> None:
        """Test that nobody can hand out the owner role."""
        for role in get_all_roles():
            assert RoleName.OWNER not in get_assignable_roles(role)

    def test_assignable_roles_by_caller(self) -> None:
        """Test which roles each caller may assign."""
        assert get_assignable_roles(RoleName.OWNER) == [
            RoleName.ADMIN, RoleName.MEMBER, RoleName.VIEWER
        ]
        assert get_assignable_roles(RoleName.ADMIN) == [RoleName.MEMBER, RoleName.VIEWER]
        assert get_assignable_roles(RoleName.MEMBER) == []
        assert get_assignable_roles(RoleName.VIEWER) == []


class TestProtocolPermissions:
    """Tests for protocol permissions."""

    @pytest.mark.parametrize("role", [RoleName.OWNER, RoleName.ADMIN, RoleName.MEMBER])
    def test_writers(self, role: RoleName) -> None:
        """Test that owner, admin and member can write protocols."""
        for action in ("create", "update", "delete"):
            assert has_permission(role, "protocols", action)

    def test_viewer_is_read_only(self) -> None:
        """Test that viewers cannot write protocols."""
        for action in ("create", "update", "delete"):
            assert not has_permission(RoleName.VIEWER, "protocols", action)


class TestRoleHelpers:
    """Tests for the small role helpers."""

    def test_unknown_role_has_no_permissions(self) -> None:
        """Test that an unknown role gets nothing."""
        assert not has_permission("superuser", "project", "read")

    def test_unknown_action_is_denied(self) -> None:
        """Test that unknown actions are denied even for the owner."""
        assert not has_permission(RoleName.OWNER, "project", "explode")

    def test_admin_and_owner_checks(self) -> None:
        """Test is_admin and is_owner."""
        assert is_admin(RoleName.OWNER)
        assert is_admin(RoleName.ADMIN)
        assert not is_admin(RoleName.MEMBER)
        assert is_owner(RoleName.OWNER)
        assert not is_owner(RoleName.ADMIN)

    def test_display_names_are_swedish(self) -> None:
        """Test role display names."""
        assert get_role_display_name(RoleName.OWNER) == "Projektägare"
        assert get_role_display_name(RoleName.VIEWER) == "Läsbehörighet"
