"""
Tests for tenancy.roles module.
"""

import pytest

from tenancy.roles import HIERARCHY, Role, RoleDefinition, RoleRegistry, resolve_permissions


class TestRoleRegistry:
    """Tests for RoleRegistry with the built-in table."""

    def test_hierarchy_order(self):
        registry = RoleRegistry()
        assert registry.hierarchy == ("owner", "admin", "member", "viewer")
        assert registry.highest == "owner"

    def test_default_permissions(self):
        registry = RoleRegistry()
        assert registry.has_permission(Role.ADMIN, "invite_members")
        assert registry.has_permission("owner", "delete_organization")
        assert not registry.has_permission("member", "invite_members")
        assert registry.has_permission("viewer", "view_members")
        assert not registry.has_permission("viewer", "create_resources")

    def test_higher_roles_include_lower_permissions(self):
        registry = RoleRegistry()
        for higher, lower in zip(HIERARCHY, HIERARCHY[1:]):
            assert registry.permissions_for(lower) <= registry.permissions_for(higher)

    def test_unknown_inputs_grant_nothing(self):
        registry = RoleRegistry()
        assert registry.permissions_for("superuser") == frozenset()
        assert registry.permissions_for(None) == frozenset()
        assert not registry.has_permission("admin", None)
        assert not registry.has_permission("admin", "launch_missiles")

    def test_at_least(self):
        registry = RoleRegistry()
        assert registry.at_least("owner", "admin")
        assert registry.at_least("admin", "admin")
        assert not registry.at_least("member", "admin")
        assert not registry.at_least("superuser", "viewer")
        assert not registry.at_least("viewer", "superuser")

    def test_compare(self):
        registry = RoleRegistry()
        assert registry.compare("owner", "viewer") == -1
        assert registry.compare("member", "member") == 0
        assert registry.compare("viewer", "admin") == 1
        # Unknown roles rank below every known role
        assert registry.compare("superuser", "viewer") == 1

    def test_neighbours(self):
        registry = RoleRegistry()
        assert registry.higher_role("admin") == "owner"
        assert registry.higher_role("owner") is None
        assert registry.lower_role("member") == "viewer"
        assert registry.lower_role("viewer") is None
        assert registry.lower_role("superuser") is None

    def test_rank_sorts_unknown_last(self):
        registry = RoleRegistry()
        assert sorted(["viewer", "nope", "owner"], key=registry.rank) == ["owner", "viewer", "nope"]


class TestCustomRoles:
    """Tests for custom role definitions and inheritance."""

    def test_inheritance(self):
        table = resolve_permissions(
            [
                RoleDefinition(name="viewer", permissions=["read"]),
                RoleDefinition(name="member", inherits="viewer", permissions=["write"]),
                RoleDefinition(name="admin", inherits="member", permissions=["invite_members"]),
            ]
        )
        assert table["member"] == frozenset({"read", "write"})
        assert table["admin"] == frozenset({"read", "write", "invite_members"})
        assert table["owner"] == frozenset()

    def test_unknown_role_names_are_ignored(self):
        table = resolve_permissions([RoleDefinition(name="superuser", permissions=["all"])])
        assert "superuser" not in table
        assert all(perms == frozenset() for perms in table.values())

    def test_inheriting_from_higher_role_is_ignored(self):
        table = resolve_permissions(
            [
                RoleDefinition(name="admin", permissions=["manage"]),
                RoleDefinition(name="member", inherits="admin", permissions=["write"]),
            ]
        )
        assert table["member"] == frozenset({"write"})

    def test_define_and_reset(self):
        registry = RoleRegistry()
        assert registry.has_permission("member", "create_resources")

        registry.define([RoleDefinition(name="member", permissions=["custom"])])
        assert registry.has_permission("member", "custom")
        assert not registry.has_permission("member", "create_resources")

        registry.define(None)
        assert registry.has_permission("member", "create_resources")

    def test_role_definition_normalizes(self):
        definition = RoleDefinition(name=" Admin ", permissions=[" invite ", "", "  "])
        assert definition.name == "admin"
        assert definition.permissions == ["invite"]

    @pytest.mark.parametrize("role", [Role.ADMIN, "admin", "ADMIN"])
    def test_role_inputs_are_normalized(self, role):
        assert RoleRegistry().is_valid(role)
