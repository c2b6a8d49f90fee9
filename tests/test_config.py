"""
Tests for tenancy.config module.
"""

from datetime import timedelta
from unittest.mock import patch

import pytest
from pydantic import ValidationError

from tenancy.config import TenancyConfig, load_config
from tenancy.errors import ConfigurationError
from tenancy.roles import RoleDefinition


class TestTenancyConfig:
    """Tests for TenancyConfig class."""

    def test_defaults(self):
        config = TenancyConfig(_env_file=None)
        assert config.invitation_expiry == timedelta(days=7)
        assert config.default_invitation_role == "member"
        assert config.max_organizations_per_user is None
        assert config.require_organization is False
        assert config.create_personal_organization is False
        assert config.roles is None
        assert config.database_url is None
        assert config.supabase_enabled is False

    def test_config_with_all_options(self):
        config = TenancyConfig(
            invitation_expiry=timedelta(days=3),
            default_invitation_role="viewer",
            invitation_base_url="https://app.example.com/",
            max_organizations_per_user=2,
            require_organization=True,
            create_personal_organization=True,
            personal_organization_name="{name}'s workspace",
            roles=[RoleDefinition(name="viewer", permissions=["read"])],
            database_url="sqlite+aiosqlite://",
            supabase_url="https://test.supabase.co/",
            supabase_key="test-service-key-12345678901234567890",
        )
        assert config.invitation_expiry == timedelta(days=3)
        assert config.default_invitation_role == "viewer"
        assert config.invitation_base_url == "https://app.example.com"
        assert config.supabase_url == "https://test.supabase.co"
        assert config.supabase_enabled is True
        assert config.personal_organization_name_for("jane@example.com") == "jane's workspace"

    def test_expiry_can_be_disabled(self):
        assert TenancyConfig(invitation_expiry=None).invitation_expiry is None

    def test_non_positive_expiry_rejected(self):
        with pytest.raises(ValidationError):
            TenancyConfig(invitation_expiry=timedelta(0))

    def test_default_invitation_role_cannot_be_owner(self):
        with pytest.raises(ValidationError) as exc_info:
            TenancyConfig(default_invitation_role="owner")
        assert "cannot be owner" in str(exc_info.value)

    def test_default_invitation_role_must_exist(self):
        with pytest.raises(ValidationError):
            TenancyConfig(default_invitation_role="superuser")

    def test_max_organizations_must_be_positive(self):
        with pytest.raises(ValidationError):
            TenancyConfig(max_organizations_per_user=0)

    def test_supabase_url_requires_https(self):
        with pytest.raises(ValidationError):
            TenancyConfig(supabase_url="http://test.supabase.co")

    def test_supabase_key_too_short(self):
        with pytest.raises(ValidationError):
            TenancyConfig(supabase_key="short")

    def test_personal_name_with_bad_template_is_used_verbatim(self):
        config = TenancyConfig(personal_organization_name="{team} space")
        assert config.personal_organization_name_for("jane@example.com") == "{team} space"


class TestLoadConfig:
    """Tests for load_config function."""

    def test_load_from_environment(self):
        env = {
            "TENANCY_MAX_ORGANIZATIONS_PER_USER": "4",
            "TENANCY_REQUIRE_ORGANIZATION": "true",
            "TENANCY_DEFAULT_INVITATION_ROLE": "admin",
        }
        with patch.dict("os.environ", env):
            config = load_config()
        assert config.max_organizations_per_user == 4
        assert config.require_organization is True
        assert config.default_invitation_role == "admin"

    def test_kwargs_override_environment(self):
        with patch.dict("os.environ", {"TENANCY_MAX_ORGANIZATIONS_PER_USER": "4"}):
            config = load_config(max_organizations_per_user=1)
        assert config.max_organizations_per_user == 1

    def test_invalid_values_raise_configuration_error(self):
        with pytest.raises(ConfigurationError):
            load_config(default_invitation_role="owner")
