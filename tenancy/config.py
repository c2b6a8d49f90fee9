"""
Tenancy configuration management.

Loads configuration from environment variables or .env file.
"""

from datetime import timedelta
from typing import List, Optional

from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .errors import ConfigurationError
from .roles.models import HIERARCHY, Role, RoleDefinition, role_name


class TenancyConfig(BaseSettings):
    """
    Tenancy configuration settings.

    Can be loaded from:
    1. Environment variables (TENANCY_INVITATION_EXPIRY, TENANCY_DATABASE_URL, etc.)
    2. .env file in project root
    3. Direct instantiation with kwargs

    Each Tenancy client holds its own instance; build a fresh one instead of
    mutating a shared configuration.

    Example:
        ```python
        # From environment
        config = TenancyConfig()

        # Direct instantiation
        config = TenancyConfig(
            invitation_expiry=timedelta(days=3),
            max_organizations_per_user=5,
        )
        ```
    """

    model_config = SettingsConfigDict(
        env_prefix="TENANCY_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Invitations
    invitation_expiry: Optional[timedelta] = Field(
        default=timedelta(days=7),
        description="How long invitations stay valid (None = never expire)",
    )

    default_invitation_role: str = Field(
        default=Role.MEMBER.value,
        description="Role given to invitations sent without an explicit role",
    )

    invitation_base_url: str = Field(
        default="",
        description="Base URL used to build invitation acceptance links",
    )

    deliver_invitations_in_background: bool = Field(
        default=True,
        description="Deliver invitation emails in a background task",
    )

    # Limits
    max_organizations_per_user: Optional[int] = Field(
        default=None,
        description="Maximum organizations a user can own (None = unlimited)",
    )

    # Onboarding
    require_organization: bool = Field(
        default=False,
        description="Users must always belong to at least one organization",
    )

    create_personal_organization: bool = Field(
        default=False,
        description="Create a personal organization for new users",
    )

    personal_organization_name: str = Field(
        default="Personal",
        description="Name template for personal organizations ({name} = email local part)",
    )

    # Custom roles
    roles: Optional[List[RoleDefinition]] = Field(
        default=None,
        description="Custom role definitions (None = built-in permission table)",
    )

    # Storage
    database_url: Optional[str] = Field(
        default=None,
        description="SQLAlchemy async URL (e.g., postgresql+asyncpg://...); in-memory store if unset",
    )

    auto_create_tables: bool = Field(
        default=False,
        description="Create the tenancy tables on startup (SQL store only)",
    )

    # Supabase invitation delivery
    supabase_url: Optional[str] = Field(
        default=None,
        description="Supabase project URL used to deliver invitation emails",
    )

    supabase_key: Optional[str] = Field(
        default=None,
        description="Supabase service role key (for auth admin operations)",
    )

    from_email: Optional[str] = Field(
        default=None,
        description="From email address for invitations (uses Supabase default if not set)",
    )

    # Debug
    debug: bool = Field(
        default=False,
        description="Enable debug logging",
    )

    @field_validator("invitation_expiry")
    @classmethod
    def validate_invitation_expiry(cls, v: Optional[timedelta]) -> Optional[timedelta]:
        """Ensure invitation expiry is a positive duration."""
        if v is not None and v <= timedelta(0):
            raise ValueError("invitation_expiry must be a positive duration or None")
        return v

    @field_validator("default_invitation_role")
    @classmethod
    def validate_default_invitation_role(cls, v: str) -> str:
        """Ensure the default invitation role is a valid, invitable role."""
        name = role_name(v)
        if name not in HIERARCHY:
            raise ValueError(f"default_invitation_role must be one of: {', '.join(HIERARCHY)}")
        if name == Role.OWNER.value:
            raise ValueError("default_invitation_role cannot be owner")
        return name

    @field_validator("max_organizations_per_user")
    @classmethod
    def validate_max_organizations(cls, v: Optional[int]) -> Optional[int]:
        if v is not None and v < 1:
            raise ValueError("max_organizations_per_user must be at least 1")
        return v

    @field_validator("invitation_base_url")
    @classmethod
    def validate_base_url(cls, v: str) -> str:
        return v.rstrip("/")

    @field_validator("supabase_url")
    @classmethod
    def validate_supabase_url(cls, v: Optional[str]) -> Optional[str]:
        """Ensure Supabase URL is valid."""
        if v is None:
            return v
        if not v.startswith("https://"):
            raise ValueError("supabase_url must start with https://")
        return v.rstrip("/")

    @field_validator("supabase_key")
    @classmethod
    def validate_supabase_key(cls, v: Optional[str]) -> Optional[str]:
        """Ensure Supabase key is not empty."""
        if v is not None and len(v) < 10:
            raise ValueError("supabase_key appears invalid (too short)")
        return v

    @property
    def supabase_enabled(self) -> bool:
        return bool(self.supabase_url and self.supabase_key)

    def personal_organization_name_for(self, email: str) -> str:
        """Resolve the personal organization name for a user's email."""
        local_part = email.split("@", 1)[0]
        try:
            return self.personal_organization_name.format(name=local_part)
        except (KeyError, IndexError):
            return self.personal_organization_name


def load_config(**kwargs) -> TenancyConfig:
    """
    Load Tenancy configuration.

    Priority order:
    1. Keyword arguments
    2. Environment variables (TENANCY_*)
    3. .env file

    Args:
        **kwargs: Override configuration values

    Returns:
        TenancyConfig instance

    Raises:
        ConfigurationError: If any field is invalid

    Example:
        ```python
        config = load_config(max_organizations_per_user=3)
        ```
    """
    try:
        return TenancyConfig(**kwargs)
    except ValidationError as e:
        raise ConfigurationError(str(e)) from e
