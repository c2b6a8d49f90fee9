"""
Supabase client wrapper for Tenancy.

Tenancy only uses the Supabase Auth admin API, to deliver invitation emails
through ``invite_user_by_email``. Membership data stays in the Tenancy store.
"""

from typing import Optional

from supabase import AsyncClient, acreate_client
from supabase.lib.client_options import AsyncClientOptions

from ..config import TenancyConfig
from ..errors import ConfigurationError


class TenancySupabaseClient:
    """
    Wrapper around Supabase AsyncClient configured with the service role key.

    Example:
        ```python
        config = TenancyConfig(
            supabase_url="https://xxx.supabase.co",
            supabase_key="service-role-key",
        )
        client = await TenancySupabaseClient.create(config)
        await client.auth.admin.invite_user_by_email("new@example.com")
        ```
    """

    def __init__(self, config: TenancyConfig, client: AsyncClient) -> None:
        """
        Initialize the client wrapper.

        Note:
            Use TenancySupabaseClient.create() instead of direct instantiation.
        """
        self.config = config
        self._client = client

    @classmethod
    async def create(cls, config: TenancyConfig) -> "TenancySupabaseClient":
        """
        Create and initialize a TenancySupabaseClient.

        Raises:
            ConfigurationError: If Supabase credentials are missing
        """
        if not config.supabase_enabled:
            raise ConfigurationError("supabase_url and supabase_key are required")

        options = AsyncClientOptions(
            auto_refresh_token=False,
            persist_session=False,
            headers={
                "apikey": config.supabase_key,
                "Authorization": f"Bearer {config.supabase_key}",
            },
        )

        client = await acreate_client(
            supabase_url=config.supabase_url,
            supabase_key=config.supabase_key,
            options=options,
        )

        return cls(config=config, client=client)

    @property
    def auth(self):
        """
        Access Supabase Auth client.

        ``auth.admin`` exposes the admin API (invite_user_by_email, ...).
        """
        return self._client.auth

    async def close(self) -> None:
        """Release the client (service-role clients hold no session to end)."""
        self._client = None


async def create_supabase_client(config: Optional[TenancyConfig] = None) -> TenancySupabaseClient:
    """Convenience function to create a TenancySupabaseClient."""
    return await TenancySupabaseClient.create(config or TenancyConfig())
