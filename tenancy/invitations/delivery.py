"""
Invitation delivery.

Tenancy does not render or send email itself. A sender receives the
invitation together with its organization and delivers the acceptance link
however the host likes. ``SupabaseInvitationSender`` uses Supabase Auth's
admin invite, which emails the address and creates the auth user.

Wraps: supabase_auth._async.gotrue_admin_api.AsyncGoTrueAdminAPI.invite_user_by_email
"""

import logging
from typing import Any, Dict, Optional, Protocol, runtime_checkable

from ..config import TenancyConfig
from ..organizations.models import Organization
from ..utils.supabase import TenancySupabaseClient
from .models import Invitation

logger = logging.getLogger(__name__)


@runtime_checkable
class InvitationSender(Protocol):
    """Delivers an invitation link to the invited address."""

    async def send(self, invitation: Invitation, organization: Organization) -> None:
        ...


class SupabaseInvitationSender:
    """
    Deliver invitations with Supabase ``auth.admin.invite_user_by_email``.

    The invitation token and acceptance URL travel in the user metadata so
    the email template (configured in Supabase) can link to the host's
    acceptance page.

    Example:
        ```python
        sender = await SupabaseInvitationSender.create(config)
        tenancy = Tenancy(config=config, store=store, sender=sender)
        ```
    """

    def __init__(self, config: TenancyConfig, client: Optional[TenancySupabaseClient] = None) -> None:
        self.config = config
        self._client = client

    @classmethod
    async def create(cls, config: TenancyConfig) -> "SupabaseInvitationSender":
        client = await TenancySupabaseClient.create(config)
        return cls(config=config, client=client)

    async def _get_client(self) -> TenancySupabaseClient:
        if self._client is None:
            self._client = await TenancySupabaseClient.create(self.config)
        return self._client

    def build_options(self, invitation: Invitation, organization: Organization) -> Dict[str, Any]:
        """Options passed to ``invite_user_by_email``."""
        acceptance_url = invitation.acceptance_url(self.config.invitation_base_url)
        data = {
            "organization_id": str(organization.id),
            "organization_name": organization.name,
            "invitation_token": invitation.token,
            "invitation_role": invitation.role,
            "acceptance_url": acceptance_url,
        }
        if invitation.expires_at is not None:
            data["expires_at"] = invitation.expires_at.isoformat()
        if self.config.from_email:
            data["from_email"] = self.config.from_email

        options: Dict[str, Any] = {"data": data}
        if self.config.invitation_base_url:
            options["redirect_to"] = acceptance_url
        return options

    async def send(self, invitation: Invitation, organization: Organization) -> None:
        client = await self._get_client()
        options = self.build_options(invitation, organization)
        await client.auth.admin.invite_user_by_email(invitation.email, options)
        logger.debug("Sent invitation %s to %s via Supabase", invitation.id, invitation.email)

    async def close(self) -> None:
        if self._client is not None:
            await self._client.close()
            self._client = None
