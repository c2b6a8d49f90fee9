"""
Tenancy invitations module.

Invitation models, acceptance outcomes and delivery senders.
"""

from .delivery import InvitationSender, SupabaseInvitationSender
from .models import (
    AcceptanceOutcome,
    Invitation,
    InvitationAcceptanceFailure,
    InvitationAcceptanceResult,
    InvitationStatus,
)

__all__ = [
    "Invitation",
    "InvitationStatus",
    "InvitationAcceptanceResult",
    "InvitationAcceptanceFailure",
    "AcceptanceOutcome",
    "InvitationSender",
    "SupabaseInvitationSender",
]
