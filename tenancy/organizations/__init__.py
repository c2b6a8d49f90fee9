"""
Tenancy organizations module.

Organization and membership models. The managers live in ``orgs`` and
``members`` and are reached through the Tenancy client.
"""

from .models import Membership, Organization

__all__ = [
    "Organization",
    "Membership",
]
