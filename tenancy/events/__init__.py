"""
Tenancy events module.

Lifecycle event dispatch with isolated and strict modes, plus a webhook
listener for notifying external services.
"""

from .dispatcher import EventDispatcher, Listener
from .models import CallbackContext, DispatchMode, Event
from .webhooks import WebhookDeliveryError, WebhookListener, sign_payload, verify_signature

__all__ = [
    "EventDispatcher",
    "Listener",
    "Event",
    "DispatchMode",
    "CallbackContext",
    "WebhookListener",
    "WebhookDeliveryError",
    "sign_payload",
    "verify_signature",
]
