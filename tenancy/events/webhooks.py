"""
Webhook listener for Tenancy events.

Posts the event context as signed JSON to an external endpoint. Register it
like any other listener; under isolated dispatch a failed delivery is logged
and never aborts the operation.
"""

import hashlib
import hmac
import json
import logging
import secrets
from typing import Any, Dict, Iterable, Optional, Union
from uuid import uuid4

import httpx
from pydantic import BaseModel

from ..utils.clock import utcnow
from .models import CallbackContext, Event

logger = logging.getLogger(__name__)


class WebhookDeliveryError(Exception):
    """The webhook endpoint did not acknowledge the delivery."""

    def __init__(self, url: str, status_code: Optional[int], message: str) -> None:
        super().__init__(message)
        self.url = url
        self.status_code = status_code


def generate_secret() -> str:
    """Generate a secure webhook secret."""
    return f"whsec_{secrets.token_urlsafe(32)}"


def sign_payload(payload: str, secret: str) -> str:
    """
    Generate HMAC-SHA256 signature for webhook payload.

    Args:
        payload: JSON payload string
        secret: Webhook secret

    Returns:
        Hex-encoded signature
    """
    return hmac.new(
        secret.encode("utf-8"),
        payload.encode("utf-8"),
        hashlib.sha256,
    ).hexdigest()


def verify_signature(payload: str, secret: str, signature: str) -> bool:
    """Check a ``sha256=...`` signature header against the payload."""
    expected = f"sha256={sign_payload(payload, secret)}"
    return hmac.compare_digest(expected, signature)


def _jsonable(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    if hasattr(value, "id") and hasattr(value, "email"):
        return {"id": str(value.id), "email": value.email}
    if isinstance(value, Event):
        return value.value
    return value


def serialize_context(context: CallbackContext) -> Dict[str, Any]:
    """Convert a callback context into a JSON-ready dict."""
    return {key: _jsonable(value) for key, value in context.to_dict().items()}


class WebhookListener:
    """
    Event listener that delivers contexts to a webhook URL.

    Example:
        ```python
        hook = WebhookListener(
            url="https://example.com/hooks/tenancy",
            secret=os.environ["TENANCY_WEBHOOK_SECRET"],
            events=[Event.MEMBER_JOINED, Event.MEMBER_REMOVED],
        )
        hook.register(tenancy.events)
        ```
    """

    DEFAULT_TIMEOUT = 10  # seconds

    def __init__(
        self,
        url: str,
        secret: Optional[str] = None,
        events: Optional[Iterable[Union[Event, str]]] = None,
        timeout: float = DEFAULT_TIMEOUT,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.url = url
        self.secret = secret or generate_secret()
        self.events = [Event(e) for e in events] if events is not None else list(Event)
        self.timeout = timeout
        self._http_client = http_client

    async def _get_http_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client for webhook delivery."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self.timeout)
        return self._http_client

    def register(self, dispatcher) -> "WebhookListener":
        """Subscribe this listener to its events on a dispatcher."""
        for event in self.events:
            dispatcher.on(event, self)
        return self

    async def __call__(self, context: CallbackContext) -> None:
        payload = {
            "id": str(uuid4()),
            "event": context.event.value,
            "timestamp": utcnow().isoformat(),
            "data": serialize_context(context),
        }
        payload_json = json.dumps(payload, default=str)
        signature = sign_payload(payload_json, self.secret)

        headers = {
            "Content-Type": "application/json",
            "X-Tenancy-Signature": f"sha256={signature}",
            "X-Tenancy-Event": context.event.value,
            "X-Tenancy-Delivery": payload["id"],
        }

        http_client = await self._get_http_client()
        try:
            response = await http_client.post(self.url, content=payload_json, headers=headers)
        except httpx.HTTPError as e:
            raise WebhookDeliveryError(self.url, None, f"Webhook delivery failed: {e}") from e

        if not 200 <= response.status_code < 300:
            raise WebhookDeliveryError(
                self.url,
                response.status_code,
                f"Webhook endpoint returned {response.status_code}",
            )

        logger.debug("Delivered %s webhook to %s", context.event.value, self.url)

    async def close(self) -> None:
        """Close HTTP client."""
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None
