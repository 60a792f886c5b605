"""Outbound ``appointment.created`` webhooks to configured subscribers.

Each subscriber gets its own delivery attempt; one failing endpoint does not
stop the others.  When ``APPOINTMENT_WEBHOOK_SECRET`` is set the JSON body is
signed with HMAC-SHA256 in the ``X-Webhook-Signature`` header.
"""

from __future__ import annotations

import hashlib
import hmac
import json
import logging
import threading
from datetime import UTC, datetime
from typing import Any

import httpx
from pydantic import BaseModel

from intake.config import APPOINTMENT_WEBHOOK_SECRET, APPOINTMENT_WEBHOOK_URLS
from intake.models import Confirmation, EmailResult, ValidatedBooking
from intake.services.http import REQUEST_TIMEOUT_SECONDS, IntegrationError, request_with_retries

logger = logging.getLogger(__name__)

EVENT_APPOINTMENT_CREATED = "appointment.created"


class WebhookDeliveryError(IntegrationError):
    """Raised when a subscriber endpoint rejects or never acknowledges a payload."""


class WebhookDelivery(BaseModel):
    url: str
    success: bool
    status_code: int | None = None
    error: str | None = None


def build_webhook_payload(
    *,
    booking: ValidatedBooking,
    booking_id: str,
    confirmation: Confirmation,
    email_result: EmailResult | None,
    source: str,
) -> dict[str, Any]:
    return {
        "event": EVENT_APPOINTMENT_CREATED,
        "timestamp": datetime.now(UTC).isoformat(),
        "source": source,
        "bookingId": booking_id,
        "booking": booking.to_wire(),
        "confirmationMessage": confirmation.message,
        "emailResult": email_result.model_dump(exclude_none=True) if email_result else None,
        "usedAI": confirmation.used_ai,
    }


def sign_payload(body: bytes, secret: str) -> str:
    return "sha256=" + hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()


class WebhookNotifier:
    def __init__(
        self,
        urls: list[str] | None = None,
        secret: str | None = None,
    ) -> None:
        self._urls = list(APPOINTMENT_WEBHOOK_URLS if urls is None else urls)
        self._secret = secret if secret is not None else APPOINTMENT_WEBHOOK_SECRET
        self._client = httpx.Client(timeout=REQUEST_TIMEOUT_SECONDS)

    def notify(self, payload: dict[str, Any]) -> list[WebhookDelivery]:
        """POST *payload* to every subscriber.  Per-endpoint failures are returned, not raised."""
        if not self._urls:
            logger.debug("No appointment webhook subscribers configured")
            return []

        body = json.dumps(payload, default=str).encode("utf-8")
        headers = {
            "Content-Type": "application/json",
            "X-Webhook-Event": str(payload.get("event", EVENT_APPOINTMENT_CREATED)),
        }
        if self._secret:
            headers["X-Webhook-Signature"] = sign_payload(body, self._secret)

        deliveries: list[WebhookDelivery] = []
        for url in self._urls:
            try:
                response = request_with_retries(
                    self._client,
                    "POST",
                    url,
                    service="webhook",
                    content=body,
                    headers=headers,
                    error_cls=WebhookDeliveryError,
                )
                deliveries.append(
                    WebhookDelivery(url=url, success=True, status_code=response.status_code)
                )
            except WebhookDeliveryError as exc:
                logger.warning("Webhook delivery to %s failed: %s", url, exc)
                deliveries.append(
                    WebhookDelivery(url=url, success=False, status_code=exc.status_code, error=str(exc))
                )
            except (httpx.HTTPError, httpx.InvalidURL) as exc:
                # Read errors, protocol errors and bad subscriber URLs are not retried
                logger.warning("Webhook delivery to %s failed: %s: %s", url, type(exc).__name__, exc)
                deliveries.append(
                    WebhookDelivery(url=url, success=False, error=f"{type(exc).__name__}: {exc}")
                )
        return deliveries


# ── Module-level singleton (thread-safe) ────────────────────────────
_notifier: WebhookNotifier | None = None
_notifier_lock = threading.Lock()


def get_webhook_notifier() -> WebhookNotifier:
    global _notifier
    if _notifier is None:
        with _notifier_lock:
            if _notifier is None:
                _notifier = WebhookNotifier()
    return _notifier
