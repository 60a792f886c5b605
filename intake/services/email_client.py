"""Transactional email through the Resend HTTP API.

Two messages go out per booking: the patient's confirmation (only when the
booking carries an email address) and the clinic's admin notification.
Neither raises: failures come back as ``EmailResult(success=False)``.
"""

from __future__ import annotations

import logging
import re
import threading

import httpx

from intake.config import ADMIN_EMAIL, EMAIL_FROM, RESEND_API_KEY, RESEND_BASE_URL
from intake.models import EmailResult, ValidatedBooking
from intake.services.http import REQUEST_TIMEOUT_SECONDS, IntegrationError, request_with_retries

logger = logging.getLogger(__name__)

# RFC 5322-ish: dot-atom local part, hostname labels of at most 63 chars
_EMAIL_RE = re.compile(
    r"^[a-zA-Z0-9.!#$%&'*+/=?^_`{|}~-]+"
    r"@[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?"
    r"(?:\.[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?)+$"
)


class EmailDeliveryError(IntegrationError):
    """Raised by the transport when Resend rejects or drops a message."""


class EmailClient:
    def __init__(
        self,
        api_key: str | None = None,
        *,
        sender: str | None = None,
        admin_email: str | None = None,
        base_url: str | None = None,
    ) -> None:
        self._api_key = api_key or RESEND_API_KEY
        self._sender = sender or EMAIL_FROM
        self._admin_email = admin_email or ADMIN_EMAIL
        self._client = httpx.Client(
            base_url=base_url or RESEND_BASE_URL,
            headers={
                "Authorization": f"Bearer {self._api_key}",
                "Content-Type": "application/json",
            },
            timeout=REQUEST_TIMEOUT_SECONDS,
        )

    @property
    def configured(self) -> bool:
        return bool(self._api_key)

    def _send(self, to: str, subject: str, text: str) -> EmailResult:
        if not self.configured:
            return EmailResult(success=False, error="Email delivery is not configured.")
        try:
            response = request_with_retries(
                self._client,
                "POST",
                "/emails",
                service="resend",
                json_body={"from": self._sender, "to": [to], "subject": subject, "text": text},
                error_cls=EmailDeliveryError,
            )
            body = response.json()
        except (EmailDeliveryError, ValueError) as exc:
            logger.error("Email to %s failed: %s", to, exc)
            return EmailResult(success=False, error=str(exc))
        message_id = body.get("id") if isinstance(body, dict) else None
        return EmailResult(success=True, id=message_id)

    def send_confirmation_email(self, booking: ValidatedBooking, message: str) -> EmailResult:
        """Send the confirmation text to the patient."""
        if not booking.email:
            return EmailResult(success=False, error="No patient email address on booking.")
        if not _EMAIL_RE.match(booking.email):
            return EmailResult(success=False, error="Patient email address is invalid.")
        text = (
            f"{message}\n\n"
            f"Appointment request\n"
            f"  Date: {booking.appointment_date}\n"
            f"  Time: {booking.appointment_time}\n"
            f"  Reason: {booking.reason}\n"
        )
        return self._send(booking.email, "Your appointment request has been received", text)

    def send_admin_notification_email(self, booking: ValidatedBooking, source: str) -> EmailResult:
        """Notify the clinic inbox about a new booking."""
        if not self._admin_email:
            return EmailResult(success=False, error="Admin email is not configured.")
        lines = [
            f"New appointment request ({source})",
            "",
            f"Patient: {booking.patient_name}",
            f"Age / gender: {booking.age} / {booking.gender.value}",
            f"Date: {booking.appointment_date} at {booking.appointment_time}",
            f"Reason: {booking.reason}",
            f"Phone: {booking.phone or 'not provided'}",
            f"Email: {booking.email or 'not provided'}",
        ]
        if booking.pain_score is not None:
            lines.append(f"Pain score: {booking.pain_score}/10")
        if booking.mri_scan_available is not None:
            lines.append(f"MRI available: {'yes' if booking.mri_scan_available else 'no'}")
        subject = f"New appointment: {booking.patient_name} on {booking.appointment_date}"
        return self._send(self._admin_email, subject, "\n".join(lines))


# ── Module-level singleton (thread-safe) ────────────────────────────
_client: EmailClient | None = None
_client_lock = threading.Lock()


def get_email_client() -> EmailClient:
    global _client
    if _client is None:
        with _client_lock:
            if _client is None:
                _client = EmailClient()
    return _client
