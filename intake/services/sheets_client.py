"""CRM lead push to the clinic's Google Sheet (Apps Script web-app endpoint)."""

from __future__ import annotations

import logging
import threading
from typing import Any

import httpx

from intake.config import GOOGLE_SHEETS_WEBHOOK_URL
from intake.models import ValidatedBooking
from intake.services.http import REQUEST_TIMEOUT_SECONDS, IntegrationError, request_with_retries

logger = logging.getLogger(__name__)


class SheetsAPIError(IntegrationError):
    """Raised when the sheet endpoint rejects a lead or stays unreachable."""


def build_lead(booking: ValidatedBooking, source: str) -> dict[str, Any]:
    """Map a booking onto the CRM lead row."""
    lead: dict[str, Any] = {
        "fullName": booking.patient_name,
        "concern": booking.reason[:100],
        "preferredDate": booking.appointment_date,
        "preferredTime": booking.appointment_time,
        "source": source,
        "metadata": {
            "age": booking.age,
            "gender": booking.gender.value,
            "bookingReason": booking.reason,
            "painScore": booking.pain_score,
            "mriScanAvailable": booking.mri_scan_available,
            "contactMissing": not (booking.email or booking.phone),
        },
    }
    if booking.email:
        lead["email"] = booking.email
    if booking.phone:
        lead["phone"] = booking.phone
    return lead


class SheetsClient:
    def __init__(self, url: str | None = None) -> None:
        self._url = url or GOOGLE_SHEETS_WEBHOOK_URL
        self._client = httpx.Client(timeout=REQUEST_TIMEOUT_SECONDS, follow_redirects=True)

    @property
    def configured(self) -> bool:
        return bool(self._url)

    def submit(self, lead: dict[str, Any]) -> dict[str, Any]:
        """Append *lead* as a sheet row.

        Raises:
            SheetsAPIError: when not configured, on 4xx, or after retries.
        """
        if not self.configured:
            raise SheetsAPIError("Google Sheets endpoint is not configured.")
        response = request_with_retries(
            self._client,
            "POST",
            self._url,
            service="google_sheets",
            json_body=lead,
            error_cls=SheetsAPIError,
        )
        try:
            body = response.json()
        except ValueError:
            body = {}
        # Apps Script answers 200 even when the script itself failed
        if isinstance(body, dict) and body.get("result") == "error":
            raise SheetsAPIError(f"Sheet script error: {body.get('error', 'unknown')}")
        logger.info("Lead pushed to sheet: %s", lead.get("fullName"))
        return body if isinstance(body, dict) else {}


# ── Module-level singleton (thread-safe) ────────────────────────────
_client: SheetsClient | None = None
_client_lock = threading.Lock()


def get_sheets_client() -> SheetsClient:
    global _client
    if _client is None:
        with _client_lock:
            if _client is None:
                _client = SheetsClient()
    return _client
