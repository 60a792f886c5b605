"""Notification fan-out for a confirmed booking.

Order of operations
───────────────────
1. **Persistence** — the system of record.  The only step whose failure
   fails the submission (``PersistenceError``); nothing else runs after it.
2. **Patient email, admin email, CRM push, triage** — run concurrently on
   worker threads once the record exists.  Each channel owns its outcome
   slot; an exception in one is logged and reported, never propagated.
3. **Webhooks** — launched as a detached task that the request never
   awaits.  Everything inside it is caught and logged; nothing from it
   reaches the HTTP response.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from typing import Any

from intake.models import (
    Confirmation,
    EmailResult,
    NotificationOutcome,
    NotificationReport,
    ValidatedBooking,
)
from intake.services.email_client import EmailClient
from intake.services.metrics import metrics
from intake.services.sheets_client import SheetsClient, build_lead
from intake.services.store import AppointmentStore, PersistenceError, build_record
from intake.services.triage import TriageRequest, TriageResult, analyze_triage
from intake.services.webhooks import WebhookNotifier, build_webhook_payload

logger = logging.getLogger(__name__)

CHANNEL_PATIENT_EMAIL = "patient_email"
CHANNEL_ADMIN_EMAIL = "admin_email"
CHANNEL_CRM = "crm"
CHANNEL_TRIAGE = "triage"


def _outcome_from(channel: str, value: Any) -> NotificationOutcome:
    if isinstance(value, EmailResult):
        return NotificationOutcome(
            channel=channel, success=value.success, error=value.error, detail=value.id,
        )
    if isinstance(value, TriageResult):
        return NotificationOutcome(
            channel=channel,
            success=True,
            detail=f"{value.urgency_level.value} ({value.urgency_score})",
        )
    return NotificationOutcome(channel=channel, success=True)


class NotificationDispatcher:
    """Persists a booking and fans notifications out to every channel."""

    def __init__(
        self,
        store: AppointmentStore,
        email_client: EmailClient,
        sheets_client: SheetsClient,
        webhook_notifier: WebhookNotifier,
        triage: Callable[[TriageRequest], TriageResult] = analyze_triage,
    ) -> None:
        self._store = store
        self._email = email_client
        self._sheets = sheets_client
        self._webhooks = webhook_notifier
        self._triage = triage
        # Strong references so detached webhook tasks are not garbage-collected
        self._background: set[asyncio.Task] = set()

    # ── Persistence ──────────────────────────────────────────────────

    async def persist(
        self, booking: ValidatedBooking, confirmation: Confirmation, source: str,
    ) -> dict[str, Any]:
        """Write the booking to the store and return the stored record."""
        record = build_record(booking, confirmation, source)
        try:
            with metrics.timed("store", "create"):
                return await asyncio.to_thread(self._store.create, record)
        except PersistenceError:
            raise
        except Exception as exc:
            logger.exception("Unexpected persistence failure")
            raise PersistenceError("Unable to save appointment.") from exc

    # ── Fan-out ──────────────────────────────────────────────────────

    async def notify(
        self,
        booking: ValidatedBooking,
        confirmation: Confirmation,
        source: str,
        stored: dict[str, Any],
    ) -> NotificationReport:
        """Run the notification channels for an already persisted booking."""
        results = await asyncio.gather(
            self._run_channel(
                CHANNEL_PATIENT_EMAIL, self._email.send_confirmation_email, booking, confirmation.message,
            ),
            self._run_channel(
                CHANNEL_ADMIN_EMAIL, self._email.send_admin_notification_email, booking, source,
            ),
            self._run_channel(CHANNEL_CRM, self._sheets.submit, build_lead(booking, source)),
            self._run_channel(
                CHANNEL_TRIAGE,
                self._triage,
                TriageRequest(description=booking.reason, age=booking.age),
            ),
        )
        outcomes = [outcome for outcome, _ in results]
        patient_value = results[0][1]
        email_result = (
            patient_value
            if isinstance(patient_value, EmailResult)
            else EmailResult(success=False, error=outcomes[0].error)
        )

        report = NotificationReport(outcomes=outcomes, email_result=email_result)
        report.webhooks_dispatched = self._launch_webhooks(
            booking, stored, confirmation, email_result, source,
        )

        if report.failed_channels:
            logger.warning(
                "Booking %s notified with failures: %s",
                stored.get("id"), ", ".join(report.failed_channels),
            )
        return report

    async def _run_channel(self, channel: str, fn: Callable, *args) -> tuple[NotificationOutcome, Any]:
        t0 = time.perf_counter()
        try:
            value = await asyncio.to_thread(fn, *args)
        except Exception as exc:
            elapsed = (time.perf_counter() - t0) * 1000
            metrics.record_failure(channel, "dispatch", error_type=type(exc).__name__, latency_ms=elapsed)
            logger.warning("Channel %s failed: %s: %s", channel, type(exc).__name__, exc)
            return NotificationOutcome(channel=channel, success=False, error=str(exc) or type(exc).__name__), None

        elapsed = (time.perf_counter() - t0) * 1000
        outcome = _outcome_from(channel, value)
        if outcome.success:
            metrics.record_success(channel, "dispatch", latency_ms=elapsed)
        else:
            metrics.record_failure(channel, "dispatch", error_type="Rejected", latency_ms=elapsed)
            logger.warning("Channel %s did not deliver: %s", channel, outcome.error)
        return outcome, value

    # ── Webhooks (fire-and-forget) ───────────────────────────────────

    def _launch_webhooks(
        self,
        booking: ValidatedBooking,
        stored: dict[str, Any],
        confirmation: Confirmation,
        email_result: EmailResult,
        source: str,
    ) -> bool:
        try:
            payload = build_webhook_payload(
                booking=booking,
                booking_id=stored["id"],
                confirmation=confirmation,
                email_result=email_result,
                source=source,
            )
            task = asyncio.get_running_loop().create_task(self._deliver_webhooks(payload))
        except Exception:
            logger.exception("Could not start webhook delivery for booking %s", stored.get("id"))
            return False
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return True

    async def _deliver_webhooks(self, payload: dict[str, Any]) -> None:
        t0 = time.perf_counter()
        try:
            deliveries = await asyncio.to_thread(self._webhooks.notify, payload)
            failed = [d.url for d in deliveries if not d.success]
        except Exception as exc:
            elapsed = (time.perf_counter() - t0) * 1000
            metrics.record_failure("webhook", "dispatch", error_type=type(exc).__name__, latency_ms=elapsed)
            logger.exception("Webhook delivery for booking %s crashed", payload.get("bookingId"))
            return

        elapsed = (time.perf_counter() - t0) * 1000
        if failed:
            metrics.record_failure("webhook", "dispatch", error_type="Rejected", latency_ms=elapsed)
            logger.warning("Webhook delivery failed for %s", ", ".join(failed))
        else:
            metrics.record_success("webhook", "dispatch", latency_ms=elapsed)

    async def drain(self) -> None:
        """Wait for in-flight webhook tasks (shutdown and tests only)."""
        if self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    @property
    def pending_webhooks(self) -> int:
        return len(self._background)
