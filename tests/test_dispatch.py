"""Tests for persistence and notification fan-out."""

from __future__ import annotations

import asyncio
from unittest.mock import MagicMock, patch

import pytest

from intake.dispatch import (
    CHANNEL_ADMIN_EMAIL,
    CHANNEL_CRM,
    CHANNEL_PATIENT_EMAIL,
    CHANNEL_TRIAGE,
    NotificationDispatcher,
)
from intake.models import Confirmation, EmailResult
from intake.services.sheets_client import SheetsAPIError
from intake.services.store import PersistenceError

CONFIRMATION = Confirmation(message="See you soon.", used_ai=False)


async def _persist_and_notify(dispatcher: NotificationDispatcher, booking, source="website"):
    stored = await dispatcher.persist(booking, CONFIRMATION, source)
    report = await dispatcher.notify(booking, CONFIRMATION, source, stored)
    await dispatcher.drain()
    return stored, report


# ── Persistence ──────────────────────────────────────────────────────


class TestPersist:
    def test_record_carries_booking_values(self, dispatcher, store, validated_booking):
        stored = asyncio.run(dispatcher.persist(validated_booking, CONFIRMATION, "chatbot"))

        record = store.get(stored["id"])
        assert record["pain_score"] == 7
        assert record["mri_scan_available"] is True
        assert record["source"] == "chatbot"
        assert record["status"] == "pending"
        assert record["used_ai"] is False

    def test_store_failure_raises(self, validated_booking, mock_email_client, mock_sheets_client,
                                  mock_webhook_notifier, mock_triage):
        store = MagicMock()
        store.create.side_effect = PersistenceError("disk full")
        dispatcher = NotificationDispatcher(
            store, mock_email_client, mock_sheets_client, mock_webhook_notifier, mock_triage,
        )
        with pytest.raises(PersistenceError):
            asyncio.run(dispatcher.persist(validated_booking, CONFIRMATION, "website"))

    def test_unexpected_store_error_is_wrapped(self, validated_booking, mock_email_client,
                                               mock_sheets_client, mock_webhook_notifier, mock_triage):
        store = MagicMock()
        store.create.side_effect = OSError("read-only file system")
        dispatcher = NotificationDispatcher(
            store, mock_email_client, mock_sheets_client, mock_webhook_notifier, mock_triage,
        )
        with pytest.raises(PersistenceError):
            asyncio.run(dispatcher.persist(validated_booking, CONFIRMATION, "website"))


# ── Fan-out ──────────────────────────────────────────────────────────


class TestNotify:
    def test_all_channels_called(self, dispatcher, validated_booking, mock_email_client,
                                 mock_sheets_client, mock_webhook_notifier, mock_triage):
        stored, report = asyncio.run(_persist_and_notify(dispatcher, validated_booking))

        mock_email_client.send_confirmation_email.assert_called_once_with(validated_booking, "See you soon.")
        mock_email_client.send_admin_notification_email.assert_called_once_with(validated_booking, "website")
        mock_sheets_client.submit.assert_called_once()
        mock_triage.assert_called_once()
        mock_webhook_notifier.notify.assert_called_once()

        assert report.failed_channels == []
        assert report.email_result == EmailResult(success=True, id="em_patient")
        assert report.webhooks_dispatched is True
        payload = mock_webhook_notifier.notify.call_args[0][0]
        assert payload["bookingId"] == stored["id"]
        assert payload["event"] == "appointment.created"

    def test_crm_lead_carries_pain_score(self, dispatcher, validated_booking, mock_sheets_client):
        asyncio.run(_persist_and_notify(dispatcher, validated_booking, source="chatbot"))

        lead = mock_sheets_client.submit.call_args[0][0]
        assert lead["metadata"]["painScore"] == 7
        assert lead["metadata"]["mriScanAvailable"] is True
        assert lead["source"] == "chatbot"

    def test_channel_failures_are_isolated(self, dispatcher, validated_booking, mock_email_client,
                                           mock_sheets_client, mock_triage):
        mock_sheets_client.submit.side_effect = SheetsAPIError("sheet down")
        mock_triage.side_effect = RuntimeError("triage bug")

        _, report = asyncio.run(_persist_and_notify(dispatcher, validated_booking))

        assert set(report.failed_channels) == {CHANNEL_CRM, CHANNEL_TRIAGE}
        assert report.outcome(CHANNEL_CRM).error == "sheet down"
        assert report.outcome(CHANNEL_PATIENT_EMAIL).success is True
        assert report.outcome(CHANNEL_ADMIN_EMAIL).success is True
        mock_email_client.send_confirmation_email.assert_called_once()

    def test_patient_email_exception_becomes_failed_result(self, dispatcher, validated_booking,
                                                           mock_email_client):
        mock_email_client.send_confirmation_email.side_effect = RuntimeError("smtp gone")

        _, report = asyncio.run(_persist_and_notify(dispatcher, validated_booking))

        assert report.email_result.success is False
        assert report.email_result.error == "smtp gone"

    def test_rejected_email_is_a_failed_outcome(self, dispatcher, validated_booking, mock_email_client):
        mock_email_client.send_admin_notification_email.return_value = EmailResult(
            success=False, error="Admin email is not configured.",
        )
        _, report = asyncio.run(_persist_and_notify(dispatcher, validated_booking))
        assert report.failed_channels == [CHANNEL_ADMIN_EMAIL]


# ── Webhooks ─────────────────────────────────────────────────────────


class TestWebhooks:
    def test_notifier_exception_is_swallowed(self, dispatcher, validated_booking, mock_webhook_notifier):
        mock_webhook_notifier.notify.side_effect = RuntimeError("subscriber exploded")

        _, report = asyncio.run(_persist_and_notify(dispatcher, validated_booking))

        assert report.webhooks_dispatched is True
        assert dispatcher.pending_webhooks == 0

    def test_payload_build_failure_is_swallowed(self, dispatcher, validated_booking, mock_webhook_notifier):
        with patch("intake.dispatch.build_webhook_payload", side_effect=KeyError("bookingId")):
            _, report = asyncio.run(_persist_and_notify(dispatcher, validated_booking))

        assert report.webhooks_dispatched is False
        mock_webhook_notifier.notify.assert_not_called()

    def test_notify_returns_before_webhooks_finish(self, dispatcher, validated_booking, mock_webhook_notifier):
        async def scenario():
            stored = await dispatcher.persist(validated_booking, CONFIRMATION, "website")
            await dispatcher.notify(validated_booking, CONFIRMATION, "website", stored)
            pending = dispatcher.pending_webhooks
            await dispatcher.drain()
            return pending

        assert asyncio.run(scenario()) == 1
        mock_webhook_notifier.notify.assert_called_once()
