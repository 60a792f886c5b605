"""Shared test fixtures for the patient intake test suite."""

from __future__ import annotations

import os
from unittest.mock import MagicMock

import pytest


def pytest_configure(config):
    """Set test environment variables BEFORE collection starts.

    Runs before any ``intake`` import, so ``config.py`` reads these values
    and the suite never reaches the model provider, Resend, the CRM sheet
    or real webhook subscribers.
    """
    os.environ.setdefault("METRICS_ENABLED", "false")
    for name in (
        "ANTHROPIC_API_KEY",
        "RESEND_API_KEY",
        "GOOGLE_SHEETS_WEBHOOK_URL",
        "APPOINTMENT_WEBHOOK_URLS",
        "APPOINTMENT_WEBHOOK_SECRET",
    ):
        os.environ[name] = ""
    os.environ.pop("AWS_EXECUTION_ENV", None)


@pytest.fixture
def booking_payload() -> dict:
    """A submission body that passes every validation check."""
    return {
        "patientName": "Test Patient",
        "age": "35",
        "gender": "male",
        "appointmentDate": "2024-12-25",
        "appointmentTime": "10:00 AM",
        "reason": "Persistent back pain checking neurosurgeon availability",
        "painScore": 7,
        "mriScanAvailable": True,
    }


@pytest.fixture
def validated_booking(booking_payload):
    from intake.validation import validate_booking

    return validate_booking({**booking_payload, "email": "patient@example.com", "phone": "9876543210"})


@pytest.fixture
def store(tmp_path):
    from intake.services.store import AppointmentStore

    return AppointmentStore(str(tmp_path / "appointments.db"))


@pytest.fixture
def mock_email_client():
    from intake.models import EmailResult

    client = MagicMock()
    client.send_confirmation_email.return_value = EmailResult(success=True, id="em_patient")
    client.send_admin_notification_email.return_value = EmailResult(success=True, id="em_admin")
    return client


@pytest.fixture
def mock_sheets_client():
    client = MagicMock()
    client.submit.return_value = {"result": "success"}
    return client


@pytest.fixture
def mock_webhook_notifier():
    notifier = MagicMock()
    notifier.notify.return_value = []
    return notifier


@pytest.fixture
def mock_triage():
    from intake.services.triage import TriageResult, UrgencyLevel

    return MagicMock(
        return_value=TriageResult(
            urgency_level=UrgencyLevel.MODERATE,
            urgency_score=50,
            recommended_action="Schedule a consultation.",
            time_to_seek_care="within 3-5 days",
            reasoning="test",
        )
    )


@pytest.fixture
def dispatcher(store, mock_email_client, mock_sheets_client, mock_webhook_notifier, mock_triage):
    from intake.dispatch import NotificationDispatcher

    return NotificationDispatcher(
        store=store,
        email_client=mock_email_client,
        sheets_client=mock_sheets_client,
        webhook_notifier=mock_webhook_notifier,
        triage=mock_triage,
    )


@pytest.fixture
def mock_http_response():
    """Factory fixture for creating mock httpx responses."""

    def _make(data: dict, status_code: int = 200):
        mock = MagicMock()
        mock.status_code = status_code
        mock.json.return_value = data
        mock.text = str(data)
        return mock

    return _make
