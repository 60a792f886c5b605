"""Tests for the Resend email client."""

from __future__ import annotations

from unittest.mock import patch

import httpx

from intake.services.email_client import EmailClient
from intake.validation import validate_booking


def _client() -> EmailClient:
    return EmailClient(
        api_key="re_test_key",
        sender="Clinic <clinic@example.com>",
        admin_email="admin@example.com",
    )


class TestConfirmationEmail:
    def test_sends_to_patient(self, validated_booking, mock_http_response):
        client = _client()
        with patch.object(
            client._client, "request", return_value=mock_http_response({"id": "em_123"}),
        ) as mock_req:
            result = client.send_confirmation_email(validated_booking, "See you soon.")

        assert result.success is True
        assert result.id == "em_123"
        body = mock_req.call_args[1]["json"]
        assert body["to"] == ["patient@example.com"]
        assert body["text"].startswith("See you soon.")

    def test_no_patient_email(self, booking_payload):
        result = _client().send_confirmation_email(validate_booking(booking_payload), "Hi")
        assert result.success is False
        assert "email" in result.error.lower()

    def test_malformed_patient_address_is_not_sent(self, booking_payload):
        client = _client()
        booking = validate_booking({**booking_payload, "email": "patient at example dot com"})
        with patch.object(client._client, "request") as mock_req:
            result = client.send_confirmation_email(booking, "Hi")

        assert result.success is False
        assert result.error == "Patient email address is invalid."
        mock_req.assert_not_called()

    def test_non_object_response_body(self, validated_booking, mock_http_response):
        client = _client()
        with patch.object(client._client, "request", return_value=mock_http_response(["queued"])):
            result = client.send_confirmation_email(validated_booking, "Hi")
        assert result.success is True
        assert result.id is None

    def test_not_configured(self, validated_booking):
        client = EmailClient(api_key=None, admin_email="admin@example.com")
        result = client.send_confirmation_email(validated_booking, "Hi")
        assert result.success is False
        assert result.error == "Email delivery is not configured."

    @patch("intake.services.http.time.sleep")
    def test_provider_failure_is_returned(self, mock_sleep, validated_booking):
        client = _client()
        with patch.object(client._client, "request", side_effect=httpx.ConnectError("refused")):
            result = client.send_confirmation_email(validated_booking, "Hi")
        assert result.success is False
        assert "resend" in result.error


class TestAdminEmail:
    def test_includes_booking_details(self, validated_booking, mock_http_response):
        client = _client()
        with patch.object(
            client._client, "request", return_value=mock_http_response({"id": "em_admin"}),
        ) as mock_req:
            result = client.send_admin_notification_email(validated_booking, "chatbot")

        assert result.success is True
        body = mock_req.call_args[1]["json"]
        assert body["to"] == ["admin@example.com"]
        assert "Test Patient" in body["subject"]
        assert "Pain score: 7/10" in body["text"]
        assert "(chatbot)" in body["text"]
