"""Centralized configuration for the patient intake service.

Secret resolution order (per variable):
  1. Environment variable / ``.env`` file  (local dev)
  2. AWS SSM Parameter Store SecureString  (when ``AWS_EXECUTION_ENV`` is set)

The SSM paths follow the convention ``/neuro-intake/<VARIABLE_NAME>``.

No secret is mandatory: a missing AI key switches the conversation to the
rule-based responder, and missing email / CRM / webhook settings disable that
notification channel (it reports a failed outcome instead).
"""

from __future__ import annotations

import logging
import os

from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)

# ── Feature flag: running on AWS? ────────────────────────────────────
_ON_AWS = bool(os.getenv("AWS_EXECUTION_ENV"))


# ── Secret resolution ────────────────────────────────────────────────

def _get_ssm_parameter(name: str) -> str | None:
    """Fetch a SecureString from SSM Parameter Store.

    Returns ``None`` if the parameter does not exist or boto3 is
    unavailable.
    """
    try:
        import boto3  # noqa: PLC0415  (boto3 is the optional "aws" extra)

        ssm = boto3.client("ssm")
        resp = ssm.get_parameter(Name=f"/neuro-intake/{name}", WithDecryption=True)
        return resp["Parameter"]["Value"]
    except Exception:
        logger.debug("SSM lookup for %s failed (expected locally)", name)
        return None


def _optional_secret(name: str) -> str | None:
    """Return a secret from env-var or SSM, or ``None`` when unset."""
    value = os.getenv(name)
    if value and not value.startswith("your_"):
        return value

    if _ON_AWS:
        return _get_ssm_parameter(name)
    return None


def _csv(value: str) -> list[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


# ── LLM ─────────────────────────────────────────────────────────────
ANTHROPIC_API_KEY: str | None = _optional_secret("ANTHROPIC_API_KEY")
MODEL_NAME: str = os.getenv("MODEL_NAME", "claude-sonnet-4-5")
# Confirmation text and triage run on the cheaper model
FAST_MODEL_NAME: str = os.getenv("FAST_MODEL_NAME", "claude-haiku-4-5")
AI_TIMEOUT_SECONDS: float = float(os.getenv("AI_TIMEOUT_SECONDS", "20"))

# ── Clinic ──────────────────────────────────────────────────────────
CLINIC_NAME: str = os.getenv("CLINIC_NAME", "Yashoda Hospital, Malakpet, Hyderabad")
DOCTOR_NAME: str = os.getenv("DOCTOR_NAME", "Dr. Sayuj Krishnan")
CLINIC_PHONE: str = os.getenv("CLINIC_PHONE", "+91-9778280044")
OPD_HOURS: str = os.getenv(
    "OPD_HOURS", "Monday to Saturday, 10:00 AM – 1:00 PM and 5:00 PM – 7:30 PM",
)

# ── Email (Resend HTTP API) ─────────────────────────────────────────
RESEND_API_KEY: str | None = _optional_secret("RESEND_API_KEY")
RESEND_BASE_URL: str = "https://api.resend.com"
EMAIL_FROM: str = os.getenv("EMAIL_FROM", "Dr. Sayuj Krishnan <hellodr@drsayuj.info>")
ADMIN_EMAIL: str | None = os.getenv("ADMIN_EMAIL") or None

# ── CRM (Google Sheets Apps Script endpoint) ────────────────────────
GOOGLE_SHEETS_WEBHOOK_URL: str | None = _optional_secret("GOOGLE_SHEETS_WEBHOOK_URL")

# ── Outbound appointment webhooks ───────────────────────────────────
APPOINTMENT_WEBHOOK_URLS: list[str] = _csv(os.getenv("APPOINTMENT_WEBHOOK_URLS", ""))
APPOINTMENT_WEBHOOK_SECRET: str | None = _optional_secret("APPOINTMENT_WEBHOOK_SECRET")

# ── Persistence ─────────────────────────────────────────────────────
DATABASE_PATH: str = os.getenv("DATABASE_PATH", "data/appointments.db")

# ── Rate limiting ───────────────────────────────────────────────────
TURN_RATE_LIMIT: int = int(os.getenv("TURN_RATE_LIMIT", "20"))
SUBMIT_RATE_LIMIT: int = int(os.getenv("SUBMIT_RATE_LIMIT", "5"))
RATE_LIMIT_WINDOW_SECONDS: float = float(os.getenv("RATE_LIMIT_WINDOW_SECONDS", "60"))

# ── Server ──────────────────────────────────────────────────────────
SERVER_HOST: str = os.getenv("SERVER_HOST", "0.0.0.0")
SERVER_PORT: int = int(os.getenv("SERVER_PORT", "8000"))
CORS_ORIGINS: list[str] = _csv(
    os.getenv("CORS_ORIGINS", "http://localhost:3000,https://www.drsayuj.info"),
)
