"""Booking submission pipeline.

Single pass, no retries across steps:

    received → validated → confirmed → persisted → notifications_dispatched → responded
        └─ rejected (400, validation)      └─ failed (500, persistence / unexpected)

Once the booking is persisted the response is always 200; channel failures
stay inside the notification report.
"""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Any

from pydantic import BaseModel

from intake.confirmation import ConfirmationGenerator
from intake.dispatch import NotificationDispatcher
from intake.models import NotificationReport
from intake.services.store import PersistenceError
from intake.validation import ValidationError, validate_booking

logger = logging.getLogger(__name__)

GENERIC_FAILURE_MESSAGE = "Unable to process appointment."


class SubmissionState(str, Enum):
    RECEIVED = "received"
    VALIDATED = "validated"
    CONFIRMED = "confirmed"
    PERSISTED = "persisted"
    NOTIFICATIONS_DISPATCHED = "notifications_dispatched"
    RESPONDED = "responded"
    REJECTED = "rejected"
    FAILED = "failed"


class SubmissionResult(BaseModel):
    """Terminal state of one submission and the HTTP response it maps to."""

    state: SubmissionState
    status_code: int
    body: dict[str, Any]
    booking_id: str | None = None
    report: NotificationReport | None = None


class SubmissionPipeline:
    def __init__(
        self,
        dispatcher: NotificationDispatcher,
        confirmation_generator: ConfirmationGenerator,
    ) -> None:
        self._dispatcher = dispatcher
        self._confirmations = confirmation_generator

    async def submit(self, payload: Any, source: str = "website") -> SubmissionResult:
        state = SubmissionState.RECEIVED
        try:
            booking = validate_booking(payload)
            state = SubmissionState.VALIDATED

            confirmation = await asyncio.to_thread(self._confirmations.generate, booking)
            state = SubmissionState.CONFIRMED

            stored = await self._dispatcher.persist(booking, confirmation, source)
            state = SubmissionState.PERSISTED
        except ValidationError as exc:
            logger.info("Booking rejected: %s", exc)
            return SubmissionResult(
                state=SubmissionState.REJECTED, status_code=400, body={"error": str(exc)},
            )
        except PersistenceError:
            logger.error("Booking failed at state %s: persistence error", state.value)
            return SubmissionResult(
                state=SubmissionState.FAILED, status_code=500, body={"error": GENERIC_FAILURE_MESSAGE},
            )
        except Exception:
            logger.exception("Booking failed at state %s", state.value)
            return SubmissionResult(
                state=SubmissionState.FAILED, status_code=500, body={"error": GENERIC_FAILURE_MESSAGE},
            )

        try:
            report = await self._dispatcher.notify(booking, confirmation, source, stored)
        except Exception:
            # The record exists; a dispatcher bug must not turn that into a failure
            logger.exception("Notification fan-out crashed for booking %s", stored["id"])
            report = NotificationReport()
        state = SubmissionState.NOTIFICATIONS_DISPATCHED

        email_result = report.email_result
        body = {
            "booking": booking.to_wire(),
            "confirmationMessage": confirmation.message,
            "emailResult": email_result.model_dump(exclude_none=True) if email_result else None,
            "usedAI": confirmation.used_ai,
        }
        logger.info(
            "Booking %s %s (source=%s, used_ai=%s, failed_channels=%s)",
            stored["id"], state.value, source, confirmation.used_ai, report.failed_channels or "none",
        )
        return SubmissionResult(
            state=SubmissionState.RESPONDED,
            status_code=200,
            body=body,
            booking_id=stored["id"],
            report=report,
        )
