"""Patient-facing confirmation text for a submitted booking."""

from __future__ import annotations

import logging

from langchain_core.messages import HumanMessage

from intake.config import CLINIC_PHONE, DOCTOR_NAME, FAST_MODEL_NAME
from intake.models import Confirmation, ValidatedBooking
from intake.prompts import CONFIRMATION_PROMPT_TEMPLATE
from intake.services.llm import ai_configured, build_chat_model, call_with_timeout

logger = logging.getLogger(__name__)


def template_confirmation(booking: ValidatedBooking) -> str:
    """Deterministic confirmation built from the booking fields."""
    return (
        f"Dear {booking.patient_name}, thank you for requesting an appointment with "
        f"{DOCTOR_NAME} on {booking.appointment_date} at {booking.appointment_time}. "
        "Our coordinator will call you within one working day to confirm the exact slot. "
        f"If your symptoms get worse or you need urgent help, call {CLINIC_PHONE}."
    )


class ConfirmationGenerator:
    """Writes the confirmation with the fast model, or falls back to the template."""

    def __init__(self, llm=None) -> None:
        if llm is None and ai_configured():
            llm = build_chat_model(FAST_MODEL_NAME, temperature=0.4, max_tokens=300)
        self._llm = llm

    def generate(self, booking: ValidatedBooking) -> Confirmation:
        if self._llm is None:
            return Confirmation(message=template_confirmation(booking), used_ai=False)

        prompt = CONFIRMATION_PROMPT_TEMPLATE.format(
            doctor=DOCTOR_NAME,
            patient_name=booking.patient_name,
            appointment_date=booking.appointment_date,
            appointment_time=booking.appointment_time,
            reason=booking.reason[:300],
            phone=CLINIC_PHONE,
        )
        try:
            response = call_with_timeout(
                self._llm.invoke, [HumanMessage(content=prompt)], operation="confirmation",
            )
            message = response.content if isinstance(response.content, str) else ""
            message = message.strip()
            if not message:
                raise ValueError("empty confirmation from model")
        except Exception as exc:
            logger.warning("AI confirmation failed, using template: %s: %s", type(exc).__name__, exc)
            return Confirmation(message=template_confirmation(booking), used_ai=False)

        return Confirmation(message=message, used_ai=True)
