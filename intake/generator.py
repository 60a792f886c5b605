"""Structured response generation for booking conversation turns.

The model is asked for a :class:`GeneratedTurn` through
``with_structured_output``.  Its output is still treated as untrusted:
:func:`sanitize_booking_update` checks every field against the same
constraints as :class:`~intake.models.BookingDraft` and drops anything that
does not fit before the orchestrator merges it.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from langchain_core.messages import HumanMessage, SystemMessage
from pydantic import BaseModel, Field

from intake.config import MODEL_NAME
from intake.detection import detect_condition
from intake.models import BookingDraft, Condition, ExtractedEntities, NextStep, Urgency
from intake.prompts import get_booking_system_prompt
from intake.services.llm import build_chat_model, call_with_timeout

logger = logging.getLogger(__name__)

MAX_FIELD_LENGTH = 100


# ── Schema contract ──────────────────────────────────────────────────


class GeneratedBookingData(BaseModel):
    """Booking fields the model may fill from the conversation."""

    name: str | None = Field(None, description="The patient's full name")
    phone: str | None = Field(None, description="Indian phone number (+91 or 10 digits)")
    email: str | None = Field(None, description="Email address")
    condition: str | None = Field(
        None,
        description=(
            "Condition category: brain_tumor, spine_surgery, epilepsy, "
            "trigeminal_neuralgia, peripheral_nerve or other"
        ),
    )
    urgency: str | None = Field(None, description="Urgency level: routine, urgent or emergency")
    preferred_date: str | None = Field(None, description="Preferred date (YYYY-MM-DD or natural language)")
    preferred_time: str | None = Field(None, description="Preferred time of day")
    symptoms: list[str] | None = Field(None, description="Symptoms mentioned, in order")
    previous_treatment: str | None = Field(None, description="Previous treatments mentioned")
    insurance: str | None = Field(None, description="Insurance provider if mentioned")
    pain_score: int | None = Field(None, description="Pain score from 1 to 10")
    mri_scan_available: bool | None = Field(None, description="Whether the patient has an MRI scan")


class GeneratedTurn(BaseModel):
    """Structured reply for one booking conversation turn."""

    response: str = Field(..., description="Receptionist reply to the patient, under 50 words")
    is_emergency: bool = Field(False, description="True if the patient describes a life-threatening emergency")
    suggested_action: str | None = Field(None, description="Action to take, e.g. 'Call emergency hotline immediately'")
    booking_data: GeneratedBookingData | None = Field(None, description="Booking data updated from the conversation")
    next_step: str | None = Field(
        None, description="Next booking step: condition, urgency, details, scheduling or confirmation",
    )


# ── Untrusted-output checks ──────────────────────────────────────────


def _clean_text(value: Any) -> str | None:
    if not isinstance(value, str):
        return None
    value = value.strip()
    if not value or len(value) > MAX_FIELD_LENGTH:
        return None
    return value


def _clean_condition(value: Any) -> Condition | None:
    text = _clean_text(value)
    if text is None:
        return None
    normalized = text.lower().replace(" ", "_").replace("-", "_")
    try:
        return Condition(normalized)
    except ValueError:
        # "back pain", "brain tumour surgery" ... map through the keyword table
        return detect_condition(text)


def _clean_urgency(value: Any) -> Urgency | None:
    text = _clean_text(value)
    if text is None:
        return None
    try:
        return Urgency(text.lower())
    except ValueError:
        return None


def _clean_pain_score(value: Any) -> int | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if isinstance(value, float) and not value.is_integer():
        return None
    return int(value) if 1 <= value <= 10 else None


def _clean_symptoms(value: Any) -> list[str] | None:
    if not isinstance(value, list):
        return None
    cleaned = [s for s in (_clean_text(item) for item in value) if s]
    return cleaned or None


def sanitize_booking_update(data: GeneratedBookingData | dict | None) -> dict[str, Any]:
    """Return the subset of *data* that satisfies the BookingDraft constraints.

    Keys are BookingDraft attribute names; fields that are missing or fail
    their check are left out entirely.
    """
    if data is None:
        return {}
    raw = data.model_dump() if isinstance(data, BaseModel) else dict(data)

    cleaned: dict[str, Any] = {
        "name": _clean_text(raw.get("name")),
        "phone": _clean_text(raw.get("phone")),
        "email": _clean_text(raw.get("email")),
        "condition": _clean_condition(raw.get("condition")),
        "urgency": _clean_urgency(raw.get("urgency")),
        "preferred_date": _clean_text(raw.get("preferred_date")),
        "preferred_time": _clean_text(raw.get("preferred_time")),
        "symptoms": _clean_symptoms(raw.get("symptoms")),
        "previous_treatment": _clean_text(raw.get("previous_treatment")),
        "insurance": _clean_text(raw.get("insurance")),
        "pain_score": _clean_pain_score(raw.get("pain_score")),
        "mri_scan_available": (
            raw.get("mri_scan_available") if isinstance(raw.get("mri_scan_available"), bool) else None
        ),
    }
    return {k: v for k, v in cleaned.items() if v is not None}


def parse_next_step(value: Any) -> NextStep | None:
    """Map the model's free-form ``next_step`` onto the closed enum."""
    if not isinstance(value, str):
        return None
    try:
        return NextStep(value.strip().lower())
    except ValueError:
        return None


# ── Generator ────────────────────────────────────────────────────────


class StructuredResponseGenerator:
    """Wraps the Anthropic model behind the turn schema contract."""

    def __init__(self, llm=None) -> None:
        if llm is None:
            llm = build_chat_model(MODEL_NAME, temperature=0.3, max_tokens=1024)
        self._structured = llm.with_structured_output(GeneratedTurn)

    def generate(
        self,
        message: str,
        draft: BookingDraft,
        entities: ExtractedEntities,
        *,
        service: str | None = None,
    ) -> GeneratedTurn:
        """Ask the model for the next reply.  Raises on timeout or bad output."""
        system = SystemMessage(
            content=get_booking_system_prompt(
                booking_state=json.dumps(draft.to_wire(), indent=2),
                extracted=json.dumps(entities.model_dump(mode="json", exclude_none=True)),
                service=service,
            )
        )
        result = call_with_timeout(
            self._structured.invoke,
            [system, HumanMessage(content=message)],
            operation="turn_generate",
        )
        if isinstance(result, dict):
            result = GeneratedTurn.model_validate(result)
        if not isinstance(result, GeneratedTurn):
            raise TypeError(f"Unexpected generator output: {type(result).__name__}")
        logger.debug(
            "Generated turn: emergency=%s next_step=%r", result.is_emergency, result.next_step,
        )
        return result
