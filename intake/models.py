"""Domain models shared by the conversation and submission pipelines.

Wire format is camelCase (the website's JavaScript client posts and reads
these shapes directly); Python code uses the snake_case attribute names.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class Condition(str, Enum):
    BRAIN_TUMOR = "brain_tumor"
    SPINE_SURGERY = "spine_surgery"
    EPILEPSY = "epilepsy"
    TRIGEMINAL_NEURALGIA = "trigeminal_neuralgia"
    PERIPHERAL_NERVE = "peripheral_nerve"
    OTHER = "other"


class Urgency(str, Enum):
    ROUTINE = "routine"
    URGENT = "urgent"
    EMERGENCY = "emergency"


class NextStep(str, Enum):
    """Booking conversation steps, in the order they are asked."""

    CONDITION = "condition"
    URGENCY = "urgency"
    DETAILS = "details"
    SCHEDULING = "scheduling"
    CONFIRMATION = "confirmation"


class Gender(str, Enum):
    MALE = "male"
    FEMALE = "female"
    OTHER = "other"


_CAMEL = ConfigDict(populate_by_name=True)


# ── Conversation ─────────────────────────────────────────────────────


class BookingDraft(BaseModel):
    """Booking information collected so far in a conversation.

    Owned by the caller: the client sends it with every turn and stores
    the ``updatedDraft`` it gets back.  The server keeps no session.
    """

    model_config = _CAMEL

    name: str | None = None
    phone: str | None = None
    email: str | None = None
    condition: Condition | None = None
    urgency: Urgency | None = None
    preferred_date: str | None = Field(None, alias="preferredDate")
    preferred_time: str | None = Field(None, alias="preferredTime")
    symptoms: list[str] | None = None
    previous_treatment: str | None = Field(None, alias="previousTreatment")
    insurance: str | None = None
    pain_score: int | None = Field(None, alias="painScore", ge=1, le=10)
    mri_scan_available: bool | None = Field(None, alias="mriScanAvailable")

    def to_wire(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class ExtractedEntities(BaseModel):
    """Values pulled out of a raw message by the regex extractor."""

    phone: str | None = None
    email: str | None = None
    condition: Condition | None = None


class TurnResult(BaseModel):
    """Outcome of processing one conversation turn."""

    model_config = _CAMEL

    response_text: str = Field(..., alias="responseText")
    is_emergency: bool = Field(False, alias="isEmergency")
    suggested_action: str | None = Field(None, alias="suggestedAction")
    updated_draft: BookingDraft = Field(..., alias="updatedDraft")
    next_step: NextStep | None = Field(None, alias="nextStep")

    def to_wire(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


# ── Submission ───────────────────────────────────────────────────────


class ValidatedBooking(BaseModel):
    """A booking that passed field validation.  Immutable.

    Only ``intake.validation.validate_booking`` constructs these.
    """

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    patient_name: str = Field(..., alias="patientName")
    age: int | float
    gender: Gender
    appointment_date: str = Field(..., alias="appointmentDate")
    appointment_time: str = Field(..., alias="appointmentTime")
    reason: str
    pain_score: int | None = Field(None, alias="painScore")
    mri_scan_available: bool | None = Field(None, alias="mriScanAvailable")
    email: str | None = None
    phone: str | None = None

    def to_wire(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class Confirmation(BaseModel):
    message: str
    used_ai: bool


class EmailResult(BaseModel):
    """Delivery result of one email, echoed to the client as ``emailResult``."""

    success: bool
    id: str | None = None
    error: str | None = None


class NotificationOutcome(BaseModel):
    """Result of one fan-out channel."""

    channel: str
    success: bool
    error: str | None = None
    detail: str | None = None


class NotificationReport(BaseModel):
    """Per-channel outcomes of one fan-out, plus the patient email result."""

    outcomes: list[NotificationOutcome] = Field(default_factory=list)
    email_result: EmailResult | None = None
    webhooks_dispatched: bool = False

    def outcome(self, channel: str) -> NotificationOutcome | None:
        return next((o for o in self.outcomes if o.channel == channel), None)

    @property
    def failed_channels(self) -> list[str]:
        return [o.channel for o in self.outcomes if not o.success]
