"""Pydantic schemas for the FastAPI endpoints."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, field_validator

from intake.models import BookingDraft

MAX_DRAFT_STRING_LENGTH = 100


class TurnRequest(BaseModel):
    """One message from the booking chat widget, with the draft so far."""

    model_config = ConfigDict(populate_by_name=True)

    message: str = Field(..., min_length=1, max_length=2000, description="The patient's message")
    booking_data: BookingDraft = Field(default_factory=BookingDraft, alias="bookingData")
    page_slug: str = Field(..., max_length=200, alias="pageSlug")
    service: str | None = Field(None, max_length=200)
    thread_id: str | None = Field(None, max_length=100, alias="threadId")

    @field_validator("booking_data")
    @classmethod
    def _limit_draft_strings(cls, draft: BookingDraft) -> BookingDraft:
        for name, value in draft.to_wire().items():
            values = value if isinstance(value, list) else [value]
            for item in values:
                if isinstance(item, str) and len(item) > MAX_DRAFT_STRING_LENGTH:
                    raise ValueError(
                        f"bookingData.{name} must be at most {MAX_DRAFT_STRING_LENGTH} characters"
                    )
        return draft


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = "ok"
    service: str = "neuro-intake"
