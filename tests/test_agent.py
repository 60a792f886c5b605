"""Tests for the booking turn graph.

Covers:
  - Emergency fast path (the model is never called)
  - Degraded turn when the model fails or times out
  - Merge policy (model > regex > prior draft)
  - Next-step precedence and clamping of the model's suggestion
  - Rule-based responder when no AI key is configured
"""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest

from intake.agent import (
    compute_next_step,
    create_booking_agent,
    merge_draft,
    process_turn,
    resolve_next_step,
)
from intake.generator import GeneratedBookingData, GeneratedTurn
from intake.models import BookingDraft, Condition, ExtractedEntities, NextStep, Urgency
from intake.prompts import DEGRADED_RESPONSE, EMERGENCY_ACTION, EMERGENCY_RESPONSE
from intake.services.llm import AITimeoutError

# ── Helpers ──────────────────────────────────────────────────────────


def _make_mock_generator(turn: GeneratedTurn | None = None, side_effect=None):
    generator = MagicMock()
    generator.generate.return_value = turn
    generator.generate.side_effect = side_effect
    return generator


def _complete_draft(**overrides) -> BookingDraft:
    data = {
        "name": "Asha Rao",
        "phone": "9876543210",
        "email": "asha@example.com",
        "condition": Condition.SPINE_SURGERY,
        "urgency": Urgency.ROUTINE,
        "preferred_date": "2024-12-25",
        "preferred_time": "morning",
        "pain_score": 6,
        "mri_scan_available": True,
    }
    data.update(overrides)
    return BookingDraft(**data)


# ── Emergency fast path ──────────────────────────────────────────────


class TestEmergencyFastPath:
    @pytest.mark.parametrize(
        "message",
        ["My mother had a STROKE", "he is unconscious", "Sudden Weakness on one side"],
    )
    def test_generator_is_never_called(self, message):
        generator = _make_mock_generator()
        agent = create_booking_agent(generator=generator)

        result = process_turn(agent, message, BookingDraft())

        assert result.is_emergency is True
        assert generator.generate.call_count == 0

    def test_emergency_reply_and_draft(self):
        agent = create_booking_agent(generator=_make_mock_generator())

        result = process_turn(agent, "I had a seizure, call 9876543210", BookingDraft(name="Ravi"))

        assert result.response_text == EMERGENCY_RESPONSE
        assert result.suggested_action == EMERGENCY_ACTION
        assert result.updated_draft.urgency == Urgency.EMERGENCY
        assert result.updated_draft.condition == Condition.EPILEPSY
        assert result.updated_draft.phone == "9876543210"
        assert result.updated_draft.name == "Ravi"
        assert result.next_step == NextStep.URGENCY


# ── Degraded path ────────────────────────────────────────────────────


class TestDegradedTurn:
    @pytest.mark.parametrize(
        "error", [RuntimeError("provider down"), AITimeoutError("turn_generate timed out")],
    )
    def test_draft_is_returned_unchanged(self, error):
        draft = _complete_draft(preferred_time=None, symptoms=["tingling"])
        agent = create_booking_agent(generator=_make_mock_generator(side_effect=error))

        result = process_turn(agent, "my email is new@example.com", draft)

        assert result.updated_draft == draft
        assert result.next_step == NextStep.DETAILS
        assert result.response_text == DEGRADED_RESPONSE
        assert result.is_emergency is False

    def test_empty_draft_stays_empty(self):
        agent = create_booking_agent(generator=_make_mock_generator(side_effect=ValueError("bad json")))
        result = process_turn(agent, "hello", BookingDraft())
        assert result.updated_draft == BookingDraft()
        assert result.next_step == NextStep.DETAILS


# ── Merge policy ─────────────────────────────────────────────────────


class TestMergePolicy:
    def test_regex_phone_fills_gap_left_by_model(self):
        turn = GeneratedTurn(
            response="Thanks, what is your email?",
            booking_data=GeneratedBookingData(name="Asha Rao"),
            next_step="details",
        )
        agent = create_booking_agent(generator=_make_mock_generator(turn))

        result = process_turn(agent, "I'm Asha Rao, my number is 9876543210", BookingDraft())

        assert result.updated_draft.phone == "9876543210"
        assert result.updated_draft.name == "Asha Rao"

    def test_model_value_beats_regex(self):
        updated = merge_draft(
            BookingDraft(),
            ExtractedEntities(phone="9876543210"),
            {"phone": "+919876543211"},
        )
        assert updated.phone == "+919876543211"

    def test_prior_draft_kept_when_nothing_new(self):
        draft = BookingDraft(phone="9123456789", email="old@example.com", insurance="Star Health")
        updated = merge_draft(draft, ExtractedEntities(), {})
        assert updated == draft

    def test_model_overwrites_other_fields(self):
        draft = BookingDraft(preferred_time="morning")
        updated = merge_draft(draft, ExtractedEntities(), {"preferred_time": "evening"})
        assert updated.preferred_time == "evening"

    def test_emergency_is_never_downgraded(self):
        draft = BookingDraft(urgency=Urgency.EMERGENCY)
        updated = merge_draft(draft, ExtractedEntities(), {"urgency": Urgency.ROUTINE})
        assert updated.urgency == Urgency.EMERGENCY

    def test_invalid_model_fields_are_dropped(self):
        turn = GeneratedTurn(
            response="Noted.",
            booking_data=GeneratedBookingData(
                name="Asha Rao", pain_score=42, urgency="yesterday", condition="knee",
            ),
        )
        draft = BookingDraft(pain_score=5, condition=Condition.EPILEPSY)
        agent = create_booking_agent(generator=_make_mock_generator(turn))

        result = process_turn(agent, "hello", draft)

        assert result.updated_draft.name == "Asha Rao"
        assert result.updated_draft.pain_score == 5
        assert result.updated_draft.urgency is None
        assert result.updated_draft.condition == Condition.EPILEPSY

    def test_model_emergency_flag_marks_draft(self):
        turn = GeneratedTurn(response="Please call now.", is_emergency=True)
        agent = create_booking_agent(generator=_make_mock_generator(turn))

        result = process_turn(agent, "my arm went limp", BookingDraft())

        assert result.is_emergency is True
        assert result.updated_draft.urgency == Urgency.EMERGENCY


# ── Next-step precedence ─────────────────────────────────────────────


class TestNextStep:
    def test_condition_first(self):
        assert compute_next_step(BookingDraft()) == NextStep.CONDITION

    def test_urgency_needs_pain_score_and_mri(self):
        draft = BookingDraft(condition=Condition.OTHER, urgency=Urgency.ROUTINE, pain_score=3)
        assert compute_next_step(draft) == NextStep.URGENCY

    def test_details_needs_name_phone_and_email(self):
        draft = _complete_draft(email=None)
        assert compute_next_step(draft) == NextStep.DETAILS

    def test_scheduling(self):
        assert compute_next_step(_complete_draft(preferred_date=None)) == NextStep.SCHEDULING

    def test_complete_draft_reaches_confirmation(self):
        assert compute_next_step(_complete_draft()) == NextStep.CONFIRMATION

    def test_model_cannot_skip_ahead(self):
        assert resolve_next_step("confirmation", BookingDraft()) == NextStep.CONDITION

    def test_model_may_stay_behind(self):
        assert resolve_next_step("details", _complete_draft()) == NextStep.DETAILS

    def test_unknown_value_falls_back_to_computed(self):
        assert resolve_next_step("book_now", _complete_draft(preferred_time=None)) == NextStep.SCHEDULING

    def test_graph_applies_clamp(self):
        turn = GeneratedTurn(response="All set!", next_step="confirmation")
        agent = create_booking_agent(generator=_make_mock_generator(turn))

        result = process_turn(agent, "hello", BookingDraft())
        assert result.next_step == NextStep.CONDITION


# ── Rule-based responder ─────────────────────────────────────────────


class TestRuleBasedResponder:
    @patch("intake.agent.ai_configured", return_value=False)
    def test_no_key_uses_rules(self, mock_configured):
        agent = create_booking_agent()

        result = process_turn(agent, "I have sciatica, my number is 9876543210", BookingDraft())

        assert result.is_emergency is False
        assert result.updated_draft.condition == Condition.SPINE_SURGERY
        assert result.updated_draft.phone == "9876543210"
        assert result.next_step == NextStep.URGENCY
        assert "pain" in result.response_text.lower()

    @patch("intake.agent.ai_configured", return_value=False)
    def test_complete_draft_confirms(self, mock_configured):
        agent = create_booking_agent()
        result = process_turn(agent, "thanks", _complete_draft())
        assert result.next_step == NextStep.CONFIRMATION
        assert result.updated_draft == _complete_draft()


# ── Wire format ──────────────────────────────────────────────────────


class TestTurnResultWire:
    def test_camel_case_keys(self):
        turn = GeneratedTurn(
            response="When would you like to come in?",
            booking_data=GeneratedBookingData(preferred_date="2024-12-25", pain_score=4),
            next_step="scheduling",
        )
        agent = create_booking_agent(generator=_make_mock_generator(turn))

        wire = process_turn(agent, "hello", BookingDraft()).to_wire()

        assert wire["responseText"] == "When would you like to come in?"
        assert wire["isEmergency"] is False
        assert wire["updatedDraft"] == {"preferredDate": "2024-12-25", "painScore": 4}
        assert wire["nextStep"] == "condition"
