"""Urgency triage for incoming bookings.

Three tiers, cheapest first: an emergency keyword check, a structured
assessment from the fast model, and a keyword-based basic assessment used
whenever the model is unavailable or fails.
"""

from __future__ import annotations

import logging
from enum import Enum

from langchain_core.messages import HumanMessage
from pydantic import BaseModel, Field

from intake.config import CLINIC_PHONE, FAST_MODEL_NAME
from intake.prompts import TRIAGE_PROMPT_TEMPLATE
from intake.services.llm import ai_configured, build_chat_model, call_with_timeout

logger = logging.getLogger(__name__)

EMERGENCY_KEYWORDS = (
    "stroke", "seizure", "unconscious", "paralysis", "sudden weakness",
    "loss of vision", "severe headache", "trauma", "accident", "fall",
    "severe neck pain", "numbness", "difficulty speaking", "confusion",
)

URGENT_KEYWORDS = (
    "severe pain", "worsening", "progressive", "new onset", "recent",
    "increasing", "cannot move", "difficulty walking",
)


class UrgencyLevel(str, Enum):
    EMERGENCY = "emergency"
    URGENT = "urgent"
    MODERATE = "moderate"
    ROUTINE = "routine"


class TriageRequest(BaseModel):
    description: str
    symptoms: list[str] = Field(default_factory=list)
    age: int | float | None = None


class TriageResult(BaseModel):
    urgency_level: UrgencyLevel = Field(..., description="Urgency level based on symptoms")
    urgency_score: int = Field(..., ge=0, le=100, description="Numerical urgency score (0-100)")
    recommended_action: str = Field(..., description="Specific recommended action for the patient")
    time_to_seek_care: str = Field(..., description='When to seek care, e.g. "within 24 hours"')
    risk_factors: list[str] = Field(default_factory=list, description="Identified risk factors")
    reasoning: str = Field(..., description="Explanation of the triage decision")


def quick_triage_check(description: str) -> bool:
    lower = description.lower()
    return any(keyword in lower for keyword in EMERGENCY_KEYWORDS)


def basic_triage(request: TriageRequest) -> TriageResult:
    """Keyword-only assessment used when the model is unavailable."""
    all_text = f"{request.description} {' '.join(request.symptoms)}".lower()

    level, score, when = UrgencyLevel.ROUTINE, 30, "within 1 week"
    if any(keyword in all_text for keyword in URGENT_KEYWORDS):
        level, score, when = UrgencyLevel.URGENT, 75, "within 24 hours"
    elif len(request.symptoms) > 3 or "pain" in all_text or "discomfort" in all_text:
        level, score, when = UrgencyLevel.MODERATE, 50, "within 3-5 days"

    action = (
        f"Schedule an appointment within 24 hours. Call {CLINIC_PHONE}."
        if level == UrgencyLevel.URGENT
        else f"Schedule a consultation at your convenience. Call {CLINIC_PHONE}."
    )
    return TriageResult(
        urgency_level=level,
        urgency_score=score,
        recommended_action=action,
        time_to_seek_care=when,
        reasoning="Basic triage assessment based on symptom keywords.",
    )


def analyze_triage(request: TriageRequest, llm=None) -> TriageResult:
    """Assess urgency for *request*.  Never raises for model failures."""
    if quick_triage_check(request.description):
        return TriageResult(
            urgency_level=UrgencyLevel.EMERGENCY,
            urgency_score=95,
            recommended_action=(
                "Call emergency services immediately or visit the nearest emergency room. "
                f"For neurosurgical emergencies, call {CLINIC_PHONE}."
            ),
            time_to_seek_care="immediately",
            risk_factors=["Potential life-threatening condition detected"],
            reasoning="Emergency keywords detected in patient description.",
        )

    if llm is None:
        if not ai_configured():
            return basic_triage(request)
        llm = build_chat_model(FAST_MODEL_NAME, temperature=0.3, max_tokens=600)

    prompt = TRIAGE_PROMPT_TEMPLATE.format(
        symptoms=", ".join(request.symptoms) or "not listed",
        description=request.description,
        age_line=f"- Age: {request.age}\n" if request.age else "",
    )
    try:
        result = call_with_timeout(
            llm.with_structured_output(TriageResult).invoke,
            [HumanMessage(content=prompt)],
            operation="triage",
        )
        if isinstance(result, dict):
            result = TriageResult.model_validate(result)
        return result
    except Exception as exc:
        logger.warning("AI triage failed, using basic triage: %s: %s", type(exc).__name__, exc)
        return basic_triage(request)
