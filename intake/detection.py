"""Deterministic message screening: emergency keywords and entity extraction.

Nothing here performs I/O or calls the AI.  Emergency classification must
keep working when the model provider is slow or down.
"""

from __future__ import annotations

import re

from intake.models import Condition, ExtractedEntities

EMERGENCY_KEYWORDS: tuple[str, ...] = (
    "stroke",
    "seizure",
    "unconscious",
    "severe headache",
    "sudden weakness",
    "paralysis",
    "loss of vision",
    "severe neck pain",
    "trauma",
    "accident",
    "emergency",
    "urgent",
    "critical",
    "immediate",
    "can't move",
    "numbness",
    "confusion",
    "difficulty speaking",
    "facial droop",
    "severe dizziness",
)

# Order matters: the first category with a matching keyword wins.
CONDITION_KEYWORDS: tuple[tuple[Condition, tuple[str, ...]], ...] = (
    (Condition.BRAIN_TUMOR, ("brain tumor", "tumor", "mass", "lesion", "growth")),
    (Condition.SPINE_SURGERY, ("back pain", "spine", "disc", "herniated", "sciatica", "stenosis")),
    (Condition.EPILEPSY, ("seizure", "epilepsy", "convulsion", "fits")),
    (Condition.TRIGEMINAL_NEURALGIA, ("facial pain", "trigeminal", "neuralgia", "jaw pain")),
    (Condition.PERIPHERAL_NERVE, ("nerve pain", "peripheral", "carpal tunnel", "ulnar")),
)

# Indian mobile: optional +91 / 91 prefix, then [6-9] and nine more digits
_PHONE_RE = re.compile(r"(\+91|91)?[6-9]\d{9}")
_EMAIL_RE = re.compile(r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}")


def detect_emergency(text: str) -> bool:
    """Return ``True`` if *text* mentions any emergency keyword (any case)."""
    lower = text.lower()
    return any(keyword in lower for keyword in EMERGENCY_KEYWORDS)


def detect_condition(text: str) -> Condition | None:
    lower = text.lower()
    for condition, keywords in CONDITION_KEYWORDS:
        if any(keyword in lower for keyword in keywords):
            return condition
    return None


def extract_phone(text: str) -> str | None:
    match = _PHONE_RE.search(text)
    return match.group(0) if match else None


def extract_email(text: str) -> str | None:
    match = _EMAIL_RE.search(text)
    return match.group(0) if match else None


def extract_entities(text: str) -> ExtractedEntities:
    """Pull phone, email and condition category out of a free-text message."""
    return ExtractedEntities(
        phone=extract_phone(text),
        email=extract_email(text),
        condition=detect_condition(text),
    )
