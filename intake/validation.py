"""Field validation for submitted bookings.

``validate_booking`` is the only way a :class:`ValidatedBooking` gets built.
Checks run in a fixed order and the first failure rejects the whole payload;
error messages name the field so the booking form can highlight it.
"""

from __future__ import annotations

import math
import re
from typing import Any

from intake.models import Gender, ValidatedBooking

_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


class ValidationError(Exception):
    """Raised when a submitted booking is malformed.  Maps to HTTP 400."""


def _text(raw: dict[str, Any], key: str) -> str:
    value = raw.get(key)
    return "" if value is None else str(value).strip()


def _parse_number(value: Any) -> float | None:
    """Accept an int/float or a numeric string.  ``None`` if not numeric."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    else:
        try:
            number = float(str(value if value is not None else "").strip())
        except ValueError:
            return None
    return number if math.isfinite(number) else None


def _parse_age(raw: dict[str, Any]) -> int | float:
    age = _parse_number(raw.get("age"))
    if age is None or age <= 0 or age > 120:
        raise ValidationError("Age must be a valid number.")
    return int(age) if age.is_integer() else age


def _parse_pain_score(value: Any) -> int | None:
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    score = _parse_number(value)
    if score is None or not score.is_integer() or not 1 <= score <= 10:
        raise ValidationError("Pain score must be a whole number between 1 and 10.")
    return int(score)


def validate_booking(payload: Any) -> ValidatedBooking:
    """Validate an untyped booking payload.

    Raises:
        ValidationError: on the first field that fails its check.
    """
    if not isinstance(payload, dict):
        raise ValidationError("Invalid body")
    raw = payload

    patient_name = _text(raw, "patientName")
    if len(patient_name) < 3:
        raise ValidationError("Patient name is invalid.")

    age = _parse_age(raw)

    gender = _text(raw, "gender").lower()
    if gender not in {g.value for g in Gender}:
        raise ValidationError("Gender is invalid.")

    appointment_date = _text(raw, "appointmentDate")
    if not _DATE_RE.match(appointment_date):
        raise ValidationError("Appointment date is invalid.")

    appointment_time = _text(raw, "appointmentTime")
    if not appointment_time:
        raise ValidationError("Appointment time is required.")

    reason = _text(raw, "reason")
    if len(reason) < 10:
        raise ValidationError("Reason must be at least 10 characters.")

    pain_score = _parse_pain_score(raw.get("painScore"))

    mri_scan_available = raw.get("mriScanAvailable")
    if mri_scan_available is not None and not isinstance(mri_scan_available, bool):
        raise ValidationError("MRI scan availability must be true or false.")

    # Contact fields are kept as typed; a bad address only fails the patient email
    email = _text(raw, "email") or None
    phone = _text(raw, "phone") or None

    return ValidatedBooking(
        patient_name=patient_name,
        age=age,
        gender=Gender(gender),
        appointment_date=appointment_date,
        appointment_time=appointment_time,
        reason=reason,
        pain_score=pain_score,
        mri_scan_available=mri_scan_available,
        email=email,
        phone=phone,
    )
