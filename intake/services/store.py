"""SQLite-backed appointment store: the system of record for bookings."""

from __future__ import annotations

import logging
import sqlite3
import threading
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from intake.config import DATABASE_PATH
from intake.models import Confirmation, ValidatedBooking

logger = logging.getLogger(__name__)

_COLUMNS = (
    "id",
    "patient_name",
    "age",
    "gender",
    "email",
    "phone",
    "appointment_date",
    "appointment_time",
    "reason",
    "pain_score",
    "mri_scan_available",
    "confirmation_message",
    "used_ai",
    "source",
    "status",
    "created_at",
)


class PersistenceError(Exception):
    """Raised when a booking cannot be written.  The only fatal submission error."""


def build_record(booking: ValidatedBooking, confirmation: Confirmation, source: str) -> dict[str, Any]:
    """Map a validated booking onto the persisted (snake_case) shape."""
    return {
        "patient_name": booking.patient_name,
        "age": booking.age,
        "gender": booking.gender.value,
        "email": booking.email,
        "phone": booking.phone,
        "appointment_date": booking.appointment_date,
        "appointment_time": booking.appointment_time,
        "reason": booking.reason,
        "pain_score": booking.pain_score,
        "mri_scan_available": booking.mri_scan_available,
        "confirmation_message": confirmation.message,
        "used_ai": confirmation.used_ai,
        "source": source,
        "status": "pending",
    }


class AppointmentStore:
    """Appends appointment records to a SQLite table."""

    def __init__(self, db_path: str | None = None) -> None:
        self._path = Path(db_path or DATABASE_PATH).expanduser().resolve()
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()
        self._init_schema()

    @property
    def path(self) -> str:
        return str(self._path)

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self._path), timeout=30.0, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        return conn

    @contextmanager
    def connection(self) -> Iterator[sqlite3.Connection]:
        conn = self._connect()
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _init_schema(self) -> None:
        with self._lock, self.connection() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS appointments (
                  id TEXT PRIMARY KEY,
                  patient_name TEXT NOT NULL,
                  age REAL NOT NULL,
                  gender TEXT NOT NULL,
                  email TEXT,
                  phone TEXT,
                  appointment_date TEXT NOT NULL,
                  appointment_time TEXT NOT NULL,
                  reason TEXT NOT NULL,
                  pain_score INTEGER,
                  mri_scan_available INTEGER,
                  confirmation_message TEXT NOT NULL,
                  used_ai INTEGER NOT NULL,
                  source TEXT NOT NULL,
                  status TEXT NOT NULL DEFAULT 'pending',
                  created_at TEXT NOT NULL
                )
                """
            )

    def create(self, record: dict[str, Any]) -> dict[str, Any]:
        """Insert *record* and return it with ``id`` and ``created_at`` set.

        Raises:
            PersistenceError: if the row could not be written.
        """
        stored = {column: record.get(column) for column in _COLUMNS}
        stored["id"] = str(uuid.uuid4())
        stored["created_at"] = datetime.now(UTC).isoformat()
        stored["status"] = stored["status"] or "pending"

        placeholders = ", ".join("?" for _ in _COLUMNS)
        try:
            with self._lock, self.connection() as conn:
                conn.execute(
                    f"INSERT INTO appointments ({', '.join(_COLUMNS)}) VALUES ({placeholders})",
                    [stored[column] for column in _COLUMNS],
                )
        except sqlite3.Error as exc:
            logger.exception("Failed to persist appointment for %s", record.get("patient_name"))
            raise PersistenceError("Unable to save appointment.") from exc

        logger.info("Appointment %s stored (source=%s)", stored["id"], stored["source"])
        return stored

    def get(self, appointment_id: str) -> dict[str, Any] | None:
        with self.connection() as conn:
            row = conn.execute("SELECT * FROM appointments WHERE id = ?", (appointment_id,)).fetchone()
        if row is None:
            return None
        record = dict(row)
        for flag in ("mri_scan_available", "used_ai"):
            if record[flag] is not None:
                record[flag] = bool(record[flag])
        if record["age"] is not None and float(record["age"]).is_integer():
            record["age"] = int(record["age"])
        return record

    def count(self) -> int:
        with self.connection() as conn:
            return conn.execute("SELECT COUNT(*) FROM appointments").fetchone()[0]
