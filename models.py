"""
Domain entities: patients, their medications and per-dose health records.

Entities are built through ``create`` factories and changed through ``update``;
both return a Result so a rejected value never reaches the entity.
"""

import re
import threading
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

import adherence
import scheduling
from errors import ValidationError
from result import Failure, Result, Success

DATETIME_FORMAT = "%Y-%m-%d %H:%M"
TIME_FORMAT = "%H:%M"


class Priority(str, Enum):
    LOW = "LOW"
    NORMAL = "NORMAL"
    HIGH = "HIGH"
    URGENT = "URGENT"

    @classmethod
    def parse(cls, value: Any) -> "Priority":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().upper())
        except ValueError:
            raise ValidationError(
                "Priority must be LOW, NORMAL, HIGH, or URGENT", details={"priority": value}
            ) from None


def _required_text(value: Optional[str], field: str, message: str) -> str:
    if value is None or not str(value).strip():
        raise ValidationError(message, details={"field": field})
    return str(value).strip()


def _optional_email(value: Optional[str]) -> Optional[str]:
    if value is None or not value.strip():
        return None
    if "@" not in value or "." not in value:
        raise ValidationError("Invalid email format", details={"email": value})
    return value.strip().lower()


def _optional_phone(value: Optional[str]) -> Optional[str]:
    if value is None or not value.strip():
        return None
    cleaned = re.sub(r"[^0-9+\-\s]", "", value).strip()
    if len(re.sub(r"[^0-9]", "", cleaned)) < 10:
        raise ValidationError("Phone number must have at least 10 digits", details={"phone": value})
    return cleaned


class Patient:
    """A chronic-disease patient. Owns its medications and health records."""

    FIELDS = ("name", "condition", "email", "phone")

    def __init__(
        self,
        name: str,
        condition: str,
        email: Optional[str] = None,
        phone: Optional[str] = None,
        id: Optional[int] = None,
        created_at: Optional[datetime] = None,
    ):
        self.id = id
        self.name = name
        self.condition = condition
        self.email = email
        self.phone = phone
        self.created_at = created_at or datetime.now()
        self._lock = threading.Lock()
        self._medications: Dict[int, "Medication"] = {}
        self._records: List["MedicationRecord"] = []

    @staticmethod
    def _validated(name, condition, email=None, phone=None) -> Dict[str, Any]:
        return {
            "name": _required_text(name, "name", "Name cannot be null or empty"),
            "condition": _required_text(condition, "condition", "Condition cannot be null or empty"),
            "email": _optional_email(email),
            "phone": _optional_phone(phone),
        }

    @classmethod
    def create(cls, name: str, condition: str, email: Optional[str] = None, phone: Optional[str] = None) -> Result:
        try:
            fields = cls._validated(name, condition, email, phone)
        except ValidationError as exc:
            return Failure(exc)
        return Success(cls(**fields))

    def update(self, **changes: Any) -> Result:
        unknown = set(changes) - set(self.FIELDS)
        if unknown:
            return Failure(ValidationError("Unknown patient fields", details={"fields": sorted(unknown)}))
        current = {field: getattr(self, field) for field in self.FIELDS}
        current.update(changes)
        try:
            fields = self._validated(**current)
        except ValidationError as exc:
            return Failure(exc)
        for field, value in fields.items():
            setattr(self, field, value)
        return Success(self)

    # Owned collections

    @property
    def medications(self) -> Tuple["Medication", ...]:
        with self._lock:
            return tuple(self._medications.values())

    @property
    def health_records(self) -> Tuple["MedicationRecord", ...]:
        with self._lock:
            return tuple(self._records)

    def add_medication(self, medication: "Medication") -> None:
        if medication.id is None:
            raise ValidationError("Medication must be saved before it is assigned to a patient")
        with self._lock:
            self._medications[medication.id] = medication
        medication.patient_id = self.id

    def detach_medication(self, medication_id: int) -> Optional["Medication"]:
        """Drop the medication from this patient without touching its back-reference."""
        with self._lock:
            return self._medications.pop(medication_id, None)

    def remove_medication(self, medication: "Medication") -> None:
        removed = self.detach_medication(medication.id)
        if removed is not None:
            removed.patient_id = None

    def add_health_record(self, record: "MedicationRecord") -> None:
        with self._lock:
            self._records.append(record)
        record.patient_id = self.id

    # Adherence

    @property
    def overall_adherence(self) -> float:
        return adherence.overall_adherence(m.adherence_rate for m in self.medications)

    @property
    def adherence_percentage(self) -> str:
        return adherence.adherence_percentage(self.overall_adherence)

    @property
    def adherence_status(self) -> str:
        return adherence.adherence_status(self.overall_adherence)

    @property
    def active_medication_count(self) -> int:
        return sum(1 for m in self.medications if m.active)

    @property
    def total_medication_count(self) -> int:
        return len(self.medications)

    def __repr__(self) -> str:
        return "Patient(id=%r, name=%r, condition=%r, medications=%d)" % (
            self.id, self.name, self.condition, self.total_medication_count,
        )


class Medication:
    """A prescribed medication with cumulative adherence counters."""

    FIELDS = ("name", "dosage", "frequency_per_day", "instructions", "active")

    def __init__(
        self,
        name: str,
        dosage: str,
        frequency_per_day: int,
        instructions: str = "",
        active: bool = True,
        doses_taken: int = 0,
        doses_missed: int = 0,
        id: Optional[int] = None,
        patient_id: Optional[int] = None,
        created_at: Optional[datetime] = None,
        last_taken: Optional[datetime] = None,
    ):
        self.id = id
        self.patient_id = patient_id
        self.name = name
        self.dosage = dosage
        self.instructions = instructions
        self.active = active
        self.doses_taken = doses_taken
        self.doses_missed = doses_missed
        self.created_at = created_at or datetime.now()
        self.last_taken = last_taken
        self._set_frequency(frequency_per_day)

    def _set_frequency(self, frequency_per_day: int) -> None:
        self._schedule_times = scheduling.schedule_times(frequency_per_day)
        self.frequency_per_day = frequency_per_day

    @staticmethod
    def _validated(name, dosage, frequency_per_day, instructions=None, active=True) -> Dict[str, Any]:
        scheduling.validate_frequency(frequency_per_day)
        return {
            "name": _required_text(name, "name", "Medication name cannot be null or empty"),
            "dosage": _required_text(dosage, "dosage", "Dosage cannot be null or empty"),
            "frequency_per_day": frequency_per_day,
            "instructions": (instructions or "").strip(),
            "active": bool(active),
        }

    @classmethod
    def create(
        cls,
        name: str,
        dosage: str,
        frequency_per_day: int,
        instructions: Optional[str] = None,
        active: bool = True,
        doses_taken: int = 0,
        doses_missed: int = 0,
    ) -> Result:
        try:
            fields = cls._validated(name, dosage, frequency_per_day, instructions, active)
            if doses_taken < 0 or doses_missed < 0:
                raise ValidationError("Dose counters cannot be negative")
        except ValidationError as exc:
            return Failure(exc)
        return Success(cls(doses_taken=doses_taken, doses_missed=doses_missed, **fields))

    def update(self, **changes: Any) -> Result:
        unknown = set(changes) - set(self.FIELDS)
        if unknown:
            return Failure(ValidationError("Unknown medication fields", details={"fields": sorted(unknown)}))
        current = {field: getattr(self, field) for field in self.FIELDS}
        current.update(changes)
        try:
            fields = self._validated(**current)
        except ValidationError as exc:
            return Failure(exc)
        frequency = fields.pop("frequency_per_day")
        if frequency != self.frequency_per_day:
            self._set_frequency(frequency)
        for field, value in fields.items():
            setattr(self, field, value)
        return Success(self)

    # Dose tracking

    def record_dose_taken(self, now: Optional[datetime] = None) -> None:
        self.doses_taken += 1
        self.last_taken = now or datetime.now()

    def record_dose_missed(self) -> None:
        self.doses_missed += 1

    @property
    def total_doses_recorded(self) -> int:
        return self.doses_taken + self.doses_missed

    @property
    def adherence_rate(self) -> float:
        return adherence.adherence_rate(self.doses_taken, self.doses_missed)

    @property
    def adherence_percentage(self) -> str:
        return adherence.adherence_percentage(self.adherence_rate)

    @property
    def adherence_status(self) -> str:
        return adherence.adherence_status(self.adherence_rate)

    # Scheduling

    @property
    def schedule_times(self) -> Tuple[str, ...]:
        return self._schedule_times

    @property
    def next_scheduled_time(self) -> str:
        return scheduling.next_scheduled_time(self._schedule_times)

    def is_due_soon(self, now: Optional[datetime] = None) -> bool:
        return scheduling.is_due_soon(self.frequency_per_day, self.last_taken, now)

    def __repr__(self) -> str:
        return "Medication(id=%r, name=%r, dosage=%r, frequency_per_day=%d, adherence=%s)" % (
            self.id, self.name, self.dosage, self.frequency_per_day, self.adherence_percentage,
        )


class MedicationRecord:
    """One logged dose of a medication, either taken or missed."""

    record_type = "MEDICATION"
    ON_TIME_WINDOW_MINUTES = 15
    OVERDUE_GRACE_MINUTES = 30

    def __init__(
        self,
        medication: Medication,
        time_scheduled: Optional[datetime] = None,
        priority: Priority = Priority.NORMAL,
        created_at: Optional[datetime] = None,
    ):
        self.id: Optional[int] = None
        self.patient_id: Optional[int] = None
        self.medication_id = medication.id
        self.medication_name = medication.name
        self.dosage = medication.dosage
        self.time_scheduled = time_scheduled
        self.time_taken: Optional[datetime] = None
        self.taken = False
        self.missed_reason: Optional[str] = None
        self.notes = ""
        self.priority = priority
        self.created_at = created_at or datetime.now()

    def mark_taken(self, time_taken: Optional[datetime] = None, notes: Optional[str] = None) -> None:
        self.taken = True
        self.time_taken = time_taken or datetime.now()
        self.missed_reason = None
        if notes and notes.strip():
            self.notes = notes.strip()

    def mark_missed(self, reason: Optional[str] = None) -> None:
        self.taken = False
        self.time_taken = None
        self.missed_reason = reason.strip() if reason else ""

    def _minutes_late(self) -> Optional[int]:
        if not self.taken or self.time_taken is None or self.time_scheduled is None:
            return None
        return int((self.time_taken - self.time_scheduled).total_seconds() / 60)

    @property
    def timing_status(self) -> str:
        minutes = self._minutes_late()
        if minutes is None:
            return "N/A"
        if abs(minutes) <= self.ON_TIME_WINDOW_MINUTES:
            return "On Time"
        if minutes > 0:
            return "Late (%d minutes)" % minutes
        return "Early (%d minutes)" % abs(minutes)

    @property
    def was_taken_on_time(self) -> bool:
        minutes = self._minutes_late()
        return minutes is not None and abs(minutes) <= self.ON_TIME_WINDOW_MINUTES

    def is_overdue(self, now: Optional[datetime] = None) -> bool:
        if self.taken or self.time_scheduled is None:
            return False
        now = now or datetime.now()
        return (now - self.time_scheduled).total_seconds() > self.OVERDUE_GRACE_MINUTES * 60

    @property
    def summary(self) -> str:
        if self.taken:
            status = "Taken"
            when = " at %s" % self.time_taken.strftime(TIME_FORMAT) if self.time_taken else ""
        else:
            status = "Missed"
            when = " (scheduled for %s)" % self.time_scheduled.strftime(TIME_FORMAT) if self.time_scheduled else ""
        return "Medication: %s (%s) - %s%s" % (self.medication_name, self.dosage, status, when)

    @property
    def details(self) -> str:
        scheduled = self.time_scheduled.strftime(DATETIME_FORMAT) if self.time_scheduled else "Not scheduled"
        lines = [
            "Medication Record Details:",
            "• Medication: %s" % self.medication_name,
            "• Dosage: %s" % self.dosage,
            "• Scheduled Time: %s" % scheduled,
            "• Status: %s" % ("Taken" if self.taken else "Missed"),
        ]
        if self.taken and self.time_taken:
            lines.append("• Taken Time: %s" % self.time_taken.strftime(DATETIME_FORMAT))
            lines.append("• Timing: %s" % self.timing_status)
        if not self.taken and self.missed_reason:
            lines.append("• Missed Reason: %s" % self.missed_reason)
        if self.notes:
            lines.append("• Notes: %s" % self.notes)
        return "\n".join(lines) + "\n"
