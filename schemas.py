"""
API Schemas

ChroniCare request and response models.
Request models carry raw values; field rules (non-empty names, frequency
range, priority names) are enforced by the domain so that failures come back
as validation_error responses.
"""

from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from models import Priority


class RequestModel(BaseModel):
    @field_validator("*", mode="after")
    @classmethod
    def naive_local_datetimes(cls, value):
        # Domain timestamps are naive local time
        if isinstance(value, datetime) and value.tzinfo is not None:
            return value.astimezone().replace(tzinfo=None)
        return value


class ResponseModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)


# Requests

class PatientIn(RequestModel):
    name: str = Field(..., description="Patient's full name")
    condition: str = Field(..., description="Chronic condition(s), comma separated")
    email: Optional[str] = Field(None, description="Contact email")
    phone: Optional[str] = Field(None, description="Contact number, at least 10 digits")


class MedicationIn(RequestModel):
    name: str
    dosage: str = Field(..., description="e.g. 500mg")
    frequency_per_day: int = Field(..., description="Doses per day, 1-24")
    instructions: Optional[str] = None
    active: bool = True


class DoseTakenIn(RequestModel):
    scheduled_time: Optional[datetime] = Field(None, description="Slot the dose was meant for")
    notes: Optional[str] = None


class DoseMissedIn(RequestModel):
    scheduled_time: Optional[datetime] = None
    reason: Optional[str] = None


class MedicationReminderIn(RequestModel):
    patient_id: int
    medication_id: Optional[int] = Field(None, description="Link to a medication; overrides name and dosage")
    medication_name: Optional[str] = None
    dosage: Optional[str] = None
    scheduled_time: Optional[datetime] = None
    priority: Optional[str] = Field(None, description="LOW|NORMAL|HIGH|URGENT, default NORMAL")
    reminder_hours_before: int = Field(0, description="0 means at the scheduled time")


class AppointmentReminderIn(RequestModel):
    patient_id: int
    doctor_name: Optional[str] = None
    location: Optional[str] = None
    appointment_type: Optional[str] = None
    appointment_time: Optional[datetime] = None
    priority: Optional[str] = Field(None, description="LOW|NORMAL|HIGH|URGENT, default HIGH")
    reminder_hours_before: int = 24
    duration_minutes: int = 30


class FollowUpIn(RequestModel):
    hours_before: int = Field(..., description="Lead time of the new reminder")


class DeliveryStatusIn(RequestModel):
    status: str = Field(..., description="PENDING|SENT|DELIVERED|FAILED")
    reason: Optional[str] = Field(None, description="Failure reason")


# Responses

class PatientOut(ResponseModel):
    id: int
    name: str
    condition: str
    email: Optional[str] = None
    phone: Optional[str] = None
    created_at: datetime
    total_medication_count: int
    active_medication_count: int
    overall_adherence: float
    adherence_percentage: str
    adherence_status: str


class MedicationOut(ResponseModel):
    id: int
    patient_id: Optional[int] = None
    name: str
    dosage: str
    frequency_per_day: int
    instructions: str
    active: bool
    doses_taken: int
    doses_missed: int
    total_doses_recorded: int
    adherence_rate: float
    adherence_percentage: str
    adherence_status: str
    schedule_times: List[str]
    next_scheduled_time: str
    created_at: datetime
    last_taken: Optional[datetime] = None


class DoseEventOut(BaseModel):
    message: str
    medication: MedicationOut


class HealthRecordOut(ResponseModel):
    id: int
    record_type: str
    medication_id: Optional[int] = None
    medication_name: str
    dosage: str
    time_scheduled: Optional[datetime] = None
    time_taken: Optional[datetime] = None
    taken: bool
    missed_reason: Optional[str] = None
    notes: str
    priority: Priority
    timing_status: str
    summary: str
    created_at: datetime


class NotificationOut(BaseModel):
    id: int
    type: str
    patient_id: int
    priority: str
    is_high_priority: bool
    is_urgent: bool
    created_at: datetime
    scheduled_time: Optional[datetime] = None
    sent: bool
    sent_time: Optional[datetime] = None
    delivery_method: Optional[str] = None
    resolved_delivery_method: str
    delivery_status: str
    failure_reason: Optional[str] = None
    is_due: bool
    is_overdue: bool
    subject: str
    content: str
    reminder_hours_before: int
    # Medication reminders
    medication_id: Optional[int] = None
    medication_name: Optional[str] = None
    dosage: Optional[str] = None
    timing_description: Optional[str] = None
    # Appointment reminders
    doctor_name: Optional[str] = None
    location: Optional[str] = None
    appointment_type: Optional[str] = None
    appointment_time: Optional[datetime] = None
    duration_minutes: Optional[int] = None
    time_until: Optional[str] = None


class SendResultOut(BaseModel):
    result: str
    notification: NotificationOut


class SendDueOut(BaseModel):
    message: str
    total_processed: int
    results: List[Dict[str, object]]


# For metrics and dashboard visuals
class Metric(BaseModel):
    label: str
    value: float
    trend: Optional[float] = None
    updated_at: Optional[datetime] = None
