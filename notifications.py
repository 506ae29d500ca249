"""
Patient notifications.

Two variants share the common delivery state in ``NotificationBase``:
medication reminders and appointment reminders. Variant behaviour (subject,
content, sending, follow-ups) lives in the module-level functions below and
dispatches on the variant with an exhaustive ``match``.
"""

from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Optional, Union

from errors import StateError, ValidationError
from models import DATETIME_FORMAT, TIME_FORMAT, Medication, Priority
from result import Failure, Result, Success

OVERDUE_GRACE = timedelta(minutes=15)


class NotificationKind(str, Enum):
    MEDICATION = "MEDICATION"
    APPOINTMENT = "APPOINTMENT"


class DeliveryMethod(str, Enum):
    EMAIL = "EMAIL"
    SMS = "SMS"
    PUSH = "PUSH"
    ALL = "ALL"

    @classmethod
    def parse(cls, value: Any) -> "DeliveryMethod":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().upper())
        except ValueError:
            raise ValidationError(
                "Delivery method must be EMAIL, SMS, PUSH, or ALL", details={"delivery_method": value}
            ) from None


class DeliveryStatus(str, Enum):
    PENDING = "PENDING"
    SENT = "SENT"
    DELIVERED = "DELIVERED"
    FAILED = "FAILED"

    @classmethod
    def parse(cls, value: Any) -> "DeliveryStatus":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().upper())
        except ValueError:
            raise ValidationError(
                "Delivery status must be PENDING, SENT, DELIVERED, or FAILED", details={"delivery_status": value}
            ) from None


DEFAULT_METHOD_BY_PRIORITY = {
    Priority.URGENT: DeliveryMethod.ALL,
    Priority.HIGH: DeliveryMethod.SMS,
    Priority.NORMAL: DeliveryMethod.PUSH,
    Priority.LOW: DeliveryMethod.EMAIL,
}


def _clock(dt: datetime) -> str:
    return "%d:%s" % (dt.hour % 12 or 12, dt.strftime("%M %p"))


def format_long(dt: datetime) -> str:
    """e.g. ``Monday, March 2, 2026 at 9:30 AM``"""
    return "%s %d, %d at %s" % (dt.strftime("%A, %B"), dt.day, dt.year, _clock(dt))


class NotificationBase:
    """State shared by every notification: priority, schedule and delivery."""

    kind: NotificationKind

    def __init__(
        self,
        priority: Priority = Priority.NORMAL,
        scheduled_time: Optional[datetime] = None,
        patient_id: Optional[int] = None,
        created_at: Optional[datetime] = None,
    ):
        self.id: Optional[int] = None
        self.patient_id = patient_id
        self.priority = priority
        self.created_at = created_at or datetime.now()
        self.scheduled_time = scheduled_time
        self.sent = False
        self.sent_time: Optional[datetime] = None
        self.delivery_method: Optional[DeliveryMethod] = None
        self.delivery_status = DeliveryStatus.PENDING
        self.failure_reason: Optional[str] = None

    # Validated setters; a Failure leaves the notification untouched

    def set_priority(self, value: Any) -> Result:
        try:
            self.priority = Priority.parse(value)
        except ValidationError as exc:
            return Failure(exc)
        return Success(self)

    def set_delivery_method(self, value: Any) -> Result:
        try:
            self.delivery_method = DeliveryMethod.parse(value)
        except ValidationError as exc:
            return Failure(exc)
        return Success(self)

    def set_delivery_status(self, value: Any) -> Result:
        try:
            self.delivery_status = DeliveryStatus.parse(value)
        except ValidationError as exc:
            return Failure(exc)
        return Success(self)

    @property
    def is_high_priority(self) -> bool:
        return self.priority in (Priority.HIGH, Priority.URGENT)

    @property
    def is_urgent(self) -> bool:
        return self.priority is Priority.URGENT

    def is_due(self, now: Optional[datetime] = None) -> bool:
        if self.scheduled_time is None:
            return True
        return (now or datetime.now()) >= self.scheduled_time

    def is_overdue(self, now: Optional[datetime] = None) -> bool:
        if self.sent or self.scheduled_time is None:
            return False
        return (now or datetime.now()) > self.scheduled_time + OVERDUE_GRACE

    def resolve_delivery_method(self) -> DeliveryMethod:
        if self.delivery_method is not None:
            return self.delivery_method
        return DEFAULT_METHOD_BY_PRIORITY[self.priority]

    def mark_sent(self, now: Optional[datetime] = None) -> None:
        self.sent = True
        self.sent_time = now or datetime.now()
        self.delivery_status = DeliveryStatus.SENT

    def mark_delivered(self) -> None:
        if not self.sent:
            raise StateError("Only sent notifications can be marked delivered", details={"id": self.id})
        self.delivery_status = DeliveryStatus.DELIVERED

    def mark_failed(self, reason: Optional[str] = None) -> None:
        if not self.sent:
            raise StateError("Only sent notifications can be marked failed", details={"id": self.id})
        self.delivery_status = DeliveryStatus.FAILED
        self.failure_reason = reason

    def age_minutes(self, now: Optional[datetime] = None) -> int:
        return int(((now or datetime.now()) - self.created_at).total_seconds() // 60)

    def age_hours(self, now: Optional[datetime] = None) -> int:
        return self.age_minutes(now) // 60

    @property
    def formatted_created_at(self) -> str:
        return self.created_at.strftime(DATETIME_FORMAT)

    @property
    def formatted_scheduled_time(self) -> str:
        return self.scheduled_time.strftime(DATETIME_FORMAT) if self.scheduled_time else "Not scheduled"

    @property
    def formatted_sent_time(self) -> str:
        return self.sent_time.strftime(DATETIME_FORMAT) if self.sent_time else "Not sent"

    def __repr__(self) -> str:
        return "%s(id=%r, priority=%s, sent=%r, scheduled=%s)" % (
            type(self).__name__, self.id, self.priority.value, self.sent, self.formatted_scheduled_time,
        )


def _lead_hours(value: Any, maximum: int) -> int:
    if not isinstance(value, int) or isinstance(value, bool) or not 0 <= value <= maximum:
        raise ValidationError(
            "Reminder hours must be between 0 and %d" % maximum, details={"reminder_hours_before": value}
        )
    return value


def _required(value: Optional[str], field: str, message: str) -> str:
    if value is None or not str(value).strip():
        raise ValidationError(message, details={"field": field})
    return str(value).strip()


class MedicationReminder(NotificationBase):
    kind = NotificationKind.MEDICATION
    MAX_LEAD_HOURS = 24

    def __init__(
        self,
        medication_name: str,
        dosage: str,
        scheduled_time: Optional[datetime] = None,
        priority: Priority = Priority.NORMAL,
        reminder_hours_before: int = 0,
        medication: Optional[Medication] = None,
        **kwargs: Any,
    ):
        super().__init__(priority=priority, scheduled_time=scheduled_time, **kwargs)
        self.medication_name = medication_name
        self.dosage = dosage
        self.reminder_hours_before = reminder_hours_before
        self.medication = medication

    @classmethod
    def create(
        cls,
        medication_name: Optional[str] = None,
        dosage: Optional[str] = None,
        scheduled_time: Optional[datetime] = None,
        priority: Any = Priority.NORMAL,
        reminder_hours_before: int = 0,
        medication: Optional[Medication] = None,
        patient_id: Optional[int] = None,
    ) -> Result:
        if medication is not None:
            medication_name, dosage = medication.name, medication.dosage
        try:
            reminder = cls(
                medication_name=_required(medication_name, "medication_name", "Medication reminder must have a medication name"),
                dosage=_required(dosage, "dosage", "Medication reminder must have a dosage"),
                scheduled_time=scheduled_time,
                priority=Priority.parse(priority if priority is not None else Priority.NORMAL),
                reminder_hours_before=_lead_hours(reminder_hours_before, cls.MAX_LEAD_HOURS),
                medication=medication,
                patient_id=patient_id,
            )
        except ValidationError as exc:
            return Failure(exc)
        return Success(reminder)

    @property
    def medication_id(self) -> Optional[int]:
        return self.medication.id if self.medication is not None else None

    def set_reminder_hours_before(self, hours: Any) -> Result:
        try:
            self.reminder_hours_before = _lead_hours(hours, self.MAX_LEAD_HOURS)
        except ValidationError as exc:
            return Failure(exc)
        return Success(self)

    @property
    def is_reminder(self) -> bool:
        return self.reminder_hours_before > 0

    @property
    def timing_description(self) -> str:
        if self.reminder_hours_before == 0:
            return "Medication time notification"
        if self.reminder_hours_before == 1:
            return "1 hour reminder"
        return "%d hour reminder" % self.reminder_hours_before


class AppointmentReminder(NotificationBase):
    kind = NotificationKind.APPOINTMENT
    MAX_LEAD_HOURS = 168
    MAX_DURATION_MINUTES = 480

    def __init__(
        self,
        doctor_name: str,
        location: str,
        appointment_time: datetime,
        appointment_type: str = "",
        reminder_hours_before: int = 24,
        duration_minutes: int = 30,
        priority: Priority = Priority.HIGH,
        **kwargs: Any,
    ):
        super().__init__(
            priority=priority,
            scheduled_time=appointment_time - timedelta(hours=reminder_hours_before),
            **kwargs,
        )
        self.doctor_name = doctor_name
        self.location = location
        self.appointment_type = appointment_type
        self.appointment_time = appointment_time
        self.reminder_hours_before = reminder_hours_before
        self.duration_minutes = duration_minutes

    @classmethod
    def create(
        cls,
        doctor_name: Optional[str] = None,
        location: Optional[str] = None,
        appointment_time: Optional[datetime] = None,
        appointment_type: Optional[str] = None,
        reminder_hours_before: int = 24,
        duration_minutes: int = 30,
        priority: Any = Priority.HIGH,
        patient_id: Optional[int] = None,
    ) -> Result:
        try:
            if appointment_time is None:
                raise ValidationError(
                    "Appointment reminder must have an appointment time", details={"field": "appointment_time"}
                )
            reminder = cls(
                doctor_name=_required(doctor_name, "doctor_name", "Appointment reminder must have a doctor name"),
                location=_required(location, "location", "Appointment reminder must have a location"),
                appointment_time=appointment_time,
                appointment_type=(appointment_type or "").strip(),
                reminder_hours_before=_lead_hours(reminder_hours_before, cls.MAX_LEAD_HOURS),
                duration_minutes=_duration(duration_minutes),
                priority=Priority.parse(priority if priority is not None else Priority.HIGH),
                patient_id=patient_id,
            )
        except ValidationError as exc:
            return Failure(exc)
        return Success(reminder)

    def set_reminder_hours_before(self, hours: Any) -> Result:
        try:
            self.reminder_hours_before = _lead_hours(hours, self.MAX_LEAD_HOURS)
        except ValidationError as exc:
            return Failure(exc)
        self.scheduled_time = self.appointment_time - timedelta(hours=self.reminder_hours_before)
        return Success(self)

    def set_appointment_time(self, appointment_time: Optional[datetime]) -> Result:
        if appointment_time is None:
            return Failure(ValidationError("Appointment reminder must have an appointment time"))
        self.appointment_time = appointment_time
        self.scheduled_time = appointment_time - timedelta(hours=self.reminder_hours_before)
        return Success(self)

    def set_duration_minutes(self, minutes: Any) -> Result:
        try:
            self.duration_minutes = _duration(minutes)
        except ValidationError as exc:
            return Failure(exc)
        return Success(self)

    def is_today(self, now: Optional[datetime] = None) -> bool:
        return self.appointment_time.date() == (now or datetime.now()).date()

    def is_soon(self, now: Optional[datetime] = None) -> bool:
        """Appointment starts within the next four hours."""
        remaining = self.appointment_time - (now or datetime.now())
        return timedelta(0) <= remaining <= timedelta(hours=4)

    def time_until(self, now: Optional[datetime] = None) -> str:
        remaining = self.appointment_time - (now or datetime.now())
        if remaining < timedelta(0):
            return "Past appointment"
        total_minutes = int(remaining.total_seconds() // 60)
        days, rest = divmod(total_minutes, 24 * 60)
        hours, minutes = divmod(rest, 60)
        if days > 0:
            return "%d day(s), %d hour(s)" % (days, hours)
        if hours > 0:
            return "%d hour(s), %d minute(s)" % (hours, minutes)
        return "%d minute(s)" % minutes

    @property
    def formatted_appointment_time(self) -> str:
        return format_long(self.appointment_time)


def _duration(value: Any) -> int:
    if not isinstance(value, int) or isinstance(value, bool) or not 0 < value <= AppointmentReminder.MAX_DURATION_MINUTES:
        raise ValidationError("Duration must be between 1 and 480 minutes", details={"duration_minutes": value})
    return value


Notification = Union[MedicationReminder, AppointmentReminder]


def _unknown(notification: Any) -> TypeError:
    return TypeError("Unsupported notification type: %s" % type(notification).__name__)


# Subject lines

def get_subject(notification: Notification) -> str:
    match notification:
        case MedicationReminder():
            return _medication_subject(notification)
        case AppointmentReminder():
            return _appointment_subject(notification)
        case _:
            raise _unknown(notification)


def _medication_subject(n: MedicationReminder) -> str:
    prefix = "URGENT: " if n.is_urgent else "IMPORTANT: " if n.is_high_priority else ""
    subject = "%sTime to take %s" % (prefix, n.medication_name)
    if n.is_reminder:
        subject += " (%dh reminder)" % n.reminder_hours_before
    return subject


def _appointment_tier(hours: int) -> str:
    if hours <= 2:
        return "URGENT"
    if hours <= 24:
        return "REMINDER"
    return "NOTICE"


def _appointment_subject(n: AppointmentReminder) -> str:
    at = n.appointment_time
    if n.reminder_hours_before <= 24:
        when = "%s %d at %s" % (at.strftime("%b"), at.day, _clock(at))
    else:
        when = "%s %d, %d" % (at.strftime("%b"), at.day, at.year)
    return "%s: Appointment with Dr. %s - %s" % (_appointment_tier(n.reminder_hours_before), n.doctor_name, when)


# Message bodies

def get_content(notification: Notification) -> str:
    match notification:
        case MedicationReminder():
            return _medication_content(notification)
        case AppointmentReminder():
            return _appointment_content(notification)
        case _:
            raise _unknown(notification)


def _medication_content(n: MedicationReminder) -> str:
    if n.is_urgent:
        parts = ["🚨 URGENT MEDICATION REMINDER 🚨\n\n"]
    elif n.is_high_priority:
        parts = ["⚠️ IMPORTANT MEDICATION REMINDER ⚠️\n\n"]
    else:
        parts = ["⏰ Medication Reminder\n\n"]

    parts.append("It's time to take your medication:\n\n")
    parts.append("💊 Medication: %s\n" % n.medication_name)
    parts.append("📏 Dosage: %s\n" % n.dosage)
    if n.scheduled_time is not None:
        parts.append("🕐 Scheduled Time: %s\n" % n.scheduled_time.strftime(TIME_FORMAT))

    medication = n.medication
    if medication is not None:
        if medication.instructions:
            parts.append("📋 Instructions: %s\n" % medication.instructions)
        rate = medication.adherence_rate
        if rate < 0.7:
            parts.append(
                "\n🎯 Your current adherence is %s. Taking this medication will help improve your health outcomes!"
                % medication.adherence_percentage
            )
        elif rate >= 0.9:
            parts.append(
                "\n🌟 Great job! You're maintaining excellent medication adherence at %s!"
                % medication.adherence_percentage
            )

    parts.append("\n\nTap here to mark as taken or provide a reason if missed.")
    return "".join(parts)


def _appointment_content(n: AppointmentReminder) -> str:
    tier = _appointment_tier(n.reminder_hours_before)
    headers = {
        "URGENT": "🚨 URGENT APPOINTMENT REMINDER 🚨\n\n",
        "REMINDER": "📅 Appointment Reminder\n\n",
        "NOTICE": "📋 Upcoming Appointment Notice\n\n",
    }
    parts = [
        headers[tier],
        "You have an upcoming appointment:\n\n",
        "👨‍⚕️ Doctor: Dr. %s\n" % n.doctor_name,
        "🏥 Location: %s\n" % n.location,
        "🕐 Date & Time: %s\n" % format_long(n.appointment_time),
    ]
    if n.appointment_type:
        parts.append("🩺 Type: %s\n" % n.appointment_type)
    if n.duration_minutes > 0:
        parts.append("⏱️ Duration: %d minutes\n" % n.duration_minutes)

    if tier == "URGENT":
        parts.append("\n⚠️ Your appointment is in %d hour(s). Please prepare to leave soon!" % n.reminder_hours_before)
        parts.append("\n🚗 Consider traffic and parking time.")
    elif tier == "REMINDER":
        parts.append("\n📝 Reminder: Your appointment is tomorrow.")
        parts.append("\n✅ Please confirm your attendance if required.")
    else:
        parts.append("\n📅 This is an advance notice for your upcoming appointment.")
        parts.append("\n📞 Contact the office if you need to reschedule.")

    parts.append("\n\n📋 Preparation:")
    parts.append("\n• Bring your insurance card and ID")
    parts.append("\n• Arrive 15 minutes early for check-in")
    parts.append("\n• Bring a list of current medications")

    kind = n.appointment_type.lower()
    if "blood" in kind or "lab" in kind:
        parts.append("\n• Fasting may be required - check with your doctor")
    if "physical" in kind or "exam" in kind:
        parts.append("\n• Wear comfortable, easily removable clothing")
    return "".join(parts)


# Sending

def send(notification: Notification, recipient: Optional[str] = None, now: Optional[datetime] = None) -> str:
    """
    Pick the delivery channel for the variant, mark the notification sent and
    return a delivery report. Calling it again re-marks the sent time.
    """
    match notification:
        case MedicationReminder():
            headline = _send_medication(notification)
        case AppointmentReminder():
            headline = _send_appointment(notification)
        case _:
            raise _unknown(notification)

    notification.mark_sent(now)
    lines = [
        headline,
        "Delivery Details:",
        "• Method: %s" % notification.delivery_method.value,
        "• Time: %s" % notification.formatted_sent_time,
        "• Recipient: %s" % (recipient or "Unknown"),
    ]
    if isinstance(notification, AppointmentReminder):
        lines.append("• Appointment: %s" % notification.formatted_appointment_time)
    return "\n".join(lines)


def _send_medication(n: MedicationReminder) -> str:
    if n.is_urgent:
        n.delivery_method = DeliveryMethod.ALL
        return "SUCCESS: Urgent medication notification sent via SMS, email, and push notification"
    if n.is_high_priority:
        n.delivery_method = DeliveryMethod.SMS
        return "SUCCESS: High priority medication notification sent via SMS and push notification"
    n.delivery_method = DeliveryMethod.PUSH
    return "SUCCESS: Medication notification sent via push notification"


def _send_appointment(n: AppointmentReminder) -> str:
    tier = _appointment_tier(n.reminder_hours_before)
    if tier == "URGENT":
        n.delivery_method = DeliveryMethod.ALL
        n.priority = Priority.URGENT
        return "SUCCESS: Urgent appointment reminder sent via SMS, email, and push notification"
    n.delivery_method = DeliveryMethod.EMAIL
    if tier == "REMINDER":
        return "SUCCESS: Appointment reminder sent via email and push notification"
    return "SUCCESS: Early appointment reminder sent via email"


# Follow-ups

def create_follow_up(notification: Notification, hours_before: int) -> Result:
    """
    A second reminder for the same event, ``hours_before`` ahead of it.

    Medication follow-ups need the base reminder to be scheduled and fail with
    StateError otherwise.
    """
    match notification:
        case MedicationReminder():
            if notification.scheduled_time is None:
                return Failure(StateError("Cannot create reminder without scheduled time", details={"id": notification.id}))
            return MedicationReminder.create(
                medication_name=notification.medication_name,
                dosage=notification.dosage,
                scheduled_time=notification.scheduled_time - timedelta(hours=hours_before),
                priority=Priority.HIGH,
                reminder_hours_before=hours_before,
                medication=notification.medication,
                patient_id=notification.patient_id,
            )
        case AppointmentReminder():
            return AppointmentReminder.create(
                doctor_name=notification.doctor_name,
                location=notification.location,
                appointment_time=notification.appointment_time,
                appointment_type=notification.appointment_type,
                reminder_hours_before=hours_before,
                duration_minutes=notification.duration_minutes,
                patient_id=notification.patient_id,
            )
        case _:
            raise _unknown(notification)
