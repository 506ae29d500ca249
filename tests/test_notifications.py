from datetime import datetime, timedelta

import pytest

from errors import StateError, ValidationError
from models import Medication, Priority
from notifications import (
    AppointmentReminder,
    DeliveryMethod,
    DeliveryStatus,
    MedicationReminder,
    create_follow_up,
    format_long,
    get_content,
    get_subject,
    send,
)

NOW = datetime(2026, 3, 2, 9, 0)


def medication_reminder(priority=Priority.NORMAL, scheduled_time=NOW, **kwargs):
    return MedicationReminder.create(
        "Metformin", "500mg", scheduled_time=scheduled_time, priority=priority, patient_id=1, **kwargs
    ).unwrap()


def appointment_reminder(hours_before=24, appointment_type="Regular Checkup", **kwargs):
    return AppointmentReminder.create(
        "Smith", "Main Street Medical Center", NOW + timedelta(days=1), appointment_type,
        reminder_hours_before=hours_before, patient_id=1, **kwargs
    ).unwrap()


class TestMedicationReminder:
    def test_defaults(self):
        reminder = medication_reminder()
        assert reminder.delivery_status is DeliveryStatus.PENDING
        assert not reminder.sent
        assert reminder.delivery_method is None
        assert reminder.resolve_delivery_method() is DeliveryMethod.PUSH
        assert reminder.timing_description == "Medication time notification"

    @pytest.mark.parametrize(
        "priority,method",
        [
            (Priority.URGENT, DeliveryMethod.ALL),
            (Priority.HIGH, DeliveryMethod.SMS),
            (Priority.NORMAL, DeliveryMethod.PUSH),
            (Priority.LOW, DeliveryMethod.EMAIL),
        ],
    )
    def test_default_method_follows_priority(self, priority, method):
        assert medication_reminder(priority).resolve_delivery_method() is method

    def test_missing_name_rejected(self):
        result = MedicationReminder.create(None, "500mg")
        assert result.is_failure()
        assert isinstance(result.error, ValidationError)

    @pytest.mark.parametrize("hours", [-1, 25])
    def test_lead_hours_bounds(self, hours):
        assert MedicationReminder.create("Metformin", "500mg", reminder_hours_before=hours).is_failure()

    def test_linked_medication_supplies_name_and_dosage(self):
        medication = Medication.create("Aspirin", "81mg", 1).unwrap()
        medication.id = 3
        reminder = MedicationReminder.create(medication=medication).unwrap()
        assert (reminder.medication_name, reminder.dosage, reminder.medication_id) == ("Aspirin", "81mg", 3)

    def test_invalid_priority_leaves_state_unchanged(self):
        reminder = medication_reminder(Priority.HIGH)
        result = reminder.set_priority("CRITICAL")
        assert result.is_failure()
        assert isinstance(result.error, ValidationError)
        assert reminder.priority is Priority.HIGH

    def test_set_delivery_method(self):
        reminder = medication_reminder()
        assert reminder.set_delivery_method("sms").is_success()
        assert reminder.resolve_delivery_method() is DeliveryMethod.SMS
        assert reminder.set_delivery_method("PIGEON").is_failure()
        assert reminder.delivery_method is DeliveryMethod.SMS

    def test_due_and_overdue(self):
        reminder = medication_reminder()
        assert not reminder.is_due(NOW - timedelta(minutes=1))
        assert reminder.is_due(NOW)
        assert not reminder.is_overdue(NOW + timedelta(minutes=15))
        assert reminder.is_overdue(NOW + timedelta(minutes=16))
        reminder.mark_sent(NOW + timedelta(minutes=20))
        assert not reminder.is_overdue(NOW + timedelta(hours=1))

    def test_unscheduled_is_due_but_never_overdue(self):
        reminder = medication_reminder(scheduled_time=None)
        assert reminder.is_due(NOW)
        assert not reminder.is_overdue(NOW + timedelta(days=1))

    def test_subjects(self):
        assert get_subject(medication_reminder()) == "Time to take Metformin"
        assert get_subject(medication_reminder(Priority.HIGH)) == "IMPORTANT: Time to take Metformin"
        assert get_subject(medication_reminder(Priority.URGENT, reminder_hours_before=2)) == (
            "URGENT: Time to take Metformin (2h reminder)"
        )

    def test_content(self):
        content = get_content(medication_reminder(Priority.URGENT))
        assert content.startswith("🚨 URGENT MEDICATION REMINDER 🚨")
        assert "💊 Medication: Metformin" in content
        assert "🕐 Scheduled Time: 09:00" in content
        assert content.endswith("Tap here to mark as taken or provide a reason if missed.")

    def test_content_mentions_adherence_of_linked_medication(self):
        medication = Medication.create("Aspirin", "81mg", 1, "Take with food", doses_taken=1, doses_missed=9).unwrap()
        content = get_content(MedicationReminder.create(medication=medication).unwrap())
        assert "📋 Instructions: Take with food" in content
        assert "Your current adherence is 10.0%" in content

    def test_send_urgent_uses_all_channels(self):
        reminder = medication_reminder(Priority.URGENT)
        report = send(reminder, recipient="Sarah Johnson", now=NOW)
        assert reminder.sent
        assert reminder.sent_time == NOW
        assert reminder.delivery_method is DeliveryMethod.ALL
        assert reminder.delivery_status is DeliveryStatus.SENT
        assert report.startswith("SUCCESS: Urgent medication notification")
        assert "• Method: ALL" in report
        assert "• Recipient: Sarah Johnson" in report

    def test_delivered_requires_sent(self):
        reminder = medication_reminder()
        with pytest.raises(StateError):
            reminder.mark_delivered()
        reminder.mark_sent(NOW)
        reminder.mark_delivered()
        assert reminder.delivery_status is DeliveryStatus.DELIVERED

    def test_mark_failed(self):
        reminder = medication_reminder()
        with pytest.raises(StateError):
            reminder.mark_failed("bounced")
        assert reminder.delivery_status is DeliveryStatus.PENDING
        reminder.mark_sent(NOW)
        reminder.mark_failed("bounced")
        assert reminder.delivery_status is DeliveryStatus.FAILED
        assert reminder.failure_reason == "bounced"

    def test_follow_up(self):
        follow_up = create_follow_up(medication_reminder(), 2).unwrap()
        assert follow_up.scheduled_time == NOW - timedelta(hours=2)
        assert follow_up.priority is Priority.HIGH
        assert follow_up.reminder_hours_before == 2
        assert follow_up.patient_id == 1

    def test_follow_up_needs_schedule(self):
        result = create_follow_up(medication_reminder(scheduled_time=None), 1)
        assert result.is_failure()
        assert isinstance(result.error, StateError)

    def test_lead_time_marks_reminder(self):
        reminder = medication_reminder()
        assert not reminder.is_reminder
        assert reminder.set_reminder_hours_before(1).is_success()
        assert reminder.is_reminder
        assert reminder.timing_description == "1 hour reminder"
        assert reminder.set_reminder_hours_before(30).is_failure()
        assert reminder.reminder_hours_before == 1

    def test_set_delivery_status(self):
        reminder = medication_reminder()
        assert reminder.set_delivery_status("pending").is_success()
        assert reminder.set_delivery_status("LOST").is_failure()
        assert reminder.delivery_status is DeliveryStatus.PENDING

    def test_age(self):
        reminder = MedicationReminder("Metformin", "500mg", created_at=NOW)
        assert reminder.age_minutes(NOW + timedelta(minutes=125)) == 125
        assert reminder.age_hours(NOW + timedelta(minutes=125)) == 2


class TestAppointmentReminder:
    def test_scheduled_ahead_of_appointment(self):
        reminder = appointment_reminder(hours_before=24)
        assert reminder.scheduled_time == NOW
        assert reminder.priority is Priority.HIGH
        assert reminder.resolve_delivery_method() is DeliveryMethod.SMS

    def test_requires_appointment_time(self):
        result = AppointmentReminder.create("Smith", "Clinic", None)
        assert result.is_failure()

    @pytest.mark.parametrize("kwargs", [{"reminder_hours_before": 169}, {"duration_minutes": 0}, {"duration_minutes": 481}])
    def test_bounds(self, kwargs):
        assert AppointmentReminder.create("Smith", "Clinic", NOW, **kwargs).is_failure()

    def test_changing_lead_time_reschedules(self):
        reminder = appointment_reminder()
        reminder.set_reminder_hours_before(2).unwrap()
        assert reminder.scheduled_time == NOW + timedelta(hours=22)
        reminder.set_appointment_time(NOW + timedelta(days=2)).unwrap()
        assert reminder.scheduled_time == NOW + timedelta(days=2, hours=-2)
        assert reminder.set_appointment_time(None).is_failure()

    def test_duration_change(self):
        reminder = appointment_reminder()
        assert reminder.set_duration_minutes(90).is_success()
        assert "Duration: 90 minutes" in get_content(reminder)
        assert reminder.set_duration_minutes(500).is_failure()
        assert reminder.duration_minutes == 90

    def test_subject_tiers(self):
        assert get_subject(appointment_reminder(2)) == "URGENT: Appointment with Dr. Smith - Mar 3 at 9:00 AM"
        assert get_subject(appointment_reminder(24)) == "REMINDER: Appointment with Dr. Smith - Mar 3 at 9:00 AM"
        assert get_subject(appointment_reminder(48)) == "NOTICE: Appointment with Dr. Smith - Mar 3, 2026"

    def test_content(self):
        content = get_content(appointment_reminder(24, "Blood work"))
        assert content.startswith("📅 Appointment Reminder")
        assert "Doctor: Dr. Smith" in content
        assert "🕐 Date & Time: Tuesday, March 3, 2026 at 9:00 AM" in content
        assert "Duration: 30 minutes" in content
        assert "Fasting may be required" in content
        assert "comfortable, easily removable clothing" not in content

    def test_send_close_to_appointment_escalates(self):
        reminder = appointment_reminder(2)
        report = send(reminder, now=NOW)
        assert reminder.delivery_method is DeliveryMethod.ALL
        assert reminder.priority is Priority.URGENT
        assert "• Appointment: Tuesday, March 3, 2026 at 9:00 AM" in report
        assert "• Recipient: Unknown" in report

    def test_send_early_uses_email(self):
        reminder = appointment_reminder(72)
        assert send(reminder, now=NOW).startswith("SUCCESS: Early appointment reminder sent via email")
        assert reminder.delivery_method is DeliveryMethod.EMAIL
        assert reminder.priority is Priority.HIGH

    def test_time_until_and_soon(self):
        reminder = appointment_reminder()
        assert reminder.time_until(NOW) == "1 day(s), 0 hour(s)"
        assert reminder.time_until(NOW + timedelta(hours=22, minutes=30)) == "1 hour(s), 30 minute(s)"
        assert reminder.time_until(NOW + timedelta(days=2)) == "Past appointment"
        assert not reminder.is_soon(NOW)
        assert reminder.is_soon(NOW + timedelta(hours=21))
        assert reminder.is_today(NOW + timedelta(hours=20))

    def test_follow_up_copies_appointment(self):
        base = appointment_reminder(48)
        follow_up = create_follow_up(base, 2).unwrap()
        assert follow_up.appointment_time == base.appointment_time
        assert follow_up.scheduled_time == base.appointment_time - timedelta(hours=2)
        assert follow_up.doctor_name == "Smith"


def test_format_long():
    assert format_long(datetime(2026, 3, 2, 21, 5)) == "Monday, March 2, 2026 at 9:05 PM"


def test_unknown_variant_rejected():
    with pytest.raises(TypeError):
        get_subject(object())
