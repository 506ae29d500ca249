"""
Sample data for demos and the dashboard.
"""

from datetime import datetime, timedelta
from typing import Optional

from logging_config import get_logger
from models import Medication, Priority
from services import Services

logger = get_logger(__name__)

PATIENTS = [
    ("Sarah Johnson", "Diabetes Type 2, Hypertension", "sarah.johnson@email.com", "+1-555-012-3401"),
    ("Michael Chen", "Asthma, High Cholesterol", "michael.chen@email.com", "+1-555-012-3402"),
    ("Emily Rodriguez", "Rheumatoid Arthritis", "emily.rodriguez@email.com", "+1-555-012-3403"),
]

# (patient index, name, dosage, frequency, instructions, taken, missed)
MEDICATIONS = [
    (0, "Metformin", "500mg", 2, "Take with meals to reduce stomach upset", 14, 7),
    (0, "Lisinopril", "10mg", 1, "Take at the same time each day", 10, 0),
    (0, "Aspirin", "81mg", 1, "Take with food to prevent stomach irritation", 9, 1),
    (1, "Albuterol", "90mcg", 4, "Use as needed for breathing difficulties", 8, 2),
    (1, "Atorvastatin", "20mg", 1, "Take in the evening", 7, 3),
]


def load_sample_data(services: Services, now: Optional[datetime] = None) -> None:
    now = now or datetime.now()

    patients = [services.patients.create(*row) for row in PATIENTS]

    for index, name, dosage, frequency, instructions, taken, missed in MEDICATIONS:
        medication = Medication.create(
            name, dosage, frequency, instructions, doses_taken=taken, doses_missed=missed,
        ).unwrap()
        medication.patient_id = patients[index].id
        services.medications.save(medication)

    sarah, michael = patients[0].id, patients[1].id
    reminders = services.notifications
    reminders.create_medication_reminder(
        sarah, "Metformin", "500mg", scheduled_time=now + timedelta(hours=1), priority=Priority.NORMAL,
    )
    reminders.create_medication_reminder(
        sarah, "Lisinopril", "10mg", scheduled_time=now + timedelta(minutes=30), priority=Priority.HIGH,
    )
    reminders.create_appointment_reminder(
        sarah, "Smith", "Main Street Medical Center", now + timedelta(days=1), "Regular Checkup",
        reminder_hours_before=24, duration_minutes=30,
    )
    reminders.create_medication_reminder(
        michael, "Albuterol", "90mcg", scheduled_time=now + timedelta(hours=2), priority=Priority.HIGH,
    )
    reminders.create_appointment_reminder(
        michael, "Johnson", "Pulmonology Clinic", now + timedelta(days=3), "Asthma Follow-up",
        reminder_hours_before=48, duration_minutes=45,
    )

    logger.info("sample_data_loaded", **services.db.stats())
