"""
Domain services over the in-memory store.

Each service owns one collection, validates on save and keeps the patient's
medication collection consistent with each medication's ``patient_id``.
Services raise ChroniCareError subclasses; the HTTP layer maps them.
"""

from collections import Counter
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple

import adherence
from database import Database
from errors import NotFoundError, StateError, ValidationError
from logging_config import get_logger
from models import Medication, MedicationRecord, Patient, Priority
from notifications import (
    AppointmentReminder,
    DeliveryStatus,
    MedicationReminder,
    Notification,
    NotificationBase,
    create_follow_up,
    get_subject,
    send,
)

logger = get_logger(__name__)


def _matches(query: str, *fields: Optional[str]) -> bool:
    return any(field is not None and query in field.lower() for field in fields)


class PatientService:
    def __init__(self, db: Database):
        self.db = db
        self.collection = db["patient"]

    def list(self) -> List[Patient]:
        return self.db.get_documents("patient")

    def get(self, patient_id: int) -> Optional[Patient]:
        return self.collection.get(patient_id)

    def require(self, patient_id: int) -> Patient:
        patient = self.get(patient_id)
        if patient is None:
            raise NotFoundError.for_entity("Patient", patient_id)
        return patient

    def exists(self, patient_id: int) -> bool:
        return patient_id in self.collection

    def count(self) -> int:
        return len(self.collection)

    def save(self, patient: Optional[Patient]) -> Patient:
        """Insert or update; assigns the id on first save."""
        if patient is None:
            raise ValidationError("Patient cannot be null")
        patient.update().unwrap()
        self.db.create_document("patient", patient)
        logger.info("patient_saved", patient_id=patient.id, name=patient.name)
        return patient

    def create(self, name: str, condition: str, email: Optional[str] = None, phone: Optional[str] = None) -> Patient:
        return self.save(Patient.create(name, condition, email, phone).unwrap())

    def update(self, patient_id: int, **changes: Any) -> Patient:
        patient = self.require(patient_id)
        patient.update(**changes).unwrap()
        return self.save(patient)

    def delete(self, patient_id: int) -> Optional[Patient]:
        """Remove the patient and everything it owns. No-op for unknown ids."""
        patient = self.collection.remove(patient_id)
        if patient is None:
            return None

        def owned(entity: Any) -> bool:
            return entity.patient_id == patient_id

        medications = self.db["medication"].remove_where(owned)
        notifications = self.db["notification"].remove_where(owned)
        self.db["record"].remove_where(owned)
        logger.info(
            "patient_deleted",
            patient_id=patient_id,
            medications_removed=len(medications),
            notifications_removed=len(notifications),
        )
        return patient

    def search(self, query: Optional[str]) -> List[Patient]:
        if query is None or not query.strip():
            return self.list()
        q = query.strip().lower()
        return self.collection.find(lambda p: _matches(q, p.name, p.condition, p.email))

    def by_condition(self, condition: Optional[str]) -> List[Patient]:
        if condition is None or not condition.strip():
            return []
        q = condition.strip().lower()
        return self.collection.find(lambda p: q in p.condition.lower())

    def with_poor_adherence(self) -> List[Patient]:
        return self.collection.find(lambda p: adherence.is_poor(p.overall_adherence))

    def with_excellent_adherence(self) -> List[Patient]:
        return self.collection.find(lambda p: adherence.is_excellent(p.overall_adherence))

    def requiring_attention(self) -> List[Patient]:
        return self.collection.find(
            lambda p: adherence.is_poor(p.overall_adherence) or p.total_medication_count == 0
        )

    def adherence_summary(self, patient_id: int) -> Dict[str, Any]:
        patient = self.require(patient_id)
        return {
            "patient_id": patient.id,
            "patient_name": patient.name,
            "condition": patient.condition,
            "overall_adherence": patient.overall_adherence,
            "adherence_percentage": patient.adherence_percentage,
            "status": patient.adherence_status,
            "active_medications": patient.active_medication_count,
            "total_medications": patient.total_medication_count,
        }

    def health_records(self, patient_id: int) -> Tuple[MedicationRecord, ...]:
        return self.require(patient_id).health_records

    def statistics(self) -> Dict[str, Any]:
        patients = self.list()
        conditions = Counter(
            part.strip() for p in patients for part in p.condition.split(",") if part.strip()
        )
        rates = [p.overall_adherence for p in patients]
        average = adherence.overall_adherence(rates)
        total_medications = sum(p.total_medication_count for p in patients)
        return {
            "total_patients": len(patients),
            "condition_distribution": dict(conditions),
            "average_adherence": average,
            "average_adherence_percentage": adherence.adherence_percentage(average),
            "total_active_medications": sum(p.active_medication_count for p in patients),
            "total_medications": total_medications,
            "average_medications_per_patient": total_medications / len(patients) if patients else 0.0,
            "patients_with_excellent_adherence": sum(1 for r in rates if adherence.is_excellent(r)),
            "patients_with_poor_adherence": sum(1 for r in rates if adherence.is_poor(r)),
        }


class MedicationService:
    def __init__(self, db: Database, patients: PatientService):
        self.db = db
        self.collection = db["medication"]
        self.patients = patients

    def list(self) -> List[Medication]:
        return self.db.get_documents("medication")

    def get(self, medication_id: int) -> Optional[Medication]:
        return self.collection.get(medication_id)

    def require(self, medication_id: int) -> Medication:
        medication = self.get(medication_id)
        if medication is None:
            raise NotFoundError.for_entity("Medication", medication_id)
        return medication

    def exists(self, medication_id: int) -> bool:
        return medication_id in self.collection

    def count(self) -> int:
        return len(self.collection)

    def list_for_patient(self, patient_id: int) -> List[Medication]:
        self.patients.require(patient_id)
        return self.collection.find(lambda m: m.patient_id == patient_id)

    def count_for_patient(self, patient_id: int) -> int:
        return len(self.list_for_patient(patient_id))

    def save(self, medication: Optional[Medication]) -> Medication:
        if medication is None:
            raise ValidationError("Medication cannot be null")
        medication.update().unwrap()
        if medication.patient_id is None:
            raise ValidationError("Medication must be associated with a patient")
        patient = self.patients.get(medication.patient_id)
        if patient is None:
            raise ValidationError(
                "Medication must be associated with an existing patient",
                details={"patient_id": medication.patient_id},
            )
        self.db.create_document("medication", medication)
        # Reassigned medications leave their previous owner
        for other in self.patients.list():
            if other.id != patient.id:
                other.detach_medication(medication.id)
        patient.add_medication(medication)
        logger.info("medication_saved", medication_id=medication.id, patient_id=patient.id, name=medication.name)
        return medication

    def create_for_patient(
        self,
        patient_id: int,
        name: str,
        dosage: str,
        frequency_per_day: int,
        instructions: Optional[str] = None,
        active: bool = True,
    ) -> Medication:
        self.patients.require(patient_id)
        medication = Medication.create(name, dosage, frequency_per_day, instructions, active).unwrap()
        medication.patient_id = patient_id
        return self.save(medication)

    def update(self, medication_id: int, **changes: Any) -> Medication:
        medication = self.require(medication_id)
        medication.update(**changes).unwrap()
        return self.save(medication)

    def delete(self, medication_id: int) -> Optional[Medication]:
        medication = self.collection.remove(medication_id)
        if medication is None:
            return None
        patient = self.patients.get(medication.patient_id) if medication.patient_id is not None else None
        if patient is not None:
            patient.remove_medication(medication)
        logger.info("medication_deleted", medication_id=medication_id)
        return medication

    def _log_dose(self, medication: Medication, record: MedicationRecord) -> None:
        self.db.create_document("record", record)
        patient = self.patients.get(medication.patient_id) if medication.patient_id is not None else None
        if patient is not None:
            patient.add_health_record(record)

    def take(
        self,
        medication_id: int,
        now: Optional[datetime] = None,
        scheduled_time: Optional[datetime] = None,
        notes: Optional[str] = None,
    ) -> Medication:
        medication = self.require(medication_id)
        now = now or datetime.now()
        medication.record_dose_taken(now)
        record = MedicationRecord(medication, time_scheduled=scheduled_time, created_at=now)
        record.mark_taken(now, notes)
        self._log_dose(medication, record)
        logger.info("medication_taken", medication_id=medication.id, adherence=medication.adherence_percentage)
        return medication

    def miss(
        self,
        medication_id: int,
        reason: Optional[str] = None,
        scheduled_time: Optional[datetime] = None,
        now: Optional[datetime] = None,
    ) -> Medication:
        medication = self.require(medication_id)
        medication.record_dose_missed()
        record = MedicationRecord(medication, time_scheduled=scheduled_time, created_at=now)
        record.mark_missed(reason)
        self._log_dose(medication, record)
        logger.info("medication_missed", medication_id=medication.id, adherence=medication.adherence_percentage)
        return medication

    def search(self, query: Optional[str]) -> List[Medication]:
        if query is None or not query.strip():
            return self.list()
        q = query.strip().lower()
        return self.collection.find(lambda m: _matches(q, m.name, m.dosage, m.instructions))

    def active(self) -> List[Medication]:
        return self.collection.find(lambda m: m.active)

    def due_soon(self, patient_id: int, now: Optional[datetime] = None) -> List[Medication]:
        return [m for m in self.list_for_patient(patient_id) if m.active and m.is_due_soon(now)]

    def with_poor_adherence(self) -> List[Medication]:
        return self.collection.find(lambda m: adherence.is_poor(m.adherence_rate))

    def with_excellent_adherence(self) -> List[Medication]:
        return self.collection.find(lambda m: adherence.is_excellent(m.adherence_rate))

    def requiring_attention(self, now: Optional[datetime] = None) -> List[Medication]:
        return self.collection.find(
            lambda m: m.active and (adherence.is_poor(m.adherence_rate) or m.is_due_soon(now))
        )

    def adherence_detail(self, medication_id: int, now: Optional[datetime] = None) -> Dict[str, Any]:
        m = self.require(medication_id)
        return {
            "medication_id": m.id,
            "medication_name": m.name,
            "dosage": m.dosage,
            "doses_taken": m.doses_taken,
            "doses_missed": m.doses_missed,
            "total_doses": m.total_doses_recorded,
            "adherence_rate": m.adherence_rate,
            "adherence_percentage": m.adherence_percentage,
            "adherence_status": m.adherence_status,
            "is_due_soon": m.is_due_soon(now),
            "next_scheduled_time": m.next_scheduled_time,
            "schedule_times": list(m.schedule_times),
        }

    def schedule_for_patient(self, patient_id: int, now: Optional[datetime] = None) -> Dict[str, Any]:
        patient = self.patients.require(patient_id)
        active = [m for m in self.list_for_patient(patient_id) if m.active]

        timeline: Dict[str, List[Dict[str, Any]]] = {}
        for m in active:
            for slot in m.schedule_times:
                timeline.setdefault(slot, []).append({
                    "medication_id": m.id,
                    "name": m.name,
                    "dosage": m.dosage,
                    "instructions": m.instructions,
                    "is_due_soon": m.is_due_soon(now),
                    "adherence_rate": m.adherence_rate,
                })

        due = next((m for m in active if m.is_due_soon(now)), None)
        return {
            "patient_id": patient.id,
            "patient_name": patient.name,
            "medications": [
                {
                    "medication_id": m.id,
                    "name": m.name,
                    "dosage": m.dosage,
                    "frequency": m.frequency_per_day,
                    "times": list(m.schedule_times),
                    "next_due": m.next_scheduled_time,
                    "is_due_soon": m.is_due_soon(now),
                    "adherence": m.adherence_rate,
                    "adherence_status": m.adherence_status,
                }
                for m in active
            ],
            "timeline": [{"time": slot, "medications": timeline[slot]} for slot in sorted(timeline)],
            "total_active_medications": len(active),
            "overall_adherence": patient.overall_adherence,
            "next_due": "%s at %s" % (due.name, due.next_scheduled_time) if due else "No medications due soon",
        }

    def statistics(self) -> Dict[str, Any]:
        medications = self.list()
        active = [m for m in medications if m.active]
        rates = [m.adherence_rate for m in medications]
        average = adherence.overall_adherence(rates)
        taken = sum(m.doses_taken for m in medications)
        missed = sum(m.doses_missed for m in medications)
        return {
            "total_medications": len(medications),
            "active_medications": len(active),
            "inactive_medications": len(medications) - len(active),
            "medication_distribution": dict(Counter(m.name for m in medications)),
            "frequency_distribution": dict(Counter(m.frequency_per_day for m in medications)),
            "average_adherence": average,
            "average_adherence_percentage": adherence.adherence_percentage(average),
            "total_doses_taken": taken,
            "total_doses_missed": missed,
            "total_doses_recorded": taken + missed,
            "medications_with_excellent_adherence": sum(1 for r in rates if adherence.is_excellent(r)),
            "medications_with_poor_adherence": sum(1 for r in rates if adherence.is_poor(r)),
        }


class NotificationService:
    def __init__(self, db: Database, patients: PatientService, medications: MedicationService):
        self.db = db
        self.collection = db["notification"]
        self.patients = patients
        self.medications = medications

    def list(self) -> List[Notification]:
        return self.db.get_documents("notification")

    def get(self, notification_id: int) -> Optional[Notification]:
        return self.collection.get(notification_id)

    def require(self, notification_id: int) -> Notification:
        notification = self.get(notification_id)
        if notification is None:
            raise NotFoundError.for_entity("Notification", notification_id)
        return notification

    def exists(self, notification_id: int) -> bool:
        return notification_id in self.collection

    def count(self) -> int:
        return len(self.collection)

    def save(self, notification: Optional[NotificationBase]) -> Notification:
        if notification is None:
            raise ValidationError("Notification cannot be null")
        if notification.patient_id is None:
            raise ValidationError("Notification must be associated with a patient")
        if not self.patients.exists(notification.patient_id):
            raise ValidationError(
                "Notification must be associated with an existing patient",
                details={"patient_id": notification.patient_id},
            )
        self.db.create_document("notification", notification)
        logger.info(
            "notification_saved",
            notification_id=notification.id,
            kind=notification.kind.value,
            subject=get_subject(notification),
        )
        return notification

    def delete(self, notification_id: int) -> Optional[Notification]:
        notification = self.collection.remove(notification_id)
        if notification is not None:
            logger.info("notification_deleted", notification_id=notification_id, kind=notification.kind.value)
        return notification

    def list_for_patient(self, patient_id: int) -> List[Notification]:
        """Newest first."""
        self.patients.require(patient_id)
        owned = self.collection.find(lambda n: n.patient_id == patient_id)
        return sorted(owned, key=lambda n: n.created_at, reverse=True)

    def pending(self, patient_id: int) -> List[Notification]:
        return [n for n in self.list_for_patient(patient_id) if not n.sent]

    def due(self, patient_id: int, now: Optional[datetime] = None) -> List[Notification]:
        return [n for n in self.list_for_patient(patient_id) if not n.sent and n.is_due(now)]

    def overdue(self, patient_id: int, now: Optional[datetime] = None) -> List[Notification]:
        return [n for n in self.list_for_patient(patient_id) if n.is_overdue(now)]

    def send(self, notification_id: int, now: Optional[datetime] = None) -> Tuple[Notification, str]:
        notification = self.require(notification_id)
        patient = self.patients.get(notification.patient_id)
        report = send(notification, recipient=patient.name if patient else None, now=now)
        self.save(notification)
        logger.info(
            "notification_sent",
            notification_id=notification.id,
            method=notification.delivery_method.value,
        )
        return notification, report

    def send_due(self, patient_id: int, now: Optional[datetime] = None) -> List[Dict[str, Any]]:
        results = []
        for notification in self.due(patient_id, now):
            _, report = self.send(notification.id, now)
            results.append({
                "id": notification.id,
                "type": notification.kind.value,
                "subject": get_subject(notification),
                "result": report,
                "sent": notification.sent,
                "sent_time": notification.formatted_sent_time,
            })
        return results

    def create_medication_reminder(
        self,
        patient_id: int,
        medication_name: Optional[str] = None,
        dosage: Optional[str] = None,
        scheduled_time: Optional[datetime] = None,
        priority: Any = None,
        reminder_hours_before: int = 0,
        medication_id: Optional[int] = None,
    ) -> MedicationReminder:
        self.patients.require(patient_id)
        medication = None
        if medication_id is not None:
            medication = self.medications.require(medication_id)
            if medication.patient_id != patient_id:
                raise ValidationError(
                    "Medication does not belong to this patient",
                    details={"medication_id": medication_id, "patient_id": patient_id},
                )
        reminder = MedicationReminder.create(
            medication_name=medication_name,
            dosage=dosage,
            scheduled_time=scheduled_time,
            priority=priority,
            reminder_hours_before=reminder_hours_before,
            medication=medication,
            patient_id=patient_id,
        ).unwrap()
        return self.save(reminder)

    def create_appointment_reminder(
        self,
        patient_id: int,
        doctor_name: Optional[str] = None,
        location: Optional[str] = None,
        appointment_time: Optional[datetime] = None,
        appointment_type: Optional[str] = None,
        reminder_hours_before: int = 24,
        duration_minutes: int = 30,
        priority: Any = None,
    ) -> AppointmentReminder:
        self.patients.require(patient_id)
        reminder = AppointmentReminder.create(
            doctor_name=doctor_name,
            location=location,
            appointment_time=appointment_time,
            appointment_type=appointment_type,
            reminder_hours_before=reminder_hours_before,
            duration_minutes=duration_minutes,
            priority=priority,
            patient_id=patient_id,
        ).unwrap()
        return self.save(reminder)

    def create_follow_up(self, notification_id: int, hours_before: int) -> Notification:
        base = self.require(notification_id)
        return self.save(create_follow_up(base, hours_before).unwrap())

    def update_delivery_status(self, notification_id: int, status: Any, reason: Optional[str] = None) -> Notification:
        notification = self.require(notification_id)
        parsed = DeliveryStatus.parse(status)
        if parsed is DeliveryStatus.DELIVERED:
            notification.mark_delivered()
        elif parsed is DeliveryStatus.FAILED:
            notification.mark_failed(reason)
        elif parsed is DeliveryStatus.SENT:
            raise StateError(
                "Notifications are marked sent by sending them", details={"id": notification.id, "use": "send"}
            )
        elif notification.sent:
            raise StateError("A sent notification cannot return to pending", details={"id": notification.id})
        else:
            notification.set_delivery_status(parsed).unwrap()
        logger.info("delivery_status_updated", notification_id=notification.id, status=parsed.value)
        return self.save(notification)

    def schedule_medication_reminders(self, patient_id: int, now: Optional[datetime] = None) -> List[MedicationReminder]:
        """One reminder per active medication slot, tomorrow at that time."""
        tomorrow = (now or datetime.now()) + timedelta(days=1)
        created = []
        for medication in self.medications.list_for_patient(patient_id):
            if not medication.active:
                continue
            for slot in medication.schedule_times:
                hour, minute = (int(part) for part in slot.split(":"))
                created.append(self.create_medication_reminder(
                    patient_id,
                    scheduled_time=tomorrow.replace(hour=hour, minute=minute, second=0, microsecond=0),
                    priority=Priority.NORMAL,
                    medication_id=medication.id,
                ))
        logger.info("medication_reminders_scheduled", patient_id=patient_id, count=len(created))
        return created

    def by_type(self, kind: str) -> List[Notification]:
        wanted = kind.strip().upper()
        return self.collection.find(lambda n: n.kind.value == wanted)

    def by_priority(self, priority: str) -> List[Notification]:
        wanted = Priority.parse(priority)
        return self.collection.find(lambda n: n.priority is wanted)

    def high_priority(self) -> List[Notification]:
        return self.collection.find(lambda n: n.is_high_priority)

    def urgent(self) -> List[Notification]:
        return self.collection.find(lambda n: n.is_urgent)

    def statistics(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        notifications = self.list()
        sent = sum(1 for n in notifications if n.sent)
        return {
            "total_notifications": len(notifications),
            "sent_notifications": sent,
            "pending_notifications": len(notifications) - sent,
            "due_notifications": sum(1 for n in notifications if not n.sent and n.is_due(now)),
            "overdue_notifications": sum(1 for n in notifications if n.is_overdue(now)),
            "type_distribution": dict(Counter(n.kind.value for n in notifications)),
            "priority_distribution": dict(Counter(n.priority.value for n in notifications)),
            "status_distribution": dict(Counter(n.delivery_status.value for n in notifications)),
            "sent_percentage": sent / len(notifications) * 100 if notifications else 0.0,
        }


class Services:
    """The three services wired over one store."""

    def __init__(self, db: Database):
        self.db = db
        self.patients = PatientService(db)
        self.medications = MedicationService(db, self.patients)
        self.notifications = NotificationService(db, self.patients, self.medications)
