from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, FastAPI, Request, Response, status
from fastapi.middleware.cors import CORSMiddleware

from config import Settings, get_settings
from database import Database
from errors import NotFoundError, register_exception_handlers
from logging_config import configure_logging, get_logger
from notifications import (
    AppointmentReminder,
    MedicationReminder,
    Notification,
    get_content,
    get_subject,
)
from schemas import (
    AppointmentReminderIn,
    DeliveryStatusIn,
    DoseEventOut,
    DoseMissedIn,
    DoseTakenIn,
    FollowUpIn,
    HealthRecordOut,
    MedicationIn,
    MedicationOut,
    MedicationReminderIn,
    Metric,
    NotificationOut,
    PatientIn,
    PatientOut,
    SendDueOut,
    SendResultOut,
)
from seed import load_sample_data
from services import Services

logger = get_logger(__name__)

root = APIRouter()
patients = APIRouter(prefix="/patients", tags=["patients"])
medications = APIRouter(prefix="/medications", tags=["medications"])
notifications = APIRouter(prefix="/notifications", tags=["notifications"])


# Helpers

def get_services(request: Request) -> Services:
    return request.app.state.services


def serialize_patient(patient) -> PatientOut:
    return PatientOut.model_validate(patient)


def serialize_medication(medication) -> MedicationOut:
    return MedicationOut.model_validate(medication)


def serialize_notification(n: Notification) -> NotificationOut:
    data = {
        "id": n.id,
        "type": n.kind.value,
        "patient_id": n.patient_id,
        "priority": n.priority.value,
        "is_high_priority": n.is_high_priority,
        "is_urgent": n.is_urgent,
        "created_at": n.created_at,
        "scheduled_time": n.scheduled_time,
        "sent": n.sent,
        "sent_time": n.sent_time,
        "delivery_method": n.delivery_method.value if n.delivery_method else None,
        "resolved_delivery_method": n.resolve_delivery_method().value,
        "delivery_status": n.delivery_status.value,
        "failure_reason": n.failure_reason,
        "is_due": n.is_due(),
        "is_overdue": n.is_overdue(),
        "subject": get_subject(n),
        "content": get_content(n),
        "reminder_hours_before": n.reminder_hours_before,
    }
    match n:
        case MedicationReminder():
            data.update(
                medication_id=n.medication_id,
                medication_name=n.medication_name,
                dosage=n.dosage,
                timing_description=n.timing_description,
            )
        case AppointmentReminder():
            data.update(
                doctor_name=n.doctor_name,
                location=n.location,
                appointment_type=n.appointment_type,
                appointment_time=n.appointment_time,
                duration_minutes=n.duration_minutes,
                time_until=n.time_until(),
            )
    return NotificationOut(**data)


def no_content() -> Response:
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# Service status

@root.get("/")
def index(request: Request):
    return {"message": "%s running" % request.app.state.settings.PROJECT_NAME}


@root.get("/health")
def health(services: Services = Depends(get_services)):
    db = services.db
    return {
        "backend": "✅ Running",
        "database": "✅ In-memory store",
        "database_name": db.name,
        "collections": db.stats(),
    }


# Schema exposure for API clients
@root.get("/schema")
def get_schema():
    return {
        "patient": PatientIn.model_json_schema(),
        "medication": MedicationIn.model_json_schema(),
        "medication_reminder": MedicationReminderIn.model_json_schema(),
        "appointment_reminder": AppointmentReminderIn.model_json_schema(),
    }


# Simple metrics for dashboard
@root.get("/metrics")
def get_metrics(services: Services = Depends(get_services)):
    patient_stats = services.patients.statistics()
    medication_stats = services.medications.statistics()
    notification_stats = services.notifications.statistics()
    now = datetime.now()
    cards = [
        Metric(label="Patients", value=patient_stats["total_patients"], updated_at=now),
        Metric(label="Active Medications", value=medication_stats["active_medications"], updated_at=now),
        Metric(label="Average Adherence", value=round(medication_stats["average_adherence"] * 100, 1), updated_at=now),
        Metric(label="Pending Notifications", value=notification_stats["pending_notifications"], updated_at=now),
        Metric(label="Overdue Notifications", value=notification_stats["overdue_notifications"], updated_at=now),
    ]
    return {"cards": cards}


# Patients

@patients.get("", response_model=List[PatientOut])
def list_patients(services: Services = Depends(get_services)):
    return [serialize_patient(p) for p in services.patients.list()]


@patients.post("", response_model=PatientOut, status_code=status.HTTP_201_CREATED)
def create_patient(payload: PatientIn, services: Services = Depends(get_services)):
    return serialize_patient(services.patients.create(**payload.model_dump()))


@patients.get("/search", response_model=List[PatientOut])
def search_patients(query: str = "", services: Services = Depends(get_services)):
    return [serialize_patient(p) for p in services.patients.search(query)]


@patients.get("/stats")
def patient_stats(services: Services = Depends(get_services)):
    return services.patients.statistics()


@patients.get("/attention", response_model=List[PatientOut])
def patients_requiring_attention(services: Services = Depends(get_services)):
    return [serialize_patient(p) for p in services.patients.requiring_attention()]


@patients.get("/poor-adherence", response_model=List[PatientOut])
def patients_with_poor_adherence(services: Services = Depends(get_services)):
    return [serialize_patient(p) for p in services.patients.with_poor_adherence()]


@patients.get("/excellent-adherence", response_model=List[PatientOut])
def patients_with_excellent_adherence(services: Services = Depends(get_services)):
    return [serialize_patient(p) for p in services.patients.with_excellent_adherence()]


@patients.get("/condition/{condition}", response_model=List[PatientOut])
def patients_by_condition(condition: str, services: Services = Depends(get_services)):
    return [serialize_patient(p) for p in services.patients.by_condition(condition)]


@patients.get("/{patient_id}", response_model=PatientOut)
def get_patient(patient_id: int, services: Services = Depends(get_services)):
    return serialize_patient(services.patients.require(patient_id))


@patients.put("/{patient_id}", response_model=PatientOut)
def update_patient(patient_id: int, payload: PatientIn, services: Services = Depends(get_services)):
    return serialize_patient(services.patients.update(patient_id, **payload.model_dump()))


@patients.delete("/{patient_id}")
def delete_patient(patient_id: int, services: Services = Depends(get_services)):
    if services.patients.delete(patient_id) is None:
        raise NotFoundError.for_entity("Patient", patient_id)
    return no_content()


@patients.get("/{patient_id}/adherence")
def patient_adherence(patient_id: int, services: Services = Depends(get_services)):
    return services.patients.adherence_summary(patient_id)


@patients.get("/{patient_id}/records", response_model=List[HealthRecordOut])
def patient_records(patient_id: int, services: Services = Depends(get_services)):
    return [HealthRecordOut.model_validate(r) for r in services.patients.health_records(patient_id)]


# Medications

@medications.get("/patient/{patient_id}", response_model=List[MedicationOut])
def list_medications_for_patient(patient_id: int, services: Services = Depends(get_services)):
    return [serialize_medication(m) for m in services.medications.list_for_patient(patient_id)]


@medications.post("/patient/{patient_id}", response_model=MedicationOut, status_code=status.HTTP_201_CREATED)
def create_medication(patient_id: int, payload: MedicationIn, services: Services = Depends(get_services)):
    return serialize_medication(services.medications.create_for_patient(patient_id, **payload.model_dump()))


@medications.get("/patient/{patient_id}/schedule")
def medication_schedule(patient_id: int, services: Services = Depends(get_services)):
    return services.medications.schedule_for_patient(patient_id)


@medications.get("/patient/{patient_id}/due", response_model=List[MedicationOut])
def medications_due_soon(patient_id: int, services: Services = Depends(get_services)):
    return [serialize_medication(m) for m in services.medications.due_soon(patient_id)]


@medications.get("/search", response_model=List[MedicationOut])
def search_medications(query: str = "", services: Services = Depends(get_services)):
    return [serialize_medication(m) for m in services.medications.search(query)]


@medications.get("/active", response_model=List[MedicationOut])
def active_medications(services: Services = Depends(get_services)):
    return [serialize_medication(m) for m in services.medications.active()]


@medications.get("/stats")
def medication_stats(services: Services = Depends(get_services)):
    return services.medications.statistics()


@medications.get("/attention", response_model=List[MedicationOut])
def medications_requiring_attention(services: Services = Depends(get_services)):
    return [serialize_medication(m) for m in services.medications.requiring_attention()]


@medications.get("/poor-adherence", response_model=List[MedicationOut])
def medications_with_poor_adherence(services: Services = Depends(get_services)):
    return [serialize_medication(m) for m in services.medications.with_poor_adherence()]


@medications.get("/excellent-adherence", response_model=List[MedicationOut])
def medications_with_excellent_adherence(services: Services = Depends(get_services)):
    return [serialize_medication(m) for m in services.medications.with_excellent_adherence()]


@medications.get("/{medication_id}", response_model=MedicationOut)
def get_medication(medication_id: int, services: Services = Depends(get_services)):
    return serialize_medication(services.medications.require(medication_id))


@medications.put("/{medication_id}", response_model=MedicationOut)
def update_medication(medication_id: int, payload: MedicationIn, services: Services = Depends(get_services)):
    return serialize_medication(services.medications.update(medication_id, **payload.model_dump()))


@medications.delete("/{medication_id}")
def delete_medication(medication_id: int, services: Services = Depends(get_services)):
    if services.medications.delete(medication_id) is None:
        raise NotFoundError.for_entity("Medication", medication_id)
    return no_content()


@medications.post("/{medication_id}/take", response_model=DoseEventOut)
def take_medication(
    medication_id: int,
    payload: Optional[DoseTakenIn] = None,
    services: Services = Depends(get_services),
):
    payload = payload or DoseTakenIn()
    medication = services.medications.take(
        medication_id, scheduled_time=payload.scheduled_time, notes=payload.notes,
    )
    return DoseEventOut(message="Medication taken successfully", medication=serialize_medication(medication))


@medications.post("/{medication_id}/miss", response_model=DoseEventOut)
def miss_medication(
    medication_id: int,
    payload: Optional[DoseMissedIn] = None,
    services: Services = Depends(get_services),
):
    payload = payload or DoseMissedIn()
    medication = services.medications.miss(
        medication_id, reason=payload.reason, scheduled_time=payload.scheduled_time,
    )
    return DoseEventOut(message="Medication marked as missed", medication=serialize_medication(medication))


@medications.get("/{medication_id}/adherence")
def medication_adherence(medication_id: int, services: Services = Depends(get_services)):
    return services.medications.adherence_detail(medication_id)


# Notifications

@notifications.get("", response_model=List[NotificationOut])
def list_notifications(
    type: Optional[str] = None,
    priority: Optional[str] = None,
    services: Services = Depends(get_services),
):
    svc = services.notifications
    if type:
        found = svc.by_type(type)
    elif priority:
        found = svc.by_priority(priority)
    else:
        found = svc.list()
    return [serialize_notification(n) for n in found]


@notifications.get("/stats")
def notification_stats(services: Services = Depends(get_services)):
    return services.notifications.statistics()


@notifications.get("/urgent", response_model=List[NotificationOut])
def urgent_notifications(services: Services = Depends(get_services)):
    return [serialize_notification(n) for n in services.notifications.urgent()]


@notifications.get("/high-priority", response_model=List[NotificationOut])
def high_priority_notifications(services: Services = Depends(get_services)):
    return [serialize_notification(n) for n in services.notifications.high_priority()]


@notifications.get("/patient/{patient_id}", response_model=List[NotificationOut])
def list_notifications_for_patient(patient_id: int, services: Services = Depends(get_services)):
    return [serialize_notification(n) for n in services.notifications.list_for_patient(patient_id)]


@notifications.get("/patient/{patient_id}/pending", response_model=List[NotificationOut])
def pending_notifications(patient_id: int, services: Services = Depends(get_services)):
    return [serialize_notification(n) for n in services.notifications.pending(patient_id)]


@notifications.get("/patient/{patient_id}/due", response_model=List[NotificationOut])
def due_notifications(patient_id: int, services: Services = Depends(get_services)):
    return [serialize_notification(n) for n in services.notifications.due(patient_id)]


@notifications.get("/patient/{patient_id}/overdue", response_model=List[NotificationOut])
def overdue_notifications(patient_id: int, services: Services = Depends(get_services)):
    return [serialize_notification(n) for n in services.notifications.overdue(patient_id)]


@notifications.post("/patient/{patient_id}/send-due", response_model=SendDueOut)
def send_due_notifications(patient_id: int, services: Services = Depends(get_services)):
    results = services.notifications.send_due(patient_id)
    return SendDueOut(
        message="Processed %d due notifications" % len(results),
        total_processed=len(results),
        results=results,
    )


@notifications.post(
    "/patient/{patient_id}/schedule-medication-reminders",
    response_model=List[NotificationOut],
    status_code=status.HTTP_201_CREATED,
)
def schedule_medication_reminders(patient_id: int, services: Services = Depends(get_services)):
    return [serialize_notification(n) for n in services.notifications.schedule_medication_reminders(patient_id)]


@notifications.post("/medication", response_model=NotificationOut, status_code=status.HTTP_201_CREATED)
def create_medication_reminder(payload: MedicationReminderIn, services: Services = Depends(get_services)):
    reminder = services.notifications.create_medication_reminder(**payload.model_dump())
    return serialize_notification(reminder)


@notifications.post("/appointment", response_model=NotificationOut, status_code=status.HTTP_201_CREATED)
def create_appointment_reminder(payload: AppointmentReminderIn, services: Services = Depends(get_services)):
    reminder = services.notifications.create_appointment_reminder(**payload.model_dump())
    return serialize_notification(reminder)


@notifications.get("/{notification_id}", response_model=NotificationOut)
def get_notification(notification_id: int, services: Services = Depends(get_services)):
    return serialize_notification(services.notifications.require(notification_id))


@notifications.delete("/{notification_id}")
def delete_notification(notification_id: int, services: Services = Depends(get_services)):
    if services.notifications.delete(notification_id) is None:
        raise NotFoundError.for_entity("Notification", notification_id)
    return no_content()


@notifications.get("/{notification_id}/content")
def notification_content(notification_id: int, services: Services = Depends(get_services)):
    n = services.notifications.require(notification_id)
    return {
        "notification_type": n.kind.value,
        "subject": get_subject(n),
        "content": get_content(n),
        "priority": n.priority.value,
        "is_high_priority": n.is_high_priority,
        "is_urgent": n.is_urgent,
        "is_due": n.is_due(),
        "is_overdue": n.is_overdue(),
        "scheduled_time": n.formatted_scheduled_time,
        "created_at": n.formatted_created_at,
        "age_minutes": n.age_minutes(),
    }


@notifications.post("/{notification_id}/send", response_model=SendResultOut)
def send_notification(notification_id: int, services: Services = Depends(get_services)):
    notification, report = services.notifications.send(notification_id)
    return SendResultOut(result=report, notification=serialize_notification(notification))


@notifications.post("/{notification_id}/follow-up", response_model=NotificationOut, status_code=status.HTTP_201_CREATED)
def create_follow_up(notification_id: int, payload: FollowUpIn, services: Services = Depends(get_services)):
    return serialize_notification(services.notifications.create_follow_up(notification_id, payload.hours_before))


@notifications.put("/{notification_id}/delivery-status", response_model=NotificationOut)
def update_delivery_status(notification_id: int, payload: DeliveryStatusIn, services: Services = Depends(get_services)):
    notification = services.notifications.update_delivery_status(notification_id, payload.status, payload.reason)
    return serialize_notification(notification)


def create_app(settings: Optional[Settings] = None, db: Optional[Database] = None) -> FastAPI:
    settings = settings or get_settings()
    configure_logging(settings.LOG_LEVEL, settings.JSON_LOGS)

    app = FastAPI(title=settings.PROJECT_NAME, version=settings.PROJECT_VERSION)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    register_exception_handlers(app)

    services = Services(db or Database())
    if settings.SEED_SAMPLE_DATA:
        load_sample_data(services)
    app.state.settings = settings
    app.state.services = services

    app.include_router(root)
    for router in (patients, medications, notifications):
        app.include_router(router, prefix=settings.API_PREFIX)

    logger.info("app_created", name=settings.PROJECT_NAME, environment=settings.ENVIRONMENT, **services.db.stats())
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    settings = get_settings()
    uvicorn.run(app, host=settings.HOST, port=settings.PORT)
