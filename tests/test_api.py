from datetime import datetime, timedelta

API = "/api"


def create_patient(client, **overrides):
    body = {"name": "Sarah Johnson", "condition": "Diabetes Type 2", "email": "sarah@email.com", "phone": "555-012-3401"}
    body.update(overrides)
    res = client.post(f"{API}/patients", json=body)
    assert res.status_code == 201, res.text
    return res.json()


def create_medication(client, patient_id, **overrides):
    body = {"name": "Metformin", "dosage": "500mg", "frequency_per_day": 2, "instructions": "Take with meals"}
    body.update(overrides)
    res = client.post(f"{API}/medications/patient/{patient_id}", json=body)
    assert res.status_code == 201, res.text
    return res.json()


def test_root_and_health(client):
    assert client.get("/").json()["message"] == "ChroniCare API running"
    health = client.get("/health").json()
    assert health["database_name"] == "chronicare"
    assert health["collections"]["patient"] == 0


def test_schema_and_metrics(seeded_client):
    schema = seeded_client.get("/schema").json()
    assert "frequency_per_day" in schema["medication"]["properties"]
    cards = seeded_client.get("/metrics").json()["cards"]
    assert {c["label"]: c["value"] for c in cards}["Patients"] == 3


class TestPatients:
    def test_crud(self, client):
        patient = create_patient(client)
        assert patient["id"] == 1
        assert patient["adherence_percentage"] == "0.0%"

        res = client.put(f"{API}/patients/1", json={"name": "Sarah J.", "condition": "Diabetes"})
        assert res.status_code == 200
        assert res.json()["name"] == "Sarah J."
        assert res.json()["email"] is None

        assert client.delete(f"{API}/patients/1").status_code == 204
        assert client.get(f"{API}/patients/1").status_code == 404
        assert client.delete(f"{API}/patients/1").status_code == 404

    def test_validation_error_body(self, client):
        res = client.post(f"{API}/patients", json={"name": " ", "condition": "Asthma"})
        assert res.status_code == 400
        assert res.json()["code"] == "validation_error"
        assert client.get(f"{API}/patients").json() == []

    def test_malformed_body(self, client):
        assert client.post(f"{API}/patients", json={"name": "Sam"}).status_code == 422

    def test_not_found_body(self, client):
        res = client.get(f"{API}/patients/77")
        assert res.status_code == 404
        assert res.json() == {"code": "not_found", "message": "Patient not found", "details": {"id": 77}}

    def test_queries(self, seeded_client):
        assert len(seeded_client.get(f"{API}/patients").json()) == 3
        assert [p["name"] for p in seeded_client.get(f"{API}/patients/search", params={"query": "chen"}).json()] == [
            "Michael Chen"
        ]
        by_condition = seeded_client.get(f"{API}/patients/condition/arthritis").json()
        assert [p["name"] for p in by_condition] == ["Emily Rodriguez"]
        attention = [p["name"] for p in seeded_client.get(f"{API}/patients/attention").json()]
        assert "Emily Rodriguez" in attention
        stats = seeded_client.get(f"{API}/patients/stats").json()
        assert stats["total_patients"] == 3

    def test_adherence(self, client):
        patient = create_patient(client)
        create_medication(client, patient["id"])
        body = client.get(f"{API}/patients/{patient['id']}/adherence").json()
        assert body["total_medications"] == 1
        assert body["status"] == "Poor"


class TestMedications:
    def test_create_and_schedule(self, client):
        patient = create_patient(client)
        medication = create_medication(client, patient["id"], frequency_per_day=3)
        assert medication["schedule_times"] == ["08:00", "14:00", "20:00"]
        assert medication["next_scheduled_time"] == "08:00"
        schedule = client.get(f"{API}/medications/patient/{patient['id']}/schedule").json()
        assert [slot["time"] for slot in schedule["timeline"]] == ["08:00", "14:00", "20:00"]

    def test_invalid_frequency(self, client):
        patient = create_patient(client)
        res = client.post(
            f"{API}/medications/patient/{patient['id']}",
            json={"name": "Aspirin", "dosage": "81mg", "frequency_per_day": 30},
        )
        assert res.status_code == 400

    def test_unknown_patient(self, client):
        res = client.post(
            f"{API}/medications/patient/9",
            json={"name": "Aspirin", "dosage": "81mg", "frequency_per_day": 1},
        )
        assert res.status_code == 404

    def test_take_and_miss(self, client):
        patient = create_patient(client)
        medication = create_medication(client, patient["id"])
        url = f"{API}/medications/{medication['id']}"
        for _ in range(9):
            assert client.post(f"{url}/take").status_code == 200
        res = client.post(f"{url}/miss", json={"reason": "forgot"})
        assert res.json()["message"] == "Medication marked as missed"
        body = res.json()["medication"]
        assert body["adherence_rate"] == 0.9
        assert body["adherence_percentage"] == "90.0%"
        assert body["adherence_status"] == "Excellent"

        records = client.get(f"{API}/patients/{patient['id']}/records").json()
        assert len(records) == 10
        assert records[-1]["missed_reason"] == "forgot"
        assert records[0]["record_type"] == "MEDICATION"

    def test_update_and_delete(self, client):
        patient = create_patient(client)
        medication = create_medication(client, patient["id"])
        url = f"{API}/medications/{medication['id']}"
        res = client.put(url, json={"name": "Metformin XR", "dosage": "750mg", "frequency_per_day": 1})
        assert res.json()["schedule_times"] == ["08:00"]
        assert client.delete(url).status_code == 204
        assert client.get(url).status_code == 404
        assert client.get(f"{API}/patients/{patient['id']}").json()["total_medication_count"] == 0

    def test_lists(self, seeded_client):
        assert len(seeded_client.get(f"{API}/medications/active").json()) == 5
        assert [m["name"] for m in seeded_client.get(f"{API}/medications/search", params={"query": "statin"}).json()] == [
            "Atorvastatin"
        ]
        excellent = [m["name"] for m in seeded_client.get(f"{API}/medications/excellent-adherence").json()]
        assert excellent == ["Lisinopril", "Aspirin"]
        poor = [m["name"] for m in seeded_client.get(f"{API}/medications/poor-adherence").json()]
        assert poor == ["Metformin"]
        assert seeded_client.get(f"{API}/medications/stats").json()["total_medications"] == 5
        assert seeded_client.get(f"{API}/medications/3/adherence").json()["adherence_percentage"] == "90.0%"


class TestNotifications:
    def test_medication_reminder_lifecycle(self, client):
        patient = create_patient(client)
        soon = (datetime.now() - timedelta(minutes=5)).isoformat()
        res = client.post(
            f"{API}/notifications/medication",
            json={
                "patient_id": patient["id"],
                "medication_name": "Metformin",
                "dosage": "500mg",
                "scheduled_time": soon,
                "priority": "URGENT",
            },
        )
        assert res.status_code == 201, res.text
        reminder = res.json()
        assert reminder["type"] == "MEDICATION"
        assert reminder["subject"] == "URGENT: Time to take Metformin"
        assert reminder["resolved_delivery_method"] == "ALL"
        assert reminder["is_due"] is True

        pending = client.get(f"{API}/notifications/patient/{patient['id']}/pending").json()
        assert [n["id"] for n in pending] == [reminder["id"]]

        res = client.post(f"{API}/notifications/{reminder['id']}/send")
        assert res.status_code == 200
        sent = res.json()["notification"]
        assert sent["sent"] is True
        assert sent["delivery_method"] == "ALL"
        assert sent["delivery_status"] == "SENT"
        assert "• Recipient: Sarah Johnson" in res.json()["result"]

        res = client.put(f"{API}/notifications/{reminder['id']}/delivery-status", json={"status": "DELIVERED"})
        assert res.json()["delivery_status"] == "DELIVERED"

    def test_invalid_priority(self, client):
        patient = create_patient(client)
        res = client.post(
            f"{API}/notifications/medication",
            json={"patient_id": patient["id"], "medication_name": "Metformin", "dosage": "500mg", "priority": "CRITICAL"},
        )
        assert res.status_code == 400
        assert client.get(f"{API}/notifications").json() == []

    def test_delivered_before_sent_conflicts(self, client):
        patient = create_patient(client)
        reminder = client.post(
            f"{API}/notifications/medication",
            json={"patient_id": patient["id"], "medication_name": "Metformin", "dosage": "500mg"},
        ).json()
        res = client.put(f"{API}/notifications/{reminder['id']}/delivery-status", json={"status": "DELIVERED"})
        assert res.status_code == 409
        res = client.put(f"{API}/notifications/{reminder['id']}/delivery-status", json={"status": "SENT"})
        assert res.status_code == 409
        assert res.json()["code"] == "invalid_state"
        current = client.get(f"{API}/notifications/{reminder['id']}").json()
        assert current["sent"] is False
        assert current["delivery_status"] == "PENDING"
        res = client.post(f"{API}/notifications/{reminder['id']}/follow-up", json={"hours_before": 1})
        assert res.status_code == 409

    def test_appointment_reminder(self, client):
        patient = create_patient(client)
        when = (datetime.now() + timedelta(days=3)).replace(microsecond=0)
        res = client.post(
            f"{API}/notifications/appointment",
            json={
                "patient_id": patient["id"],
                "doctor_name": "Smith",
                "location": "Clinic",
                "appointment_type": "Physical exam",
                "appointment_time": when.isoformat(),
                "reminder_hours_before": 48,
            },
        )
        assert res.status_code == 201, res.text
        reminder = res.json()
        assert reminder["type"] == "APPOINTMENT"
        assert reminder["subject"].startswith("NOTICE: Appointment with Dr. Smith")
        assert reminder["priority"] == "HIGH"
        assert reminder["is_due"] is False

        content = client.get(f"{API}/notifications/{reminder['id']}/content").json()
        assert "easily removable clothing" in content["content"]

        follow_up = client.post(f"{API}/notifications/{reminder['id']}/follow-up", json={"hours_before": 2})
        assert follow_up.status_code == 201
        assert follow_up.json()["subject"].startswith("URGENT:")

        assert len(client.get(f"{API}/notifications", params={"type": "appointment"}).json()) == 2

    def test_schedule_and_send_due(self, client):
        patient = create_patient(client)
        create_medication(client, patient["id"])
        res = client.post(f"{API}/notifications/patient/{patient['id']}/schedule-medication-reminders")
        assert res.status_code == 201
        assert len(res.json()) == 2
        res = client.post(f"{API}/notifications/patient/{patient['id']}/send-due")
        assert res.json()["total_processed"] == 0

    def test_delete(self, client):
        patient = create_patient(client)
        reminder = client.post(
            f"{API}/notifications/medication",
            json={"patient_id": patient["id"], "medication_name": "Metformin", "dosage": "500mg"},
        ).json()
        assert client.delete(f"{API}/notifications/{reminder['id']}").status_code == 204
        assert client.get(f"{API}/notifications/{reminder['id']}").status_code == 404

    def test_seeded_queries(self, seeded_client):
        assert seeded_client.get(f"{API}/notifications/stats").json()["total_notifications"] == 5
        assert len(seeded_client.get(f"{API}/notifications/high-priority").json()) == 4
        assert seeded_client.get(f"{API}/notifications/urgent").json() == []
        assert len(seeded_client.get(f"{API}/notifications", params={"priority": "NORMAL"}).json()) == 1
        assert len(seeded_client.get(f"{API}/notifications/patient/1").json()) == 3
        assert seeded_client.get(f"{API}/notifications/patient/3/overdue").json() == []
