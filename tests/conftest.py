from datetime import datetime

import pytest
from fastapi.testclient import TestClient

from config import Settings
from database import Database
from main import create_app
from services import Services

NOW = datetime(2026, 3, 2, 9, 0)


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def db():
    return Database()


@pytest.fixture
def services(db):
    return Services(db)


@pytest.fixture
def patient(services):
    return services.patients.create("Sarah Johnson", "Diabetes Type 2, Hypertension", "sarah@email.com", "555-012-3401")


@pytest.fixture
def medication(services, patient):
    return services.medications.create_for_patient(patient.id, "Metformin", "500mg", 2, "Take with meals")


@pytest.fixture
def app():
    return create_app(Settings(SEED_SAMPLE_DATA=False))


@pytest.fixture
def client(app):
    return TestClient(app)


@pytest.fixture
def seeded_client():
    return TestClient(create_app(Settings(SEED_SAMPLE_DATA=True)))
