"""
Shared pytest fixtures for the ADT training simulator tests.
"""
from datetime import datetime, timezone

import pytest
from fastapi.testclient import TestClient

from main import app
from models import Guarantor, Patient, guarantors, patients
from seed import seed_data

# Fixed clock so age and date-slide assertions do not depend on the wall clock
FIXED_NOW = datetime(2026, 6, 15, 12, 0, tzinfo=timezone.utc)
FIXED_TODAY = FIXED_NOW.date()


@pytest.fixture
def client():
    """FastAPI TestClient."""
    return TestClient(app)


@pytest.fixture(autouse=True)
def seeded_data():
    """
    Reset to seed data before each test:
    FAC-NORTH -> SA-CHILDREN -> RL-MAIN-PAV with DEP-3W-PED, DEP-ICU, DEP-ED,
    six beds, four security classes and the three Golden Record templates.
    """
    seed_data(now=FIXED_NOW)
    yield


@pytest.fixture
def make_patient():
    """Insert a patient directly into the store."""
    def _make(ept_id, sex="Male", date_of_birth="1990-01-15", guarantor_id=None,
              is_template=False, **extra):
        return patients.insert(Patient(
            eptId=ept_id,
            mrn=f"MRN-{ept_id}",
            firstName="Test",
            lastName=ept_id,
            dateOfBirth=date_of_birth,
            sex=sex,
            guarantorId=guarantor_id,
            isTemplate=is_template,
            **extra,
        ))
    return _make


@pytest.fixture
def make_guarantor():
    """Insert a guarantor directly into the store."""
    def _make(ear_id, address=None, **extra):
        return guarantors.insert(Guarantor(earId=ear_id, name=f"Guarantor {ear_id}", address=address, **extra))
    return _make
