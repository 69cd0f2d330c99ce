"""
Pytest configuration and fixtures.
"""

import pytest
from fastapi.testclient import TestClient

from app import create_app
from database import Database


@pytest.fixture
def db(tmp_path):
    """A connected store backed by a temporary file."""
    database = Database(str(tmp_path / "patients.db"))
    database.connect()
    yield database
    database.close()


@pytest.fixture
def static_dir(tmp_path):
    public = tmp_path / "public"
    public.mkdir()
    (public / "index.html").write_text("<html><body>Patient Registry</body></html>")
    (public / "style.css").write_text("body { margin: 0; }")
    return public


@pytest.fixture
def app(tmp_path, static_dir):
    return create_app(db_path=str(tmp_path / "api.db"), static_dir=static_dir)


@pytest.fixture
def client(app):
    """Test client; entering it runs the application lifespan."""
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def sample_patient_data():
    return {
        "protocol_number": "P-001",
        "name": "Agim Krasniqi",
        "gender": "male",
        "date_of_birth": "1960-05-01",
        "admission_date": "2024-06-01",
        "icd_codes": [{"code": "J18.9"}],
    }


@pytest.fixture
def register(client):
    """Post a registration and return the response."""
    def _register(protocol_number, **overrides):
        body = {
            "protocol_number": protocol_number,
            "name": f"Patient {protocol_number}",
            "gender": "female",
            "date_of_birth": "1990-01-01",
            "admission_date": "2024-01-01",
            "icd_codes": [{"code": "I10", "description": "Essential hypertension"}],
        }
        body.update(overrides)
        return client.post("/api/patients", json=body)
    return _register
