"""
Pytest Configuration and Shared Fixtures
========================================

This module provides shared fixtures for all MedTrack tests.
Fixtures include database sessions, data stores, test clients and sample data.
"""

import os
import sys
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Generator, List

# Keep the suite off the on-disk database and the real retry delays
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("DATA_STORE", "sql")
os.environ.setdefault("RETRY_BASE_DELAY", "0")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import models
from database import Base
from schemas import DoseLog, MedicationWithLogs
from services.identity_client import LocalIdentity
from services.medication_service import MedicationService
from services.sql_data_store import SQLDataStore
from api.deps import get_identity, get_medication_service
from app import app
from tests import OTHER_USER_ID, USER_ID


# ==================== DATABASE FIXTURES ====================

@pytest.fixture(scope="function")
def test_engine():
    """Create a test database engine with in-memory SQLite"""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False
    )

    # Enable foreign keys for SQLite
    @event.listens_for(engine, "connect")
    def set_sqlite_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    # Create all tables
    Base.metadata.create_all(bind=engine)

    yield engine

    # Cleanup
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture(scope="function")
def session_factory(test_engine):
    """Session factory bound to the test engine"""
    return sessionmaker(autocommit=False, autoflush=False, bind=test_engine)


@pytest.fixture
def data_store(session_factory) -> SQLDataStore:
    return SQLDataStore(session_factory)


@pytest.fixture
def medication_service(data_store: SQLDataStore) -> MedicationService:
    return MedicationService(data_store)


@pytest.fixture(scope="function")
def client(medication_service: MedicationService) -> Generator[TestClient, None, None]:
    """Create a FastAPI test client backed by the test database"""
    app.dependency_overrides[get_medication_service] = lambda: medication_service
    app.dependency_overrides[get_identity] = lambda: LocalIdentity()

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers() -> Dict[str, str]:
    """Bearer header for USER_ID (the local resolver treats the token as the user id)"""
    return {"Authorization": f"Bearer {USER_ID}"}


@pytest.fixture
def other_auth_headers() -> Dict[str, str]:
    return {"Authorization": f"Bearer {OTHER_USER_ID}"}


# ==================== SAMPLE DATA FIXTURES ====================

@pytest.fixture
def sample_medication_data() -> Dict[str, Any]:
    """Sample medication data for creating test medications"""
    return {
        "name": "Metformin",
        "dosage": "500mg",
        "frequency": "twice_daily",
    }


@pytest.fixture
def test_profiles(session_factory) -> List[str]:
    """Patient profiles for USER_ID and OTHER_USER_ID"""
    session = session_factory()
    session.add_all([
        models.Profile(id=USER_ID, email="patient@example.com", role=models.UserRole.PATIENT),
        models.Profile(id=OTHER_USER_ID, email="other@example.com", role=models.UserRole.PATIENT),
    ])
    session.commit()
    session.close()
    return [USER_ID, OTHER_USER_ID]


@pytest.fixture
def test_medication(session_factory, test_profiles, sample_medication_data) -> str:
    """A medication owned by USER_ID; returns its id"""
    session = session_factory()
    medication = models.Medication(user_id=USER_ID, **sample_medication_data)
    session.add(medication)
    session.commit()
    medication_id = medication.id
    session.close()
    return medication_id


@pytest.fixture
def make_medication() -> Callable[..., MedicationWithLogs]:
    """
    Build an in-memory medication with logs at the given timestamps

    Usage:
        make_medication("2024-01-30T09:00:00Z", med_id="m1")
    """
    def _make(*taken_at, med_id: str = "med-1", name: str = "Metformin") -> MedicationWithLogs:
        logs = tuple(
            DoseLog(
                id=f"log-{med_id}-{index}",
                medication_id=med_id,
                user_id=USER_ID,
                taken_at=value,
            )
            for index, value in enumerate(taken_at)
        )
        return MedicationWithLogs(
            id=med_id,
            user_id=USER_ID,
            name=name,
            dosage="500mg",
            frequency="once_daily",
            created_at=datetime(2024, 1, 1, tzinfo=timezone.utc),
            medication_logs=logs,
        )

    return _make


# ==================== PYTEST CONFIGURATION ====================

def pytest_configure(config):
    """Register custom markers"""
    config.addinivalue_line("markers", "unit: mark test as a unit test")
    config.addinivalue_line("markers", "integration: mark test as an integration test")
    config.addinivalue_line("markers", "api: mark test as an API test")
    config.addinivalue_line("markers", "database: mark test as requiring database")
