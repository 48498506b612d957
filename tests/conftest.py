"""
Pytest configuration and fixtures.
"""
import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from fastapi.testclient import TestClient
from unittest.mock import patch

from app.core.auth import Actor
from app.core.database import Base, get_db
from app.main import app

# Import all models so tables are registered with Base.metadata
from app.models import (  # noqa: F401
    Audit,
    SectionEvaluation,
    ValidationRecord,
    Visit,
    Finding,
    Report,
    ActivityLog,
    EvidenceDocument,
    InventoryIngestion,
)

# Use file-based SQLite for testing (threads need a shared database)
TEST_DATABASE_URL = "sqlite:///./test_audit_portal.db"

test_engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False, "timeout": 30},
    pool_pre_ping=False,
)

TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=test_engine)


@pytest.fixture(scope="session", autouse=True)
def setup_test_database():
    """Create all tables once per session and drop them at the end."""
    Base.metadata.drop_all(bind=test_engine)
    Base.metadata.create_all(bind=test_engine)
    yield
    Base.metadata.drop_all(bind=test_engine)


@pytest.fixture(scope="function", autouse=True)
def clean_tables():
    """Empty every table after each test (Core deletes skip the append-only guard)."""
    yield
    with test_engine.begin() as conn:
        for table in reversed(Base.metadata.sorted_tables):
            conn.execute(table.delete())


@pytest.fixture(scope="function", autouse=True)
def disable_openai():
    """Disable OpenAI for all tests by patching the settings."""
    with patch("app.core.config.settings.OPENAI_API_KEY", None):
        yield


@pytest.fixture(scope="function")
def client():
    """Test client whose requests each get a fresh test-database session."""
    def override_get_db():
        db = TestingSessionLocal()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db

    yield TestClient(app)

    app.dependency_overrides.clear()


@pytest.fixture(scope="function")
def db_session():
    """Database session for tests that call services directly."""
    db = TestingSessionLocal()
    try:
        yield db
        db.rollback()
    finally:
        db.close()


@pytest.fixture
def session_factory():
    """Factory for extra sessions (one per thread in concurrency tests)."""
    return TestingSessionLocal


@pytest.fixture
def auditor():
    return Actor("aud-1", "auditor")


@pytest.fixture
def coordinator():
    return Actor("coord-1", "coordinador")


@pytest.fixture
def provider():
    return Actor("prov-1", "proveedor")
