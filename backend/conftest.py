"""
Pytest configuration file for backend testing.
"""
import os
import sys
from pathlib import Path

import pytest

# Tests never touch the configured PostgreSQL database
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("ENVIRONMENT", "test")

# Add the backend directory to Python path so imports work correctly
backend_dir = Path(__file__).parent
if str(backend_dir) not in sys.path:
    sys.path.insert(0, str(backend_dir))

# Import all models to register them with SQLAlchemy
from modules.tax.models import jurisdiction_models  # noqa: E402,F401
from modules.orders.models import order_models  # noqa: E402,F401

from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402

from core.database import Base, build_engine, get_db  # noqa: E402
from modules.tax.services import geometry_index_cache  # noqa: E402


@pytest.fixture(autouse=True)
def reset_geometry_index():
    """The geometry index is process-wide; never let it leak between tests."""
    geometry_index_cache.clear()
    yield
    geometry_index_cache.clear()


@pytest.fixture(scope="function")
def test_engine():
    engine = build_engine("sqlite://")
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture(scope="function")
def db_session(test_engine):
    """Create a fresh database session for each test."""
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=test_engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture(scope="function")
def client(db_session):
    """Create a test client with database dependency override."""
    from app.main import app

    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    test_client = TestClient(app)
    yield test_client
    app.dependency_overrides.clear()
