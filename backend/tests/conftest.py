"""
Shared test fixtures for MesFlow tests

Provides an in-memory database per test plus a few common records.
"""
import os

# Settings are cached and the engine is built at import; point both at
# SQLite before anything from mesflow is imported.
os.environ.setdefault("DATABASE_URL", "sqlite://")

import pytest
from datetime import datetime
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from mesflow.db.base import Base
from mesflow.services.routing_cache import routing_cache

from tests.factories import reset_sequences


# Create in-memory SQLite database for testing
SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"
engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def create_tables(engine):
    """Create all tables for testing using SQLAlchemy metadata"""
    # Registers every model with Base
    import mesflow.models  # noqa: F401

    Base.metadata.create_all(bind=engine)


def drop_tables(engine):
    """Drop all tables after testing"""
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db_session():
    """Create a fresh database session for each test"""
    create_tables(engine)
    reset_sequences()
    # Row ids restart with every test database
    routing_cache.clear()

    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        routing_cache.clear()
        drop_tables(engine)


@pytest.fixture
def monday():
    """Monday 2025-01-06 08:00, the opening of a working day"""
    return datetime(2025, 1, 6, 8, 0)


@pytest.fixture
def work_cell(db_session):
    """An active work cell with the default 8h/100% capacity"""
    from tests.factories import create_test_work_cell

    cell = create_test_work_cell(db_session, code="WC-ASSY", name="Assembly Cell")
    db_session.commit()
    return cell
