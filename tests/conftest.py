"""Pytest configuration for tests - in-memory database per test."""

import os

# Set test database URL BEFORE any imports from src
# This ensures the SessionLocal and engine use the test database
os.environ["DATABASE_URL"] = "sqlite:///:memory:"

from datetime import date, datetime
from decimal import Decimal

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from src.models import Account, Base, ServiceEvent, ServiceKind, ServiceStatus
from src.services.config import reset_settings

# Fixed reference time for every test that needs "now"
NOW = datetime(2025, 3, 15, 9, 0)


@pytest.fixture(autouse=True)
def fresh_settings():
    """Re-read settings from the environment for every test."""
    reset_settings()
    yield
    reset_settings()


@pytest.fixture
def engine():
    """In-memory engine shared across threads (TestClient runs handlers in a pool)."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db_session(engine):
    """Create test database session."""
    SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    session = SessionLocal()
    yield session
    session.close()


@pytest.fixture
def now() -> datetime:
    """Reference time used as 'now' by services."""
    return NOW


@pytest.fixture
def today() -> date:
    return NOW.date()


@pytest.fixture
def account(db_session) -> Account:
    """Create sample account."""
    account = Account(name="Acme Dumpsters")
    db_session.add(account)
    db_session.commit()
    return account


@pytest.fixture
def make_event(db_session, account):
    """Factory for service events."""
    counter = {"seq": 0}

    def _make(
        completed_at: datetime | None = None,
        value: str | Decimal = "100.00",
        parent_id: str | None = None,
        kind: ServiceKind = ServiceKind.OPERATION,
        vehicle_id: int | None = 7,
        start_at: datetime = datetime(2025, 3, 1, 8, 0),
        end_at: datetime = datetime(2025, 3, 1, 12, 0),
        client_name: str = "ACME Construction",
    ) -> ServiceEvent:
        counter["seq"] += 1
        event = ServiceEvent(
            account_id=account.id,
            kind=kind,
            sequence_number=counter["seq"],
            client_name=client_name,
            status=ServiceStatus.COMPLETED if completed_at else ServiceStatus.ACTIVE,
            start_at=start_at,
            end_at=end_at,
            completed_at=completed_at,
            value=Decimal(value),
            vehicle_id=vehicle_id,
            assigned_user_id=3,
            recurrence_parent_id=parent_id,
        )
        db_session.add(event)
        db_session.commit()
        return event

    return _make
