"""Pytest configuration and fixtures."""

import os

# Keep the application engine off the on-disk default database
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")

import pytest
from typing import Generator

from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from reservation_engine.core.validators import RequestContext
from reservation_engine.db.base import Base
from reservation_engine.db.session import configure_sqlite, get_db
from reservation_engine.main import app
# Import all models to ensure they're registered with Base.metadata
from reservation_engine.models import *
from reservation_engine.services.change_notifier import ChangeNotifier
from reservation_engine.services.field_definition_service import FieldDefinitionService
from reservation_engine.services.reservation_service import ReservationService

# Use in-memory SQLite for tests
TEST_DATABASE_URL = "sqlite:///:memory:"


@pytest.fixture(scope="function")
def db_engine():
    """Create a test database engine."""
    engine = create_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    configure_sqlite(engine)
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def db_session(db_engine) -> Generator[Session, None, None]:
    """Create a test database session."""
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(scope="function")
def client(db_session: Session) -> Generator[TestClient, None, None]:
    """Create a test client with database override."""
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    # Disable rate limiter during tests to avoid flaky failures
    from reservation_engine.core.rate_limit import limiter as global_limiter
    global_limiter.enabled = False
    # Don't raise server exceptions so we can test error status codes
    with TestClient(app, raise_server_exceptions=False) as test_client:
        yield test_client
    global_limiter.enabled = True
    app.dependency_overrides.clear()


@pytest.fixture
def notifier() -> ChangeNotifier:
    """A private notifier so tests can inspect published events."""
    return ChangeNotifier()


@pytest.fixture
def service(db_session: Session, notifier: ChangeNotifier) -> ReservationService:
    return ReservationService(db_session, notifier=notifier)


@pytest.fixture
def ctx() -> RequestContext:
    return RequestContext(actor="tester", ip_address="127.0.0.1", user_agent="pytest", request_id="req_test")


@pytest.fixture
def field_defs(db_session: Session) -> list:
    """A small extras catalog covering the common field types."""
    definitions = FieldDefinitionService(db_session)
    created = [
        definitions.create({"key": "pickup_location", "label": "Pickup location", "type": "string",
                            "category": "logistics", "sort_order": 1}),
        definitions.create({"key": "shuttle_seats", "label": "Shuttle seats", "type": "number",
                            "category": "logistics", "sort_order": 2}),
        definitions.create({"key": "meal_plan", "label": "Meal plan", "type": "select",
                            "options": ["none", "breakfast", "full"], "category": "stay"}),
        definitions.create({"key": "needs_insurance", "label": "Needs insurance", "type": "boolean",
                            "category": "stay"}),
    ]
    return created


def make_payload(**overrides) -> dict:
    """A valid create payload."""
    payload = {
        "reservation_number": "R100",
        "channel": "web",
        "platform_name": "klook",
        "product_name": "Namsan Tower Night Tour",
        "korean_name": "김민수",
        "english_first_name": "minsu",
        "english_last_name": "KIM",
        "email": "Minsu.Kim@Example.com",
        "phone": "+82 10-1234-5678",
        "usage_date": "2026-11-03",
        "usage_time": "19:30",
        "total_amount": "100",
        "people_adult": 2,
    }
    payload.update(overrides)
    return payload


@pytest.fixture
def payload_factory():
    return make_payload


@pytest.fixture
def reservation(service: ReservationService, ctx: RequestContext):
    """A stored reservation."""
    return service.create(make_payload(), ctx)
