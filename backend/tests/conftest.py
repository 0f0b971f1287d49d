"""
Pytest configuration and fixtures for backend tests.
"""

import os

# The application engine is created at import time; keep it in memory.
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("ENVIRONMENT", "development")

from datetime import date, timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from rest_api.main import app
from rest_api.models import Base, DiscountEvent, Store, StoreConfig
from rest_api.services.domain import RedemptionEngine
from shared.config.constants import DEFAULT_STORE_CONFIG
from shared.infrastructure.db import get_db
from shared.rate_limit import limiter


# SQLite in-memory database for testing
SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"

engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Frozen "today" for date-window checks
TODAY = date(2024, 6, 15)


@pytest.fixture(scope="function")
def db_session():
    """
    Create a fresh database session for each test.
    Uses SQLite in-memory for isolation.
    """
    Base.metadata.create_all(bind=engine)

    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def today():
    return TODAY


@pytest.fixture
def engine_factory(db_session):
    """Build a RedemptionEngine on the test database for a given date."""
    def _make(on: date = TODAY) -> RedemptionEngine:
        return RedemptionEngine(TestingSessionLocal, today=lambda: on)
    return _make


@pytest.fixture
def redemption_engine(engine_factory):
    """Engine bound to the test database with a fixed date."""
    return engine_factory()


@pytest.fixture(scope="function")
def client(db_session, redemption_engine):
    """
    Create a test client with database session override.

    The gateway is created by the application lifespan; rate limits are
    disabled so tests can hit the public endpoints repeatedly.
    """
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.state.redemption_engine = redemption_engine
    limiter.enabled = False

    with TestClient(app) as test_client:
        yield test_client

    limiter.enabled = True
    app.dependency_overrides.clear()
    app.state.redemption_engine = None
    app.state.ws_manager = None
    app.state.gateway = None


@pytest.fixture
def seed_store(db_session):
    """Create a test store with its default configuration."""
    store = Store(
        name="Tienda Test",
        slug="tienda-test",
        whatsapp="+5491155550000",
    )
    db_session.add(store)
    db_session.flush()
    db_session.add(StoreConfig(store_id=store.id, business_name=store.name, **DEFAULT_STORE_CONFIG))
    db_session.commit()
    db_session.refresh(store)
    return store


@pytest.fixture
def seed_discount(db_session, seed_store):
    """PROMO10: 10% off, 3 uses in total, one per customer, valid around TODAY."""
    event = DiscountEvent(
        store_id=seed_store.id,
        title="10% de descuento",
        kind="descuento",
        code="PROMO10",
        discount_percent=10,
        start_date=TODAY - timedelta(days=5),
        end_date=TODAY + timedelta(days=5),
        usage_limit=3,
        per_customer_limit=1,
    )
    db_session.add(event)
    db_session.commit()
    db_session.refresh(event)
    return event


@pytest.fixture
def fake_gateway():
    """NotificationGateway double recording every notify_* call."""
    gateway = MagicMock()
    gateway.notify_store = AsyncMock(return_value=1)
    gateway.notify_store_admins = AsyncMock(return_value=1)
    gateway.notify_store_customers = AsyncMock(return_value=1)
    gateway.notify_order = AsyncMock(return_value=1)
    return gateway
