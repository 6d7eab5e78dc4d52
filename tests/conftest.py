"""
Shared pytest fixtures.

Every test gets a fresh in-memory SQLite database. API tests talk to the real
app with the DB session, clock, Stripe gateway and email sender swapped out
through ``dependency_overrides``.
"""

import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("SUPABASE_JWT_SECRET", "test-jwt-secret")
os.environ.setdefault("STRIPE_SECRET_KEY", "sk_test_dummy")
os.environ.setdefault("STRIPE_WEBHOOK_SECRET", "whsec_dummy")

from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from icebath.api.deps import get_clock, get_db, get_email_sender, get_payment_gateway
from icebath.core.clock import FixedClock
from icebath.db.base import Base
from icebath.main import app
from icebath.services.payment_gateway import CheckoutSession, SessionStatus

from .factories import CHECKOUT_SESSION_ID, NOW, PAYMENT_INTENT_ID


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    # pysqlite needs these for SAVEPOINT to behave
    @event.listens_for(engine, "connect")
    def _connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _begin(conn):
        conn.exec_driver_sql("BEGIN")

    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db(engine):
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    try:
        yield session
    finally:
        session.close()


# ---------------------------------------------------------------------------
# Collaborators
# ---------------------------------------------------------------------------


@pytest.fixture
def clock():
    return FixedClock(NOW)


@pytest.fixture
def gateway():
    mock = MagicMock()
    mock.create_checkout_session.return_value = CheckoutSession(
        id=CHECKOUT_SESSION_ID,
        url=f"https://checkout.stripe.com/c/pay/{CHECKOUT_SESSION_ID}",
    )
    mock.retrieve_session.return_value = SessionStatus(
        id=CHECKOUT_SESSION_ID,
        payment_status="paid",
        status="complete",
        payment_intent=PAYMENT_INTENT_ID,
    )
    mock.refund.return_value = "re_test_123"
    return mock


@pytest.fixture
def email_sender():
    mock = MagicMock()
    mock.send.return_value = True
    return mock


# ---------------------------------------------------------------------------
# App client
# ---------------------------------------------------------------------------


@pytest.fixture
def client(db, clock, gateway, email_sender):
    def _db():
        yield db

    app.dependency_overrides[get_db] = _db
    app.dependency_overrides[get_clock] = lambda: clock
    app.dependency_overrides[get_payment_gateway] = lambda: gateway
    app.dependency_overrides[get_email_sender] = lambda: email_sender
    # No context manager: the lifespan (Postgres bootstrap, maintenance loop) stays off
    yield TestClient(app)
    app.dependency_overrides.clear()
