"""Shared fixtures: in-memory SQLite, seeded catalog and in-process fakes.

Environment defaults are set before any ``app`` import so the settings module
never points the engine at Postgres during tests.
"""
import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("PAYMENT_GATEWAY", "stub")

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import app.data.models  # noqa: F401
from app.data.database import Base
from app.data.models import AddressModel, CouponModel, ProductModel
from app.services.checkout_service import OrderFinalizer
from app.services.payment_stub import PaymentGatewayStub

USER_ID = 1
OTHER_USER_ID = 2


class FakeLockService:
    """Lock service stand-in that keeps locks in a dict instead of Redis."""

    def __init__(self):
        self.held = {}
        self.on_release = None

    def acquire_capture_lock(self, intent_id, owner, ttl):
        if intent_id in self.held:
            return False
        self.held[intent_id] = owner
        return True

    def release_capture_lock(self, intent_id, owner):
        released = self.held.get(intent_id) == owner
        if released:
            del self.held[intent_id]
        hook, self.on_release = self.on_release, None
        if hook:
            hook()
        return released


class FakeNotifications:
    """Records what would have been queued on Celery."""

    def __init__(self):
        self.orders = []
        self.alerts = []

    def send_order_notification(self, user_id, order_id):
        self.orders.append((user_id, order_id))

    def send_reconciliation_alert(self, alert):
        self.alerts.append(alert)


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def now():
    return datetime.now(timezone.utc)


@pytest.fixture
def catalog(db, now):
    """Two products, one address per user and a 10% coupon."""
    shirt = ProductModel(name="Linen shirt", price=Decimal("20.00"), stock=5)
    tote = ProductModel(name="Canvas tote", price=Decimal("15.00"), stock=1)
    address = AddressModel(user_id=USER_ID, name="Ada", line1="1 High St", city="London", postal_code="N1 9GU")
    other_address = AddressModel(user_id=OTHER_USER_ID, name="Bob", line1="2 Low St", city="Leeds", postal_code="LS1 1AA")
    coupon = CouponModel(
        code="SAVE10",
        discount_percent=Decimal("10.00"),
        start_date=now - timedelta(days=1),
        end_date=now + timedelta(days=1),
        usage_limit=5,
        usage_count=0,
    )
    db.add_all([shirt, tote, address, other_address, coupon])
    db.commit()
    return {
        "shirt": shirt.id,
        "tote": tote.id,
        "address": address.id,
        "other_address": other_address.id,
        "coupon": coupon.id,
    }


@pytest.fixture
def gateway():
    return PaymentGatewayStub()


@pytest.fixture
def locks():
    return FakeLockService()


@pytest.fixture
def notifications():
    return FakeNotifications()


@pytest.fixture
def make_finalizer(gateway, locks, notifications):
    def _make(session):
        return OrderFinalizer(session, gateway, locks, notifications, currency="GBP")

    return _make


@pytest.fixture
def finalizer(db, make_finalizer):
    return make_finalizer(db)
