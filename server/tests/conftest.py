"""Test configuration and fixtures."""

import os

# Settings are read at import time; point them at SQLite before the app loads
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("WORKERS_ENABLED", "false")

from datetime import datetime, timedelta  # noqa: E402
from typing import Any, Optional  # noqa: E402

import jwt  # noqa: E402
import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from luxury_rentals.core.config import settings  # noqa: E402
from luxury_rentals.core.database import Base, get_db  # noqa: E402
from luxury_rentals.models import *  # noqa: E402,F403 - Import all models
from luxury_rentals.models import (  # noqa: E402
    Booking,
    BookingStatus,
    Customer,
    CustomerTier,
    InventoryItem,
    ItemType,
    PaymentStatus,
    StaffMember,
)
from luxury_rentals.services.integrations import CalendarClient, NotificationClient, PaymentClient  # noqa: E402
from luxury_rentals.services.scheduler_service import StatusScheduler  # noqa: E402
from luxury_rentals.services.status_actions import ActionDispatcher  # noqa: E402

# Test database URL (in-memory SQLite for speed)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

# A Monday in May: standard pricing season, far from the peak boundaries
FIXED_NOW = datetime(2026, 5, 4, 12, 0, 0)


def fixed_clock() -> datetime:
    return FIXED_NOW


class RecordingNotifier(NotificationClient):
    """Notification client that records sends instead of calling out."""

    def __init__(self, succeed: bool = True):
        super().__init__(base_url="")
        self.succeed = succeed
        self.sent: list[dict[str, Any]] = []

    async def send(self, notification_type: str, recipient_email: str, template_data: dict[str, Any]) -> bool:
        self.sent.append({"type": notification_type, "recipient": recipient_email, "data": template_data})
        return self.succeed

    def of_type(self, notification_type: str) -> list[dict[str, Any]]:
        return [n for n in self.sent if n["type"] == notification_type]


class RecordingCalendar(CalendarClient):
    def __init__(self):
        super().__init__(base_url="")
        self.calls: list[tuple[str, str]] = []

    async def create_event(self, booking) -> Optional[str]:
        self.calls.append(("create", booking.code))
        return f"evt-{booking.code}"

    async def update_event(self, booking) -> bool:
        self.calls.append(("update", booking.code))
        return bool(booking.calendar_event_id)

    async def delete_event(self, booking) -> bool:
        self.calls.append(("delete", booking.code))
        return bool(booking.calendar_event_id)


class RecordingPayments(PaymentClient):
    def __init__(self, succeed: bool = True):
        super().__init__(base_url="")
        self.succeed = succeed
        self.refunds: list[tuple[str, int]] = []

    async def refund(self, booking, amount: int) -> bool:
        self.refunds.append((booking.code, amount))
        return self.succeed


@pytest_asyncio.fixture(scope="function")
async def test_engine():
    """Create a test database engine."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
def session_factory(test_engine):
    """Session factory bound to the test engine, as used by background actions."""
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest_asyncio.fixture(scope="function")
async def test_session(session_factory):
    """Create a test database session."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def calendar():
    return RecordingCalendar()


@pytest.fixture
def payments():
    return RecordingPayments()


@pytest_asyncio.fixture(scope="function")
async def dispatcher(session_factory, notifier, calendar, payments):
    """Action dispatcher wired to recording collaborators and the fixed clock."""
    dispatcher = ActionDispatcher(session_factory, notifier, calendar, payments, clock=fixed_clock)
    yield dispatcher
    await dispatcher.drain()


@pytest.fixture
def scheduler(session_factory, dispatcher, notifier):
    return StatusScheduler(session_factory, dispatcher, notifier, clock=fixed_clock)


@pytest_asyncio.fixture(scope="function")
async def test_app(test_session, dispatcher, scheduler):
    """Create a test FastAPI application."""
    from fastapi import FastAPI
    from fastapi.exceptions import RequestValidationError

    from luxury_rentals.core.exceptions import (
        ProblemDetailsException,
        generic_exception_handler,
        problem_details_handler,
        request_validation_handler,
    )
    from luxury_rentals.routers import availability, booking, health, inventory, metrics
    from luxury_rentals.routers import scheduler as scheduler_router

    # Simplified app without lifespan or workers
    app = FastAPI(title="Luxury Rentals API (Test)", version="1.0.0-test")
    app.state.dispatcher = dispatcher
    app.state.scheduler = scheduler

    app.add_exception_handler(ProblemDetailsException, problem_details_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, generic_exception_handler)

    app.include_router(health.router)
    app.include_router(availability.router)
    app.include_router(booking.router)
    app.include_router(inventory.router)
    app.include_router(scheduler_router.router)
    app.include_router(metrics.router)

    # Override database dependency
    async def override_get_db():
        yield test_session

    app.dependency_overrides[get_db] = override_get_db

    yield app

    app.dependency_overrides.clear()


@pytest_asyncio.fixture(scope="function")
async def test_client(test_app):
    """Create a test HTTP client."""
    transport = ASGITransport(app=test_app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


def make_token(subject: str, roles: Optional[list[str]] = None, **claims: Any) -> str:
    payload = {"sub": subject, "roles": roles or [], **claims}
    return jwt.encode(payload, settings.bearer_token_secret, algorithm="HS256")


@pytest.fixture
def staff_headers():
    return {"Authorization": f"Bearer {make_token('staff-1', roles=['staff'])}"}


@pytest.fixture
def make_item(test_session):
    """Insert an inventory item; keyword arguments override the defaults."""

    async def factory(**overrides) -> InventoryItem:
        fields = {
            "item_id": "CAR-001",
            "name": "Lamborghini Huracan",
            "item_type": ItemType.CARS,
            "category": "supercar",
            "primary_location": "miami",
            "minimum_rental_days": 1,
            "base_price": 100000,
            "security_deposit": 500000,
            "insurance_rate": 0.15,
            "blackout_periods": [],
        }
        fields.update(overrides)
        item = InventoryItem(**fields)
        test_session.add(item)
        await test_session.commit()
        return item

    return factory


@pytest.fixture
def make_customer(test_session):

    async def factory(**overrides) -> Customer:
        fields = {
            "email": "vip@example.com",
            "first_name": "Ada",
            "last_name": "Lovelace",
            "tier": CustomerTier.STANDARD,
        }
        fields.update(overrides)
        customer = Customer(**fields)
        test_session.add(customer)
        await test_session.commit()
        return customer

    return factory


@pytest.fixture
def make_staff(test_session):

    async def factory(**overrides) -> StaffMember:
        fields = {
            "email": "concierge@example.com",
            "first_name": "Alex",
            "last_name": "Morgan",
            "preferred_locations": ["miami"],
            "created_at": FIXED_NOW - timedelta(days=30),
        }
        fields.update(overrides)
        staff = StaffMember(**fields)
        test_session.add(staff)
        await test_session.commit()
        return staff

    return factory


@pytest.fixture
def make_booking(test_session):
    """Insert a booking row directly, bypassing availability checks."""
    counter = {"n": 0}

    async def factory(item: InventoryItem, start: datetime, end: datetime, **overrides) -> Booking:
        counter["n"] += 1
        fields = {
            "code": f"TEST-{counter['n']:04d}",
            "item_id": item.item_id,
            "item_name": item.name,
            "item_type": item.item_type,
            "item_snapshot": {"item_id": item.item_id, "primary_location": item.primary_location},
            "start_at": start,
            "end_at": end,
            "status": BookingStatus.CONFIRMED,
            "guest_first_name": "Grace",
            "guest_last_name": "Hopper",
            "guest_email": "grace@example.com",
            "security_deposit": item.security_deposit,
            "total": 1_000_000,
            "payment_status": PaymentStatus.PENDING,
            "reminders_sent": [],
            "created_at": FIXED_NOW - timedelta(days=7),
            "updated_at": FIXED_NOW - timedelta(days=7),
        }
        if overrides.get("customer_id") is not None:
            fields["guest_email"] = None
        fields.update(overrides)
        booking = Booking(**fields)
        test_session.add(booking)
        await test_session.commit()
        return booking

    return factory
