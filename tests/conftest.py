"""
Shared pytest fixtures.

Every test gets a fresh in-memory SQLite ledger built from the SQLModel metadata,
a fixed clock and, where needed, a stub Voyager gateway.
"""

import os
from dataclasses import dataclass
from datetime import date, datetime, time
from typing import AsyncGenerator
from zoneinfo import ZoneInfo

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel

os.environ["ENV"] = "test"
os.environ["SMTP_HOST"] = ""

import app.models  # noqa: E402,F401 - register tables
from app.core.db import make_session_maker  # noqa: E402
from app.core.errors import UpstreamUnavailable  # noqa: E402
from app.models import BodyPart, BookingCreate, Service, SlotTemplateEntry  # noqa: E402
from app.services.voyager_gateway import (  # noqa: E402
    RemoteBooking,
    RemoteBookingResult,
    RemoteDayAvailability,
    RemoteSchedulingGateway,
)

UTC_TZ = ZoneInfo("UTC")
SYDNEY_TZ = ZoneInfo("Australia/Sydney")

# Sunday 2026-10-18 10:00 UTC; the next Monday is 2026-10-19
NOW = datetime(2026, 10, 18, 10, 0)
MONDAY = date(2026, 10, 19)
MONDAY_9AM = datetime(2026, 10, 19, 9, 0)
SATURDAY_DATE = date(2026, 10, 24)


def fixed_clock(now: datetime = NOW):
    return lambda: now


@dataclass
class Clinic:
    service_id: int
    body_part_id: int
    other_service_id: int
    other_body_part_id: int


class StubGateway(RemoteSchedulingGateway):
    """Records calls; raises or returns whatever the test configures."""

    def __init__(
        self,
        availability: list[RemoteDayAvailability] | None = None,
        availability_error: Exception | None = None,
        booking_result: RemoteBookingResult | None = None,
        booking_error: Exception | None = None,
    ) -> None:
        self.availability = availability or []
        self.availability_error = availability_error
        self.booking_result = booking_result or RemoteBookingResult(success=True, remote_id="VOY-1")
        self.booking_error = booking_error
        self.availability_calls: list[tuple[int, date, date]] = []
        self.bookings: list[RemoteBooking] = []

    async def get_availability(self, service_id, date_from, date_to):
        self.availability_calls.append((service_id, date_from, date_to))
        if self.availability_error is not None:
            raise self.availability_error
        return self.availability

    async def create_appointment(self, booking):
        self.bookings.append(booking)
        if self.booking_error is not None:
            raise self.booking_error
        return self.booking_result


@pytest.fixture
def failing_gateway() -> StubGateway:
    return StubGateway(
        availability_error=UpstreamUnavailable("Voyager API error: 503"),
        booking_error=UpstreamUnavailable("Voyager API error: 503"),
    )


@pytest_asyncio.fixture
async def engine() -> AsyncGenerator[AsyncEngine, None]:
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_maker(engine):
    return make_session_maker(engine)


@pytest_asyncio.fixture
async def file_session_maker(tmp_path):
    """Ledger in a SQLite file with a real connection pool, for overlapping transactions."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'ledger.db'}",
        connect_args={"timeout": 10},
    )
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    yield make_session_maker(engine)
    await engine.dispose()


async def add_all(session_maker, *objects):
    async with session_maker() as session:
        session.add_all(objects)
        await session.commit()
    return objects


async def seed_clinic(session_maker) -> Clinic:
    """CT with one weekly slot (Monday 09:00-09:30) plus an X-Ray service with its own body part."""
    async with session_maker() as session:
        ct = Service(name="CT Scan", code="CT", category="CT", duration_minutes=30)
        xray = Service(name="X-Ray", code="XR", category="X-Ray", duration_minutes=20)
        session.add_all([ct, xray])
        await session.flush()
        head = BodyPart(name="Head", service_id=ct.id, preparation_text="Remove hairpins and earrings.")
        chest = BodyPart(name="Chest", service_id=xray.id, preparation_text="Wear loose clothing.")
        session.add_all([head, chest])
        session.add(
            SlotTemplateEntry(service_id=ct.id, day_of_week=1, start_time=time(9, 0), end_time=time(9, 30))
        )
        await session.commit()
        return Clinic(
            service_id=ct.id,
            body_part_id=head.id,
            other_service_id=xray.id,
            other_body_part_id=chest.id,
        )


@pytest_asyncio.fixture
async def clinic(session_maker) -> Clinic:
    return await seed_clinic(session_maker)


def patient_details(**overrides) -> dict:
    details = {
        "title": "Ms",
        "first_name": "Jane",
        "last_name": "Citizen",
        "date_of_birth": "1985-04-12",
        "email": "jane@example.com",
        "mobile": "0412345678",
    }
    details.update(overrides)
    return details


def booking_create(service_id: int, scheduled_datetime: datetime = MONDAY_9AM, **overrides) -> BookingCreate:
    data = {
        "service_id": service_id,
        "scheduled_datetime": scheduled_datetime,
        "patient_details": patient_details(**overrides.pop("patient", {})),
    }
    data.update(overrides)
    return BookingCreate.model_validate(data)
