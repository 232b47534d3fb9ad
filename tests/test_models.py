"""Storage contract of the table models: instants are naive UTC columns."""

from datetime import datetime

import pytest
from conftest import MONDAY_9AM, add_all
from sqlalchemy import DateTime

from app.models import Appointment, Patient, SlotTemplateEntry


@pytest.mark.parametrize(
    "column",
    [
        Appointment.__table__.c.scheduled_datetime,
        Appointment.__table__.c.created_at,
        Appointment.__table__.c.updated_at,
        Patient.__table__.c.created_at,
        Patient.__table__.c.updated_at,
        SlotTemplateEntry.__table__.c.start_at,
        SlotTemplateEntry.__table__.c.end_at,
    ],
    ids=lambda c: f"{c.table.name}.{c.name}",
)
def test_datetime_columns_are_plain_naive(column):
    assert type(column.type) is DateTime
    assert column.type.timezone is False


@pytest.mark.asyncio
async def test_naive_instants_round_trip(session_maker, clinic):
    anchored = datetime(2026, 10, 20, 11, 0)
    (appointment, entry) = await add_all(
        session_maker,
        Appointment(service_id=clinic.service_id, scheduled_datetime=MONDAY_9AM),
        SlotTemplateEntry(service_id=clinic.service_id, start_at=anchored),
    )

    async with session_maker() as session:
        stored = await session.get(Appointment, appointment.id)
        stored_entry = await session.get(SlotTemplateEntry, entry.id)

    assert stored.scheduled_datetime == MONDAY_9AM
    assert stored.scheduled_datetime.tzinfo is None
    assert stored_entry.start_at == anchored
