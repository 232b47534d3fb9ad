from datetime import datetime

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import AppointmentNotFound
from app.models.appointment import ACTIVE_STATUSES, Appointment, AppointmentStatus, AppointmentUpdate
from app.models.patient import Patient


async def get_booked_slot_starts(
    session: AsyncSession, service_id: int, start_inclusive: datetime, end_exclusive: datetime
) -> set[datetime]:
    result = await session.execute(
        select(Appointment.scheduled_datetime).where(
            Appointment.service_id == service_id,
            Appointment.status.in_(ACTIVE_STATUSES),
            Appointment.scheduled_datetime >= start_inclusive,
            Appointment.scheduled_datetime < end_exclusive,
        )
    )
    return {row[0] for row in result.all()}


async def find_active_appointment(
    session: AsyncSession, service_id: int, scheduled_datetime: datetime
) -> Appointment | None:
    result = await session.execute(
        select(Appointment).where(
            Appointment.service_id == service_id,
            Appointment.scheduled_datetime == scheduled_datetime,
            Appointment.status.in_(ACTIVE_STATUSES),
        )
    )
    return result.scalars().first()


async def get_appointment(session: AsyncSession, appointment_id: int) -> Appointment:
    appointment = await session.get(Appointment, appointment_id)
    if appointment is None:
        raise AppointmentNotFound(appointment_id=appointment_id)
    return appointment


async def list_appointments_for_contact(
    session: AsyncSession, email: str | None = None, mobile: str | None = None
) -> list[Appointment]:
    """Appointments of patients matching email or mobile, newest first."""
    conditions = []
    if email:
        conditions.append(Patient.email == email.strip().lower())
    if mobile:
        conditions.append(Patient.mobile == mobile.strip())
    if not conditions:
        return []
    result = await session.execute(
        select(Appointment)
        .join(Patient, Patient.id == Appointment.patient_id)
        .where(or_(*conditions))
        .order_by(Appointment.scheduled_datetime.desc())
    )
    return list(result.scalars().all())


async def update_appointment(
    session: AsyncSession, appointment_id: int, data: AppointmentUpdate
) -> Appointment:
    appointment = await get_appointment(session, appointment_id)
    if data.status is not None and data.status.value != appointment.status:
        appointment.transition_to(data.status)
    if "notes" in data.model_fields_set:
        appointment.notes = data.notes
    session.add(appointment)
    await session.flush()
    await session.refresh(appointment)
    return appointment


async def cancel_appointment(session: AsyncSession, appointment_id: int) -> Appointment:
    """Cancellation is a status change; the row is kept for audit history."""
    return await update_appointment(
        session, appointment_id, AppointmentUpdate(status=AppointmentStatus.CANCELLED)
    )
