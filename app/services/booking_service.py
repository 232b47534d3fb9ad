import logging
from collections.abc import Callable
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.clock import utc_naive_now
from app.core.errors import PersistenceError, SlotUnavailable, ValidationError
from app.models.appointment import ACTIVE_SLOT_INDEX, Appointment, AppointmentStatus, BookingCreate
from app.models.catalog import BodyPart, Service
from app.models.patient import PATIENT_EMAIL_INDEX, Patient, PatientDetails
from app.services.appointment_service import find_active_appointment
from app.services.catalog_service import get_active_body_part, get_active_service
from app.services.voyager_gateway import RemoteBooking, RemoteSchedulingGateway

logger = logging.getLogger(__name__)


def _is_active_slot_violation(exc: IntegrityError) -> bool:
    text = str(getattr(exc, "orig", exc))
    # PostgreSQL names the index; SQLite lists the columns
    return ACTIVE_SLOT_INDEX in text or "appointments.scheduled_datetime" in text


def _is_patient_email_violation(exc: IntegrityError) -> bool:
    text = str(getattr(exc, "orig", exc))
    return PATIENT_EMAIL_INDEX in text or "patients.email" in text


async def upsert_patient(session: AsyncSession, details: PatientDetails) -> Patient:
    """Match on email and refresh mutable fields; patients without email are always new."""
    patient: Patient | None = None
    if details.email:
        result = await session.execute(select(Patient).where(Patient.email == details.email))
        patient = result.scalar_one_or_none()
    if patient is None:
        patient = Patient(
            title=details.title,
            first_name=details.first_name.strip(),
            last_name=details.last_name.strip(),
            date_of_birth=details.date_of_birth,
            email=details.email,
            mobile=details.mobile.strip() if details.mobile else None,
        )
    else:
        patient.title = details.title
        patient.first_name = details.first_name.strip()
        patient.last_name = details.last_name.strip()
        patient.date_of_birth = details.date_of_birth
        if details.mobile:
            patient.mobile = details.mobile.strip()
        patient.updated_at = utc_naive_now()
    session.add(patient)
    await session.flush()
    return patient


class BookingManager:
    """Books a slot atomically against the ledger, then mirrors it to Voyager best-effort.

    The local commit is mandatory; the remote mirror only decides whether the appointment
    ends up confirmed (with a Voyager id) or stays pending for manual reconciliation.
    """

    def __init__(
        self,
        session_maker: async_sessionmaker[AsyncSession],
        gateway: RemoteSchedulingGateway | None,
        clock: Callable[[], datetime] = utc_naive_now,
    ) -> None:
        self._session_maker = session_maker
        self._gateway = gateway
        self._clock = clock

    async def book(self, data: BookingCreate) -> Appointment:
        if data.scheduled_datetime <= self._clock():
            raise ValidationError(
                "Appointment time must be in the future",
                scheduled_datetime=data.scheduled_datetime.isoformat(),
            )

        appointment, remote_booking = await self._commit_booking(data)
        logger.info(
            "Booked appointment %s for service %s at %s",
            appointment.id, appointment.service_id, appointment.scheduled_datetime,
        )
        if self._gateway is None:
            return appointment
        return await self._mirror(appointment, remote_booking)

    async def _commit_booking(
        self, data: BookingCreate, retry_patient_conflict: bool = True
    ) -> tuple[Appointment, RemoteBooking]:
        try:
            return await self._claim_slot(data)
        except IntegrityError as e:
            if _is_active_slot_violation(e):
                raise SlotUnavailable(
                    service_id=data.service_id,
                    scheduled_datetime=data.scheduled_datetime.isoformat(),
                ) from e
            if retry_patient_conflict and _is_patient_email_violation(e):
                # A concurrent booking created this patient first; the retry reuses it
                # and re-checks the slot
                logger.info("Patient created concurrently, retrying booking: service=%s", data.service_id)
                return await self._commit_booking(data, retry_patient_conflict=False)
            logger.exception("Booking insert violated a constraint: service=%s", data.service_id)
            raise PersistenceError(service_id=data.service_id) from e
        except SQLAlchemyError as e:
            logger.exception(
                "Booking transaction failed: service=%s at=%s", data.service_id, data.scheduled_datetime
            )
            raise PersistenceError(service_id=data.service_id) from e

    async def _claim_slot(self, data: BookingCreate) -> tuple[Appointment, RemoteBooking]:
        """One transaction: re-check the slot, upsert the patient, insert the pending appointment."""
        async with self._session_maker() as session:
            async with session.begin():
                service = await get_active_service(session, data.service_id)
                body_part: BodyPart | None = None
                if data.body_part_id is not None:
                    body_part = await get_active_body_part(session, data.body_part_id, service.id)

                existing = await find_active_appointment(session, service.id, data.scheduled_datetime)
                if existing is not None:
                    raise SlotUnavailable(
                        service_id=service.id,
                        scheduled_datetime=data.scheduled_datetime.isoformat(),
                    )

                patient = await upsert_patient(session, data.patient_details)
                appointment = Appointment(
                    service_id=service.id,
                    body_part_id=body_part.id if body_part else None,
                    patient_id=patient.id,
                    scheduled_datetime=data.scheduled_datetime,
                    status=AppointmentStatus.PENDING.value,
                    notes=data.notes,
                    referral_url=str(data.referral_url) if data.referral_url else None,
                )
                session.add(appointment)
                await session.flush()
                remote_booking = _remote_booking(appointment, service, body_part, patient)
        return appointment, remote_booking

    async def _mirror(self, appointment: Appointment, remote_booking: RemoteBooking) -> Appointment:
        try:
            result = await self._gateway.create_appointment(remote_booking)
        except Exception as e:
            logger.warning("Voyager mirror failed for appointment %s, left pending: %s", appointment.id, e)
            return appointment
        if not result.success:
            logger.warning("Voyager declined appointment %s, left pending", appointment.id)
            return appointment

        try:
            async with self._session_maker() as session:
                async with session.begin():
                    stored = await session.get(Appointment, appointment.id, with_for_update=True)
                    if stored is None or stored.status != AppointmentStatus.PENDING.value:
                        return stored or appointment
                    stored.transition_to(AppointmentStatus.CONFIRMED)
                    stored.voyager_appointment_id = result.remote_id
                return stored
        except SQLAlchemyError:
            # Voyager holds the booking while the ledger still says pending
            logger.exception(
                "Could not confirm appointment %s after Voyager accepted it (remote id %s)",
                appointment.id, result.remote_id,
            )
            return appointment


def _remote_booking(
    appointment: Appointment, service: Service, body_part: BodyPart | None, patient: Patient
) -> RemoteBooking:
    return RemoteBooking(
        appointment_id=appointment.id,
        scheduled_datetime=appointment.scheduled_datetime,
        duration_minutes=service.duration_minutes,
        service_id=service.id,
        service_name=service.name,
        service_code=service.code,
        patient_id=patient.id,
        first_name=patient.first_name,
        last_name=patient.last_name,
        date_of_birth=patient.date_of_birth,
        email=patient.email,
        mobile=patient.mobile,
        body_part_name=body_part.name if body_part else None,
        notes=appointment.notes,
    )
