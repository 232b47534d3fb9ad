import logging

from fastapi import APIRouter, BackgroundTasks, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_booking_manager, get_session, get_settings
from app.api.schemas.booking import ErrorResponse
from app.core.clock import naive_utc_to_local
from app.core.config import Settings
from app.core.errors import ValidationError
from app.models.appointment import Appointment, AppointmentPublic, AppointmentUpdate, BookingCreate
from app.models.catalog import BodyPart, Service
from app.services.appointment_service import (
    cancel_appointment,
    get_appointment,
    list_appointments_for_contact,
    update_appointment,
)
from app.services.booking_service import BookingManager
from app.services.email_service import send_booking_email

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/bookings", tags=["bookings"])


def _to_public(a: Appointment) -> AppointmentPublic:
    return AppointmentPublic(
        id=a.id,
        service_id=a.service_id,
        body_part_id=a.body_part_id,
        patient_id=a.patient_id,
        scheduled_datetime=a.scheduled_datetime,
        status=a.status,
        voyager_appointment_id=a.voyager_appointment_id,
        notes=a.notes,
        referral_url=a.referral_url,
        created_at=a.created_at,
    )


@router.post(
    "",
    response_model=AppointmentPublic,
    status_code=status.HTTP_201_CREATED,
    responses={
        400: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse, "description": "This time slot is no longer available"},
    },
)
async def create_booking(
    body: BookingCreate,
    background_tasks: BackgroundTasks,
    session: AsyncSession = Depends(get_session),
    manager: BookingManager = Depends(get_booking_manager),
    app_settings: Settings = Depends(get_settings),
) -> AppointmentPublic:
    appointment = await manager.book(body)
    patient = body.patient_details
    if patient.email and app_settings.email_enabled:
        service = await session.get(Service, appointment.service_id)
        body_part = await session.get(BodyPart, appointment.body_part_id) if appointment.body_part_id else None
        background_tasks.add_task(
            send_booking_email,
            app_settings,
            to_email=patient.email,
            recipient_name=patient.first_name,
            service_name=service.name,
            body_part_name=body_part.name if body_part else None,
            slot_start_local=naive_utc_to_local(appointment.scheduled_datetime, app_settings.clinic_tz),
            duration_minutes=service.duration_minutes,
            status=appointment.status,
            preparation_text=body_part.preparation_text if body_part else None,
        )
    return _to_public(appointment)


@router.get("", response_model=list[AppointmentPublic], responses={400: {"model": ErrorResponse}})
async def find_bookings(
    email: str | None = Query(None),
    mobile: str | None = Query(None),
    session: AsyncSession = Depends(get_session),
) -> list[AppointmentPublic]:
    if not email and not mobile:
        raise ValidationError("Email or mobile number is required")
    appointments = await list_appointments_for_contact(session, email=email, mobile=mobile)
    return [_to_public(a) for a in appointments]


@router.get("/{appointment_id}", response_model=AppointmentPublic, responses={404: {"model": ErrorResponse}})
async def get_booking(appointment_id: int, session: AsyncSession = Depends(get_session)) -> AppointmentPublic:
    return _to_public(await get_appointment(session, appointment_id))


@router.patch(
    "/{appointment_id}",
    response_model=AppointmentPublic,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def patch_booking(
    appointment_id: int,
    body: AppointmentUpdate,
    session: AsyncSession = Depends(get_session),
) -> AppointmentPublic:
    appointment = await update_appointment(session, appointment_id, body)
    logger.info("Appointment %s updated: status=%s", appointment_id, appointment.status)
    return _to_public(appointment)


@router.delete(
    "/{appointment_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def cancel_booking(appointment_id: int, session: AsyncSession = Depends(get_session)) -> None:
    await cancel_appointment(session, appointment_id)
    logger.info("Appointment %s cancelled", appointment_id)
