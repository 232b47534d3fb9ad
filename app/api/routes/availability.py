from datetime import date, timedelta

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_clock, get_resolver, get_session, get_settings
from app.api.schemas.availability import AvailabilityResponse, DayAvailability, ServiceSummary, SlotInfo
from app.api.schemas.booking import ErrorResponse
from app.core.clock import local_today
from app.core.config import Settings
from app.services.availability_service import AvailabilityResolver
from app.services.catalog_service import get_active_service

router = APIRouter(prefix="/availability", tags=["availability"])


@router.get(
    "",
    response_model=AvailabilityResponse,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def get_availability(
    service_id: int = Query(...),
    date_from: date | None = Query(None),
    date_to: date | None = Query(None),
    session: AsyncSession = Depends(get_session),
    resolver: AvailabilityResolver = Depends(get_resolver),
    app_settings: Settings = Depends(get_settings),
    clock=Depends(get_clock),
) -> AvailabilityResponse:
    """Bookable slots per clinic-local day, inclusive of both dates (default: today .. today+30)."""
    service = await get_active_service(session, service_id)
    start = date_from or local_today(app_settings.clinic_tz, clock())
    end = date_to or start + timedelta(days=app_settings.availability_window_days)
    days = await resolver.resolve(service_id, start, end)
    return AvailabilityResponse(
        service=ServiceSummary(id=service.id, name=service.name, duration_minutes=service.duration_minutes),
        timezone=app_settings.clinic_timezone,
        availability=[
            DayAvailability(
                date=day.date.isoformat(),
                slots=[SlotInfo(time=s.time, available=s.available, start_utc=s.start_utc) for s in day.slots],
            )
            for day in days
        ],
    )
