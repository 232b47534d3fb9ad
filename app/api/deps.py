from collections.abc import Callable
from datetime import datetime

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.clock import utc_naive_now
from app.core.config import Settings, settings
from app.core.db import get_session, get_session_maker
from app.services.availability_service import AvailabilityResolver
from app.services.booking_service import BookingManager
from app.services.voyager_gateway import RemoteSchedulingGateway

__all__ = [
    "get_booking_manager",
    "get_clock",
    "get_gateway",
    "get_resolver",
    "get_session",
    "get_session_maker",
    "get_settings",
]


def get_settings() -> Settings:
    return settings


def get_gateway(request: Request) -> RemoteSchedulingGateway | None:
    """Gateway built in the app lifespan; None when Voyager is not configured."""
    return getattr(request.app.state, "gateway", None)


def get_clock() -> Callable[[], datetime]:
    return utc_naive_now


def get_resolver(
    session_maker: async_sessionmaker[AsyncSession] = Depends(get_session_maker),
    gateway: RemoteSchedulingGateway | None = Depends(get_gateway),
    clock: Callable[[], datetime] = Depends(get_clock),
    app_settings: Settings = Depends(get_settings),
) -> AvailabilityResolver:
    return AvailabilityResolver(
        session_maker,
        gateway,
        clinic_tz=app_settings.clinic_tz,
        clock=clock,
        max_range_days=app_settings.max_availability_range_days,
    )


def get_booking_manager(
    session_maker: async_sessionmaker[AsyncSession] = Depends(get_session_maker),
    gateway: RemoteSchedulingGateway | None = Depends(get_gateway),
    clock: Callable[[], datetime] = Depends(get_clock),
) -> BookingManager:
    return BookingManager(session_maker, gateway, clock=clock)
