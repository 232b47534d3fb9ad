from datetime import datetime

from pydantic import BaseModel


class SlotInfo(BaseModel):
    time: str  # HH:MM, clinic local time
    available: bool
    start_utc: datetime


class DayAvailability(BaseModel):
    date: str  # YYYY-MM-DD
    slots: list[SlotInfo]


class ServiceSummary(BaseModel):
    id: int
    name: str
    duration_minutes: int


class AvailabilityResponse(BaseModel):
    service: ServiceSummary
    timezone: str
    availability: list[DayAvailability]
