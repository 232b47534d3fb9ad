from datetime import datetime
from enum import Enum

from pydantic import AnyHttpUrl, field_validator
from sqlalchemy import DateTime, Index, text
from sqlmodel import Field, SQLModel

from app.core.clock import to_naive_utc, utc_naive_now
from app.core.errors import InvalidStatusTransition
from app.models.patient import PatientDetails


class AppointmentStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


ACTIVE_STATUSES = (AppointmentStatus.PENDING.value, AppointmentStatus.CONFIRMED.value)

ALLOWED_TRANSITIONS: dict[str, frozenset[str]] = {
    AppointmentStatus.PENDING.value: frozenset({AppointmentStatus.CONFIRMED.value, AppointmentStatus.CANCELLED.value}),
    AppointmentStatus.CONFIRMED.value: frozenset({AppointmentStatus.CANCELLED.value, AppointmentStatus.COMPLETED.value}),
    AppointmentStatus.CANCELLED.value: frozenset(),
    AppointmentStatus.COMPLETED.value: frozenset(),
}

ACTIVE_SLOT_INDEX = "uq_appointments_active_slot"
_ACTIVE_WHERE = "status IN ('pending', 'confirmed')"


class Appointment(SQLModel, table=True):
    __tablename__ = "appointments"
    # At most one pending/confirmed appointment per (service, instant)
    __table_args__ = (
        Index(
            ACTIVE_SLOT_INDEX,
            "service_id",
            "scheduled_datetime",
            unique=True,
            postgresql_where=text(_ACTIVE_WHERE),
            sqlite_where=text(_ACTIVE_WHERE),
        ),
    )

    id: int | None = Field(default=None, primary_key=True)
    service_id: int = Field(foreign_key="services.id", index=True)
    body_part_id: int | None = Field(default=None, foreign_key="body_parts.id")
    patient_id: int | None = Field(default=None, foreign_key="patients.id", index=True)
    scheduled_datetime: datetime = Field(index=True, sa_type=DateTime())  # naive UTC
    status: str = Field(default=AppointmentStatus.PENDING.value, index=True)
    voyager_appointment_id: str | None = None
    notes: str | None = None
    referral_url: str | None = None
    created_at: datetime = Field(default_factory=utc_naive_now, sa_type=DateTime())
    updated_at: datetime = Field(default_factory=utc_naive_now, sa_type=DateTime())

    def transition_to(self, new_status: AppointmentStatus) -> None:
        target = AppointmentStatus(new_status).value
        if target not in ALLOWED_TRANSITIONS[self.status]:
            raise InvalidStatusTransition(
                f"Cannot change appointment status from {self.status} to {target}",
                current=self.status,
                requested=target,
            )
        self.status = target
        self.updated_at = utc_naive_now()


class BookingCreate(SQLModel):
    service_id: int
    body_part_id: int | None = None
    scheduled_datetime: datetime
    patient_details: PatientDetails
    notes: str | None = Field(default=None, max_length=1000)
    referral_url: AnyHttpUrl | None = None

    @field_validator("scheduled_datetime", mode="after")
    @classmethod
    def _normalize_utc(cls, value: datetime) -> datetime:
        return to_naive_utc(value)

    @field_validator("notes", "referral_url", mode="before")
    @classmethod
    def _blank_as_missing(cls, value: object) -> object:
        if isinstance(value, str) and not value.strip():
            return None
        return value


class AppointmentUpdate(SQLModel):
    status: AppointmentStatus | None = None
    notes: str | None = Field(default=None, max_length=1000)


class AppointmentPublic(SQLModel):
    id: int
    service_id: int
    body_part_id: int | None = None
    patient_id: int | None = None
    scheduled_datetime: datetime
    status: AppointmentStatus
    voyager_appointment_id: str | None = None
    notes: str | None = None
    referral_url: str | None = None
    created_at: datetime
