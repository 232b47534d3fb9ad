from datetime import datetime, time

from sqlalchemy import CheckConstraint, DateTime
from sqlmodel import Field, SQLModel


class SlotTemplateEntry(SQLModel, table=True):
    """One bookable interval for a service.

    Weekly entries set day_of_week (0 = Sunday) and clinic-local start_time/end_time.
    Date-anchored entries set start_at/end_at as naive UTC instants.
    """

    __tablename__ = "slot_templates"
    __table_args__ = (
        CheckConstraint(
            "(day_of_week IS NOT NULL AND start_time IS NOT NULL) OR start_at IS NOT NULL",
            name="ck_slot_templates_weekly_or_anchored",
        ),
        CheckConstraint(
            "day_of_week IS NULL OR (day_of_week >= 0 AND day_of_week <= 6)",
            name="ck_slot_templates_day_of_week",
        ),
    )

    id: int | None = Field(default=None, primary_key=True)
    service_id: int = Field(foreign_key="services.id", index=True)
    day_of_week: int | None = None
    start_time: time | None = None
    end_time: time | None = None
    start_at: datetime | None = Field(default=None, index=True, sa_type=DateTime())
    end_at: datetime | None = Field(default=None, sa_type=DateTime())
    is_available: bool = True

    @property
    def is_recurring(self) -> bool:
        return self.start_at is None
