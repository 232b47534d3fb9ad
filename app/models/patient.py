from datetime import date, datetime

from pydantic import EmailStr, field_validator
from sqlalchemy import DateTime
from sqlmodel import Field, SQLModel

from app.core.clock import utc_naive_now

PATIENT_EMAIL_INDEX = "ix_patients_email"


class Patient(SQLModel, table=True):
    __tablename__ = "patients"
    id: int | None = Field(default=None, primary_key=True)
    title: str | None = None
    first_name: str
    last_name: str
    date_of_birth: date
    email: str | None = Field(default=None, unique=True, index=True)  # natural key for upserts
    mobile: str | None = Field(default=None, index=True)
    created_at: datetime = Field(default_factory=utc_naive_now, sa_type=DateTime())
    updated_at: datetime = Field(default_factory=utc_naive_now, sa_type=DateTime())


class PatientDetails(SQLModel):
    title: str | None = Field(default=None, max_length=20)
    first_name: str = Field(min_length=1, max_length=100)
    last_name: str = Field(min_length=1, max_length=100)
    date_of_birth: date
    email: EmailStr | None = None
    mobile: str | None = Field(default=None, min_length=10, max_length=20)

    @field_validator("title", "email", "mobile", mode="before")
    @classmethod
    def _blank_as_missing(cls, value: object) -> object:
        # The booking form posts "" for untouched optional inputs
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("email", mode="after")
    @classmethod
    def _lower_email(cls, value: str | None) -> str | None:
        return value.lower() if value else value
