from app.models.catalog import BodyPart, BodyPartPreparation, BodyPartPublic, Service, ServicePublic
from app.models.slot_template import SlotTemplateEntry
from app.models.patient import Patient, PatientDetails
from app.models.appointment import (
    ACTIVE_STATUSES,
    Appointment,
    AppointmentPublic,
    AppointmentStatus,
    AppointmentUpdate,
    BookingCreate,
)

__all__ = [
    "Service",
    "ServicePublic",
    "BodyPart",
    "BodyPartPublic",
    "BodyPartPreparation",
    "SlotTemplateEntry",
    "Patient",
    "PatientDetails",
    "ACTIVE_STATUSES",
    "Appointment",
    "AppointmentPublic",
    "AppointmentStatus",
    "AppointmentUpdate",
    "BookingCreate",
]
