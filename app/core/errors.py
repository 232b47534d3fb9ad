"""Error taxonomy shared by the services and the HTTP layer.

Services raise these; ``app.main`` renders them as ``{"detail", "code"}`` JSON
using ``status_code``. ``UpstreamUnavailable`` is raised by the Voyager gateways
and is always absorbed by the resolver and booking manager.
"""


class BookingError(Exception):
    status_code = 500
    code = "booking_error"
    default_message = "Booking request failed"

    def __init__(self, message: str | None = None, **details: object) -> None:
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)


class ValidationError(BookingError):
    status_code = 400
    code = "validation_error"
    default_message = "Invalid request"


class InvalidRange(ValidationError):
    code = "invalid_range"
    default_message = "date_from must not be after date_to"


class NotFoundError(BookingError):
    status_code = 404
    code = "not_found"
    default_message = "Not found"


class ServiceNotFound(NotFoundError):
    code = "service_not_found"
    default_message = "Service not found"


class BodyPartNotFound(NotFoundError):
    code = "body_part_not_found"
    default_message = "Body part not found"


class AppointmentNotFound(NotFoundError):
    code = "appointment_not_found"
    default_message = "Appointment not found"


class ConflictError(BookingError):
    status_code = 409
    code = "conflict"
    default_message = "Conflict"


class SlotUnavailable(ConflictError):
    code = "slot_unavailable"
    default_message = "This time slot is no longer available"


class InvalidStatusTransition(ConflictError):
    code = "invalid_status_transition"
    default_message = "Appointment status cannot be changed this way"


class UpstreamUnavailable(BookingError):
    status_code = 502
    code = "upstream_unavailable"
    default_message = "Voyager RIS is unavailable"


class PersistenceError(BookingError):
    code = "persistence_error"
    default_message = "Failed to save booking"
