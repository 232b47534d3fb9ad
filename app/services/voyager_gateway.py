"""Voyager RIS integration.

``RemoteSchedulingGateway`` is the only surface the resolver and booking manager see.
Each transport (REST here, HL7/MLLP in ``hl7_gateway``) is one implementation, and
every failure it hits is raised as ``UpstreamUnavailable``.
"""
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import date, datetime

import httpx
from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from app.core.clock import to_naive_utc
from app.core.config import Settings
from app.core.errors import UpstreamUnavailable

logger = logging.getLogger(__name__)


class RemoteSlot(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    start_time: datetime = Field(alias="startTime")
    end_time: datetime | None = Field(default=None, alias="endTime")
    available: bool
    resource_id: str | None = Field(default=None, alias="resourceId")

    @property
    def start_utc(self) -> datetime:
        """Naive UTC; timestamps without an offset are taken as UTC."""
        return to_naive_utc(self.start_time)


class RemoteDayAvailability(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    day: date = Field(alias="date")
    slots: list[RemoteSlot] = []


_availability_adapter = TypeAdapter(list[RemoteDayAvailability])


@dataclass(frozen=True)
class RemoteBooking:
    """What Voyager needs to mirror a locally committed appointment."""

    appointment_id: int
    scheduled_datetime: datetime  # naive UTC
    duration_minutes: int
    service_id: int
    service_name: str
    service_code: str
    patient_id: int | None
    first_name: str
    last_name: str
    date_of_birth: date
    email: str | None = None
    mobile: str | None = None
    body_part_name: str | None = None
    notes: str | None = None


@dataclass(frozen=True)
class RemoteBookingResult:
    success: bool
    remote_id: str | None = None


class RemoteSchedulingGateway(ABC):
    @abstractmethod
    async def get_availability(
        self, service_id: int, date_from: date, date_to: date
    ) -> list[RemoteDayAvailability]:
        """Per-day slot list straight from Voyager."""

    @abstractmethod
    async def create_appointment(self, booking: RemoteBooking) -> RemoteBookingResult:
        """Mirror a booking into Voyager."""

    async def aclose(self) -> None:
        return None


class VoyagerRestGateway(RemoteSchedulingGateway):
    def __init__(
        self,
        base_url: str,
        username: str,
        password: str,
        facility_id: str,
        timeout_seconds: float = 5.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.facility_id = facility_id
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            auth=httpx.BasicAuth(username, password),
            timeout=httpx.Timeout(timeout_seconds),
            transport=transport,
        )

    async def _post(self, path: str, payload: dict) -> object:
        try:
            response = await self._client.post(path, json=payload)
            response.raise_for_status()
            return response.json()
        except httpx.HTTPStatusError as e:
            raise UpstreamUnavailable(
                f"Voyager API error: {e.response.status_code}", path=path
            ) from e
        except httpx.HTTPError as e:
            raise UpstreamUnavailable(f"Voyager request failed: {type(e).__name__}", path=path) from e
        except ValueError as e:
            raise UpstreamUnavailable("Voyager returned invalid JSON", path=path) from e

    async def get_availability(
        self, service_id: int, date_from: date, date_to: date
    ) -> list[RemoteDayAvailability]:
        data = await self._post(
            "/api/availability",
            {
                "serviceId": str(service_id),
                "dateFrom": date_from.isoformat(),
                "dateTo": date_to.isoformat(),
                "facilityId": self.facility_id,
            },
        )
        try:
            return _availability_adapter.validate_python(data)
        except PydanticValidationError as e:
            raise UpstreamUnavailable("Unexpected Voyager availability payload") from e

    async def create_appointment(self, booking: RemoteBooking) -> RemoteBookingResult:
        data = await self._post(
            "/api/appointments",
            {
                "patientId": str(booking.patient_id) if booking.patient_id is not None else None,
                "serviceId": str(booking.service_id),
                "scheduledDateTime": booking.scheduled_datetime.isoformat() + "Z",
                "duration": booking.duration_minutes,
                "facilityId": self.facility_id,
                "notes": booking.notes,
            },
        )
        remote_id = data.get("appointmentId") if isinstance(data, dict) else None
        return RemoteBookingResult(success=True, remote_id=str(remote_id) if remote_id is not None else None)

    async def aclose(self) -> None:
        await self._client.aclose()


def build_gateway(settings: Settings) -> RemoteSchedulingGateway | None:
    """REST when VOYAGER_API_URL is set, HL7 when VOYAGER_HL7_HOST is set, else no gateway."""
    if settings.voyager_api_url:
        logger.info("Voyager RIS: REST gateway at %s", settings.voyager_api_url)
        return VoyagerRestGateway(
            base_url=settings.voyager_api_url,
            username=settings.voyager_username,
            password=settings.voyager_password,
            facility_id=settings.voyager_facility_id,
            timeout_seconds=settings.voyager_timeout_seconds,
        )
    if settings.voyager_hl7_host:
        from app.services.hl7_gateway import VoyagerHL7Gateway

        logger.info(
            "Voyager RIS: HL7 gateway at %s:%d", settings.voyager_hl7_host, settings.voyager_hl7_port
        )
        return VoyagerHL7Gateway(
            host=settings.voyager_hl7_host,
            port=settings.voyager_hl7_port,
            facility_id=settings.voyager_facility_id,
            timeout_seconds=settings.voyager_timeout_seconds,
        )
    logger.info("Voyager RIS: not configured, availability is computed locally")
    return None
