import asyncio
import logging
import secrets
from datetime import UTC, date, datetime

from app.core.clock import utc_naive_now
from app.core.errors import UpstreamUnavailable
from app.services.voyager_gateway import (
    RemoteBooking,
    RemoteBookingResult,
    RemoteDayAvailability,
    RemoteSchedulingGateway,
)

logger = logging.getLogger(__name__)

# MLLP framing
START_BLOCK = b"\x0b"
END_BLOCK = b"\x1c\x0d"

SENDING_APPLICATION = "AXIS_BOOKING"
RECEIVING_APPLICATION = "VOYAGER"
_ACCEPT_CODES = ("AA", "CA")


def hl7_timestamp(dt: datetime) -> str:
    if dt.tzinfo is not None:
        dt = dt.astimezone(UTC).replace(tzinfo=None)
    return dt.strftime("%Y%m%d%H%M%S")


def hl7_escape(value: str | None) -> str:
    if not value:
        return ""
    return (
        value.replace("\\", "\\E\\")
        .replace("|", "\\F\\")
        .replace("^", "\\S\\")
        .replace("&", "\\T\\")
        .replace("~", "\\R\\")
        .replace("\r", " ")
        .replace("\n", " ")
    )


def new_control_id(now: datetime) -> str:
    return f"AXI-{hl7_timestamp(now)}-{secrets.token_hex(4)}"


def build_siu_s12(booking: RemoteBooking, facility_id: str, control_id: str, now: datetime) -> str:
    """SIU^S12 (new appointment booking) for one locally committed appointment."""
    start = hl7_timestamp(booking.scheduled_datetime)
    patient_ref = booking.patient_id if booking.patient_id is not None else ""
    phone = hl7_escape(booking.mobile)
    if booking.email:
        phone = f"{phone}~^NET^Internet^{hl7_escape(booking.email)}"
    service_desc = booking.service_name
    if booking.body_part_name:
        service_desc = f"{service_desc} {booking.body_part_name}"

    segments = [
        [
            "MSH", "^~\\&", SENDING_APPLICATION, facility_id, RECEIVING_APPLICATION, RECEIVING_APPLICATION,
            hl7_timestamp(now), "", "SIU^S12", control_id, "P", "2.5",
        ],
        [
            "SCH", str(booking.appointment_id), "", "", "", "", "", "", "",
            str(booking.duration_minutes), "min", f"^^{booking.duration_minutes}^{start}",
        ],
        [
            "PID", "1", "", f"{patient_ref}^^^{facility_id}", "",
            f"{hl7_escape(booking.last_name)}^{hl7_escape(booking.first_name)}", "",
            booking.date_of_birth.strftime("%Y%m%d"), "", "", "", "", "", phone,
        ],
        ["RGS", "1"],
        [
            "AIS", "1", "", f"{hl7_escape(booking.service_code)}^{hl7_escape(service_desc)}",
            start, "", "", str(booking.duration_minutes), "min",
        ],
    ]
    if booking.notes:
        segments.append(["NTE", "1", "", hl7_escape(booking.notes)])
    return "\r".join("|".join(fields) for fields in segments)


def parse_ack(raw: bytes) -> tuple[str, str | None]:
    """(MSA-1 acknowledgement code, MSA-2 control id) from an MLLP-framed ACK."""
    text = raw.strip(START_BLOCK + END_BLOCK).decode("utf-8", errors="replace")
    for segment in text.replace("\n", "\r").split("\r"):
        fields = segment.split("|")
        if fields[0] == "MSA" and len(fields) > 1:
            return fields[1], (fields[2] if len(fields) > 2 and fields[2] else None)
    raise UpstreamUnavailable("Voyager ACK has no MSA segment")


class VoyagerHL7Gateway(RemoteSchedulingGateway):
    """Voyager over HL7 v2/MLLP. Bookings only; availability is not exposed over HL7."""

    def __init__(self, host: str, port: int, facility_id: str, timeout_seconds: float = 5.0) -> None:
        self.host = host
        self.port = port
        self.facility_id = facility_id
        self.timeout_seconds = timeout_seconds

    async def get_availability(
        self, service_id: int, date_from: date, date_to: date
    ) -> list[RemoteDayAvailability]:
        raise UpstreamUnavailable("Availability queries are not supported over HL7")

    async def _exchange(self, message: str) -> bytes:
        try:
            async with asyncio.timeout(self.timeout_seconds):
                reader, writer = await asyncio.open_connection(self.host, self.port)
                try:
                    writer.write(START_BLOCK + message.encode("utf-8") + END_BLOCK)
                    await writer.drain()
                    return await reader.readuntil(END_BLOCK)
                finally:
                    writer.close()
        except TimeoutError as e:
            raise UpstreamUnavailable("Voyager HL7 exchange timed out", host=self.host) from e
        except (OSError, asyncio.IncompleteReadError, asyncio.LimitOverrunError) as e:
            raise UpstreamUnavailable(f"Voyager HL7 exchange failed: {type(e).__name__}", host=self.host) from e

    async def create_appointment(self, booking: RemoteBooking) -> RemoteBookingResult:
        now = utc_naive_now()
        control_id = new_control_id(now)
        message = build_siu_s12(booking, self.facility_id, control_id, now)
        ack = await self._exchange(message)
        code, acked_id = parse_ack(ack)
        if code not in _ACCEPT_CODES:
            logger.warning("Voyager rejected SIU^S12 %s with %s", control_id, code)
            return RemoteBookingResult(success=False)
        return RemoteBookingResult(success=True, remote_id=acked_id or control_id)
