"""Tests for the HL7 v2 / MLLP Voyager gateway."""

import asyncio
from datetime import date, datetime

import pytest
import pytest_asyncio

from app.core.errors import UpstreamUnavailable
from app.services.hl7_gateway import (
    END_BLOCK,
    START_BLOCK,
    VoyagerHL7Gateway,
    build_siu_s12,
    hl7_escape,
    hl7_timestamp,
    parse_ack,
)
from app.services.voyager_gateway import RemoteBooking

NOW = datetime(2026, 10, 18, 10, 0)

BOOKING = RemoteBooking(
    appointment_id=7,
    scheduled_datetime=datetime(2026, 10, 19, 9, 0),
    duration_minutes=30,
    service_id=2,
    service_name="CT Scan",
    service_code="CT",
    patient_id=11,
    first_name="Jane",
    last_name="O|Brien",
    date_of_birth=date(1985, 4, 12),
    email="jane@example.com",
    mobile="0412345678",
    body_part_name="Head",
    notes="Contrast allergy",
)


def segments(message: str) -> dict[str, list[str]]:
    return {line.split("|")[0]: line.split("|") for line in message.split("\r")}


def ack(code: str, control_id: str = "") -> bytes:
    body = f"MSH|^~\\&|VOYAGER|AXIS|AXIS_BOOKING|AXIS|20261018100000||ACK^S12|A1|P|2.5\rMSA|{code}|{control_id}"
    return START_BLOCK + body.encode() + END_BLOCK


class TestMessageBuilding:
    def test_timestamp_format(self):
        assert hl7_timestamp(datetime(2026, 10, 19, 9, 5, 7)) == "20261019090507"

    def test_escape_delimiters(self):
        assert hl7_escape("a|b^c&d~e\\f") == "a\\F\\b\\S\\c\\T\\d\\R\\e\\E\\f"
        assert hl7_escape(None) == ""

    def test_siu_s12_segments(self):
        message = build_siu_s12(BOOKING, "AXIS", "CTRL-1", NOW)
        seg = segments(message)

        assert list(seg) == ["MSH", "SCH", "PID", "RGS", "AIS", "NTE"]
        assert seg["MSH"][8] == "SIU^S12"
        assert seg["MSH"][9] == "CTRL-1"
        assert seg["MSH"][6] == "20261018100000"
        assert seg["SCH"][1] == "7"
        assert seg["SCH"][11] == "^^30^20261019090000"
        assert seg["PID"][3] == "11^^^AXIS"
        assert seg["PID"][5] == "O\\F\\Brien^Jane"
        assert seg["PID"][7] == "19850412"
        assert seg["PID"][13] == "0412345678~^NET^Internet^jane@example.com"
        assert seg["AIS"][3] == "CT^CT Scan Head"
        assert seg["AIS"][4] == "20261019090000"
        assert seg["NTE"][3] == "Contrast allergy"

    def test_no_notes_means_no_nte(self):
        booking = RemoteBooking(
            appointment_id=8,
            scheduled_datetime=datetime(2026, 10, 19, 9, 0),
            duration_minutes=30,
            service_id=2,
            service_name="CT Scan",
            service_code="CT",
            patient_id=None,
            first_name="Sam",
            last_name="Lee",
            date_of_birth=date(1990, 1, 1),
        )

        seg = segments(build_siu_s12(booking, "AXIS", "CTRL-2", NOW))

        assert "NTE" not in seg
        assert seg["PID"][3] == "^^^AXIS"


class TestParseAck:
    def test_accept(self):
        assert parse_ack(ack("AA", "VOY-1")) == ("AA", "VOY-1")

    def test_missing_control_id(self):
        assert parse_ack(ack("AE")) == ("AE", None)

    def test_missing_msa_segment(self):
        with pytest.raises(UpstreamUnavailable):
            parse_ack(START_BLOCK + b"MSH|^~\\&|VOYAGER" + END_BLOCK)


class FakeVoyager:
    """Minimal MLLP listener that records each framed message and answers with ``reply``."""

    def __init__(self, reply: bytes) -> None:
        self.reply = reply
        self.received: list[bytes] = []

    async def handle(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        self.received.append(await reader.readuntil(END_BLOCK))
        writer.write(self.reply)
        await writer.drain()
        writer.close()


@pytest_asyncio.fixture
async def voyager_server():
    servers = []

    async def start(reply: bytes) -> tuple[FakeVoyager, int]:
        fake = FakeVoyager(reply)
        server = await asyncio.start_server(fake.handle, "127.0.0.1", 0)
        servers.append(server)
        return fake, server.sockets[0].getsockname()[1]

    yield start
    for server in servers:
        server.close()
        await server.wait_closed()


class TestCreateAppointment:
    @pytest.mark.asyncio
    async def test_accepted_booking(self, voyager_server):
        fake, port = await voyager_server(ack("AA", "VOY-77"))
        gateway = VoyagerHL7Gateway("127.0.0.1", port, "AXIS", timeout_seconds=2.0)

        result = await gateway.create_appointment(BOOKING)

        assert result.success is True
        assert result.remote_id == "VOY-77"
        (framed,) = fake.received
        assert framed.startswith(START_BLOCK)
        assert b"SIU^S12" in framed

    @pytest.mark.asyncio
    async def test_accept_without_id_falls_back_to_control_id(self, voyager_server):
        fake, port = await voyager_server(ack("CA"))
        gateway = VoyagerHL7Gateway("127.0.0.1", port, "AXIS", timeout_seconds=2.0)

        result = await gateway.create_appointment(BOOKING)

        assert result.success is True
        assert result.remote_id.startswith("AXI-")

    @pytest.mark.asyncio
    async def test_rejected_booking(self, voyager_server):
        _, port = await voyager_server(ack("AE", "VOY-77"))
        gateway = VoyagerHL7Gateway("127.0.0.1", port, "AXIS", timeout_seconds=2.0)

        result = await gateway.create_appointment(BOOKING)

        assert result.success is False
        assert result.remote_id is None

    @pytest.mark.asyncio
    async def test_connection_refused_raises_upstream_unavailable(self):
        server = await asyncio.start_server(lambda r, w: None, "127.0.0.1", 0)
        port = server.sockets[0].getsockname()[1]
        server.close()
        await server.wait_closed()
        gateway = VoyagerHL7Gateway("127.0.0.1", port, "AXIS", timeout_seconds=2.0)

        with pytest.raises(UpstreamUnavailable):
            await gateway.create_appointment(BOOKING)

    @pytest.mark.asyncio
    async def test_availability_is_not_supported(self):
        gateway = VoyagerHL7Gateway("127.0.0.1", 2575, "AXIS")

        with pytest.raises(UpstreamUnavailable):
            await gateway.get_availability(2, date(2026, 10, 18), date(2026, 10, 24))
