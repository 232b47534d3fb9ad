"""HTTP-level tests: routes, dependency wiring and error rendering."""

import pytest
import pytest_asyncio
from conftest import fixed_clock
from httpx import ASGITransport, AsyncClient

from app.api.deps import get_clock, get_gateway, get_session_maker, get_settings
from app.core.config import Settings
from app.main import app

BOOKING = {
    "scheduled_datetime": "2026-10-19T09:00:00Z",
    "patient_details": {
        "title": "Ms",
        "first_name": "Jane",
        "last_name": "Citizen",
        "date_of_birth": "1985-04-12",
        "email": "jane@example.com",
        "mobile": "0412345678",
    },
    "notes": "First visit",
}


@pytest_asyncio.fixture
async def client(session_maker, tmp_path):
    test_settings = Settings(
        clinic_timezone="UTC",
        smtp_host="",
        voyager_api_url="",
        voyager_hl7_host="",
        referral_storage_dir=str(tmp_path),
        referral_base_url="http://testserver/uploads",
    )
    app.dependency_overrides[get_session_maker] = lambda: session_maker
    app.dependency_overrides[get_gateway] = lambda: None
    app.dependency_overrides[get_clock] = lambda: fixed_clock()
    app.dependency_overrides[get_settings] = lambda: test_settings
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


def booking_body(service_id: int, **overrides) -> dict:
    return {**BOOKING, "service_id": service_id, **overrides}


@pytest.mark.asyncio
async def test_health(client):
    response = await client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


class TestErrorRendering:
    @pytest.mark.asyncio
    async def test_unknown_route_uses_default_http_error(self, client):
        response = await client.get("/api/v1/nowhere")

        assert response.status_code == 404
        assert response.json() == {"detail": "Not Found"}

    @pytest.mark.asyncio
    async def test_unhandled_error_is_json_500_with_cors(self):
        def broken_session_maker():
            raise RuntimeError("database offline")

        app.dependency_overrides[get_session_maker] = broken_session_maker
        transport = ASGITransport(app=app, raise_app_exceptions=False)
        try:
            async with AsyncClient(transport=transport, base_url="http://test") as ac:
                response = await ac.get("/api/v1/services", headers={"Origin": "http://localhost:3000"})
        finally:
            app.dependency_overrides.clear()

        assert response.status_code == 500
        assert response.json() == {"detail": "RuntimeError: database offline"}
        assert "access-control-allow-origin" in response.headers


class TestCatalog:
    @pytest.mark.asyncio
    async def test_list_services(self, client, clinic):
        response = await client.get("/api/v1/services")

        assert response.status_code == 200
        assert {s["code"] for s in response.json()} == {"CT", "XR"}

    @pytest.mark.asyncio
    async def test_unknown_service(self, client, clinic):
        response = await client.get("/api/v1/services/9999")

        assert response.status_code == 404
        assert response.json()["code"] == "service_not_found"

    @pytest.mark.asyncio
    async def test_body_parts_and_preparation(self, client, clinic):
        parts = await client.get(f"/api/v1/services/{clinic.service_id}/body-parts")
        prep = await client.get(f"/api/v1/body-parts/{clinic.body_part_id}/preparation")

        assert [p["name"] for p in parts.json()] == ["Head"]
        assert prep.status_code == 200
        assert prep.json()["preparation_text"] == "Remove hairpins and earrings."


class TestAvailability:
    @pytest.mark.asyncio
    async def test_local_availability(self, client, clinic):
        response = await client.get(
            "/api/v1/availability",
            params={"service_id": clinic.service_id, "date_from": "2026-10-18", "date_to": "2026-10-24"},
        )

        assert response.status_code == 200
        body = response.json()
        assert body["service"] == {"id": clinic.service_id, "name": "CT Scan", "duration_minutes": 30}
        assert body["timezone"] == "UTC"
        assert body["availability"] == [
            {
                "date": "2026-10-19",
                "slots": [{"time": "09:00", "available": True, "start_utc": "2026-10-19T09:00:00"}],
            }
        ]

    @pytest.mark.asyncio
    async def test_default_range_starts_today(self, client, clinic):
        response = await client.get("/api/v1/availability", params={"service_id": clinic.service_id})

        assert response.status_code == 200
        dates = [d["date"] for d in response.json()["availability"]]
        assert dates[0] == "2026-10-19"
        assert len(dates) == 5  # Mondays between 2026-10-18 and 2026-11-17

    @pytest.mark.asyncio
    async def test_inverted_range(self, client, clinic):
        response = await client.get(
            "/api/v1/availability",
            params={"service_id": clinic.service_id, "date_from": "2026-10-24", "date_to": "2026-10-18"},
        )

        assert response.status_code == 400
        assert response.json()["code"] == "invalid_range"

    @pytest.mark.asyncio
    async def test_unknown_service(self, client, clinic):
        response = await client.get("/api/v1/availability", params={"service_id": 9999})

        assert response.status_code == 404


class TestBookings:
    @pytest.mark.asyncio
    async def test_book_then_conflict(self, client, clinic):
        first = await client.post("/api/v1/bookings", json=booking_body(clinic.service_id))
        second = await client.post(
            "/api/v1/bookings",
            json=booking_body(
                clinic.service_id,
                patient_details={**BOOKING["patient_details"], "email": "other@example.com"},
            ),
        )

        assert first.status_code == 201
        assert first.json()["status"] == "pending"
        assert first.json()["scheduled_datetime"] == "2026-10-19T09:00:00"
        assert second.status_code == 409
        assert second.json() == {"detail": "This time slot is no longer available", "code": "slot_unavailable"}

        availability = await client.get(
            "/api/v1/availability",
            params={"service_id": clinic.service_id, "date_from": "2026-10-19", "date_to": "2026-10-19"},
        )
        assert availability.json()["availability"][0]["slots"][0]["available"] is False

    @pytest.mark.asyncio
    async def test_invalid_email_is_422(self, client, clinic):
        response = await client.post(
            "/api/v1/bookings",
            json=booking_body(
                clinic.service_id,
                patient_details={**BOOKING["patient_details"], "email": "not-an-email"},
            ),
        )

        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_unknown_service_is_404(self, client, clinic):
        response = await client.post("/api/v1/bookings", json=booking_body(9999))

        assert response.status_code == 404
        assert response.json()["code"] == "service_not_found"

    @pytest.mark.asyncio
    async def test_find_by_email(self, client, clinic):
        created = await client.post("/api/v1/bookings", json=booking_body(clinic.service_id))

        found = await client.get("/api/v1/bookings", params={"email": "JANE@example.com"})

        assert found.status_code == 200
        assert [b["id"] for b in found.json()] == [created.json()["id"]]

    @pytest.mark.asyncio
    async def test_find_requires_contact(self, client, clinic):
        response = await client.get("/api/v1/bookings")

        assert response.status_code == 400
        assert response.json()["code"] == "validation_error"

    @pytest.mark.asyncio
    async def test_cancel_frees_slot(self, client, clinic):
        created = (await client.post("/api/v1/bookings", json=booking_body(clinic.service_id))).json()

        deleted = await client.delete(f"/api/v1/bookings/{created['id']}")
        fetched = await client.get(f"/api/v1/bookings/{created['id']}")
        rebooked = await client.post("/api/v1/bookings", json=booking_body(clinic.service_id))

        assert deleted.status_code == 204
        assert fetched.json()["status"] == "cancelled"
        assert rebooked.status_code == 201

    @pytest.mark.asyncio
    async def test_patch_invalid_transition(self, client, clinic):
        created = (await client.post("/api/v1/bookings", json=booking_body(clinic.service_id))).json()

        response = await client.patch(f"/api/v1/bookings/{created['id']}", json={"status": "completed"})

        assert response.status_code == 409
        assert response.json()["code"] == "invalid_status_transition"

    @pytest.mark.asyncio
    async def test_patch_confirm(self, client, clinic):
        created = (await client.post("/api/v1/bookings", json=booking_body(clinic.service_id))).json()

        response = await client.patch(f"/api/v1/bookings/{created['id']}", json={"status": "confirmed"})

        assert response.status_code == 200
        assert response.json()["status"] == "confirmed"

    @pytest.mark.asyncio
    async def test_unknown_booking(self, client, clinic):
        response = await client.get("/api/v1/bookings/424242")

        assert response.status_code == 404
        assert response.json()["code"] == "appointment_not_found"


class TestReferrals:
    @pytest.mark.asyncio
    async def test_upload_pdf(self, client, tmp_path):
        response = await client.post(
            "/api/v1/referrals/upload",
            files={"file": ("referral.pdf", b"%PDF-1.4 referral", "application/pdf")},
        )

        assert response.status_code == 201
        body = response.json()
        assert body["url"] == f"http://testserver/uploads/{body['filename']}"
        assert (tmp_path / body["filename"]).exists()

    @pytest.mark.asyncio
    async def test_upload_rejects_text(self, client):
        response = await client.post(
            "/api/v1/referrals/upload",
            files={"file": ("notes.txt", b"hello", "text/plain")},
        )

        assert response.status_code == 400
        assert response.json()["code"] == "validation_error"
