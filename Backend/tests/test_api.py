"""
HTTP-level tests: response envelopes, status codes and notification hooks.

Run with: pytest tests/test_api.py -v
"""

import uuid

import pytest

from floatbook.calendar_ledger import BusinessHours


# ============================================================================
# BOOKING ENDPOINT
# ============================================================================

class TestCreateAppointment:

    @pytest.mark.asyncio
    async def test_success_envelope(self, client, booking_payload, sent_emails):
        response = await client.post("/appointments", json=booking_payload())

        assert response.status_code == 201
        body = response.json()
        assert body["status"] == "success"
        assert body["data"]["reservationId"] == "TLB-01"
        assert body["data"]["status"] == "pending"
        assert body["data"]["date"] == "2030-03-14"
        assert body["data"]["email"] == "kasun@example.com"
        assert body["data"]["isPackageUser"] is False

        assert [email["to"] for email in sent_emails] == ["kasun@example.com"]
        assert "TLB-01" in sent_emails[0]["html"]

    @pytest.mark.asyncio
    async def test_operators_are_notified(self, client, booking_payload, sent_emails, monkeypatch):
        from floatbook.core.config import get_settings

        monkeypatch.setattr(get_settings(), "operator_emails", "desk@example.com, Owner@Example.com")

        response = await client.post("/appointments", json=booking_payload())

        assert response.status_code == 201
        recipients = [email["to"] for email in sent_emails]
        assert ["desk@example.com", "owner@example.com"] in recipients

    @pytest.mark.asyncio
    async def test_missing_fields(self, client, booking_payload):
        payload = booking_payload()
        del payload["name"]
        del payload["contactNumber"]

        response = await client.post("/appointments", json=payload)

        assert response.status_code == 400
        error = response.json()["error"]
        assert error["code"] == "INVALID_REQUEST"
        assert "calendar" not in error["message"]
        fields = {item["field"] for item in error["details"]["fields"]}
        assert {"name", "contactNumber"} <= fields

    @pytest.mark.asyncio
    async def test_sold_out(self, client, booking_payload, make_calendar_day):
        from datetime import date

        from floatbook.models import CalendarDayStatus

        await make_calendar_day(date(2030, 3, 14), remaining_sessions=0, status=CalendarDayStatus.SOLD_OUT)

        response = await client.post("/appointments", json=booking_payload())

        assert response.status_code == 409
        body = response.json()
        assert body["status"] == "error"
        assert body["error"]["code"] == "SOLD_OUT"

    @pytest.mark.asyncio
    async def test_package_not_confirmed(self, client, booking_payload, make_activation):
        from floatbook.models import ActivationStatus

        activation = await make_activation(status=ActivationStatus.PENDING)

        response = await client.post(
            "/appointments", json=booking_payload(packageActivationId=str(activation.id))
        )

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "PACKAGE_NOT_CONFIRMED"

    @pytest.mark.asyncio
    async def test_email_failure_does_not_fail_booking(self, client, booking_payload, monkeypatch):
        async def failing_send_email(to_email, subject, html):
            raise RuntimeError("Resend unavailable")

        monkeypatch.setattr("floatbook.notifications.send_email", failing_send_email)

        response = await client.post("/appointments", json=booking_payload())

        assert response.status_code == 201
        assert response.json()["data"]["reservationId"] == "TLB-01"


# ============================================================================
# APPOINTMENT ADMIN ENDPOINTS
# ============================================================================

class TestAppointmentAdmin:

    @pytest.mark.asyncio
    async def test_update_status_notifies_customer(self, client, booking_payload, sent_emails):
        created = (await client.post("/appointments", json=booking_payload())).json()["data"]
        sent_emails.clear()

        response = await client.patch(f"/appointments/{created['id']}/status", json={"status": "Cancelled"})

        assert response.status_code == 200
        assert response.json()["data"]["status"] == "cancelled"
        assert len(sent_emails) == 1
        assert "cancelled" in sent_emails[0]["html"]

    @pytest.mark.asyncio
    async def test_repeat_status_sends_nothing(self, client, booking_payload, sent_emails):
        created = (await client.post("/appointments", json=booking_payload())).json()["data"]
        await client.patch(f"/appointments/{created['id']}/status", json={"status": "completed"})
        sent_emails.clear()

        response = await client.patch(f"/appointments/{created['id']}/status", json={"status": "completed"})

        assert response.status_code == 200
        assert sent_emails == []

    @pytest.mark.asyncio
    async def test_unknown_appointment(self, client):
        response = await client.patch(f"/appointments/{uuid.uuid4()}/status", json={"status": "completed"})

        assert response.status_code == 404
        assert response.json()["error"]["code"] == "APPOINTMENT_NOT_FOUND"

    @pytest.mark.asyncio
    async def test_invalid_transition(self, client, booking_payload):
        created = (await client.post("/appointments", json=booking_payload())).json()["data"]
        await client.patch(f"/appointments/{created['id']}/status", json={"status": "cancelled"})

        response = await client.patch(f"/appointments/{created['id']}/status", json={"status": "completed"})

        assert response.status_code == 409
        assert response.json()["error"]["code"] == "INVALID_STATUS_TRANSITION"

    @pytest.mark.asyncio
    async def test_listing_and_views(self, client, booking_payload):
        await client.post("/appointments", json=booking_payload(time="10:00"))
        await client.post("/appointments", json=booking_payload(time="12:00"))

        listing = (await client.get("/appointments", params={"page": 1, "limit": 1})).json()
        assert listing["pagination"] == {"currentPage": 1, "totalPages": 2, "totalRecords": 2}

        times = (await client.get("/appointments/booked-times/2030-03-14")).json()["data"]
        assert sorted(times) == ["10:00", "12:00"]

        counts = (
            await client.get("/appointments/counts", params={"startDate": "2030-03-01", "endDate": "2030-03-31"})
        ).json()["data"]
        assert counts == [{"date": "2030-03-14", "count": 2}]

        mine = (await client.get("/appointments/mine", params={"email": "KASUN@example.com"})).json()
        assert mine["count"] == 2


# ============================================================================
# CALENDAR ENDPOINTS
# ============================================================================

class TestCalendar:

    @pytest.mark.asyncio
    async def test_capacity_preview_uses_defaults(self, client):
        response = await client.get("/calendar/capacity")

        assert response.status_code == 200
        assert response.json()["data"] == BusinessHours.from_settings().capacity().to_dict()

    @pytest.mark.asyncio
    async def test_capacity_preview_with_overrides(self, client):
        response = await client.get(
            "/calendar/capacity",
            params={
                "openTime": "09:00",
                "closeTime": "21:00",
                "sessionDuration": 60,
                "cleaningBuffer": 30,
                "numberOfTanks": 2,
                "tankStaggerInterval": 30,
            },
        )

        assert response.json()["data"] == {"sessionsPerTank": 8, "totalSessions": 16}

    @pytest.mark.asyncio
    async def test_closed_day_refuses_bookings(self, client, booking_payload):
        saved = await client.put("/calendar/2030-03-14", json={"status": "Closed"})
        assert saved.status_code == 200
        assert saved.json()["data"]["status"] == "Closed"

        response = await client.post("/appointments", json=booking_payload())

        assert response.status_code == 409
        assert response.json()["error"]["code"] == "DATE_CLOSED"

    @pytest.mark.asyncio
    async def test_booking_shows_in_calendar(self, client, booking_payload):
        await client.put("/calendar/2030-03-14", json={"sessionsToSell": 2})
        await client.post("/appointments", json=booking_payload())

        days = (
            await client.get("/calendar", params={"startDate": "2030-03-01", "endDate": "2030-03-31"})
        ).json()["data"]

        assert days == [
            {
                "date": "2030-03-14",
                "status": "Bookable",
                "openTime": "09:00",
                "closeTime": "21:00",
                "sessionsToSell": 1,
            }
        ]

    @pytest.mark.asyncio
    async def test_negative_sessions_rejected(self, client):
        response = await client.put("/calendar/2030-03-14", json={"sessionsToSell": -1})
        assert response.status_code == 400


# ============================================================================
# PACKAGE ENDPOINTS
# ============================================================================

class TestPackages:

    @pytest.mark.asyncio
    async def test_activation_flow(self, client, booking_payload, sent_emails):
        package = (
            await client.post(
                "/packages",
                json={"name": "3-Month Pass", "duration": "3-Month", "sessions": 2, "totalPrice": 15000},
            )
        ).json()["data"]

        requested = await client.post(
            "/package-activations",
            json={
                "fullName": "Amara Fernando",
                "email": "amara@example.com",
                "phone": "0770000000",
                "address": "1 Lake Drive",
                "packageId": package["id"],
            },
        )
        assert requested.status_code == 201
        activation = requested.json()["data"]
        assert activation["status"] == "Pending"
        assert activation["remainingSessions"] == 2

        confirmed = await client.patch(
            f"/package-activations/{activation['id']}/status",
            json={"status": "Confirmed", "startDate": "2030-01-15T00:00:00Z"},
        )
        assert confirmed.status_code == 200
        assert confirmed.json()["data"]["expiryDate"].startswith("2030-04-15")
        assert [email["to"] for email in sent_emails] == ["amara@example.com", "amara@example.com"]

        booked = await client.post(
            "/appointments",
            json=booking_payload(email="amara@example.com", packageActivationId=activation["id"]),
        )
        assert booked.status_code == 201
        assert booked.json()["data"]["isPackageUser"] is True

        counts = (await client.get(f"/appointments/package/{activation['id']}/counts")).json()["data"]
        assert counts == {"pending": 1, "completed": 0, "cancelled": 0}

    @pytest.mark.asyncio
    async def test_unknown_package_definition(self, client):
        response = await client.post(
            "/package-activations",
            json={
                "fullName": "Amara Fernando",
                "email": "amara@example.com",
                "phone": "0770000000",
                "address": "1 Lake Drive",
                "packageId": 404,
            },
        )

        assert response.status_code == 404
        assert response.json()["error"]["code"] == "PACKAGE_DEFINITION_NOT_FOUND"

    @pytest.mark.asyncio
    async def test_invalid_status_filter(self, client):
        response = await client.get("/package-activations", params={"status": "Approved"})

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "INVALID_STATUS"


@pytest.mark.asyncio
async def test_health(client):
    response = await client.get("/health")
    assert response.json() == {"ok": True}
