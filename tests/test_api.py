"""
Tests for the booking HTTP API.

Runs the FastAPI app in-process with the session dependency pointed at
the test database.
"""

import unittest
from datetime import date, datetime, timedelta
from unittest.mock import AsyncMock, patch

from httpx import ASGITransport, AsyncClient
from sqlalchemy import func, select

from booking_engine.db.session import get_db_session
from booking_engine.db.tables import appointments, guest_bookings
from booking_engine.main import app
from tests.base import DatabaseTestCase

BOOKING_DAY = date.today() + timedelta(days=2)


def on_booking_day(hour, minute=0):
    return datetime(BOOKING_DAY.year, BOOKING_DAY.month, BOOKING_DAY.day, hour, minute)


class TestBookingApi(DatabaseTestCase):

    async def asyncSetUp(self):
        await super().asyncSetUp()

        async def override_session():
            async with self.session_factory() as session:
                yield session

        app.dependency_overrides[get_db_session] = override_session
        self.client = AsyncClient(transport=ASGITransport(app=app), base_url="http://test")

    async def asyncTearDown(self):
        await self.client.aclose()
        app.dependency_overrides.clear()
        await super().asyncTearDown()

    def reservation_body(self, start, **extra):
        body = {
            "business_id": self.business_id,
            "professional_id": self.professional_id,
            "service_id": self.service_id,
            "start_time": start.isoformat(),
            "client_name": "Ana Silva",
            "client_phone": "912 345 678",
        }
        body.update(extra)
        return body

    async def count_rows(self, table):
        async with self.session_factory() as session:
            return (await session.execute(select(func.count()).select_from(table))).scalar()

    async def test_availability(self):
        await self.add_appointment(on_booking_day(10), duration_minutes=60)

        response = await self.client.get(
            "/availability",
            params={
                "business_id": self.business_id,
                "professional_id": self.professional_id,
                "service_id": self.service_id,
                "date": BOOKING_DAY.isoformat(),
            },
        )

        self.assertEqual(response.status_code, 200)
        slots = response.json()["slots"]
        self.assertIn(on_booking_day(9).isoformat(), slots)
        self.assertNotIn(on_booking_day(9, 30).isoformat(), slots)
        self.assertIn(on_booking_day(11).isoformat(), slots)

    async def test_availability_unknown_service(self):
        response = await self.client.get(
            "/availability",
            params={
                "business_id": self.business_id,
                "professional_id": self.professional_id,
                "service_id": "missing",
                "date": BOOKING_DAY.isoformat(),
            },
        )

        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json()["detail"]["error"], "not_found")

    async def test_guest_reservation(self):
        response = await self.client.post(
            "/reservations", json=self.reservation_body(on_booking_day(11))
        )

        self.assertEqual(response.status_code, 201)
        data = response.json()
        self.assertTrue(data["success"])
        self.assertEqual(data["appointment"]["status"], "pending")
        self.assertTrue(data["appointment"]["is_guest"])
        self.assertEqual(await self.count_rows(guest_bookings), 1)

    async def test_account_reservation(self):
        response = await self.client.post(
            "/reservations",
            json=self.reservation_body(on_booking_day(11), client_name=None, client_phone=None),
            headers={"X-Account-Id": "33333333-3333-4333-8333-333333333333"},
        )

        self.assertEqual(response.status_code, 201)
        appointment = response.json()["appointment"]
        self.assertEqual(appointment["client_id"], "33333333-3333-4333-8333-333333333333")
        self.assertFalse(appointment["is_guest"])
        self.assertEqual(await self.count_rows(guest_bookings), 0)

    async def test_honeypot_looks_successful_but_stores_nothing(self):
        response = await self.client.post(
            "/reservations",
            json=self.reservation_body(on_booking_day(11), honeypot="https://spam.example"),
        )

        self.assertEqual(response.status_code, 201)
        self.assertTrue(response.json()["success"])
        self.assertEqual(await self.count_rows(appointments), 0)
        self.assertEqual(await self.count_rows(guest_bookings), 0)

    async def test_invalid_guest_fields(self):
        response = await self.client.post(
            "/reservations",
            json=self.reservation_body(on_booking_day(11), client_phone="12"),
        )

        self.assertEqual(response.status_code, 422)
        detail = response.json()["detail"]
        self.assertEqual(detail["error"], "validation_error")
        self.assertIn("client_phone", detail["fields"])

    async def test_timezone_aware_start_rejected(self):
        response = await self.client.post(
            "/reservations",
            json=self.reservation_body(on_booking_day(11), start_time="2030-03-04T11:00:00+00:00"),
        )

        self.assertEqual(response.status_code, 422)

    async def test_conflicting_reservation(self):
        first = await self.client.post(
            "/reservations", json=self.reservation_body(on_booking_day(11))
        )
        second = await self.client.post(
            "/reservations", json=self.reservation_body(on_booking_day(11, 30))
        )

        self.assertEqual(first.status_code, 201)
        self.assertEqual(second.status_code, 409)
        detail = second.json()["detail"]
        self.assertEqual(detail["error"], "slot_conflict")
        self.assertEqual(
            detail["conflicts"],
            [{
                "kind": "appointment",
                "start_time": on_booking_day(11).isoformat(),
                "end_time": on_booking_day(12).isoformat(),
            }],
        )
        self.assertNotIn(first.json()["appointment"]["id"], second.text)

    async def test_transition_and_reschedule(self):
        created = await self.client.post(
            "/reservations", json=self.reservation_body(on_booking_day(11))
        )
        appointment_id = created.json()["appointment"]["id"]

        invalid = await self.client.post(
            f"/appointments/{appointment_id}/transition", json={"action": "complete"}
        )
        self.assertEqual(invalid.status_code, 409)
        self.assertEqual(invalid.json()["detail"]["error"], "invalid_transition")

        confirmed = await self.client.post(
            f"/appointments/{appointment_id}/transition", json={"action": "confirm"}
        )
        self.assertEqual(confirmed.json()["status"], "confirmed")

        moved = await self.client.post(
            f"/appointments/{appointment_id}/reschedule",
            json={"new_start_time": on_booking_day(15).isoformat()},
        )
        self.assertEqual(moved.status_code, 200)
        self.assertEqual(moved.json()["start_time"], on_booking_day(15).isoformat())

        listed = await self.client.get(
            "/appointments",
            params={"professional_id": self.professional_id, "date": BOOKING_DAY.isoformat()},
        )
        self.assertEqual([a["id"] for a in listed.json()], [appointment_id])

    async def test_client_cancel_inside_notice_window(self):
        created = await self.client.post(
            "/reservations", json=self.reservation_body(on_booking_day(11))
        )
        appointment_id = created.json()["appointment"]["id"]
        await self.set_business_settings(cancellation_hours=72)

        response = await self.client.post(
            f"/appointments/{appointment_id}/transition",
            json={"action": "cancel", "actor": "client"},
        )

        self.assertEqual(response.status_code, 422)
        self.assertEqual(response.json()["detail"]["reason"], "inside_notice_window")

    async def test_cancel_without_actor_respects_notice_window(self):
        created = await self.client.post(
            "/reservations", json=self.reservation_body(on_booking_day(11))
        )
        appointment_id = created.json()["appointment"]["id"]
        await self.set_business_settings(cancellation_hours=72)

        response = await self.client.post(
            f"/appointments/{appointment_id}/transition", json={"action": "cancel"}
        )
        self.assertEqual(response.status_code, 422)
        self.assertEqual(response.json()["detail"]["reason"], "inside_notice_window")

        by_business = await self.client.post(
            f"/appointments/{appointment_id}/transition",
            json={"action": "cancel", "actor": "business"},
        )
        self.assertEqual(by_business.status_code, 200)
        self.assertEqual(by_business.json()["status"], "cancelled")

    async def test_reschedule_without_actor_respects_notice_window(self):
        created = await self.client.post(
            "/reservations", json=self.reservation_body(on_booking_day(11))
        )
        appointment_id = created.json()["appointment"]["id"]
        await self.set_business_settings(cancellation_hours=72)

        response = await self.client.post(
            f"/appointments/{appointment_id}/reschedule",
            json={"new_start_time": on_booking_day(15).isoformat()},
        )

        self.assertEqual(response.status_code, 422)
        self.assertEqual(response.json()["detail"]["reason"], "inside_notice_window")

    async def test_health_reports_database_state(self):
        with patch(
            "booking_engine.main.check_database_connection",
            new=AsyncMock(return_value=True),
        ):
            healthy = await self.client.get("/health")
        with patch(
            "booking_engine.main.check_database_connection",
            new=AsyncMock(return_value=False),
        ):
            degraded = await self.client.get("/health")

        self.assertEqual(healthy.status_code, 200)
        self.assertEqual(healthy.json()["database"], "connected")
        self.assertEqual(degraded.status_code, 503)
        self.assertEqual(degraded.json()["status"], "degraded")

    async def test_unknown_appointment(self):
        response = await self.client.get("/appointments/missing")

        self.assertEqual(response.status_code, 404)


if __name__ == "__main__":
    unittest.main()
