"""
Tests for services/availability.py

Tests free-slot computation against stored appointments and blocks.
"""

import unittest
from datetime import date, datetime, timedelta

from booking_engine.errors import Inactive, NotFound
from booking_engine.services.availability import AvailabilityService
from tests.base import DAY, NOW, DatabaseTestCase, at


class TestAvailability(DatabaseTestCase):
    """Service lasts 60 minutes; default hours 09:00-19:00 on a 30 minute grid."""

    async def get_slots(self, day=DAY, now=NOW, **ids):
        async with self.session_factory() as session:
            return await AvailabilityService(session).get_availability(
                ids.get("business_id", self.business_id),
                ids.get("professional_id", self.professional_id),
                ids.get("service_id", self.service_id),
                day,
                now=now,
            )

    async def test_empty_day_offers_full_grid(self):
        slots = await self.get_slots()

        self.assertEqual(slots[0], at(9))
        self.assertEqual(slots[-1], at(18))
        self.assertEqual(len(slots), 19)

    async def test_existing_appointment_scenario(self):
        await self.add_appointment(at(10), duration_minutes=60, status="confirmed")

        slots = await self.get_slots()

        self.assertIn(at(9), slots)
        self.assertNotIn(at(9, 30), slots)
        self.assertNotIn(at(10), slots)
        self.assertNotIn(at(10, 30), slots)
        self.assertIn(at(11), slots)

    async def test_cancelled_appointments_do_not_block(self):
        await self.add_appointment(at(10), status="cancelled")

        slots = await self.get_slots()

        self.assertIn(at(10), slots)

    async def test_other_professionals_do_not_block(self):
        other = await self.add_professional()
        await self.add_appointment(at(10), professional_id=other)

        slots = await self.get_slots()

        self.assertIn(at(10), slots)

    async def test_schedule_block_removes_slots(self):
        await self.add_block(at(12), at(14))

        slots = await self.get_slots()

        self.assertIn(at(11), slots)
        self.assertNotIn(at(11, 30), slots)
        self.assertNotIn(at(13, 30), slots)
        self.assertIn(at(14), slots)

    async def test_block_spanning_days(self):
        await self.add_block(datetime(2030, 3, 3, 20, 0), at(10))

        slots = await self.get_slots()

        self.assertEqual(slots[0], at(10))

    async def test_never_returns_past_slots(self):
        now = at(12, 10)

        slots = await self.get_slots(now=now)

        self.assertTrue(all(slot > now for slot in slots))
        self.assertEqual(slots[0], at(12, 30))

    async def test_slot_equal_to_now_is_excluded(self):
        slots = await self.get_slots(now=at(12))

        self.assertNotIn(at(12), slots)

    async def test_past_day_and_horizon(self):
        self.assertEqual(await self.get_slots(day=DAY - timedelta(days=1)), [])
        self.assertEqual(await self.get_slots(day=DAY + timedelta(days=31)), [])
        self.assertNotEqual(await self.get_slots(day=DAY + timedelta(days=30)), [])

    async def test_business_hours_and_holidays(self):
        await self.set_business_settings(
            opening_hours={
                "monday": {"start": "10:00", "end": "13:00", "closed": False},
                "tuesday": {"start": "10:00", "end": "13:00", "closed": False},
                "sunday": {"start": "09:00", "end": "18:00", "closed": True},
            },
            holidays=["2030-03-05"],
            slot_interval_minutes=60,
        )

        self.assertEqual(await self.get_slots(), [at(10), at(11), at(12)])
        self.assertEqual(await self.get_slots(day=date(2030, 3, 5)), [])
        self.assertEqual(await self.get_slots(day=date(2030, 3, 10)), [])

    async def test_booking_buffer(self):
        await self.set_business_settings(booking_buffer_minutes=30)
        await self.add_appointment(at(12), duration_minutes=60)

        slots = await self.get_slots()

        self.assertIn(at(10, 30), slots)
        self.assertNotIn(at(11), slots)
        self.assertNotIn(at(13), slots)
        self.assertIn(at(13, 30), slots)

    async def test_unknown_ids(self):
        with self.assertRaises(NotFound):
            await self.get_slots(business_id="missing")
        with self.assertRaises(NotFound):
            await self.get_slots(professional_id="missing")
        with self.assertRaises(NotFound):
            await self.get_slots(service_id="missing")

    async def test_professional_of_another_business(self):
        other_business = await self.add_business()
        stranger = await self.add_professional(business_id=other_business)

        with self.assertRaises(NotFound):
            await self.get_slots(professional_id=stranger)

    async def test_service_not_offered_by_business(self):
        other_business = await self.add_business()
        foreign_service = await self.add_service(business_id=other_business)

        with self.assertRaises(NotFound):
            await self.get_slots(service_id=foreign_service)

    async def test_inactive_professional_or_service(self):
        inactive_professional = await self.add_professional(is_active=False)
        inactive_service = await self.add_service(is_active=False)

        with self.assertRaises(Inactive):
            await self.get_slots(professional_id=inactive_professional)
        with self.assertRaises(Inactive):
            await self.get_slots(service_id=inactive_service)


if __name__ == "__main__":
    unittest.main()
