"""
Availability Service

Read path of the booking engine: validates the requested offering and
returns the start times still free for a professional on a date.
Results are an advisory snapshot; nothing is reserved here.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from booking_engine.config import settings
from booking_engine.db.repository import AppointmentRepository, CatalogRepository
from booking_engine.errors import Inactive, NotFound
from booking_engine.models.schemas import BookingSettings
from booking_engine.services.conflicts import is_slot_free
from booking_engine.services.slots import booking_horizon, slots_for_day

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Offering:
    """A service offered by a professional of one business."""

    business: Dict[str, Any]
    professional: Dict[str, Any]
    service: Dict[str, Any]
    booking_settings: BookingSettings

    @property
    def duration_minutes(self) -> int:
        return int(self.service["duration_minutes"])


async def load_offering(
    catalog: CatalogRepository,
    business_id: str,
    professional_id: str,
    service_id: str,
) -> Offering:
    """
    Load and check a (business, professional, service) combination.

    Raises:
        NotFound: Unknown ids, or professional/service of another business
        Inactive: Professional or service disabled
    """
    business = await catalog.get_business(business_id)
    if not business:
        raise NotFound(f"Business {business_id} not found")

    professional = await catalog.get_professional(professional_id)
    if not professional or professional["business_id"] != business_id:
        raise NotFound(f"Professional {professional_id} not found for this business")

    service = await catalog.get_service(service_id)
    if not service or service["business_id"] != business_id:
        raise NotFound(f"Service {service_id} is not offered by this business")

    if not professional["is_active"]:
        raise Inactive(f"Professional {professional_id} is not taking bookings")
    if not service["is_active"]:
        raise Inactive(f"Service {service_id} is not available")

    row = await catalog.get_business_settings(business_id)
    return Offering(
        business=business,
        professional=professional,
        service=service,
        booking_settings=BookingSettings.from_row(row, settings),
    )


class AvailabilityService:
    """Computes bookable start times from the committed appointment state."""

    def __init__(self, db_session: AsyncSession):
        """
        Initialize AvailabilityService.

        Args:
            db_session: Async database session
        """
        self.db = db_session
        self.catalog = CatalogRepository(db_session)
        self.appointment_repo = AppointmentRepository(db_session)

    async def get_availability(
        self,
        business_id: str,
        professional_id: str,
        service_id: str,
        day: date,
        now: Optional[datetime] = None,
    ) -> List[datetime]:
        """
        Get free start times for a professional and service on ``day``.

        Args:
            business_id: Business offering the service
            professional_id: Professional performing it
            service_id: Service being booked
            day: Requested date
            now: Evaluation time, defaults to the current local time

        Returns:
            Ordered list of free start datetimes

        Raises:
            NotFound: Unknown or mismatched ids
            Inactive: Disabled professional or service
        """
        now = now or datetime.now()
        offering = await load_offering(self.catalog, business_id, professional_id, service_id)
        hours = offering.booking_settings

        if day < now.date() or day > booking_horizon(hours, now):
            logger.debug(f"Date {day} outside booking range for business {business_id}")
            return []

        candidates = slots_for_day(hours, day, offering.duration_minutes)
        if not candidates:
            return []

        day_start = datetime.combine(day, time.min)
        buffer = timedelta(minutes=hours.booking_buffer_minutes)
        busy = await self.appointment_repo.get_busy_intervals(
            professional_id,
            day_start - buffer,
            day_start + timedelta(days=1) + buffer,
        )

        free = [
            slot
            for slot in candidates
            if is_slot_free(
                slot,
                offering.duration_minutes,
                busy,
                now,
                hours.booking_buffer_minutes,
            )
        ]

        logger.info(
            f"Availability for professional {professional_id} on {day}: "
            f"{len(free)}/{len(candidates)} slots free"
        )
        return free
