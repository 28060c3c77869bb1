"""
Database Repository Layer

Implements repository pattern for database operations.
Provides abstraction over SQLAlchemy for cleaner business logic.

Repositories never commit: the calling service owns the transaction so
that related writes land together.
"""

import logging
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import and_, case, func, insert, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql import Executable

from booking_engine.config import settings
from booking_engine.db.tables import (
    appointments,
    business_settings,
    businesses,
    guest_bookings,
    professionals,
    schedule_blocks,
    services,
)
from booking_engine.services.conflicts import APPOINTMENT, BLOCK, BusyInterval

logger = logging.getLogger(__name__)


class DatabaseError(Exception):
    """Custom exception for database operations."""
    pass


class IntegrityConflict(DatabaseError):
    """A constraint rejected the write."""
    pass


def new_id() -> str:
    return str(uuid.uuid4())


class BaseRepository:
    """Base repository with common database operations."""

    def __init__(self, session: AsyncSession):
        """
        Initialize repository with database session.

        Args:
            session: AsyncSession instance for database operations
        """
        self.session = session

    async def execute_query(self, statement: Executable) -> Any:
        """
        Execute a SQLAlchemy statement safely.

        Args:
            statement: Core select/insert/update statement

        Returns:
            Query result

        Raises:
            IntegrityConflict: If a constraint rejects the statement
            DatabaseError: If query execution fails
        """
        try:
            return await self.session.execute(statement)
        except IntegrityError as e:
            logger.warning(f"Constraint violation: {e.orig}")
            raise IntegrityConflict(f"Constraint violation: {e.orig}") from e
        except SQLAlchemyError as e:
            logger.error(f"Query execution failed: {e}")
            raise DatabaseError(f"Database operation failed: {str(e)}") from e

    async def fetch_one(self, statement: Executable) -> Optional[Dict[str, Any]]:
        result = await self.execute_query(statement)
        row = result.mappings().first()
        return dict(row) if row else None

    async def fetch_all(self, statement: Executable) -> List[Dict[str, Any]]:
        result = await self.execute_query(statement)
        return [dict(row) for row in result.mappings().all()]


class CatalogRepository(BaseRepository):
    """Read access to businesses, professionals, services and settings."""

    async def get_business(self, business_id: str) -> Optional[Dict[str, Any]]:
        return await self.fetch_one(select(businesses).where(businesses.c.id == business_id))

    async def get_professional(self, professional_id: str) -> Optional[Dict[str, Any]]:
        return await self.fetch_one(
            select(professionals).where(professionals.c.id == professional_id)
        )

    async def get_service(self, service_id: str) -> Optional[Dict[str, Any]]:
        return await self.fetch_one(select(services).where(services.c.id == service_id))

    async def get_business_settings(self, business_id: str) -> Optional[Dict[str, Any]]:
        return await self.fetch_one(
            select(business_settings).where(business_settings.c.business_id == business_id)
        )

    async def lock_professional(self, professional_id: str) -> None:
        """
        Take a write lock for the professional in the current transaction.

        Serializes writers for one professional across processes. PostgreSQL
        gets ``SELECT ... FOR UPDATE`` on the row. SQLite has no row locks,
        so a no-op UPDATE opens the transaction and takes the database write
        lock before any conflict check reads, and a second writer waits on
        it until the first one commits.
        """
        if self.session.get_bind().dialect.name == "sqlite":
            await self.execute_query(
                update(professionals)
                .where(professionals.c.id == professional_id)
                .values(is_active=professionals.c.is_active)
            )
            return

        await self.execute_query(
            select(professionals.c.id)
            .where(professionals.c.id == professional_id)
            .with_for_update()
        )


class AppointmentRepository(BaseRepository):
    """Repository for appointment-related database operations."""

    def _select_appointments(self):
        is_guest = case((guest_bookings.c.id.is_not(None), True), else_=False).label("is_guest")
        return select(appointments, is_guest).select_from(
            appointments.outerjoin(
                guest_bookings, guest_bookings.c.appointment_id == appointments.c.id
            )
        )

    async def get_busy_intervals(
        self,
        professional_id: str,
        window_start: datetime,
        window_end: datetime,
        exclude_appointment_id: Optional[str] = None,
    ) -> List[BusyInterval]:
        """
        Get every interval that keeps a professional busy inside a window.

        Includes non-cancelled appointments and schedule blocks overlapping
        ``[window_start, window_end)``.

        Args:
            professional_id: Professional to inspect
            window_start: Window start
            window_end: Window end
            exclude_appointment_id: Appointment to leave out (reschedules)

        Returns:
            List of BusyInterval ordered by start
        """
        appointment_query = select(
            appointments.c.id, appointments.c.start_time, appointments.c.end_time
        ).where(
            appointments.c.professional_id == professional_id,
            appointments.c.status != "cancelled",
            appointments.c.start_time < window_end,
            appointments.c.end_time > window_start,
        )
        if exclude_appointment_id:
            appointment_query = appointment_query.where(
                appointments.c.id != exclude_appointment_id
            )

        block_query = select(
            schedule_blocks.c.id, schedule_blocks.c.start_time, schedule_blocks.c.end_time
        ).where(
            schedule_blocks.c.professional_id == professional_id,
            schedule_blocks.c.start_time < window_end,
            schedule_blocks.c.end_time > window_start,
        )

        busy = [
            BusyInterval(row["start_time"], row["end_time"], APPOINTMENT, row["id"])
            for row in await self.fetch_all(appointment_query)
        ]
        busy.extend(
            BusyInterval(row["start_time"], row["end_time"], BLOCK, row["id"])
            for row in await self.fetch_all(block_query)
        )
        busy.sort(key=lambda interval: interval.start)
        return busy

    async def create_appointment(
        self,
        business_id: str,
        professional_id: str,
        service_id: str,
        client_id: str,
        start_time: datetime,
        end_time: datetime,
        duration_minutes: int,
        payment_amount: Any,
        notes: Optional[str] = None,
    ) -> str:
        """
        Insert a pending appointment.

        Returns:
            The new appointment id
        """
        appointment_id = new_id()
        await self.execute_query(
            insert(appointments).values(
                id=appointment_id,
                business_id=business_id,
                professional_id=professional_id,
                service_id=service_id,
                client_id=client_id,
                start_time=start_time,
                end_time=end_time,
                duration_minutes=duration_minutes,
                status="pending",
                notes=notes,
                payment_amount=payment_amount,
            )
        )
        logger.debug(f"Inserted appointment {appointment_id} for professional {professional_id}")
        return appointment_id

    async def create_guest_booking(
        self,
        appointment_id: str,
        client_name: str,
        client_phone: str,
        client_email: Optional[str] = None,
    ) -> str:
        guest_booking_id = new_id()
        await self.execute_query(
            insert(guest_bookings).values(
                id=guest_booking_id,
                appointment_id=appointment_id,
                client_name=client_name,
                client_phone=client_phone,
                client_email=client_email,
            )
        )
        return guest_booking_id

    async def get_appointment_by_id(self, appointment_id: str) -> Optional[Dict[str, Any]]:
        """
        Get appointment details by ID.

        Args:
            appointment_id: Unique appointment identifier

        Returns:
            Appointment details or None if not found
        """
        return await self.fetch_one(
            self._select_appointments().where(appointments.c.id == appointment_id)
        )

    async def get_guest_booking(self, appointment_id: str) -> Optional[Dict[str, Any]]:
        return await self.fetch_one(
            select(guest_bookings).where(guest_bookings.c.appointment_id == appointment_id)
        )

    async def get_professional_appointments(
        self,
        professional_id: str,
        window_start: datetime,
        window_end: datetime,
        include_cancelled: bool = False,
    ) -> List[Dict[str, Any]]:
        """Appointments of a professional overlapping ``[window_start, window_end)``."""
        query = self._select_appointments().where(
            appointments.c.professional_id == professional_id,
            appointments.c.start_time < window_end,
            appointments.c.end_time > window_start,
        )
        if not include_cancelled:
            query = query.where(appointments.c.status != "cancelled")
        return await self.fetch_all(query.order_by(appointments.c.start_time))

    async def get_client_appointments(
        self,
        client_id: str,
        status: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        """
        Get all appointments for a real client account.

        The guest sentinel is shared by every guest booking and is refused.

        Args:
            client_id: Account id
            status: Optional status filter (pending, confirmed, cancelled, completed)

        Returns:
            List of appointment dictionaries
        """
        if client_id == settings.guest_client_id:
            raise ValueError("The guest client id does not identify a single client")

        query = self._select_appointments().where(appointments.c.client_id == client_id)
        if status:
            query = query.where(appointments.c.status == status)
        return await self.fetch_all(query.order_by(appointments.c.start_time))

    async def update_appointment_status(
        self,
        appointment_id: str,
        expected_status: str,
        status: str,
    ) -> bool:
        """
        Update appointment status if it is still ``expected_status``.

        Returns:
            True if the row was updated, False if its status had changed
        """
        result = await self.execute_query(
            update(appointments)
            .where(
                and_(
                    appointments.c.id == appointment_id,
                    appointments.c.status == expected_status,
                )
            )
            .values(status=status, updated_at=func.now())
        )
        return result.rowcount == 1

    async def update_appointment_time(
        self,
        appointment_id: str,
        start_time: datetime,
        end_time: datetime,
    ) -> bool:
        """Move a pending or confirmed appointment to a new interval."""
        result = await self.execute_query(
            update(appointments)
            .where(
                and_(
                    appointments.c.id == appointment_id,
                    appointments.c.status.in_(("pending", "confirmed")),
                )
            )
            .values(start_time=start_time, end_time=end_time, updated_at=func.now())
        )
        return result.rowcount == 1
