"""
Reservation Service

Write path of the booking engine: commits new reservations, applies
status transitions and reschedules appointments.

Every write that claims time for a professional re-checks conflicts
against committed state while holding that professional's writer lock
and a database write lock on the professional, so two concurrent
callers, in one process or several, can never both commit overlapping
appointments.
"""

import logging
from datetime import date, datetime, time, timedelta
from typing import List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from booking_engine.config import settings
from booking_engine.db.repository import (
    AppointmentRepository,
    CatalogRepository,
    DatabaseError,
    IntegrityConflict,
)
from booking_engine.errors import InvalidTransition, NotFound, PolicyViolation, SlotConflict
from booking_engine.models.schemas import AppointmentRead, BookingSettings
from booking_engine.services.availability import load_offering
from booking_engine.services.conflicts import find_conflicts
from booking_engine.services.identity import ClientIdentity, GuestIdentity
from booking_engine.services.lifecycle import (
    Actor,
    AppointmentAction,
    AppointmentStatus,
    check_minimum_notice,
    ensure_reschedulable,
    next_status,
)
from booking_engine.services.locks import ProfessionalLockRegistry, reservation_locks
from booking_engine.services.slots import booking_horizon, fits_opening_window

logger = logging.getLogger(__name__)


def check_booking_window(
    hours: BookingSettings,
    start_time: datetime,
    duration_minutes: int,
    now: datetime,
) -> None:
    """
    Reject times the business does not take bookings for.

    Raises:
        PolicyViolation: Outside opening hours or beyond the booking horizon
    """
    if not fits_opening_window(hours, start_time, duration_minutes):
        raise PolicyViolation(
            "outside_opening_hours",
            f"{start_time:%Y-%m-%d %H:%M} is outside the business opening hours",
        )
    if start_time.date() > booking_horizon(hours, now):
        raise PolicyViolation(
            "beyond_booking_horizon",
            f"Bookings are accepted up to {hours.advance_booking_days} days ahead",
        )


def ensure_slot_free(
    start_time: datetime,
    duration_minutes: int,
    busy,
    now: datetime,
    buffer_minutes: int = 0,
) -> None:
    """
    Raise SlotConflict unless the slot is in the future and unoccupied.
    """
    if start_time <= now:
        raise SlotConflict(f"{start_time:%Y-%m-%d %H:%M} is no longer bookable")

    conflicts = find_conflicts(start_time, duration_minutes, busy, buffer_minutes)
    if conflicts:
        raise SlotConflict(
            f"{start_time:%Y-%m-%d %H:%M} overlaps {len(conflicts)} existing booking(s)",
            conflicts=[interval.to_dict() for interval in conflicts],
        )


class ReservationService:
    """
    Service for committing reservations and managing their status.

    Errors are raised to the caller; nothing is retried here. A caller
    that gets SlotConflict should refresh availability and let the client
    pick another slot.
    """

    def __init__(
        self,
        db_session: AsyncSession,
        locks: Optional[ProfessionalLockRegistry] = None,
    ):
        """
        Initialize ReservationService.

        Args:
            db_session: Async database session, one per request
            locks: Writer lock registry, defaults to the process-wide one
        """
        self.db = db_session
        self.locks = locks if locks is not None else reservation_locks
        self.catalog = CatalogRepository(db_session)
        self.appointment_repo = AppointmentRepository(db_session)

    async def reserve(
        self,
        business_id: str,
        professional_id: str,
        service_id: str,
        identity: ClientIdentity,
        start_time: datetime,
        notes: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> AppointmentRead:
        """
        Reserve a slot for a client.

        Args:
            business_id: Business offering the service
            professional_id: Professional to book
            service_id: Service to book
            identity: Resolved client identity
            start_time: Chosen start time
            notes: Optional client notes
            now: Evaluation time, defaults to the current local time

        Returns:
            The new pending appointment

        Raises:
            NotFound, Inactive: Invalid offering
            PolicyViolation: Outside opening hours or booking horizon
            SlotConflict: Slot taken or in the past
            DatabaseError: Persistence failure (nothing was stored)
        """
        now = now or datetime.now()
        offering = await load_offering(self.catalog, business_id, professional_id, service_id)
        hours = offering.booking_settings
        duration = offering.duration_minutes
        end_time = start_time + timedelta(minutes=duration)
        buffer = timedelta(minutes=hours.booking_buffer_minutes)

        check_booking_window(hours, start_time, duration, now)

        async with self.locks.hold(professional_id):
            try:
                await self.catalog.lock_professional(professional_id)
                busy = await self.appointment_repo.get_busy_intervals(
                    professional_id, start_time - buffer, end_time + buffer
                )
                ensure_slot_free(start_time, duration, busy, now, hours.booking_buffer_minutes)

                appointment_id = await self.appointment_repo.create_appointment(
                    business_id=business_id,
                    professional_id=professional_id,
                    service_id=service_id,
                    client_id=identity.client_id,
                    start_time=start_time,
                    end_time=end_time,
                    duration_minutes=duration,
                    payment_amount=offering.service["price"],
                    notes=notes,
                )
                if isinstance(identity, GuestIdentity):
                    await self.appointment_repo.create_guest_booking(
                        appointment_id=appointment_id,
                        client_name=identity.contact.client_name,
                        client_phone=identity.contact.client_phone,
                        client_email=identity.contact.client_email,
                    )

                await self.db.commit()

            except IntegrityConflict as e:
                await self.db.rollback()
                logger.warning(
                    f"Storage rejected overlapping booking for professional "
                    f"{professional_id} at {start_time}"
                )
                raise SlotConflict(
                    f"{start_time:%Y-%m-%d %H:%M} was just booked by someone else"
                ) from e
            except SlotConflict as e:
                await self.db.rollback()
                logger.info(f"Slot conflict for professional {professional_id}: {e.message}")
                raise
            except DatabaseError as e:
                await self.db.rollback()
                logger.error(f"Failed to reserve slot for professional {professional_id}: {e}")
                raise

        logger.info(
            f"Reserved appointment {appointment_id} for professional {professional_id} "
            f"at {start_time} ({'guest' if isinstance(identity, GuestIdentity) else 'account'})"
        )
        return await self.get_appointment(appointment_id)

    async def transition(
        self,
        appointment_id: str,
        action: AppointmentAction,
        actor: Actor = Actor.CLIENT,
        now: Optional[datetime] = None,
    ) -> AppointmentRead:
        """
        Apply confirm, complete or cancel to an appointment.

        Raises:
            NotFound: Unknown appointment
            InvalidTransition: Not allowed from the current status
            PolicyViolation: Cancellation inside the notice window
        """
        now = now or datetime.now()
        action = AppointmentAction(action)
        appointment = await self._get_or_raise(appointment_id)
        current = AppointmentStatus(appointment["status"])
        target = next_status(current, action)

        if action is AppointmentAction.CANCEL:
            hours = await self._booking_settings(appointment["business_id"])
            check_minimum_notice(
                appointment["start_time"],
                now,
                hours.cancellation_hours,
                actor,
                settings.notice_exempt_actors,
            )

        try:
            updated = await self.appointment_repo.update_appointment_status(
                appointment_id, current.value, target.value
            )
            if not updated:
                await self.db.rollback()
                raise InvalidTransition(
                    f"Appointment {appointment_id} changed status while processing {action.value}"
                )
            await self.db.commit()
        except DatabaseError as e:
            await self.db.rollback()
            logger.error(f"Failed to {action.value} appointment {appointment_id}: {e}")
            raise

        logger.info(
            f"Appointment {appointment_id}: {current.value} -> {target.value} "
            f"by {Actor(actor).value}"
        )
        return await self.get_appointment(appointment_id)

    async def reschedule(
        self,
        appointment_id: str,
        new_start_time: datetime,
        actor: Actor = Actor.CLIENT,
        now: Optional[datetime] = None,
    ) -> AppointmentRead:
        """
        Move an appointment to a new start time, keeping its status.

        The appointment's own interval is ignored when checking conflicts.
        On any failure the stored appointment is left untouched.

        Raises:
            NotFound: Unknown appointment
            InvalidTransition: Appointment completed or cancelled
            PolicyViolation: Inside notice window, outside hours, beyond horizon
            SlotConflict: New interval overlaps another booking or is past
        """
        now = now or datetime.now()
        appointment = await self._get_or_raise(appointment_id)
        ensure_reschedulable(appointment["status"])

        hours = await self._booking_settings(appointment["business_id"])
        check_minimum_notice(
            appointment["start_time"],
            now,
            hours.cancellation_hours,
            actor,
            settings.notice_exempt_actors,
        )

        professional_id = appointment["professional_id"]
        duration = int(appointment["duration_minutes"])
        new_end_time = new_start_time + timedelta(minutes=duration)
        buffer = timedelta(minutes=hours.booking_buffer_minutes)
        check_booking_window(hours, new_start_time, duration, now)

        async with self.locks.hold(professional_id):
            try:
                await self.catalog.lock_professional(professional_id)
                busy = await self.appointment_repo.get_busy_intervals(
                    professional_id,
                    new_start_time - buffer,
                    new_end_time + buffer,
                    exclude_appointment_id=appointment_id,
                )
                ensure_slot_free(
                    new_start_time, duration, busy, now, hours.booking_buffer_minutes
                )

                updated = await self.appointment_repo.update_appointment_time(
                    appointment_id, new_start_time, new_end_time
                )
                if not updated:
                    raise InvalidTransition(
                        f"Appointment {appointment_id} is no longer active"
                    )
                await self.db.commit()

            except IntegrityConflict as e:
                await self.db.rollback()
                raise SlotConflict(
                    f"{new_start_time:%Y-%m-%d %H:%M} was just booked by someone else"
                ) from e
            except (SlotConflict, InvalidTransition, DatabaseError) as e:
                await self.db.rollback()
                logger.info(f"Reschedule of appointment {appointment_id} rejected: {e}")
                raise

        logger.info(
            f"Rescheduled appointment {appointment_id} "
            f"from {appointment['start_time']} to {new_start_time}"
        )
        return await self.get_appointment(appointment_id)

    async def get_appointment(self, appointment_id: str) -> AppointmentRead:
        return AppointmentRead.model_validate(await self._get_or_raise(appointment_id))

    async def list_appointments(
        self,
        professional_id: str,
        day: date,
        include_cancelled: bool = False,
    ) -> List[AppointmentRead]:
        """
        Appointments of a professional on ``day``.

        Used to reconcile after a timed-out reservation instead of
        retrying it.
        """
        day_start = datetime.combine(day, time.min)
        rows = await self.appointment_repo.get_professional_appointments(
            professional_id,
            day_start,
            day_start + timedelta(days=1),
            include_cancelled=include_cancelled,
        )
        return [AppointmentRead.model_validate(row) for row in rows]

    async def _get_or_raise(self, appointment_id: str):
        appointment = await self.appointment_repo.get_appointment_by_id(appointment_id)
        if not appointment:
            raise NotFound(f"Appointment {appointment_id} not found")
        return appointment

    async def _booking_settings(self, business_id: str) -> BookingSettings:
        row = await self.catalog.get_business_settings(business_id)
        return BookingSettings.from_row(row, settings)
