"""
Booking API Routes

HTTP surface of the booking engine: availability, reservations,
status transitions and reschedules.
"""

import logging
from datetime import date
from typing import List, NoReturn, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from booking_engine.db.repository import DatabaseError
from booking_engine.db.session import get_db_session
from booking_engine.errors import BookingError
from booking_engine.models.schemas import (
    AppointmentRead,
    AvailabilityResponse,
    ReservationRequest,
    ReservationResponse,
    RescheduleRequest,
    TransitionRequest,
)
from booking_engine.services.availability import AvailabilityService
from booking_engine.services.identity import IdentityResolver
from booking_engine.services.reservation import ReservationService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["booking"])

identity_resolver = IdentityResolver()


def _raise_http(exc: Exception) -> NoReturn:
    """Translate engine errors into HTTP errors."""
    if isinstance(exc, BookingError):
        raise HTTPException(status_code=exc.status_code, detail=exc.to_dict()) from exc
    if isinstance(exc, DatabaseError):
        raise HTTPException(
            status_code=503,
            detail={"error": "database_error", "message": "Storage temporarily unavailable"},
        ) from exc
    raise exc


@router.get("/availability", response_model=AvailabilityResponse)
async def get_availability(
    business_id: str = Query(...),
    professional_id: str = Query(...),
    service_id: str = Query(...),
    day: date = Query(..., alias="date"),
    db: AsyncSession = Depends(get_db_session),
) -> AvailabilityResponse:
    """
    Free start times for a professional and service on a date.

    The result is a snapshot; a slot is only held once reserved.
    """
    try:
        slots = await AvailabilityService(db).get_availability(
            business_id, professional_id, service_id, day
        )
    except (BookingError, DatabaseError) as e:
        _raise_http(e)

    return AvailabilityResponse(
        date=day,
        professional_id=professional_id,
        service_id=service_id,
        slots=slots,
    )


@router.post(
    "/reservations",
    response_model=ReservationResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_reservation(
    payload: ReservationRequest,
    x_account_id: Optional[str] = Header(default=None),
    db: AsyncSession = Depends(get_db_session),
) -> ReservationResponse:
    """
    Reserve a slot for a signed-in client or a guest.

    Authenticated callers pass their account id in ``X-Account-Id``;
    guests send their contact fields in the body.
    """
    try:
        resolution = identity_resolver.resolve(
            account_id=x_account_id,
            client_name=payload.client_name,
            client_phone=payload.client_phone,
            client_email=payload.client_email,
            honeypot=payload.honeypot,
        )
        if resolution.discarded:
            return ReservationResponse(message="Booking received")

        appointment = await ReservationService(db).reserve(
            business_id=payload.business_id,
            professional_id=payload.professional_id,
            service_id=payload.service_id,
            identity=resolution.identity,
            start_time=payload.start_time,
            notes=payload.notes,
        )
    except (BookingError, DatabaseError) as e:
        _raise_http(e)

    return ReservationResponse(message="Booking received", appointment=appointment)


@router.get("/appointments", response_model=List[AppointmentRead])
async def list_appointments(
    professional_id: str = Query(...),
    day: date = Query(..., alias="date"),
    include_cancelled: bool = Query(default=False),
    db: AsyncSession = Depends(get_db_session),
) -> List[AppointmentRead]:
    """Appointments of a professional on a date, for reconciliation."""
    try:
        return await ReservationService(db).list_appointments(
            professional_id, day, include_cancelled=include_cancelled
        )
    except (BookingError, DatabaseError) as e:
        _raise_http(e)


@router.get("/appointments/{appointment_id}", response_model=AppointmentRead)
async def get_appointment(
    appointment_id: str,
    db: AsyncSession = Depends(get_db_session),
) -> AppointmentRead:
    try:
        return await ReservationService(db).get_appointment(appointment_id)
    except (BookingError, DatabaseError) as e:
        _raise_http(e)


@router.post("/appointments/{appointment_id}/transition", response_model=AppointmentRead)
async def transition_appointment(
    appointment_id: str,
    payload: TransitionRequest,
    db: AsyncSession = Depends(get_db_session),
) -> AppointmentRead:
    """Confirm, complete or cancel an appointment."""
    try:
        return await ReservationService(db).transition(
            appointment_id, payload.action, actor=payload.actor
        )
    except (BookingError, DatabaseError) as e:
        _raise_http(e)


@router.post("/appointments/{appointment_id}/reschedule", response_model=AppointmentRead)
async def reschedule_appointment(
    appointment_id: str,
    payload: RescheduleRequest,
    db: AsyncSession = Depends(get_db_session),
) -> AppointmentRead:
    """Move an appointment to a new start time."""
    try:
        return await ReservationService(db).reschedule(
            appointment_id, payload.new_start_time, actor=payload.actor
        )
    except (BookingError, DatabaseError) as e:
        _raise_http(e)
