"""
Pydantic Schemas

Data validation and serialization schemas for the API and for business
booking settings.
"""

from datetime import date, datetime, time, timedelta
from decimal import Decimal
from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator

from booking_engine.config import Settings
from booking_engine.services.lifecycle import Actor, AppointmentAction, AppointmentStatus

HHMM_PATTERN = r"^([0-1]?[0-9]|2[0-3]):[0-5][0-9]$"
CLOSING_PATTERN = r"^(([0-1]?[0-9]|2[0-3]):[0-5][0-9]|24:00)$"
END_OF_DAY = "24:00"

WEEKDAYS = (
    "monday",
    "tuesday",
    "wednesday",
    "thursday",
    "friday",
    "saturday",
    "sunday",
)


def parse_hhmm(value: str) -> time:
    hours, minutes = value.split(":")
    return time(int(hours), int(minutes))


def _reject_aware(value: Optional[datetime]) -> Optional[datetime]:
    if value is not None and value.tzinfo is not None:
        raise ValueError("Timestamps must be local wall-clock times without a timezone")
    return value


class DayHours(BaseModel):
    """Opening hours for one weekday."""

    start: str = Field(default="09:00", pattern=HHMM_PATTERN)
    end: str = Field(default="19:00", pattern=CLOSING_PATTERN)
    closed: bool = False

    @property
    def start_time(self) -> time:
        return parse_hhmm(self.start)

    def window_on(self, day: date) -> Tuple[datetime, datetime]:
        """Opening and closing datetimes on ``day``. "24:00" closes at the next midnight."""
        opens_at = datetime.combine(day, self.start_time)
        if self.end == END_OF_DAY:
            return opens_at, datetime.combine(day + timedelta(days=1), time.min)
        return opens_at, datetime.combine(day, parse_hhmm(self.end))


class BookingSettings(BaseModel):
    """Per-business booking configuration consumed by the engine."""

    opening_hours: Dict[str, DayHours]
    holidays: List[date] = Field(default_factory=list)
    slot_interval_minutes: int = Field(default=30, ge=5, le=240)
    booking_buffer_minutes: int = Field(default=0, ge=0, le=60)
    advance_booking_days: int = Field(default=30, ge=1, le=365)
    cancellation_hours: int = Field(default=24, ge=0, le=72)

    @field_validator("opening_hours")
    @classmethod
    def validate_weekdays(cls, v: Dict[str, DayHours]) -> Dict[str, DayHours]:
        normalized = {key.lower(): hours for key, hours in v.items()}
        unknown = set(normalized) - set(WEEKDAYS)
        if unknown:
            raise ValueError(f"Unknown weekdays in opening_hours: {sorted(unknown)}")
        return normalized

    @classmethod
    def defaults(cls, app_settings: Settings) -> "BookingSettings":
        """Settings for a business that never configured its own."""
        day = DayHours(
            start=app_settings.default_open_time,
            end=app_settings.default_close_time,
        )
        return cls(
            opening_hours={weekday: day for weekday in WEEKDAYS},
            slot_interval_minutes=app_settings.default_slot_interval_minutes,
            booking_buffer_minutes=app_settings.default_booking_buffer_minutes,
            advance_booking_days=app_settings.default_advance_booking_days,
            cancellation_hours=app_settings.default_cancellation_hours,
        )

    @classmethod
    def from_row(cls, row: Optional[Dict], app_settings: Settings) -> "BookingSettings":
        """Merge a stored ``business_settings`` row over the defaults."""
        base = cls.defaults(app_settings)
        if not row:
            return base

        data = base.model_dump()
        for key in (
            "opening_hours",
            "holidays",
            "slot_interval_minutes",
            "booking_buffer_minutes",
            "advance_booking_days",
            "cancellation_hours",
        ):
            if row.get(key) is not None:
                data[key] = row[key]
        return cls.model_validate(data)


class GuestContact(BaseModel):
    """Contact details of a client booking without an account."""

    client_name: str
    client_phone: str
    client_email: Optional[str] = None


class AppointmentRead(BaseModel):
    """Appointment as returned to callers."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    business_id: str
    professional_id: str
    service_id: str
    client_id: str
    start_time: datetime
    end_time: datetime
    duration_minutes: int
    status: AppointmentStatus
    notes: Optional[str] = None
    payment_amount: Optional[Decimal] = None
    is_guest: bool = False


class AvailabilityResponse(BaseModel):
    date: date
    professional_id: str
    service_id: str
    slots: List[datetime]


class ReservationRequest(BaseModel):
    """Body of ``POST /reservations``."""

    business_id: str
    professional_id: str
    service_id: str
    start_time: datetime
    client_name: Optional[str] = None
    client_phone: Optional[str] = None
    client_email: Optional[str] = None
    notes: Optional[str] = Field(default=None, max_length=1000)
    honeypot: Optional[str] = None

    @field_validator("start_time")
    @classmethod
    def validate_start_time(cls, v: datetime) -> datetime:
        return _reject_aware(v)


class ReservationResponse(BaseModel):
    success: bool = True
    message: str
    appointment: Optional[AppointmentRead] = None


class TransitionRequest(BaseModel):
    action: AppointmentAction
    actor: Actor = Actor.CLIENT


class RescheduleRequest(BaseModel):
    new_start_time: datetime
    actor: Actor = Actor.CLIENT

    @field_validator("new_start_time")
    @classmethod
    def validate_new_start_time(cls, v: datetime) -> datetime:
        return _reject_aware(v)
