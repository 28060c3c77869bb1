"""
Slot Generation

Builds the candidate grid of start times for a business day. Pure
functions only: nothing here knows about bookings.
"""

from datetime import date, datetime, time, timedelta
from typing import List, Optional, Tuple, Union

from booking_engine.models.schemas import WEEKDAYS, BookingSettings

TimeOfDay = Union[time, datetime]


def _on(day: date, value: TimeOfDay) -> datetime:
    if isinstance(value, datetime):
        return value
    return datetime.combine(day, value)


def generate_slots(
    day: date,
    open_time: TimeOfDay,
    close_time: TimeOfDay,
    step_minutes: int,
    duration_minutes: int,
) -> List[datetime]:
    """
    Generate candidate start times for one day.

    Candidates start at ``open_time`` and advance by ``step_minutes``. A
    candidate is kept only when the service still ends by ``close_time``.

    Args:
        day: Business day
        open_time: Opening time on ``day``, or an opening datetime
        close_time: Closing time on ``day``, or a closing datetime
            (a midnight close is the next day at 00:00)
        step_minutes: Grid step
        duration_minutes: Service duration

    Returns:
        Ordered list of start datetimes

    Example:
        >>> generate_slots(date(2026, 1, 5), time(9), time(10), 30, 30)
        [datetime(2026, 1, 5, 9, 0), datetime(2026, 1, 5, 9, 30)]
    """
    if step_minutes <= 0:
        raise ValueError("step_minutes must be positive")
    if duration_minutes <= 0:
        raise ValueError("duration_minutes must be positive")

    opens_at = _on(day, open_time)
    closes_at = _on(day, close_time)
    step = timedelta(minutes=step_minutes)
    duration = timedelta(minutes=duration_minutes)

    slots = []
    current = opens_at
    while current + duration <= closes_at:
        slots.append(current)
        current += step
    return slots


def opening_window(hours: BookingSettings, day: date) -> Optional[Tuple[datetime, datetime]]:
    """
    Resolve the opening and closing datetimes for ``day``.

    Returns None when the business is closed: holidays, days flagged
    closed, weekdays missing from the table, or an empty window.
    """
    if day in hours.holidays:
        return None

    day_hours = hours.opening_hours.get(WEEKDAYS[day.weekday()])
    if day_hours is None or day_hours.closed:
        return None

    opens_at, closes_at = day_hours.window_on(day)
    if closes_at <= opens_at:
        return None
    return opens_at, closes_at


def slots_for_day(hours: BookingSettings, day: date, duration_minutes: int) -> List[datetime]:
    """Candidate grid for ``day`` using the business's own hours and step."""
    window = opening_window(hours, day)
    if window is None:
        return []
    return generate_slots(day, window[0], window[1], hours.slot_interval_minutes, duration_minutes)


def fits_opening_window(
    hours: BookingSettings,
    start_time: datetime,
    duration_minutes: int,
) -> bool:
    """True when ``[start, start + duration)`` lies inside the day's window."""
    window = opening_window(hours, start_time.date())
    if window is None:
        return False
    opens_at, closes_at = window
    return opens_at <= start_time and start_time + timedelta(minutes=duration_minutes) <= closes_at


def booking_horizon(hours: BookingSettings, now: datetime) -> date:
    """Last date clients may book on."""
    return (now + timedelta(days=hours.advance_booking_days)).date()
