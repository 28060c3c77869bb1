"""
Appointment Lifecycle

Status machine for appointments and the minimum-notice policy applied
to cancellations and reschedules.

    pending ──confirm──> confirmed ──complete──> completed
       │                    │
       └──────cancel────────┴──────────────────> cancelled
"""

import logging
from datetime import datetime, timedelta
from enum import Enum
from typing import Dict, Iterable, Tuple

from booking_engine.errors import InvalidTransition, PolicyViolation

logger = logging.getLogger(__name__)


class AppointmentStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class AppointmentAction(str, Enum):
    CONFIRM = "confirm"
    COMPLETE = "complete"
    CANCEL = "cancel"


class Actor(str, Enum):
    """Who is asking for a change: the booked client or the business side."""

    CLIENT = "client"
    BUSINESS = "business"


TRANSITIONS: Dict[Tuple[AppointmentStatus, AppointmentAction], AppointmentStatus] = {
    (AppointmentStatus.PENDING, AppointmentAction.CONFIRM): AppointmentStatus.CONFIRMED,
    (AppointmentStatus.CONFIRMED, AppointmentAction.COMPLETE): AppointmentStatus.COMPLETED,
    (AppointmentStatus.PENDING, AppointmentAction.CANCEL): AppointmentStatus.CANCELLED,
    (AppointmentStatus.CONFIRMED, AppointmentAction.CANCEL): AppointmentStatus.CANCELLED,
}

ACTIVE_STATUSES = frozenset({AppointmentStatus.PENDING, AppointmentStatus.CONFIRMED})
TERMINAL_STATUSES = frozenset({AppointmentStatus.COMPLETED, AppointmentStatus.CANCELLED})


def next_status(current: AppointmentStatus, action: AppointmentAction) -> AppointmentStatus:
    """
    Return the status reached by applying ``action`` to ``current``.

    Raises:
        InvalidTransition: If the action is not allowed from ``current``
    """
    current = AppointmentStatus(current)
    action = AppointmentAction(action)
    try:
        return TRANSITIONS[(current, action)]
    except KeyError:
        raise InvalidTransition(
            f"Cannot {action.value} an appointment that is {current.value}"
        ) from None


def ensure_reschedulable(current: AppointmentStatus) -> None:
    """Only pending and confirmed appointments can move to a new time."""
    current = AppointmentStatus(current)
    if current not in ACTIVE_STATUSES:
        raise InvalidTransition(
            f"Cannot reschedule an appointment that is {current.value}"
        )


def check_minimum_notice(
    start_time: datetime,
    now: datetime,
    notice_hours: int,
    actor: Actor,
    exempt_actors: Iterable[str] = (),
) -> None:
    """
    Enforce the business's minimum-notice window.

    Args:
        start_time: Current start of the appointment
        now: Evaluation time
        notice_hours: Required notice in hours (0 disables the policy)
        actor: Who requested the change
        exempt_actors: Actor values that bypass the window

    Raises:
        PolicyViolation: If the change falls inside the notice window
    """
    actor = Actor(actor)
    if notice_hours <= 0 or actor.value in set(exempt_actors):
        return

    if start_time - now < timedelta(hours=notice_hours):
        logger.info(
            f"Notice window violated by {actor.value}: start {start_time}, "
            f"now {now}, required {notice_hours}h"
        )
        raise PolicyViolation(
            "inside_notice_window",
            f"Changes require at least {notice_hours} hours notice before the appointment",
        )
