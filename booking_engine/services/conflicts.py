"""
Conflict Detection

Half-open interval overlap checks between a candidate slot and the
busy intervals (appointments and schedule blocks) of one professional.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List

APPOINTMENT = "appointment"
BLOCK = "block"


@dataclass(frozen=True)
class BusyInterval:
    """A ``[start, end)`` interval during which a professional is taken."""

    start: datetime
    end: datetime
    kind: str
    source_id: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind,
            "id": self.source_id,
            "start_time": self.start.isoformat(),
            "end_time": self.end.isoformat(),
        }


def intervals_overlap(
    a_start: datetime,
    a_end: datetime,
    b_start: datetime,
    b_end: datetime,
) -> bool:
    """Half-open overlap: ``[a_start, a_end)`` and ``[b_start, b_end)``."""
    return a_start < b_end and a_end > b_start


def find_conflicts(
    start: datetime,
    duration_minutes: int,
    busy: Iterable[BusyInterval],
    buffer_minutes: int = 0,
) -> List[BusyInterval]:
    """
    Return every busy interval overlapping the candidate slot.

    The buffer extends the candidate and every appointment at their end;
    schedule blocks are used as stored.
    """
    buffer = timedelta(minutes=buffer_minutes)
    end = start + timedelta(minutes=duration_minutes) + buffer

    conflicts = []
    for interval in busy:
        busy_end = interval.end + buffer if interval.kind == APPOINTMENT else interval.end
        if intervals_overlap(start, end, interval.start, busy_end):
            conflicts.append(interval)
    return conflicts


def is_slot_free(
    start: datetime,
    duration_minutes: int,
    busy: Iterable[BusyInterval],
    now: datetime,
    buffer_minutes: int = 0,
) -> bool:
    """True when ``start`` is in the future and overlaps nothing in ``busy``."""
    if start <= now:
        return False
    return not find_conflicts(start, duration_minutes, busy, buffer_minutes)
