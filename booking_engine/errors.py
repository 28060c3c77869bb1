"""
Booking Engine Errors

Error taxonomy shared by the services and the HTTP layer.
"""

from typing import Any, Dict, List, Optional


class BookingError(Exception):
    """Base class for errors surfaced to booking callers."""

    code = "booking_error"
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.code, "message": self.message}


class NotFound(BookingError):
    """Unknown business, professional, service or appointment."""

    code = "not_found"
    status_code = 404


class Inactive(BookingError):
    """Service or professional exists but is disabled."""

    code = "inactive"
    status_code = 409


class ValidationError(BookingError):
    """Malformed guest contact fields, reported per field."""

    code = "validation_error"
    status_code = 422

    def __init__(self, fields: Dict[str, str], message: Optional[str] = None):
        super().__init__(message or next(iter(fields.values()), "Invalid booking data"))
        self.fields = fields

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["fields"] = self.fields
        return data


class SlotConflict(BookingError):
    """The requested interval is taken or no longer bookable."""

    code = "slot_conflict"
    status_code = 409

    def __init__(self, message: str, conflicts: Optional[List[Dict[str, Any]]] = None):
        super().__init__(message)
        self.conflicts = conflicts or []

    def to_dict(self) -> Dict[str, Any]:
        # Callers see when the slot is taken, not whose booking it is.
        data = super().to_dict()
        data["conflicts"] = [
            {key: value for key, value in conflict.items() if key != "id"}
            for conflict in self.conflicts
        ]
        return data


class InvalidTransition(BookingError):
    """Status change not allowed from the appointment's current status."""

    code = "invalid_transition"
    status_code = 409


class PolicyViolation(BookingError):
    """A business booking policy rejected the request."""

    code = "policy_violation"
    status_code = 422

    def __init__(self, reason: str, message: str):
        super().__init__(message)
        self.reason = reason

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["reason"] = self.reason
        return data
