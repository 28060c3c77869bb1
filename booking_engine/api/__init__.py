"""
API Module Initialization

Exports the booking router for use across the application.
"""

from booking_engine.api.routes import router as booking_router

__all__ = [
    "booking_router",
]
