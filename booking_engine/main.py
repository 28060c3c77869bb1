"""
FastAPI Application Entry Point

Wires the booking routes to the database layer and manages startup and
shutdown of the engine.
"""

import logging
import sys
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from booking_engine.api import booking_router
from booking_engine.config import settings
from booking_engine.db.session import (
    check_database_connection,
    close_database_connection,
    init_models,
)

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper()),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[
        logging.StreamHandler(sys.stdout),
    ]
)
logger = logging.getLogger(__name__)

APP_VERSION = "0.1.0"

logger.info(
    f"Salon Booking Engine {APP_VERSION} (debug={settings.debug}, "
    f"database={'sqlite' if settings.is_sqlite else 'postgresql'}, "
    f"notice-exempt={','.join(settings.notice_exempt_actors) or 'none'})"
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Verify the database on startup and dispose of the engine on shutdown.

    A failed check does not stop the process; requests that reach the
    database will fail with 503 until it is back.
    """
    db_healthy = await check_database_connection()
    if not db_healthy:
        logger.error("Database unreachable at startup, booking requests will fail")
    elif settings.db_auto_create:
        await init_models()

    logger.info("Booking engine ready")
    yield

    await close_database_connection()
    logger.info("Booking engine stopped")


# Initialize FastAPI application
app = FastAPI(
    title="Salon Booking Engine",
    description=(
        "Appointment availability and reservation engine. "
        "Computes bookable slots and commits reservations without "
        "double-booking a professional."
    ),
    version=APP_VERSION,
    lifespan=lifespan,
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"] if settings.debug else [],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/")
async def root():
    """
    Root endpoint.

    Returns basic API information.
    """
    return {
        "message": "Salon Booking Engine API",
        "version": APP_VERSION,
        "status": "running",
        "endpoints": {
            "health": "/health",
            "docs": "/docs" if settings.debug else "disabled in production",
            "availability": "/availability",
            "reservations": "/reservations",
            "appointments": "/appointments",
        }
    }


@app.get("/health")
async def health_check():
    """Report API and database status, 503 when the database is unreachable."""
    db_healthy = await check_database_connection()
    return JSONResponse(
        status_code=200 if db_healthy else 503,
        content={
            "status": "healthy" if db_healthy else "degraded",
            "database": "connected" if db_healthy else "disconnected",
            "version": APP_VERSION,
        },
    )


@app.get("/info")
async def app_info():
    """
    Application information endpoint.

    Returns configuration and status information.
    """
    return {
        "name": "Salon Booking Engine",
        "version": APP_VERSION,
        "environment": "development" if settings.debug else "production",
        "features": {
            "async_operations": True,
            "database": "SQLite" if settings.is_sqlite else "PostgreSQL",
            "guest_bookings": True,
        },
        "capabilities": [
            "Availability checking",
            "Race-free reservations",
            "Appointment confirmation, completion and cancellation",
            "Appointment rescheduling",
        ]
    }


app.include_router(booking_router)

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "booking_engine.main:app",
        host=settings.app_host,
        port=settings.app_port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
    )
