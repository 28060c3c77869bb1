"""
Database Tables

SQLAlchemy Core table definitions for the booking engine.
"""

from sqlalchemy import (
    DDL,
    JSON,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    MetaData,
    Numeric,
    String,
    Table,
    Text,
    event,
    func,
)

metadata = MetaData()


businesses = Table(
    "businesses",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("name", String(200), nullable=False),
    Column("is_active", Boolean, nullable=False, default=True),
)

business_settings = Table(
    "business_settings",
    metadata,
    Column("business_id", String(36), ForeignKey("businesses.id"), primary_key=True),
    Column("opening_hours", JSON, nullable=True),
    Column("holidays", JSON, nullable=True),
    Column("slot_interval_minutes", Integer, nullable=True),
    Column("booking_buffer_minutes", Integer, nullable=True),
    Column("advance_booking_days", Integer, nullable=True),
    Column("cancellation_hours", Integer, nullable=True),
)

professionals = Table(
    "professionals",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("business_id", String(36), ForeignKey("businesses.id"), nullable=False),
    Column("name", String(200), nullable=False),
    Column("is_active", Boolean, nullable=False, default=True),
)

services = Table(
    "services",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("business_id", String(36), ForeignKey("businesses.id"), nullable=False),
    Column("name", String(200), nullable=False),
    Column("duration_minutes", Integer, nullable=False),
    Column("price", Numeric(10, 2), nullable=False),
    Column("is_active", Boolean, nullable=False, default=True),
)

appointments = Table(
    "appointments",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("business_id", String(36), ForeignKey("businesses.id"), nullable=False),
    Column("professional_id", String(36), ForeignKey("professionals.id"), nullable=False),
    Column("service_id", String(36), ForeignKey("services.id"), nullable=False),
    Column("client_id", String(36), nullable=False),
    Column("start_time", DateTime, nullable=False),
    Column("end_time", DateTime, nullable=False),
    Column("duration_minutes", Integer, nullable=False),
    Column("status", String(20), nullable=False, default="pending"),
    Column("notes", Text, nullable=True),
    Column("payment_amount", Numeric(10, 2), nullable=True),
    Column("created_at", DateTime, nullable=False, server_default=func.now()),
    Column("updated_at", DateTime, nullable=True),
    Index("ix_appointments_professional_start", "professional_id", "start_time"),
    Index("ix_appointments_client", "client_id"),
)

schedule_blocks = Table(
    "schedule_blocks",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("professional_id", String(36), ForeignKey("professionals.id"), nullable=False),
    Column("start_time", DateTime, nullable=False),
    Column("end_time", DateTime, nullable=False),
    Column("reason", Text, nullable=True),
    Index("ix_schedule_blocks_professional_start", "professional_id", "start_time"),
)

guest_bookings = Table(
    "guest_bookings",
    metadata,
    Column("id", String(36), primary_key=True),
    Column(
        "appointment_id",
        String(36),
        ForeignKey("appointments.id"),
        nullable=False,
        unique=True,
    ),
    Column("client_name", String(100), nullable=False),
    Column("client_phone", String(20), nullable=False),
    Column("client_email", String(255), nullable=True),
)


# PostgreSQL rejects overlapping non-cancelled appointments per professional
# at the storage level; other dialects rely on the writer lock only.
event.listen(
    metadata,
    "before_create",
    DDL("CREATE EXTENSION IF NOT EXISTS btree_gist").execute_if(dialect="postgresql"),
)
event.listen(
    appointments,
    "after_create",
    DDL(
        "ALTER TABLE appointments ADD CONSTRAINT appointments_no_overlap "
        "EXCLUDE USING gist ("
        "professional_id WITH =, "
        "tsrange(start_time, end_time, '[)') WITH &&"
        ") WHERE (status <> 'cancelled')"
    ).execute_if(dialect="postgresql"),
)
