"""
Booking Models

Tables:
    - CalendarDay: per-date remaining capacity ledger
    - Package: prepaid session bundle definitions
    - PackageActivation: a customer's entitlement to a package's sessions
    - Appointment: a booked session
    - Counter: monotonic sequences (reservation ids)

Status Flow:
    PackageActivation: Pending -> Contacted -> Confirmed -> Expired
                       Pending -> Confirmed | Rejected
    Appointment:       pending -> completed | cancelled
"""

import uuid
from datetime import date as calendar_date, datetime, timezone
from enum import Enum
from typing import Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    Enum as PgEnum,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    func,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from .core.db import Base


# ============================================================================
# ENUMS
# ============================================================================

class CalendarDayStatus(str, Enum):
    BOOKABLE = "Bookable"
    CLOSED = "Closed"
    SOLD_OUT = "Sold Out"


class ActivationStatus(str, Enum):
    PENDING = "Pending"
    CONTACTED = "Contacted"
    CONFIRMED = "Confirmed"
    REJECTED = "Rejected"
    EXPIRED = "Expired"


class AppointmentStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


# ============================================================================
# CALENDAR LEDGER
# ============================================================================

class CalendarDay(Base):
    """
    Remaining sellable sessions for one calendar date.

    Rows are created lazily by the first booking for a date (or by an admin
    override) and are never deleted.
    """
    __tablename__ = "calendar_days"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    date: Mapped[calendar_date] = mapped_column(Date, nullable=False, unique=True, index=True)
    status: Mapped[CalendarDayStatus] = mapped_column(
        PgEnum(CalendarDayStatus, name="calendar_day_status"),
        nullable=False,
        default=CalendarDayStatus.BOOKABLE,
    )
    open_time: Mapped[Optional[str]] = mapped_column(String(5), nullable=True)
    close_time: Mapped[Optional[str]] = mapped_column(String(5), nullable=True)
    remaining_sessions: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    __table_args__ = (
        CheckConstraint("remaining_sessions >= 0", name="ck_calendar_remaining_non_negative"),
    )

    def is_bookable(self) -> bool:
        return self.status != CalendarDayStatus.CLOSED and self.remaining_sessions > 0


# ============================================================================
# PACKAGE ENTITLEMENTS
# ============================================================================

class Package(Base):
    __tablename__ = "packages"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    duration: Mapped[str] = mapped_column(String(32), nullable=False)  # e.g. "6-Month"
    sessions: Mapped[int] = mapped_column(Integer, nullable=False)
    total_price: Mapped[float] = mapped_column(Numeric(10, 2), nullable=False, default=0)
    discount: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    __table_args__ = (
        CheckConstraint("sessions >= 1", name="ck_package_sessions_positive"),
    )


class PackageActivation(Base):
    """
    A customer's claim on a package's sessions.

    Consumable only while CONFIRMED and before expiry_date. used_count is
    incremented by successful bookings and never exceeds total_sessions.
    """
    __tablename__ = "package_activations"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    package_id: Mapped[int] = mapped_column(ForeignKey("packages.id"), nullable=False, index=True)
    package_name: Mapped[str] = mapped_column(String(255), nullable=False)

    full_name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    phone: Mapped[str] = mapped_column(String(32), nullable=False)
    address: Mapped[str] = mapped_column(String(500), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False, default="")
    preferred_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    status: Mapped[ActivationStatus] = mapped_column(
        PgEnum(ActivationStatus, name="activation_status"),
        nullable=False,
        default=ActivationStatus.PENDING,
        index=True,
    )
    total_sessions: Mapped[int] = mapped_column(Integer, nullable=False)
    used_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    start_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    expiry_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True, index=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    __table_args__ = (
        CheckConstraint("used_count >= 0", name="ck_activation_used_non_negative"),
        CheckConstraint("used_count <= total_sessions", name="ck_activation_used_within_total"),
    )

    @property
    def remaining_sessions(self) -> int:
        return max(0, (self.total_sessions or 0) - (self.used_count or 0))


# ============================================================================
# APPOINTMENTS
# ============================================================================

class Appointment(Base):
    __tablename__ = "appointments"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    reservation_id: Mapped[str] = mapped_column(String(32), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    contact_number: Mapped[str] = mapped_column(String(32), nullable=False)
    special_note: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    date: Mapped[calendar_date] = mapped_column(Date, nullable=False, index=True)
    time: Mapped[str] = mapped_column(String(16), nullable=False)
    status: Mapped[AppointmentStatus] = mapped_column(
        PgEnum(AppointmentStatus, name="appointment_status"),
        nullable=False,
        default=AppointmentStatus.PENDING,
    )
    package_activation_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        ForeignKey("package_activations.id"), nullable=True, index=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )


class Counter(Base):
    """Named monotonic sequence, incremented atomically in the database."""
    __tablename__ = "counters"

    key: Mapped[str] = mapped_column(String(64), primary_key=True)
    seq: Mapped[int] = mapped_column(Integer, nullable=False, default=0)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive datetimes read back from drivers that drop tzinfo."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
