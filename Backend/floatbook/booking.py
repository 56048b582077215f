"""
Booking Transaction Coordinator

Books one session as a single unit of work:

    1. package activation (optional): validate, then consume one session
    2. calendar day: load (locked) or initialize from business hours
    3. refuse if the day is closed or has nothing left to sell
    4. create the appointment with the next reservation id
    5. decrement the day's remaining sessions
    6. commit; any failure rolls back every step above

Row locks (SELECT ... FOR UPDATE) on the activation and the calendar day
serialize bookings that touch the same rows; bookings for other dates or
packages proceed independently. The conditional UPDATEs in the ledgers are
the final guard against overselling.

Notifications are not sent here. Callers pass on_committed hooks, which run
only after the commit succeeds and whose failures are logged and ignored.
"""

import logging
import uuid
from datetime import datetime
from typing import Any, Callable, Iterable, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from sqlalchemy.exc import DBAPIError, OperationalError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from . import calendar_ledger, packages
from .calendar_ledger import BusinessHours, BusinessHoursOverrides
from .core.config import get_settings
from .errors import (
    BookingError,
    CapacityExhausted,
    DateClosed,
    PackageNotFound,
    SoldOut,
    TransactionFailed,
)
from .models import Appointment, AppointmentStatus, CalendarDayStatus, as_utc, utc_now
from .reservations import next_reservation_id

logger = logging.getLogger(__name__)

# PostgreSQL serialization failure and deadlock
RETRYABLE_SQLSTATES = {"40001", "40P01"}

CommitHook = Callable[[Appointment], Any]


# ============================================================================
# REQUEST/RESPONSE MODELS
# ============================================================================

class CalendarContext(BaseModel):
    """Business-hours context sent by the booking UI."""

    model_config = ConfigDict(populate_by_name=True)

    default_system_settings: Optional[BusinessHoursOverrides] = Field(default=None, alias="defaultSystemSettings")

    def business_hours(self) -> BusinessHours:
        if self.default_system_settings is None:
            return BusinessHours.from_settings()
        return BusinessHours.from_settings(self.default_system_settings.model_dump())


class AppointmentCreateRequest(BaseModel):
    """Request body for booking a session."""

    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True)

    name: str = Field(..., min_length=1, max_length=255)
    date: str = Field(..., description="YYYY-MM-DD")
    time: str = Field(..., min_length=1, max_length=16)
    email: str = Field(..., min_length=3, max_length=255)
    contact_number: str = Field(..., min_length=1, max_length=32, alias="contactNumber")
    special_note: Optional[str] = Field(default=None, max_length=2000, alias="specialNote")
    calendar_context: Optional[CalendarContext] = Field(default=None, alias="calendarContext")
    package_activation_id: Optional[str] = Field(default=None, alias="packageActivationId")

    @field_validator("date")
    @classmethod
    def validate_date(cls, v: str) -> str:
        try:
            datetime.strptime(v, "%Y-%m-%d")
        except ValueError:
            raise ValueError("date must be in YYYY-MM-DD format")
        return v

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        return v.lower()

    @field_validator("package_activation_id")
    @classmethod
    def blank_activation_is_none(cls, v: Optional[str]) -> Optional[str]:
        return v or None

    @property
    def booking_date(self):
        return datetime.strptime(self.date, "%Y-%m-%d").date()

    def business_hours(self) -> BusinessHours:
        if self.calendar_context is None:
            return BusinessHours.from_settings()
        return self.calendar_context.business_hours()


class AppointmentResponse(BaseModel):
    id: uuid.UUID
    reservation_id: str = Field(serialization_alias="reservationId")
    name: str
    email: str
    contact_number: str = Field(serialization_alias="contactNumber")
    special_note: Optional[str] = Field(default=None, serialization_alias="specialNote")
    date: str
    time: str
    status: str
    package_activation_id: Optional[uuid.UUID] = Field(default=None, serialization_alias="packageActivationId")
    is_package_user: bool = Field(default=False, serialization_alias="isPackageUser")
    created_at: Optional[datetime] = Field(default=None, serialization_alias="createdAt")
    updated_at: Optional[datetime] = Field(default=None, serialization_alias="updatedAt")

    @classmethod
    def from_appointment(
        cls,
        appointment: Appointment,
        is_package_user: Optional[bool] = None,
    ) -> "AppointmentResponse":
        return cls(
            id=appointment.id,
            reservation_id=appointment.reservation_id,
            name=appointment.name,
            email=appointment.email,
            contact_number=appointment.contact_number,
            special_note=appointment.special_note,
            date=appointment.date.isoformat(),
            time=appointment.time,
            status=appointment.status.value.lower(),
            package_activation_id=appointment.package_activation_id,
            is_package_user=(
                is_package_user
                if is_package_user is not None
                else appointment.package_activation_id is not None
            ),
            created_at=appointment.created_at,
            updated_at=appointment.updated_at,
        )


# ============================================================================
# COORDINATOR
# ============================================================================

def _parse_activation_id(value: str) -> uuid.UUID:
    try:
        return uuid.UUID(str(value))
    except ValueError:
        raise PackageNotFound(details={"packageActivationId": value})


def _is_retryable(exc: SQLAlchemyError) -> bool:
    if isinstance(exc, OperationalError):
        return True
    if isinstance(exc, DBAPIError):
        orig = exc.orig
        code = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
        return code in RETRYABLE_SQLSTATES
    return False


async def _book_once(
    session: AsyncSession,
    request: AppointmentCreateRequest,
    now: datetime,
) -> Appointment:
    activation_id = None
    if request.package_activation_id:
        activation_id = _parse_activation_id(request.package_activation_id)
        activation = await packages.validate_consumable(session, activation_id, now=now, lock=True)
        await packages.consume(session, activation)

    booking_date = request.booking_date
    calendar_day = await calendar_ledger.get_or_initialize(
        session, booking_date, request.business_hours(), lock=True
    )
    if calendar_day.status == CalendarDayStatus.CLOSED:
        raise DateClosed(details={"date": request.date})
    if calendar_day.remaining_sessions <= 0:
        raise SoldOut(details={"date": request.date})

    appointment = Appointment(
        reservation_id=await next_reservation_id(session),
        name=request.name,
        email=request.email,
        contact_number=request.contact_number,
        special_note=request.special_note or None,
        date=booking_date,
        time=request.time,
        status=AppointmentStatus.PENDING,
        package_activation_id=activation_id,
    )
    session.add(appointment)
    await session.flush()

    try:
        await calendar_ledger.decrement(session, calendar_day)
    except CapacityExhausted as exc:
        raise SoldOut(details={"date": request.date}) from exc

    return appointment


def _run_commit_hooks(appointment: Appointment, hooks: Iterable[CommitHook]) -> None:
    for hook in hooks:
        try:
            hook(appointment)
        except Exception as exc:
            logger.exception("Post-commit hook failed for %s: %s", appointment.reservation_id, exc)


async def book_session(
    session: AsyncSession,
    request: AppointmentCreateRequest,
    on_committed: Iterable[CommitHook] = (),
    now: Optional[datetime] = None,
) -> Appointment:
    """
    Book one session atomically.

    Args:
        session: Database session with no transaction in progress
        request: Validated booking request
        on_committed: Callables run with the appointment after commit
        now: Clock override for package expiry checks

    Returns:
        The committed Appointment

    Raises:
        PackageNotFound, PackageNotConfirmed, PackageExpired,
        NoRemainingSessions, SoldOut, TransactionFailed
    """
    now = as_utc(now) or utc_now()
    max_attempts = max(1, get_settings().booking_max_attempts)

    for attempt in range(1, max_attempts + 1):
        try:
            appointment = await _book_once(session, request, now)
            await session.commit()
        except BookingError as exc:
            await session.rollback()
            logger.warning(f"Booking rejected for {request.date} {request.time}: {exc.code} ({exc.message})")
            raise
        except SQLAlchemyError as exc:
            await session.rollback()
            if _is_retryable(exc) and attempt < max_attempts:
                logger.warning(f"Booking attempt {attempt}/{max_attempts} hit a write conflict, retrying: {exc}")
                continue
            logger.exception("Booking transaction failed for %s %s", request.date, request.time)
            raise TransactionFailed() from exc

        await session.refresh(appointment)
        logger.info(
            f"Booked {appointment.reservation_id} on {appointment.date} at {appointment.time}"
            + (f" (package {appointment.package_activation_id})" if appointment.package_activation_id else "")
        )
        _run_commit_hooks(appointment, on_committed)
        return appointment

    raise TransactionFailed()
