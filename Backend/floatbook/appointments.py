"""
Appointment Lifecycle

pending is set only by the booking coordinator. Admins move an appointment
to completed or cancelled; both are terminal. Setting the status an
appointment already has is a no-op.

Also hosts the read-only views the booking calendar needs (occupied times,
per-date counts) and the admin listings.
"""

import logging
import uuid
from collections import Counter
from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from .errors import AppointmentNotFound, InvalidStatus, InvalidStatusTransition
from .models import ActivationStatus, Appointment, AppointmentStatus, PackageActivation

logger = logging.getLogger(__name__)

APPOINTMENT_TRANSITIONS: dict[AppointmentStatus, set[AppointmentStatus]] = {
    AppointmentStatus.PENDING: {AppointmentStatus.COMPLETED, AppointmentStatus.CANCELLED},
    AppointmentStatus.COMPLETED: set(),
    AppointmentStatus.CANCELLED: set(),
}

# Statuses that occupy a slot on the calendar
ACTIVE_STATUSES = (AppointmentStatus.PENDING, AppointmentStatus.COMPLETED)


class AppointmentStatusUpdateRequest(BaseModel):
    status: str


class AppointmentDetailsUpdateRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    date: str = Field(..., description="YYYY-MM-DD")
    time: str = Field(..., min_length=1, max_length=16)

    @field_validator("date")
    @classmethod
    def validate_date(cls, v: str) -> str:
        try:
            datetime.strptime(v, "%Y-%m-%d")
        except ValueError:
            raise ValueError("date must be in YYYY-MM-DD format")
        return v


class DateCount(BaseModel):
    date: str
    count: int


def parse_appointment_status(value: Optional[str]) -> AppointmentStatus:
    try:
        return AppointmentStatus((value or "").strip().lower())
    except ValueError:
        raise InvalidStatus(
            f"Invalid status '{value}'. Use one of: pending, completed, cancelled.",
            details={"status": value},
        )


def validate_transition(current: AppointmentStatus, new: AppointmentStatus) -> bool:
    """Returns False for a same-status no-op, True for a real change."""
    if new == current:
        return False
    if new not in APPOINTMENT_TRANSITIONS[current]:
        raise InvalidStatusTransition(
            f"Cannot change appointment from {current.value} to {new.value}.",
            details={"from": current.value, "to": new.value},
        )
    return True


async def get_appointment(
    session: AsyncSession,
    appointment_id: uuid.UUID,
    lock: bool = False,
) -> Appointment:
    stmt = select(Appointment).where(Appointment.id == appointment_id)
    if lock:
        stmt = stmt.with_for_update()
    result = await session.execute(stmt)
    appointment = result.scalar_one_or_none()
    if appointment is None:
        raise AppointmentNotFound()
    return appointment


async def update_appointment_status(
    session: AsyncSession,
    appointment_id: uuid.UUID,
    status: str,
) -> tuple[Appointment, bool]:
    """
    Apply an admin status change.

    Returns:
        (appointment, changed) - changed is False for a repeated status
    """
    new_status = parse_appointment_status(status)
    appointment = await get_appointment(session, appointment_id, lock=True)
    changed = validate_transition(appointment.status, new_status)
    if not changed:
        await session.commit()
        return appointment, False

    previous = appointment.status
    appointment.status = new_status
    await session.commit()
    await session.refresh(appointment)
    logger.info(f"Appointment {appointment.reservation_id}: {previous.value} -> {new_status.value}")
    return appointment, True


async def update_appointment_details(
    session: AsyncSession,
    appointment_id: uuid.UUID,
    payload: AppointmentDetailsUpdateRequest,
) -> Appointment:
    """Move an appointment to another date/time. Calendar capacity is not adjusted."""
    appointment = await get_appointment(session, appointment_id, lock=True)
    appointment.date = datetime.strptime(payload.date, "%Y-%m-%d").date()
    appointment.time = payload.time
    await session.commit()
    await session.refresh(appointment)
    logger.info(f"Appointment {appointment.reservation_id} moved to {appointment.date} {appointment.time}")
    return appointment


async def get_booked_times(session: AsyncSession, day: date) -> list[str]:
    """Distinct times already taken on a date, in booking order."""
    result = await session.execute(
        select(Appointment.time)
        .where(Appointment.date == day, Appointment.status.in_(ACTIVE_STATUSES))
        .order_by(Appointment.created_at)
    )
    return list(dict.fromkeys(result.scalars().all()))


async def get_appointment_counts(session: AsyncSession, start: date, end: date) -> list[DateCount]:
    result = await session.execute(
        select(Appointment.date, func.count(Appointment.id))
        .where(
            Appointment.date >= start,
            Appointment.date <= end,
            Appointment.status.in_(ACTIVE_STATUSES),
        )
        .group_by(Appointment.date)
        .order_by(Appointment.date)
    )
    return [DateCount(date=day.isoformat(), count=count) for day, count in result.all()]


async def _package_user_emails(session: AsyncSession, emails: set[str]) -> set[str]:
    if not emails:
        return set()
    result = await session.execute(
        select(PackageActivation.email).where(
            PackageActivation.email.in_(emails),
            PackageActivation.status == ActivationStatus.CONFIRMED,
        )
    )
    return set(result.scalars().all())


async def list_appointments(
    session: AsyncSession,
    start: Optional[date] = None,
    end: Optional[date] = None,
    page: int = 1,
    limit: int = 20,
) -> tuple[list[tuple[Appointment, bool]], int]:
    """
    Newest-first page of appointments, each paired with whether the customer
    is a package holder (booked with a package, or holds a confirmed one).
    """
    filters = []
    if start and end:
        filters.extend([Appointment.date >= start, Appointment.date <= end])

    total = (await session.execute(select(func.count(Appointment.id)).where(*filters))).scalar_one()
    result = await session.execute(
        select(Appointment)
        .where(*filters)
        .order_by(Appointment.date.desc(), Appointment.time.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    appointments = list(result.scalars().all())
    package_emails = await _package_user_emails(session, {a.email for a in appointments})
    rows = [
        (appointment, appointment.package_activation_id is not None or appointment.email in package_emails)
        for appointment in appointments
    ]
    return rows, total


async def list_customer_appointments(session: AsyncSession, email: str) -> list[Appointment]:
    result = await session.execute(
        select(Appointment)
        .where(Appointment.email == email.strip().lower())
        .order_by(Appointment.date.desc(), Appointment.time.desc())
    )
    return list(result.scalars().all())


async def package_appointment_counts(session: AsyncSession, activation_id: uuid.UUID) -> dict[str, int]:
    result = await session.execute(
        select(Appointment.status).where(Appointment.package_activation_id == activation_id)
    )
    counts = Counter(status.value for status in result.scalars().all())
    return {status.value: counts.get(status.value, 0) for status in AppointmentStatus}
