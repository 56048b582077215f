"""
Calendar Ledger

One CalendarDay row per date holds the remaining sellable sessions. A date
without a row inherits the default business hours at its first booking;
later edits to the defaults don't touch rows that already exist.
"""

import logging
from datetime import date
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from .capacity import SessionCapacity, calculate_staggered_sessions
from .core.config import get_settings
from .core.db import dialect_insert
from .errors import CapacityExhausted
from .models import CalendarDay, CalendarDayStatus

logger = logging.getLogger(__name__)


class BusinessHours(BaseModel):
    """Default operating settings used to seed a calendar day."""

    model_config = ConfigDict(populate_by_name=True)

    open_time: str = Field(alias="openTime")
    close_time: str = Field(alias="closeTime")
    session_duration: int = Field(alias="sessionDuration")
    cleaning_buffer: int = Field(alias="cleaningBuffer")
    number_of_tanks: int = Field(alias="numberOfTanks")
    tank_stagger_interval: int = Field(default=0, alias="tankStaggerInterval")

    @classmethod
    def from_settings(cls, overrides: Optional[dict] = None) -> "BusinessHours":
        """Configured defaults, with any non-null overrides applied on top."""
        settings = get_settings()
        values = {
            "open_time": settings.default_open_time,
            "close_time": settings.default_close_time,
            "session_duration": settings.default_session_duration_minutes,
            "cleaning_buffer": settings.default_cleaning_buffer_minutes,
            "number_of_tanks": settings.default_number_of_tanks,
            "tank_stagger_interval": settings.default_tank_stagger_minutes,
        }
        for key, value in (overrides or {}).items():
            if value is not None and key in values:
                values[key] = value
        return cls(**values)

    def capacity(self) -> SessionCapacity:
        return calculate_staggered_sessions(
            self.open_time,
            self.close_time,
            self.session_duration,
            self.cleaning_buffer,
            self.number_of_tanks,
            self.tank_stagger_interval,
        )


class BusinessHoursOverrides(BaseModel):
    """Partial business hours, e.g. the booking UI's defaultSystemSettings."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    open_time: Optional[str] = Field(default=None, alias="openTime")
    close_time: Optional[str] = Field(default=None, alias="closeTime")
    session_duration: Optional[int] = Field(default=None, alias="sessionDuration")
    cleaning_buffer: Optional[int] = Field(default=None, alias="cleaningBuffer")
    number_of_tanks: Optional[int] = Field(default=None, alias="numberOfTanks")
    tank_stagger_interval: Optional[int] = Field(default=None, alias="tankStaggerInterval")


def derive_status(remaining_sessions: int, requested: Optional[CalendarDayStatus] = None) -> CalendarDayStatus:
    if requested == CalendarDayStatus.CLOSED:
        return CalendarDayStatus.CLOSED
    if remaining_sessions <= 0:
        return CalendarDayStatus.SOLD_OUT
    return CalendarDayStatus.BOOKABLE


async def get_calendar_day(
    session: AsyncSession,
    day: date,
    lock: bool = False,
) -> Optional[CalendarDay]:
    stmt = select(CalendarDay).where(CalendarDay.date == day)
    if lock:
        stmt = stmt.with_for_update()
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def get_or_initialize(
    session: AsyncSession,
    day: date,
    hours: BusinessHours,
    lock: bool = False,
) -> CalendarDay:
    """
    Return the ledger row for a date.

    If none exists, a new unsaved CalendarDay seeded from the capacity
    calculator is returned; decrement() persists it.
    """
    calendar_day = await get_calendar_day(session, day, lock=lock)
    if calendar_day is not None:
        return calendar_day

    capacity = hours.capacity()
    return CalendarDay(
        date=day,
        status=derive_status(capacity.total_sessions),
        open_time=hours.open_time,
        close_time=hours.close_time,
        remaining_sessions=capacity.total_sessions,
    )


async def _materialize(session: AsyncSession, calendar_day: CalendarDay) -> None:
    """Insert a freshly initialized row unless another writer created it first."""
    stmt = (
        dialect_insert(session, CalendarDay)
        .values(
            date=calendar_day.date,
            status=calendar_day.status,
            open_time=calendar_day.open_time,
            close_time=calendar_day.close_time,
            remaining_sessions=calendar_day.remaining_sessions,
        )
        .on_conflict_do_nothing(index_elements=["date"])
    )
    await session.execute(stmt)


async def decrement(session: AsyncSession, calendar_day: CalendarDay) -> CalendarDay:
    """
    Take one session off a date's remaining capacity.

    The update only matches while remaining_sessions > 0, so the counter
    can't go negative even if the caller's earlier read was stale.

    Raises:
        CapacityExhausted: nothing left to sell for this date
    """
    if calendar_day.id is None:
        await _materialize(session, calendar_day)

    result = await session.execute(
        update(CalendarDay)
        .where(
            CalendarDay.date == calendar_day.date,
            CalendarDay.remaining_sessions > 0,
        )
        .values(remaining_sessions=CalendarDay.remaining_sessions - 1)
        .returning(CalendarDay.remaining_sessions)
        .execution_options(synchronize_session=False)
    )
    remaining = result.scalar_one_or_none()
    if remaining is None:
        raise CapacityExhausted(details={"date": calendar_day.date.isoformat()})

    status = derive_status(remaining)
    await session.execute(
        update(CalendarDay)
        .where(CalendarDay.date == calendar_day.date)
        .values(status=status)
        .execution_options(synchronize_session=False)
    )

    refreshed = await get_calendar_day(session, calendar_day.date)
    await session.refresh(refreshed)
    logger.info(f"Calendar {calendar_day.date}: {remaining} sessions left ({status.value})")
    return refreshed


async def save_calendar_day(
    session: AsyncSession,
    day: date,
    status: Optional[CalendarDayStatus] = None,
    open_time: Optional[str] = None,
    close_time: Optional[str] = None,
    remaining_sessions: Optional[int] = None,
) -> CalendarDay:
    """
    Admin override for one date. Omitted fields keep their current values.

    A new row without an explicit session count is seeded from the default
    hours, using the given open/close times when provided.
    """
    calendar_day = await get_calendar_day(session, day, lock=True)

    if calendar_day is None:
        hours = BusinessHours.from_settings({"open_time": open_time, "close_time": close_time})
        if remaining_sessions is None:
            remaining_sessions = hours.capacity().total_sessions
        calendar_day = CalendarDay(
            date=day,
            open_time=hours.open_time,
            close_time=hours.close_time,
            remaining_sessions=remaining_sessions,
            status=derive_status(remaining_sessions, status),
        )
        session.add(calendar_day)
    else:
        if open_time is not None:
            calendar_day.open_time = open_time
        if close_time is not None:
            calendar_day.close_time = close_time
        if remaining_sessions is not None:
            calendar_day.remaining_sessions = remaining_sessions
        requested = status if status is not None else calendar_day.status
        calendar_day.status = derive_status(calendar_day.remaining_sessions, requested)

    await session.commit()
    await session.refresh(calendar_day)
    logger.info(
        f"Calendar override {day}: status={calendar_day.status.value} "
        f"remaining={calendar_day.remaining_sessions}"
    )
    return calendar_day


async def list_calendar_days(session: AsyncSession, start: date, end: date) -> list[CalendarDay]:
    result = await session.execute(
        select(CalendarDay)
        .where(CalendarDay.date >= start, CalendarDay.date <= end)
        .order_by(CalendarDay.date)
    )
    return list(result.scalars().all())
