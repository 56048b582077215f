"""
Calendar ledger endpoints.

    GET /calendar?startDate&endDate  -> ledger rows in range
    PUT /calendar/{date}             -> admin override for one date
    GET /calendar/capacity           -> capacity preview for business hours
"""

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.ext.asyncio import AsyncSession

from . import calendar_ledger
from .calendar_ledger import BusinessHours
from .core.db import get_session
from .core.responses import success_response
from .models import CalendarDay, CalendarDayStatus

router = APIRouter(prefix="/calendar", tags=["calendar"])


class CalendarDayUpdateRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    status: Optional[CalendarDayStatus] = None
    open_time: Optional[str] = Field(default=None, alias="openTime", pattern=r"^\d{2}:\d{2}$")
    close_time: Optional[str] = Field(default=None, alias="closeTime", pattern=r"^\d{2}:\d{2}$")
    sessions_to_sell: Optional[int] = Field(default=None, alias="sessionsToSell", ge=0)


def serialize_day(calendar_day: CalendarDay) -> dict:
    return {
        "date": calendar_day.date.isoformat(),
        "status": calendar_day.status.value,
        "openTime": calendar_day.open_time,
        "closeTime": calendar_day.close_time,
        "sessionsToSell": calendar_day.remaining_sessions,
    }


@router.get("")
async def get_calendar(
    start_date: date = Query(..., alias="startDate"),
    end_date: date = Query(..., alias="endDate"),
    session: AsyncSession = Depends(get_session),
):
    days = await calendar_ledger.list_calendar_days(session, start_date, end_date)
    return success_response([serialize_day(day) for day in days])


@router.get("/capacity")
async def capacity_preview(
    open_time: Optional[str] = Query(default=None, alias="openTime"),
    close_time: Optional[str] = Query(default=None, alias="closeTime"),
    session_duration: Optional[int] = Query(default=None, alias="sessionDuration"),
    cleaning_buffer: Optional[int] = Query(default=None, alias="cleaningBuffer"),
    number_of_tanks: Optional[int] = Query(default=None, alias="numberOfTanks"),
    tank_stagger_interval: Optional[int] = Query(default=None, alias="tankStaggerInterval"),
):
    hours = BusinessHours.from_settings(
        {
            "open_time": open_time,
            "close_time": close_time,
            "session_duration": session_duration,
            "cleaning_buffer": cleaning_buffer,
            "number_of_tanks": number_of_tanks,
            "tank_stagger_interval": tank_stagger_interval,
        }
    )
    return success_response(hours.capacity().to_dict())


@router.put("/{day}")
async def save_calendar_day(
    day: date,
    payload: CalendarDayUpdateRequest,
    session: AsyncSession = Depends(get_session),
):
    calendar_day = await calendar_ledger.save_calendar_day(
        session,
        day,
        status=payload.status,
        open_time=payload.open_time,
        close_time=payload.close_time,
        remaining_sessions=payload.sessions_to_sell,
    )
    return success_response(serialize_day(calendar_day))
