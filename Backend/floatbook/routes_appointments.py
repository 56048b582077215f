"""
Appointment endpoints.

    POST  /appointments                         -> book a session
    PATCH /appointments/{id}/status             -> complete / cancel
    PATCH /appointments/{id}                    -> move date/time
    GET   /appointments                         -> admin listing (paginated)
    GET   /appointments/mine?email=             -> a customer's reservations
    GET   /appointments/booked-times/{date}     -> occupied times for a date
    GET   /appointments/counts?startDate&endDate -> per-date booked counts
    GET   /appointments/package/{id}/counts     -> per-status counts for a package
"""

import logging
import math
import uuid
from datetime import date
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from . import appointments as lifecycle
from .appointments import AppointmentDetailsUpdateRequest, AppointmentStatusUpdateRequest
from .booking import AppointmentCreateRequest, AppointmentResponse, book_session
from .core.db import get_session
from .core.responses import success_response
from .models import Appointment
from .notifications import (
    notify_appointment_status,
    notify_booking_confirmation,
    notify_operators_new_booking,
)

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/appointments", tags=["appointments"])


def serialize(appointment: Appointment, is_package_user: Optional[bool] = None) -> dict:
    return AppointmentResponse.from_appointment(appointment, is_package_user).model_dump(
        mode="json", by_alias=True
    )


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_appointment(
    payload: AppointmentCreateRequest,
    background_tasks: BackgroundTasks,
    session: AsyncSession = Depends(get_session),
):
    def queue_notifications(appointment: Appointment) -> None:
        data = serialize(appointment)
        background_tasks.add_task(notify_booking_confirmation, data)
        background_tasks.add_task(notify_operators_new_booking, data)

    appointment = await book_session(session, payload, on_committed=[queue_notifications])
    return success_response(
        serialize(appointment),
        message="Appointment successfully created. Confirmation email sent.",
    )


@router.get("")
async def list_appointments(
    start_date: Optional[date] = Query(default=None, alias="startDate"),
    end_date: Optional[date] = Query(default=None, alias="endDate"),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=200),
    session: AsyncSession = Depends(get_session),
):
    rows, total = await lifecycle.list_appointments(session, start_date, end_date, page, limit)
    return success_response(
        [serialize(appointment, is_package_user) for appointment, is_package_user in rows],
        pagination={
            "currentPage": page,
            "totalPages": math.ceil(total / limit),
            "totalRecords": total,
        },
    )


@router.get("/mine")
async def my_reservations(
    email: str = Query(..., min_length=3),
    session: AsyncSession = Depends(get_session),
):
    appointments = await lifecycle.list_customer_appointments(session, email)
    return success_response([serialize(a) for a in appointments], count=len(appointments))


@router.get("/booked-times/{day}")
async def booked_times(day: date, session: AsyncSession = Depends(get_session)):
    return success_response(await lifecycle.get_booked_times(session, day))


@router.get("/counts")
async def appointment_counts(
    start_date: date = Query(..., alias="startDate"),
    end_date: date = Query(..., alias="endDate"),
    session: AsyncSession = Depends(get_session),
):
    counts = await lifecycle.get_appointment_counts(session, start_date, end_date)
    return success_response([count.model_dump() for count in counts])


@router.get("/package/{activation_id}/counts")
async def package_counts(activation_id: uuid.UUID, session: AsyncSession = Depends(get_session)):
    return success_response(await lifecycle.package_appointment_counts(session, activation_id))


@router.patch("/{appointment_id}/status")
async def update_status(
    appointment_id: uuid.UUID,
    payload: AppointmentStatusUpdateRequest,
    background_tasks: BackgroundTasks,
    session: AsyncSession = Depends(get_session),
):
    appointment, changed = await lifecycle.update_appointment_status(session, appointment_id, payload.status)
    data = serialize(appointment)
    if changed:
        background_tasks.add_task(notify_appointment_status, data)
    return success_response(data, message=f"Appointment status updated to {data['status']}.")


@router.patch("/{appointment_id}")
async def update_details(
    appointment_id: uuid.UUID,
    payload: AppointmentDetailsUpdateRequest,
    session: AsyncSession = Depends(get_session),
):
    appointment = await lifecycle.update_appointment_details(session, appointment_id, payload)
    return success_response(serialize(appointment))
