"""
Package and package activation endpoints.

    GET   /packages                              -> active package definitions
    POST  /packages                              -> create a package definition
    POST  /package-activations                   -> customer activation request
    GET   /package-activations                   -> admin listing (paginated)
    GET   /package-activations/active?email=     -> a customer's usable packages
    PATCH /package-activations/{id}/status       -> admin status change
"""

import math
import uuid
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from . import packages
from .core.db import get_session
from .core.responses import success_response
from .models import Package, PackageActivation
from .notifications import notify_activation_confirmed, notify_activation_received
from .packages import (
    ActivationCreateRequest,
    ActivationResponse,
    ActivationStatusUpdateRequest,
    PackageCreateRequest,
)

router = APIRouter(tags=["packages"])


def serialize_package(package: Package) -> dict:
    return {
        "id": package.id,
        "name": package.name,
        "duration": package.duration,
        "sessions": package.sessions,
        "totalPrice": float(package.total_price),
        "discount": package.discount,
        "isActive": package.is_active,
    }


def serialize_activation(activation: PackageActivation) -> dict:
    return ActivationResponse.from_activation(activation).model_dump(mode="json", by_alias=True)


@router.get("/packages")
async def list_packages(session: AsyncSession = Depends(get_session)):
    return success_response([serialize_package(p) for p in await packages.list_packages(session)])


@router.post("/packages", status_code=status.HTTP_201_CREATED)
async def create_package(payload: PackageCreateRequest, session: AsyncSession = Depends(get_session)):
    package = await packages.create_package(session, payload)
    return success_response(serialize_package(package))


@router.post("/package-activations", status_code=status.HTTP_201_CREATED)
async def request_activation(
    payload: ActivationCreateRequest,
    background_tasks: BackgroundTasks,
    session: AsyncSession = Depends(get_session),
):
    activation = await packages.create_activation_request(session, payload)
    data = serialize_activation(activation)
    background_tasks.add_task(notify_activation_received, data)
    return success_response(data, message="Package Activation request successfully submitted.")


@router.get("/package-activations")
async def list_activations(
    status_filter: Optional[str] = Query(default=None, alias="status"),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=200),
    session: AsyncSession = Depends(get_session),
):
    activation_status = None
    if status_filter:
        activation_status = packages.parse_activation_status(status_filter)
    activations, total = await packages.list_activations(session, activation_status, page, limit)
    return success_response(
        [serialize_activation(a) for a in activations],
        pagination={
            "page": page,
            "limit": limit,
            "total": total,
            "totalPages": math.ceil(total / limit),
        },
    )


@router.get("/package-activations/active")
async def active_packages(
    email: str = Query(..., min_length=3),
    session: AsyncSession = Depends(get_session),
):
    activations = await packages.list_active_packages(session, email)
    return success_response([serialize_activation(a) for a in activations])


@router.patch("/package-activations/{activation_id}/status")
async def update_activation_status(
    activation_id: uuid.UUID,
    payload: ActivationStatusUpdateRequest,
    background_tasks: BackgroundTasks,
    session: AsyncSession = Depends(get_session),
):
    activation, newly_confirmed = await packages.update_activation_status(
        session, activation_id, payload.status, payload.start_date
    )
    data = serialize_activation(activation)
    if newly_confirmed:
        background_tasks.add_task(notify_activation_confirmed, data)
    return success_response(data, message="Package activation status updated successfully.")
