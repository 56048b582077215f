"""
Package Entitlement Ledger

Activations move through:
    Pending -> Contacted | Confirmed | Rejected
    Contacted -> Confirmed | Rejected
    Confirmed -> Expired (daily sweep only)
Rejected and Expired are terminal.

Bookings consume one session at a time from a Confirmed, unexpired
activation. Expiry is stamped at confirmation from the package's duration
label ("<N>-Month"; anything else counts as one month).
"""

import calendar
import logging
import re
import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.attributes import set_committed_value

from .errors import (
    InvalidStatus,
    InvalidStatusTransition,
    NoRemainingSessions,
    PackageDefinitionNotFound,
    PackageExpired,
    PackageNotConfirmed,
    PackageNotFound,
)
from .models import ActivationStatus, Package, PackageActivation, as_utc, utc_now

logger = logging.getLogger(__name__)

DURATION_PATTERN = re.compile(r"(\d+)-Month")
DEFAULT_DURATION_MONTHS = 1

ALLOWED_TRANSITIONS: dict[ActivationStatus, set[ActivationStatus]] = {
    ActivationStatus.PENDING: {
        ActivationStatus.CONTACTED,
        ActivationStatus.CONFIRMED,
        ActivationStatus.REJECTED,
    },
    ActivationStatus.CONTACTED: {ActivationStatus.CONFIRMED, ActivationStatus.REJECTED},
    ActivationStatus.CONFIRMED: {ActivationStatus.EXPIRED},
    ActivationStatus.REJECTED: set(),
    ActivationStatus.EXPIRED: set(),
}

# Statuses an admin may set directly; Expired is reserved for the sweep.
ADMIN_SETTABLE_STATUSES = {
    ActivationStatus.PENDING,
    ActivationStatus.CONTACTED,
    ActivationStatus.CONFIRMED,
    ActivationStatus.REJECTED,
}


# ============================================================================
# REQUEST/RESPONSE MODELS
# ============================================================================

class PackageCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    duration: str = Field(..., min_length=1, max_length=32, description="e.g. 1-Month, 6-Month")
    sessions: int = Field(..., ge=1)
    total_price: float = Field(default=0, ge=0, alias="totalPrice")
    discount: int = Field(default=0, ge=0, le=100)

    model_config = ConfigDict(populate_by_name=True)


class ActivationCreateRequest(BaseModel):
    """Customer request to activate a package."""

    full_name: str = Field(..., min_length=1, max_length=255, alias="fullName")
    email: str = Field(..., min_length=3, max_length=255)
    phone: str = Field(..., min_length=1, max_length=32)
    address: str = Field(..., min_length=1, max_length=500)
    message: str = Field(default="", max_length=2000)
    package_id: int = Field(..., alias="packageId")
    preferred_date: Optional[datetime] = Field(default=None, alias="preferredDate")

    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        return v.strip().lower()


class ActivationStatusUpdateRequest(BaseModel):
    status: str
    start_date: Optional[datetime] = Field(default=None, alias="startDate")

    model_config = ConfigDict(populate_by_name=True)


class ActivationResponse(BaseModel):
    id: uuid.UUID
    package_id: int = Field(serialization_alias="packageId")
    package_name: str = Field(serialization_alias="packageName")
    full_name: str = Field(serialization_alias="fullName")
    email: str
    phone: str
    status: ActivationStatus
    total_sessions: int = Field(serialization_alias="totalSessions")
    used_count: int = Field(serialization_alias="usedCount")
    remaining_sessions: int = Field(serialization_alias="remainingSessions")
    start_date: Optional[datetime] = Field(default=None, serialization_alias="startDate")
    expiry_date: Optional[datetime] = Field(default=None, serialization_alias="expiryDate")
    created_at: Optional[datetime] = Field(default=None, serialization_alias="createdAt")

    @classmethod
    def from_activation(cls, activation: PackageActivation) -> "ActivationResponse":
        return cls(
            id=activation.id,
            package_id=activation.package_id,
            package_name=activation.package_name,
            full_name=activation.full_name,
            email=activation.email,
            phone=activation.phone,
            status=activation.status,
            total_sessions=activation.total_sessions,
            used_count=activation.used_count,
            remaining_sessions=activation.remaining_sessions,
            start_date=as_utc(activation.start_date),
            expiry_date=as_utc(activation.expiry_date),
            created_at=activation.created_at,
        )


# ============================================================================
# DATE HELPERS
# ============================================================================

def parse_duration_months(duration_label: Optional[str]) -> int:
    """'6-Month' -> 6. Unparsable labels count as one month."""
    match = DURATION_PATTERN.search(duration_label or "")
    if not match:
        return DEFAULT_DURATION_MONTHS
    months = int(match.group(1))
    return months if months > 0 else DEFAULT_DURATION_MONTHS


def add_months(value: datetime, months: int) -> datetime:
    """Calendar-month arithmetic; the day is clamped to the target month's length."""
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


def compute_expiry_date(start_date: datetime, duration_label: Optional[str]) -> datetime:
    return add_months(start_date, parse_duration_months(duration_label))


# ============================================================================
# LEDGER OPERATIONS
# ============================================================================

async def get_activation(
    session: AsyncSession,
    activation_id: uuid.UUID,
    lock: bool = False,
) -> Optional[PackageActivation]:
    stmt = select(PackageActivation).where(PackageActivation.id == activation_id)
    if lock:
        stmt = stmt.with_for_update()
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


def check_consumable(activation: PackageActivation, now: Optional[datetime] = None) -> None:
    """Raise the specific reason an activation can't fund a booking."""
    now = as_utc(now) or utc_now()
    if activation.status != ActivationStatus.CONFIRMED:
        raise PackageNotConfirmed()
    expiry_date = as_utc(activation.expiry_date)
    if expiry_date is not None and now >= expiry_date:
        raise PackageExpired()
    if activation.used_count >= activation.total_sessions:
        raise NoRemainingSessions()


async def validate_consumable(
    session: AsyncSession,
    activation_id: uuid.UUID,
    now: Optional[datetime] = None,
    lock: bool = False,
) -> PackageActivation:
    """
    Load an activation and make sure it can fund one more session.

    Raises:
        PackageNotFound, PackageNotConfirmed, PackageExpired, NoRemainingSessions
    """
    activation = await get_activation(session, activation_id, lock=lock)
    if activation is None:
        raise PackageNotFound()
    check_consumable(activation, now)
    return activation


async def consume(session: AsyncSession, activation: PackageActivation) -> int:
    """
    Use one session of an activation. Returns the new used count.

    The increment is conditional on used_count < total_sessions so two
    bookings racing for the last session can't both win.
    """
    result = await session.execute(
        update(PackageActivation)
        .where(
            PackageActivation.id == activation.id,
            PackageActivation.status == ActivationStatus.CONFIRMED,
            PackageActivation.used_count < PackageActivation.total_sessions,
        )
        .values(used_count=PackageActivation.used_count + 1)
        .returning(PackageActivation.used_count)
        .execution_options(synchronize_session=False)
    )
    used_count = result.scalar_one_or_none()
    if used_count is None:
        raise NoRemainingSessions()
    set_committed_value(activation, "used_count", used_count)
    return used_count


def validate_transition(current: ActivationStatus, new: ActivationStatus) -> None:
    if new == current:
        return
    if new not in ALLOWED_TRANSITIONS[current]:
        raise InvalidStatusTransition(
            f"Cannot change package activation from {current.value} to {new.value}.",
            details={"from": current.value, "to": new.value},
        )


def parse_activation_status(value: str) -> ActivationStatus:
    for status in ADMIN_SETTABLE_STATUSES:
        if value and value.strip().lower() == status.value.lower():
            return status
    raise InvalidStatus(details={"status": value})


def confirm(
    activation: PackageActivation,
    duration_label: Optional[str],
    start_date: Optional[datetime] = None,
) -> PackageActivation:
    """Mark an activation Confirmed and stamp its start and expiry dates."""
    validate_transition(activation.status, ActivationStatus.CONFIRMED)
    actual_start = as_utc(start_date) or utc_now()
    activation.status = ActivationStatus.CONFIRMED
    activation.start_date = actual_start
    activation.expiry_date = compute_expiry_date(actual_start, duration_label)
    logger.info(
        f"Activation {activation.id} confirmed: {activation.start_date.date()} -> "
        f"{activation.expiry_date.date()} ({duration_label})"
    )
    return activation


async def update_activation_status(
    session: AsyncSession,
    activation_id: uuid.UUID,
    status: str,
    start_date: Optional[datetime] = None,
) -> tuple[PackageActivation, bool]:
    """
    Admin status change. Returns the activation and whether it was newly
    confirmed (so the caller can notify the customer).

    Confirming an already Confirmed activation only re-stamps dates when a
    start date is given.
    """
    new_status = parse_activation_status(status)
    activation = await get_activation(session, activation_id, lock=True)
    if activation is None:
        raise PackageNotFound()

    previous = activation.status
    validate_transition(previous, new_status)

    newly_confirmed = False
    if new_status == ActivationStatus.CONFIRMED:
        if previous != ActivationStatus.CONFIRMED or start_date is not None:
            package = await session.get(Package, activation.package_id)
            confirm(activation, package.duration if package else None, start_date)
            newly_confirmed = previous != ActivationStatus.CONFIRMED
    else:
        activation.status = new_status

    await session.commit()
    await session.refresh(activation)
    logger.info(f"Activation {activation.id}: {previous.value} -> {activation.status.value}")
    return activation, newly_confirmed


async def expire_packages(session: AsyncSession, now: Optional[datetime] = None) -> int:
    """Flip every Confirmed activation whose expiry has passed to Expired."""
    now = as_utc(now) or utc_now()
    result = await session.execute(
        update(PackageActivation)
        .where(
            PackageActivation.status == ActivationStatus.CONFIRMED,
            PackageActivation.expiry_date.is_not(None),
            PackageActivation.expiry_date <= now,
        )
        .values(status=ActivationStatus.EXPIRED)
        .execution_options(synchronize_session=False)
    )
    await session.commit()
    expired = result.rowcount or 0
    if expired:
        logger.info(f"Expired {expired} confirmed package activation(s)")
    else:
        logger.info("No package activations due for expiry")
    return expired


async def count_expirable(session: AsyncSession, now: Optional[datetime] = None) -> int:
    now = as_utc(now) or utc_now()
    result = await session.execute(
        select(func.count(PackageActivation.id)).where(
            PackageActivation.status == ActivationStatus.CONFIRMED,
            PackageActivation.expiry_date.is_not(None),
            PackageActivation.expiry_date <= now,
        )
    )
    return result.scalar_one()


# ============================================================================
# PACKAGES AND ACTIVATION REQUESTS
# ============================================================================

async def create_package(session: AsyncSession, payload: PackageCreateRequest) -> Package:
    package = Package(
        name=payload.name.strip(),
        duration=payload.duration.strip(),
        sessions=payload.sessions,
        total_price=payload.total_price,
        discount=payload.discount,
        is_active=True,
    )
    session.add(package)
    await session.commit()
    await session.refresh(package)
    logger.info(f"Created package '{package.name}' ({package.sessions} sessions, {package.duration})")
    return package


async def list_packages(session: AsyncSession, active_only: bool = True) -> list[Package]:
    stmt = select(Package).order_by(Package.id)
    if active_only:
        stmt = stmt.where(Package.is_active == True)  # noqa: E712
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def create_activation_request(
    session: AsyncSession,
    payload: ActivationCreateRequest,
) -> PackageActivation:
    """Record a Pending activation; total sessions are copied from the package."""
    package = await session.get(Package, payload.package_id)
    if package is None:
        raise PackageDefinitionNotFound()

    activation = PackageActivation(
        package_id=package.id,
        package_name=package.name,
        full_name=payload.full_name,
        email=payload.email,
        phone=payload.phone,
        address=payload.address,
        message=payload.message or "",
        preferred_date=as_utc(payload.preferred_date) or utc_now(),
        status=ActivationStatus.PENDING,
        total_sessions=package.sessions,
        used_count=0,
    )
    session.add(activation)
    await session.commit()
    await session.refresh(activation)
    logger.info(f"Package activation requested: {activation.id} ({package.name}) for {activation.email}")
    return activation


async def list_activations(
    session: AsyncSession,
    status: Optional[ActivationStatus] = None,
    page: int = 1,
    limit: int = 20,
) -> tuple[list[PackageActivation], int]:
    filters = []
    if status is not None:
        filters.append(PackageActivation.status == status)

    total = (
        await session.execute(select(func.count(PackageActivation.id)).where(*filters))
    ).scalar_one()
    result = await session.execute(
        select(PackageActivation)
        .where(*filters)
        .order_by(PackageActivation.created_at.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    return list(result.scalars().all()), total


async def list_active_packages(
    session: AsyncSession,
    email: str,
    now: Optional[datetime] = None,
) -> list[PackageActivation]:
    """Confirmed, unexpired activations for a customer."""
    now = as_utc(now) or utc_now()
    result = await session.execute(
        select(PackageActivation)
        .where(
            PackageActivation.email == email.strip().lower(),
            PackageActivation.status == ActivationStatus.CONFIRMED,
        )
        .order_by(PackageActivation.start_date.desc())
    )
    return [
        activation
        for activation in result.scalars().all()
        if activation.expiry_date is None or as_utc(activation.expiry_date) > now
    ]
