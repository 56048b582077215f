"""
Daily package expiry sweep.

Runs once a day at EXPIRY_SWEEP_TIME in the business timezone. Runs inside a
process are sequential; across processes a PostgreSQL advisory lock lets only
one instance sweep at a time.
"""

import asyncio
import logging
from datetime import datetime, time, timedelta
from typing import Optional
from zoneinfo import ZoneInfo

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from .core.config import get_settings
from .core.db import AsyncSessionLocal
from .packages import expire_packages

logger = logging.getLogger(__name__)

EXPIRY_SWEEP_LOCK_KEY = 72_410_001

_sweep_task: Optional[asyncio.Task] = None
_stop_event: Optional[asyncio.Event] = None


def parse_run_time(value: str) -> time:
    try:
        hour, minute = map(int, value.split(":"))
        return time(hour=hour, minute=minute)
    except (ValueError, AttributeError):
        logger.warning(f"Invalid EXPIRY_SWEEP_TIME {value!r}; defaulting to midnight")
        return time(0, 0)


def seconds_until_next_run(now: datetime, run_at: time) -> float:
    """Seconds from now (tz-aware) until the next occurrence of run_at."""
    next_run = now.replace(hour=run_at.hour, minute=run_at.minute, second=0, microsecond=0)
    if next_run <= now:
        next_run += timedelta(days=1)
    return (next_run - now).total_seconds()


async def _acquire_sweep_lock(session: AsyncSession) -> bool:
    if session.get_bind().dialect.name != "postgresql":
        return True
    result = await session.execute(
        text("SELECT pg_try_advisory_xact_lock(:key)"), {"key": EXPIRY_SWEEP_LOCK_KEY}
    )
    return bool(result.scalar())


async def run_expiry_sweep(
    session_factory: async_sessionmaker = AsyncSessionLocal,
    now: Optional[datetime] = None,
) -> Optional[int]:
    """
    Expire overdue activations once.

    Returns the number expired, or None if another instance holds the lock.
    """
    async with session_factory() as session:
        if not await _acquire_sweep_lock(session):
            logger.info("Expiry sweep already running elsewhere; skipping")
            await session.rollback()
            return None
        return await expire_packages(session, now)


async def _sweep_loop(stop_event: asyncio.Event) -> None:
    settings = get_settings()
    tz = ZoneInfo(settings.business_timezone)
    run_at = parse_run_time(settings.expiry_sweep_time)
    logger.info(f"Package expiry sweep scheduled daily at {run_at.strftime('%H:%M')} ({settings.business_timezone})")

    while not stop_event.is_set():
        delay = seconds_until_next_run(datetime.now(tz), run_at)
        try:
            await asyncio.wait_for(stop_event.wait(), timeout=delay)
            break
        except asyncio.TimeoutError:
            pass

        try:
            await run_expiry_sweep()
        except Exception as exc:
            logger.exception("Package expiry sweep failed: %s", exc)


def start_expiry_scheduler() -> None:
    global _sweep_task, _stop_event
    if _sweep_task is not None and not _sweep_task.done():
        return
    _stop_event = asyncio.Event()
    _sweep_task = asyncio.create_task(_sweep_loop(_stop_event))


async def stop_expiry_scheduler() -> None:
    global _sweep_task, _stop_event
    if _sweep_task is None:
        return
    _stop_event.set()
    await _sweep_task
    _sweep_task = None
    _stop_event = None
