"""
Reservation ids: "<prefix>-<seq>", e.g. TLB-07.

The sequence lives in the counters table and is advanced with a single
upsert ... RETURNING, so concurrent bookings on any number of server
instances never draw the same number.
"""

from sqlalchemy.ext.asyncio import AsyncSession

from .core.config import get_settings
from .core.db import dialect_insert
from .models import Counter

RESERVATION_COUNTER_KEY = "reservationId"


def format_reservation_id(seq: int, prefix: str, pad_width: int) -> str:
    return f"{prefix}-{str(seq).zfill(pad_width)}"


async def next_sequence_value(session: AsyncSession, key: str) -> int:
    counters = Counter.__table__
    stmt = (
        dialect_insert(session, counters)
        .values(key=key, seq=1)
        .on_conflict_do_update(
            index_elements=[counters.c.key],
            set_={"seq": counters.c.seq + 1},
        )
        .returning(counters.c.seq)
    )
    result = await session.execute(stmt)
    return result.scalar_one()


async def next_reservation_id(session: AsyncSession) -> str:
    settings = get_settings()
    seq = await next_sequence_value(session, RESERVATION_COUNTER_KEY)
    return format_reservation_id(seq, settings.reservation_prefix, settings.reservation_pad_width)
