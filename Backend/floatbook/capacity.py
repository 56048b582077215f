"""
Session Capacity Calculator

Pure functions for working out how many sessions a day can sell across
parallel tanks whose first sessions are staggered.

Formula:
    session_length = duration + cleaning_buffer
    tank_i starts at open + i * stagger and runs until close
    sessions_for_tank_i = floor((close - tank_start_i) / session_length)
    total = max(sessions_for_tank_i) * tank_count

Example:
    09:00-21:00, 60 min sessions, 30 min buffer, 2 tanks, 30 min stagger
    tank 0: floor(720 / 90) = 8, tank 1: floor(690 / 90) = 7
    total = 8 * 2 = 16

A close time at or before the open time means the day runs past midnight.
"""

from dataclasses import dataclass
from typing import Optional

MINUTES_PER_DAY = 24 * 60


@dataclass
class SessionCapacity:
    """Result of a capacity calculation."""

    sessions_per_tank: int
    total_sessions: int

    def to_dict(self) -> dict:
        return {
            "sessionsPerTank": self.sessions_per_tank,
            "totalSessions": self.total_sessions,
        }


EMPTY_CAPACITY = SessionCapacity(sessions_per_tank=0, total_sessions=0)


def time_to_minutes(value: Optional[str]) -> Optional[int]:
    """
    Convert a wall-clock "HH:MM" string to minutes since midnight.

    Returns None for anything that isn't a valid 24h time.
    """
    if not value or not isinstance(value, str):
        return None
    try:
        hours, minutes = (int(part) for part in value.strip().split(":"))
    except ValueError:
        return None
    if not (0 <= hours < 24 and 0 <= minutes < 60):
        return None
    return hours * 60 + minutes


def _as_int(value) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def calculate_staggered_sessions(
    open_time: Optional[str],
    close_time: Optional[str],
    session_duration: int,
    cleaning_buffer: int,
    number_of_tanks: int,
    stagger_interval: int = 0,
) -> SessionCapacity:
    """
    Calculate sellable sessions for one day.

    Every tank is credited with the best tank's session count; individual
    tank schedules are not tracked.

    Args:
        open_time: Opening time, "HH:MM"
        close_time: Closing time, "HH:MM" (<= open_time means next day)
        session_duration: Minutes per session, must be > 0
        cleaning_buffer: Minutes between sessions, must be >= 0
        number_of_tanks: Parallel tanks, must be > 0
        stagger_interval: Minutes between consecutive tanks' first starts

    Returns:
        SessionCapacity; all zeros for missing or invalid input
    """
    duration = _as_int(session_duration)
    buffer = _as_int(cleaning_buffer)
    tanks = _as_int(number_of_tanks)
    stagger = _as_int(stagger_interval) or 0

    open_minutes = time_to_minutes(open_time)
    close_minutes = time_to_minutes(close_time)

    if (
        open_minutes is None
        or close_minutes is None
        or duration is None
        or duration <= 0
        or buffer is None
        or buffer < 0
        or tanks is None
        or tanks <= 0
        or stagger < 0
    ):
        return EMPTY_CAPACITY

    if close_minutes <= open_minutes:
        close_minutes += MINUTES_PER_DAY

    session_length = duration + buffer
    best_tank_sessions = 0
    for tank_index in range(tanks):
        tank_start = open_minutes + tank_index * stagger
        tank_sessions = max(0, (close_minutes - tank_start) // session_length)
        best_tank_sessions = max(best_tank_sessions, tank_sessions)

    return SessionCapacity(
        sessions_per_tank=best_tank_sessions,
        total_sessions=best_tank_sessions * tanks,
    )
