"""
Tests for the session capacity calculator.

Run with: pytest tests/test_capacity.py -v
"""

import pytest

from floatbook.capacity import (
    EMPTY_CAPACITY,
    SessionCapacity,
    calculate_staggered_sessions,
    time_to_minutes,
)


# ============================================================================
# TIME PARSING TESTS
# ============================================================================

class TestTimeToMinutes:
    """Tests for the time_to_minutes function."""

    def test_morning(self):
        assert time_to_minutes("09:00") == 540

    def test_midnight(self):
        assert time_to_minutes("00:00") == 0

    def test_last_minute(self):
        assert time_to_minutes("23:59") == 1439

    @pytest.mark.parametrize("value", ["", None, "9am", "24:00", "12:60", "09:00:00", 900])
    def test_invalid_values(self, value):
        assert time_to_minutes(value) is None


# ============================================================================
# STAGGERED CAPACITY TESTS
# ============================================================================

class TestCalculateStaggeredSessions:
    """Tests for calculate_staggered_sessions."""

    def test_default_business_day(self):
        """09:00-21:00, 60+30 min, 2 tanks staggered 30 min -> 8 per tank, 16 total."""
        result = calculate_staggered_sessions("09:00", "21:00", 60, 30, 2, 30)
        assert result == SessionCapacity(sessions_per_tank=8, total_sessions=16)

    def test_single_tank_no_stagger(self):
        result = calculate_staggered_sessions("09:00", "21:00", 60, 30, 1)
        assert result.total_sessions == 8

    def test_best_tank_counts_for_every_tank(self):
        """A large stagger starves later tanks, but the best tank's count is used for all."""
        result = calculate_staggered_sessions("09:00", "21:00", 60, 30, 3, 600)
        assert result.sessions_per_tank == 8
        assert result.total_sessions == 24

    def test_overnight_window(self):
        """A close time before the open time runs past midnight."""
        result = calculate_staggered_sessions("22:00", "02:00", 60, 0, 1)
        assert result.total_sessions == 4

    def test_equal_open_and_close_is_a_full_day(self):
        result = calculate_staggered_sessions("09:00", "09:00", 60, 30, 1)
        assert result.total_sessions == 16

    def test_window_shorter_than_one_session(self):
        result = calculate_staggered_sessions("09:00", "10:00", 60, 30, 2)
        assert result == SessionCapacity(sessions_per_tank=0, total_sessions=0)

    def test_numeric_strings_are_accepted(self):
        result = calculate_staggered_sessions("09:00", "21:00", "60", "30", "2", "30")
        assert result.total_sessions == 16

    @pytest.mark.parametrize(
        "args",
        [
            ("9am", "21:00", 60, 30, 2, 30),
            ("09:00", None, 60, 30, 2, 30),
            ("09:00", "21:00", 0, 30, 2, 30),
            ("09:00", "21:00", -60, 30, 2, 30),
            ("09:00", "21:00", 60, -1, 2, 30),
            ("09:00", "21:00", 60, 30, 0, 30),
            ("09:00", "21:00", 60, 30, 2, -15),
            ("09:00", "21:00", None, 30, 2, 30),
            ("09:00", "21:00", 60, 30, "two", 30),
        ],
    )
    def test_invalid_input_yields_zero(self, args):
        assert calculate_staggered_sessions(*args) == EMPTY_CAPACITY

    def test_to_dict_uses_api_field_names(self):
        result = calculate_staggered_sessions("09:00", "21:00", 60, 30, 2, 30)
        assert result.to_dict() == {"sessionsPerTank": 8, "totalSessions": 16}
