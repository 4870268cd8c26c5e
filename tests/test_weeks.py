"""Tests for week anchor resolution."""

import pytest
from datetime import date, datetime, timedelta

from budget_planner.errors import InvalidArgumentError
from budget_planner.ledger.weeks import (
    WeekAnchorRule,
    WeekResolver,
    format_week,
    next_week,
    parse_week_date,
    previous_week,
    week_anchor_for,
)


class TestWeekAnchorFor:
    """Tests for the backward (default) rule."""

    def test_monday_resolves_to_previous_wednesday(self):
        """2025-09-01 is a Monday; its week started 2025-08-27."""
        assert week_anchor_for(date(2025, 9, 1)) == date(2025, 8, 27)

    def test_wednesday_is_its_own_anchor(self):
        """Test that the anchor day is returned unchanged."""
        assert week_anchor_for(date(2025, 8, 27)) == date(2025, 8, 27)

    def test_tuesday_is_last_day_of_week(self):
        """The day before the anchor belongs to the previous week."""
        assert week_anchor_for(date(2025, 9, 2)) == date(2025, 8, 27)

    def test_thursday_after_anchor(self):
        """The day after the anchor belongs to the new week."""
        assert week_anchor_for(date(2025, 8, 28)) == date(2025, 8, 27)

    def test_every_day_of_a_week(self):
        """Test all seven days resolve to the same anchor."""
        start = date(2025, 8, 27)
        for offset in range(7):
            assert week_anchor_for(start + timedelta(days=offset)) == start

    def test_idempotent(self):
        """Test anchor(anchor(d)) == anchor(d) over a whole year."""
        day = date(2025, 1, 1)
        for _ in range(366):
            anchor = week_anchor_for(day)
            assert week_anchor_for(anchor) == anchor
            assert anchor.weekday() == 2
            day += timedelta(days=1)

    def test_datetime_drops_time_of_day(self):
        """Test that late-evening timestamps don't drift into another week."""
        assert week_anchor_for(datetime(2025, 9, 2, 23, 59)) == date(2025, 8, 27)
        assert week_anchor_for(datetime(2025, 8, 27, 0, 1)) == date(2025, 8, 27)

    def test_iso_string(self):
        """Test ISO date strings are accepted."""
        assert week_anchor_for("2025-09-01") == date(2025, 8, 27)

    def test_crosses_year_boundary(self):
        """2026-01-01 is a Thursday; its anchor is in 2025."""
        assert week_anchor_for(date(2026, 1, 1)) == date(2025, 12, 31)


class TestForwardRule:
    """Tests for the forward rule."""

    def test_monday_resolves_to_next_wednesday(self):
        anchor = week_anchor_for(date(2025, 9, 1), rule=WeekAnchorRule.FORWARD)
        assert anchor == date(2025, 9, 3)

    def test_wednesday_unchanged(self):
        anchor = week_anchor_for(date(2025, 9, 3), rule=WeekAnchorRule.FORWARD)
        assert anchor == date(2025, 9, 3)

    def test_accepts_rule_as_string(self):
        assert week_anchor_for(date(2025, 8, 28), rule="forward") == date(2025, 9, 3)


class TestWeekArithmetic:
    """Tests for next/previous week and parsing."""

    def test_next_and_previous(self):
        anchor = date(2025, 8, 27)
        assert next_week(anchor) == date(2025, 9, 3)
        assert previous_week(anchor) == date(2025, 8, 20)
        assert previous_week(next_week(anchor)) == anchor

    def test_format_week(self):
        assert format_week(date(2025, 8, 27)) == "2025-08-27"

    def test_parse_rejects_garbage(self):
        """Test malformed dates raise InvalidArgumentError with an issue."""
        with pytest.raises(InvalidArgumentError) as exc_info:
            parse_week_date("next tuesday")
        assert exc_info.value.issues[0].field == "date"

    def test_parse_rejects_impossible_date(self):
        with pytest.raises(InvalidArgumentError):
            parse_week_date("2025-02-30")

    @pytest.mark.parametrize("value", ["2025-09-01xyz", "2025-09-01 junk", "2025-09-01T99:00"])
    def test_parse_rejects_trailing_text(self, value):
        with pytest.raises(InvalidArgumentError):
            parse_week_date(value)

    def test_parse_accepts_iso_timestamp(self):
        assert parse_week_date("2025-09-01T10:00:00") == date(2025, 9, 1)
        assert parse_week_date(" 2025-09-01 ") == date(2025, 9, 1)

    def test_parse_rejects_other_types(self):
        with pytest.raises(InvalidArgumentError):
            parse_week_date(20250827)


class TestWeekResolver:
    """Tests for the configured resolver."""

    def test_current_week_uses_given_today(self):
        resolver = WeekResolver()
        assert resolver.current_week(date(2025, 9, 1)) == date(2025, 8, 27)

    def test_next_week_normalizes_first(self):
        """Any day of a week maps to the following anchor."""
        resolver = WeekResolver()
        assert resolver.next_week(date(2025, 9, 1)) == date(2025, 9, 3)

    def test_weeks_back_newest_first(self):
        resolver = WeekResolver()
        assert resolver.weeks_back(date(2025, 9, 1), 3) == [
            date(2025, 8, 27),
            date(2025, 8, 20),
            date(2025, 8, 13),
        ]

    def test_other_anchor_weekday(self):
        """Test a Monday-anchored configuration."""
        resolver = WeekResolver(anchor_weekday=0)
        assert resolver.anchor_for(date(2025, 8, 27)) == date(2025, 8, 25)

    def test_rejects_invalid_weekday(self):
        with pytest.raises(ValueError):
            WeekResolver(anchor_weekday=7)

    def test_from_settings(self, app_settings):
        resolver = WeekResolver.from_settings(app_settings)
        assert resolver.anchor_weekday == 2
        assert resolver.rule == WeekAnchorRule.BACKWARD
