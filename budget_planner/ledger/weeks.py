"""
Calendar / Week Resolver

A budget week is identified by its anchor date: the Wednesday that starts it.
Every component asks this module for week boundaries; nothing else does
day-of-week arithmetic.

DESIGN DECISION: Anchors are computed from calendar fields (date.weekday()),
never from epoch offsets, so a timezone shift can't move a date into the
neighbouring week. A datetime is reduced to its own calendar date first.

Two rules are supported because the old call sites disagreed:
- BACKWARD (default): the most recent anchor day, or the same day
- FORWARD: the next anchor day, or the same day
"""

from datetime import date, datetime, timedelta
from enum import Enum
from typing import Optional, Union

from budget_planner.errors import InvalidArgumentError
from budget_planner.models.budget import ValidationIssue


WEDNESDAY = 2

ONE_WEEK = timedelta(days=7)

DateLike = Union[date, datetime, str]


class WeekAnchorRule(str, Enum):
    """How a date resolves to the anchor of its week."""
    BACKWARD = "backward"
    FORWARD = "forward"


def parse_week_date(value: DateLike) -> date:
    """
    Normalize a date-like value to a calendar date.

    Accepts a date, a datetime (time of day dropped) or an ISO
    ``YYYY-MM-DD`` string, optionally followed by a ``T``-separated time.

    Raises:
        InvalidArgumentError: If the value can't be read as a date
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        text = value.strip()
        try:
            if "T" in text:
                return datetime.fromisoformat(text).date()
            return date.fromisoformat(text)
        except ValueError:
            pass

    raise InvalidArgumentError(
        f"Invalid date: {value!r}",
        issues=[
            ValidationIssue(
                field="date",
                issue_type="invalid_format",
                message=f"Expected a YYYY-MM-DD date, got {value!r}",
                severity="error",
                suggested_fix="Use the ISO format, e.g. 2025-09-03",
            )
        ],
    )


def week_anchor_for(
    day: DateLike,
    anchor_weekday: int = WEDNESDAY,
    rule: WeekAnchorRule = WeekAnchorRule.BACKWARD,
) -> date:
    """
    Return the anchor date of the week containing ``day``.

    >>> week_anchor_for(date(2025, 9, 1))
    datetime.date(2025, 8, 27)
    """
    day = parse_week_date(day)
    weekday = day.weekday()

    if WeekAnchorRule(rule) == WeekAnchorRule.FORWARD:
        return day + timedelta(days=(anchor_weekday - weekday + 7) % 7)

    return day - timedelta(days=(weekday - anchor_weekday + 7) % 7)


def next_week(anchor: date) -> date:
    return anchor + ONE_WEEK


def previous_week(anchor: date) -> date:
    return anchor - ONE_WEEK


def format_week(anchor: date) -> str:
    """ISO representation used on every external surface."""
    return anchor.isoformat()


class WeekResolver:
    """
    A configured week rule.

    One instance is built from settings and shared by every component,
    so all of them agree on where weeks start.
    """

    def __init__(
        self,
        anchor_weekday: int = WEDNESDAY,
        rule: WeekAnchorRule = WeekAnchorRule.BACKWARD,
    ):
        if not 0 <= anchor_weekday <= 6:
            raise ValueError(f"anchor_weekday must be 0-6, got {anchor_weekday}")
        self.anchor_weekday = anchor_weekday
        self.rule = WeekAnchorRule(rule)

    @classmethod
    def from_settings(cls, app_settings) -> "WeekResolver":
        return cls(
            anchor_weekday=app_settings.week_anchor_weekday,
            rule=WeekAnchorRule(app_settings.week_anchor_rule),
        )

    def anchor_for(self, day: DateLike) -> date:
        return week_anchor_for(day, self.anchor_weekday, self.rule)

    def current_week(self, today: Optional[DateLike] = None) -> date:
        return self.anchor_for(today if today is not None else date.today())

    def next_week(self, anchor: DateLike) -> date:
        return next_week(self.anchor_for(anchor))

    def previous_week(self, anchor: DateLike) -> date:
        return previous_week(self.anchor_for(anchor))

    def weeks_back(self, anchor: DateLike, count: int) -> list[date]:
        """
        The ``count`` week anchors ending at ``anchor``'s week, newest first.
        """
        current = self.anchor_for(anchor)
        return [current - ONE_WEEK * i for i in range(max(count, 0))]
