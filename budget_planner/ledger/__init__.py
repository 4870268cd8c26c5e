"""Ledger package: weeks, categories, allocations and expenses."""

from budget_planner.ledger.budget import BudgetLedger
from budget_planner.ledger.categories import (
    DEFAULT_ALLOCATIONS,
    DEFAULT_CATEGORIES,
    CategoryRegistry,
)
from budget_planner.ledger.expenses import ExpenseLedger
from budget_planner.ledger.weeks import (
    WEDNESDAY,
    WeekAnchorRule,
    WeekResolver,
    format_week,
    next_week,
    parse_week_date,
    previous_week,
    week_anchor_for,
)

__all__ = [
    "BudgetLedger",
    "CategoryRegistry",
    "DEFAULT_ALLOCATIONS",
    "DEFAULT_CATEGORIES",
    "ExpenseLedger",
    "WEDNESDAY",
    "WeekAnchorRule",
    "WeekResolver",
    "format_week",
    "next_week",
    "parse_week_date",
    "previous_week",
    "week_anchor_for",
]
