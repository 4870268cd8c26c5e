"""Reconciliation package."""

from budget_planner.reconciliation.engine import (
    DEFAULT_WEEKLY_BUDGET_LIMIT,
    OVER_BUDGET_THRESHOLD,
    ReconciliationEngine,
    classify,
    utilization,
)

__all__ = [
    "DEFAULT_WEEKLY_BUDGET_LIMIT",
    "OVER_BUDGET_THRESHOLD",
    "ReconciliationEngine",
    "classify",
    "utilization",
]
