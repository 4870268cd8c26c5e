"""
Reconciliation Engine

Joins the Budget Ledger and the Expense Ledger for one week and classifies
every category as on track, close to its limit, or over budget.

DESIGN DECISION: The status thresholds are absolute currency amounts, not
percentages. A category is over budget once it overspends by more than 200,
whatever its planned amount. The boundary itself (exactly 200 over) is
still "close to limit".

Actual amounts are always recomputed from the expense log here; the cached
column on the allocation rows is never trusted for reconciliation.
"""

from collections import defaultdict
from datetime import date
from decimal import Decimal
from typing import Optional

import structlog

from budget_planner.ledger.budget import BudgetLedger
from budget_planner.ledger.categories import CategoryRegistry
from budget_planner.ledger.expenses import ExpenseLedger
from budget_planner.models.budget import (
    BudgetConfig,
    BudgetStatus,
    CategoryStatus,
    WeeklySummary,
    WeekReconciliation,
    to_money,
)
from budget_planner.services.storage.interface import SummaryStorageInterface


logger = structlog.get_logger(__name__)

OVER_BUDGET_THRESHOLD = Decimal("200")

DEFAULT_WEEKLY_BUDGET_LIMIT = Decimal("12000.00")


def classify(variance: Decimal) -> BudgetStatus:
    """Map an actual-minus-planned variance to a status."""
    if variance > OVER_BUDGET_THRESHOLD:
        return BudgetStatus.OVER_BUDGET
    if variance > 0:
        return BudgetStatus.CLOSE_TO_LIMIT
    return BudgetStatus.ON_TRACK


def utilization(actual: Decimal, planned: Decimal) -> float:
    """actual / planned as a percentage; 0 when nothing was planned."""
    if planned <= 0:
        return 0.0
    return float(actual / planned * 100)


class ReconciliationEngine:
    """Planned vs actual for a week, plus the weekly budget limit."""

    def __init__(
        self,
        registry: CategoryRegistry,
        budget_ledger: BudgetLedger,
        expense_ledger: ExpenseLedger,
        summary_storage: SummaryStorageInterface,
        default_limit: Optional[Decimal] = None,
    ):
        self._registry = registry
        self._budget_ledger = budget_ledger
        self._expense_ledger = expense_ledger
        self._summary_storage = summary_storage
        self._default_limit = to_money(default_limit or DEFAULT_WEEKLY_BUDGET_LIMIT)

    async def weekly_budget_limit(self) -> Decimal:
        """The configured ceiling, or the default when none was ever saved."""
        config = await self._summary_storage.get_config()
        if config is None:
            return self._default_limit
        return config.weekly_budget_limit

    async def set_weekly_budget_limit(self, amount: Decimal) -> BudgetConfig:
        config = BudgetConfig(weekly_budget_limit=to_money(amount))
        await self._summary_storage.set_config(config)
        return config

    async def reconcile_week(self, week_anchor: date) -> WeekReconciliation:
        """
        Reconcile one week.

        Rows cover every category with an allocation, plus any category
        that has expenses but no allocation (planned 0), in priority order.
        """
        categories = await self._registry.by_id()
        allocations = await self._budget_ledger.get_allocations(week_anchor)
        expenses = await self._expense_ledger.get_by_week(week_anchor)

        spent: dict[int, Decimal] = defaultdict(lambda: Decimal("0"))
        counts: dict[int, int] = defaultdict(int)
        for expense in expenses:
            spent[expense.category_id] += expense.amount
            counts[expense.category_id] += 1

        planned = {view.category_id: view.planned_amount for view in allocations}
        for category_id in spent:
            if category_id not in planned:
                if category_id not in categories:
                    logger.warning(
                        "expense_for_unknown_category",
                        week_anchor=week_anchor.isoformat(),
                        category_id=category_id,
                    )
                    continue
                planned[category_id] = Decimal("0")

        rows = []
        for category_id, planned_amount in planned.items():
            actual = spent[category_id]
            variance = actual - planned_amount
            rows.append(CategoryStatus(
                category=categories[category_id],
                planned_amount=planned_amount,
                actual_amount=actual,
                remaining=planned_amount - actual,
                variance=variance,
                utilization_pct=utilization(actual, planned_amount),
                status=classify(variance),
                transaction_count=counts[category_id],
            ))
        rows.sort(key=lambda r: r.category.priority_order)

        limit = await self.weekly_budget_limit()
        total_planned = sum((r.planned_amount for r in rows), Decimal("0"))
        total_actual = sum((r.actual_amount for r in rows), Decimal("0"))

        return WeekReconciliation(
            week_anchor=week_anchor,
            categories=rows,
            total_planned=total_planned,
            total_actual=total_actual,
            total_remaining=total_planned - total_actual,
            weekly_budget_limit=limit,
            budget_utilization=float(total_planned / limit * 100),
        )

    async def weekly_summary(self, week_anchor: date) -> WeeklySummary:
        reconciliation = await self.reconcile_week(week_anchor)
        return WeeklySummary(
            week_anchor=week_anchor,
            total_planned=reconciliation.total_planned,
            total_spent=reconciliation.total_actual,
            category_count=len(reconciliation.categories),
            weekly_budget_limit=reconciliation.weekly_budget_limit,
        )
