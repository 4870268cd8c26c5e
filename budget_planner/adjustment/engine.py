"""
Auto-Adjustment / Reallocation Engine

Rule-based changes to planned allocations under the weekly ceiling.

1. OVERFLOW REBALANCING - when an edit would push the week's planned total
   over the limit, the other non-essential categories give up the
   difference in equal shares (never below zero).
2. NEXT-WEEK AUTO-ADJUSTMENT - categories that overspent or underspent by a
   wide margin get next week's allocation nudged toward what was spent.
3. HEALTH SCORE, REALLOCATION SUGGESTIONS, SPENDING ALERTS - read-only
   views over a reconciled week.

DESIGN DECISION: Writes made on the user's behalf are best effort, one
category at a time. A failed write for one category is logged and skipped;
the rest still go through. The user's own edit is never skipped and its
failures propagate.

The engine holds no state between calls. Everything lives in the ledgers.
"""

from datetime import date
from decimal import Decimal
from typing import Any, Optional

import structlog

from budget_planner.ledger.budget import BudgetLedger
from budget_planner.ledger.categories import CategoryRegistry
from budget_planner.ledger.weeks import next_week, previous_week
from budget_planner.models.analytics import (
    AlertPriority,
    AlertType,
    ReallocationSuggestion,
    SpendingAlert,
)
from budget_planner.models.budget import (
    ActionPlan,
    RebalanceResult,
    WeekReconciliation,
    to_money,
)
from budget_planner.reconciliation.engine import ReconciliationEngine
from budget_planner.services.storage.interface import StorageError
from budget_planner.validation import BudgetInputValidator


logger = structlog.get_logger(__name__)

SMART_ADJUSTMENT_NOTE = "Smart adjustment"
AUTO_REDUCED_NOTE = "Auto-reduced for budget balance"
AUTO_ADJUSTED_NOTE = "Auto-adjusted based on spending pattern"

# Next-week adjustment bands
ADJUST_VARIANCE = Decimal("300")
ADJUST_OVER_UTILIZATION = 120.0
ADJUST_UNDER_UTILIZATION = 60.0
ADJUST_INCREASE_RATE = Decimal("0.2")
ADJUST_DECREASE_RATE = Decimal("0.3")

# Reallocation suggestion bands
REALLOCATE_VARIANCE = Decimal("200")
REALLOCATE_UNDER_UTILIZATION = 50.0
REALLOCATE_REDUCTION_RATE = Decimal("0.5")
REALLOCATE_INCREASE_RATE = Decimal("0.3")

# Alert bands
ALERT_DANGER_VARIANCE = Decimal("500")
ALERT_WARNING_VARIANCE = Decimal("200")
ALERT_WEEKLY_INCREASE_PCT = 30.0


class AutoAdjustmentEngine:
    """Applies and proposes allocation changes for a week."""

    def __init__(
        self,
        registry: CategoryRegistry,
        budget_ledger: BudgetLedger,
        reconciliation: ReconciliationEngine,
        validator: Optional[BudgetInputValidator] = None,
        alert_threshold: Decimal = Decimal("10000"),
        currency_symbol: str = "₱",
    ):
        self._registry = registry
        self._budget_ledger = budget_ledger
        self._reconciliation = reconciliation
        self._validator = validator or BudgetInputValidator()
        self._alert_threshold = Decimal(str(alert_threshold))
        self._currency = currency_symbol

    def _money(self, amount: Decimal) -> str:
        return f"{self._currency}{amount:,.2f}"

    # -------------------------------------------------------------------------
    # Overflow rebalancing
    # -------------------------------------------------------------------------

    async def rebalance_for_edit(
        self,
        week_anchor: date,
        category_id: int,
        new_amount: Any,
        action_plan: ActionPlan = ActionPlan.SPEND,
        notes: str = "",
    ) -> RebalanceResult:
        """
        Set a category's planned amount, shrinking others if the week overflows.

        If `total_planned + (new - old)` exceeds the weekly limit, |new - old|
        is split evenly across every other non-essential category, each
        floored at zero. A category with no row this week counts as 0 and
        gets a 0 row written. Then the edit itself is written, whether or
        not the reductions absorbed the overflow.

        Raises:
            InvalidArgumentError: If the amount is invalid (nothing is written)
            NotFoundError: If the category doesn't exist (nothing is written)
            StorageError: If writing the edited category fails
        """
        amount, _ = self._validator.validate_allocation_amount(new_amount)
        await self._registry.require(category_id)

        allocations = await self._budget_ledger.get_allocations(week_anchor)
        planned = {view.category_id: view.planned_amount for view in allocations}
        action_plans = {view.category_id: view.action_plan for view in allocations}

        old_amount = planned.get(category_id, Decimal("0"))
        difference = amount - old_amount
        total_planned = sum(planned.values(), Decimal("0"))
        limit = await self._reconciliation.weekly_budget_limit()

        result = RebalanceResult(
            week_anchor=week_anchor,
            category_id=category_id,
            old_amount=old_amount,
            new_amount=amount,
        )

        if total_planned + difference > limit:
            result.overflow_detected = True
            eligible = [
                c for c in await self._registry.non_essential()
                if c.id != category_id
            ]

            if eligible:
                reduction = to_money(abs(difference) / len(eligible))
                result.reduction_per_category = reduction

                for category in eligible:
                    reduced = max(
                        Decimal("0"),
                        planned.get(category.id, Decimal("0")) - reduction,
                    )
                    try:
                        await self._budget_ledger.upsert_allocation(
                            week_anchor,
                            category.id,
                            reduced,
                            action_plan=action_plans.get(category.id, ActionPlan.SPEND),
                            notes=AUTO_REDUCED_NOTE,
                        )
                    except StorageError as e:
                        logger.warning(
                            "rebalance_write_skipped",
                            week_anchor=week_anchor.isoformat(),
                            category_id=category.id,
                            error=str(e),
                        )
                        result.skipped_categories.append(category.id)
                        continue
                    planned[category.id] = reduced
                    result.reduced_categories.append(category.id)

            logger.info(
                "overflow_rebalanced",
                week_anchor=week_anchor.isoformat(),
                category_id=category_id,
                difference=str(difference),
                reduced=len(result.reduced_categories),
                skipped=len(result.skipped_categories),
            )

        await self._budget_ledger.upsert_allocation(
            week_anchor,
            category_id,
            amount,
            action_plan=action_plan,
            notes=notes or SMART_ADJUSTMENT_NOTE,
        )
        planned[category_id] = amount
        result.total_planned_after = sum(planned.values(), Decimal("0"))
        return result

    # -------------------------------------------------------------------------
    # Next-week adjustment
    # -------------------------------------------------------------------------

    async def auto_adjust_next_week(self, week_anchor: date) -> int:
        """
        Nudge next week's allocations toward this week's spending.

        - variance > 300 and utilization > 120%: planned + variance * 0.2
        - variance < -300 and utilization < 60%: planned - |variance| * 0.3, min 0

        Next week is initialized first, so it is never left half-seeded.

        Returns:
            Number of categories adjusted
        """
        reconciliation = await self._reconciliation.reconcile_week(week_anchor)
        target_week = next_week(week_anchor)
        await self._budget_ledger.ensure_week_initialized(target_week)

        next_plans = {
            view.category_id: view.action_plan
            for view in await self._budget_ledger.get_allocations(target_week)
        }

        adjusted = 0
        for row in reconciliation.categories:
            if row.variance > ADJUST_VARIANCE and row.utilization_pct > ADJUST_OVER_UTILIZATION:
                new_amount = to_money(row.planned_amount + row.variance * ADJUST_INCREASE_RATE)
            elif row.variance < -ADJUST_VARIANCE and row.utilization_pct < ADJUST_UNDER_UTILIZATION:
                new_amount = to_money(max(
                    Decimal("0"),
                    row.planned_amount - abs(row.variance) * ADJUST_DECREASE_RATE,
                ))
            else:
                continue

            try:
                await self._budget_ledger.upsert_allocation(
                    target_week,
                    row.category.id,
                    new_amount,
                    action_plan=next_plans.get(row.category.id, ActionPlan.SPEND),
                    notes=AUTO_ADJUSTED_NOTE,
                )
            except StorageError as e:
                logger.warning(
                    "auto_adjust_write_skipped",
                    week_anchor=target_week.isoformat(),
                    category_id=row.category.id,
                    error=str(e),
                )
                continue
            adjusted += 1

        logger.info(
            "next_week_adjusted",
            week_anchor=week_anchor.isoformat(),
            next_week_anchor=target_week.isoformat(),
            adjustments_made=adjusted,
        )
        return adjusted

    # -------------------------------------------------------------------------
    # Read-only views
    # -------------------------------------------------------------------------

    @staticmethod
    def score(reconciliation: WeekReconciliation) -> float:
        """Health score of an already reconciled week."""
        score = 100.0

        for row in reconciliation.categories:
            if row.variance > 0:
                if row.planned_amount > 0:
                    overage_pct = float(row.variance / row.planned_amount * 100)
                    score -= min(20.0, overage_pct * 2)
                else:
                    score -= 20.0

        total_spent = reconciliation.total_actual
        limit = reconciliation.weekly_budget_limit

        if total_spent <= limit:
            score += 10.0

        spent_utilization = float(total_spent / limit * 100)
        if spent_utilization < 70:
            score -= (70 - spent_utilization) * 0.5

        return max(0.0, min(100.0, score))

    async def health_score(self, week_anchor: date) -> float:
        """
        Budget health score (0-100). Informational only.
        """
        return self.score(await self._reconciliation.reconcile_week(week_anchor))

    async def smart_reallocate(self, week_anchor: date) -> list[ReallocationSuggestion]:
        """Suggest (never apply) allocation changes for a week."""
        reconciliation = await self._reconciliation.reconcile_week(week_anchor)
        suggestions = []

        for row in reconciliation.categories:
            if (
                row.variance < -REALLOCATE_VARIANCE
                and row.utilization_pct < REALLOCATE_UNDER_UTILIZATION
            ):
                suggestions.append(ReallocationSuggestion(
                    category_id=row.category.id,
                    category=row.category.name,
                    current_amount=row.planned_amount,
                    suggested_reduction=to_money(abs(row.variance) * REALLOCATE_REDUCTION_RATE),
                    reason="Underutilized budget - can be reallocated",
                ))

            if row.variance > REALLOCATE_VARIANCE:
                suggestions.append(ReallocationSuggestion(
                    category_id=row.category.id,
                    category=row.category.name,
                    current_amount=row.planned_amount,
                    suggested_increase=to_money(row.variance * REALLOCATE_INCREASE_RATE),
                    reason="Consistently over budget - needs more allocation",
                ))

        return suggestions

    async def spending_alerts(
        self,
        week_anchor: date,
        previous_total: Optional[Decimal] = None,
    ) -> list[SpendingAlert]:
        """
        Alerts for a week's spending.

        Args:
            week_anchor: Week to inspect
            previous_total: Spending of the week before. Read from the
                            ledgers when not given.
        """
        reconciliation = await self._reconciliation.reconcile_week(week_anchor)
        total_spent = reconciliation.total_actual
        alerts = []

        if total_spent > self._alert_threshold:
            remaining = reconciliation.weekly_budget_limit - total_spent
            alerts.append(SpendingAlert(
                type=AlertType.WARNING,
                priority=AlertPriority.HIGH,
                message=(
                    f"You've spent {self._money(total_spent)} this week. "
                    f"Only {self._money(remaining)} remaining."
                ),
            ))

        for row in reconciliation.categories:
            if row.variance > ALERT_DANGER_VARIANCE:
                alert_type, priority = AlertType.DANGER, AlertPriority.HIGH
            elif row.variance > ALERT_WARNING_VARIANCE:
                alert_type, priority = AlertType.WARNING, AlertPriority.MEDIUM
            else:
                continue
            alerts.append(SpendingAlert(
                type=alert_type,
                priority=priority,
                message=f"{row.category.name} is {self._money(row.variance)} over budget",
                category_id=row.category.id,
            ))

        if previous_total is None:
            previous = await self._reconciliation.reconcile_week(previous_week(week_anchor))
            previous_total = previous.total_actual

        if previous_total > 0 and total_spent > 0:
            increase = float((total_spent - previous_total) / previous_total * 100)
            if increase > ALERT_WEEKLY_INCREASE_PCT:
                alerts.append(SpendingAlert(
                    type=AlertType.INFO,
                    priority=AlertPriority.MEDIUM,
                    message=f"Spending increased by {increase:.1f}% compared to last week",
                ))

        return alerts
