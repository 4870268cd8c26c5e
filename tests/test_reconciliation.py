"""Tests for the Reconciliation Engine."""

import pytest
from decimal import Decimal

from budget_planner.models.budget import BudgetStatus
from budget_planner.reconciliation import classify, utilization

from conftest import WEEK


class TestClassify:
    """Status thresholds are absolute amounts."""

    @pytest.mark.parametrize(
        "variance, expected",
        [
            (Decimal("250"), BudgetStatus.OVER_BUDGET),
            (Decimal("200.01"), BudgetStatus.OVER_BUDGET),
            (Decimal("200"), BudgetStatus.CLOSE_TO_LIMIT),
            (Decimal("150"), BudgetStatus.CLOSE_TO_LIMIT),
            (Decimal("0.01"), BudgetStatus.CLOSE_TO_LIMIT),
            (Decimal("0"), BudgetStatus.ON_TRACK),
            (Decimal("-50"), BudgetStatus.ON_TRACK),
        ],
    )
    def test_thresholds(self, variance, expected):
        assert classify(variance) == expected

    def test_utilization_zero_planned(self):
        assert utilization(Decimal("100"), Decimal("0")) == 0.0

    def test_utilization(self):
        assert utilization(Decimal("1400"), Decimal("1000")) == pytest.approx(140.0)


class TestReconcileWeek:
    """Tests for planned-vs-actual rows and the weekly rollup."""

    async def test_rows_and_rollup(self, budget_ledger, expense_ledger, reconciliation):
        await budget_ledger.upsert_allocation(WEEK, 2, Decimal("500"))
        await budget_ledger.upsert_allocation(WEEK, 6, Decimal("1000"))
        await expense_ledger.add_expense(WEEK, 2, Decimal("750"))
        await expense_ledger.add_expense(WEEK, 6, Decimal("400"))
        await expense_ledger.add_expense(WEEK, 6, Decimal("100"))

        result = await reconciliation.reconcile_week(WEEK)

        groceries = result.for_category(2)
        assert groceries.actual_amount == Decimal("750")
        assert groceries.variance == Decimal("250")
        assert groceries.remaining == Decimal("-250")
        assert groceries.status == BudgetStatus.OVER_BUDGET
        assert groceries.utilization_pct == pytest.approx(150.0)
        assert groceries.transaction_count == 1

        daily = result.for_category(6)
        assert daily.actual_amount == Decimal("500")
        assert daily.status == BudgetStatus.ON_TRACK
        assert daily.utilization_pct == pytest.approx(50.0)
        assert daily.transaction_count == 2

        assert result.total_planned == Decimal("1500")
        assert result.total_actual == Decimal("1250")
        assert result.total_remaining == Decimal("250")
        assert result.weekly_budget_limit == Decimal("12000.00")
        assert result.budget_utilization == pytest.approx(12.5)

    async def test_boundary_is_close_to_limit(self, budget_ledger, expense_ledger, reconciliation):
        await budget_ledger.upsert_allocation(WEEK, 2, Decimal("500"))
        await expense_ledger.add_expense(WEEK, 2, Decimal("700"))

        result = await reconciliation.reconcile_week(WEEK)
        assert result.for_category(2).status == BudgetStatus.CLOSE_TO_LIMIT

    async def test_unallocated_spending_appears_with_zero_plan(
        self, budget_ledger, expense_ledger, reconciliation
    ):
        await budget_ledger.upsert_allocation(WEEK, 6, Decimal("1000"))
        await expense_ledger.add_expense(WEEK, 10, Decimal("300"))

        result = await reconciliation.reconcile_week(WEEK)

        misc = result.for_category(10)
        assert misc.planned_amount == Decimal("0")
        assert misc.utilization_pct == 0.0
        assert misc.status == BudgetStatus.OVER_BUDGET
        assert [r.category.id for r in result.categories] == [6, 10]

    async def test_priority_order(self, budget_ledger, reconciliation):
        await budget_ledger.ensure_week_initialized(WEEK)
        result = await reconciliation.reconcile_week(WEEK)
        assert [r.category.priority_order for r in result.categories] == list(range(1, 12))

    async def test_recomputes_instead_of_trusting_cache(
        self, budget_ledger, expense_ledger, reconciliation, storage
    ):
        await budget_ledger.upsert_allocation(WEEK, 2, Decimal("500"))
        await expense_ledger.add_expense(WEEK, 2, Decimal("120"))
        # Corrupt the cached column directly
        await storage.update_actual_amount(WEEK, 2, Decimal("9999"))

        result = await reconciliation.reconcile_week(WEEK)
        assert result.for_category(2).actual_amount == Decimal("120")

    async def test_empty_week(self, reconciliation):
        result = await reconciliation.reconcile_week(WEEK)
        assert result.categories == []
        assert result.total_planned == Decimal("0")
        assert result.budget_utilization == 0.0

    async def test_configured_limit(self, budget_ledger, reconciliation):
        await reconciliation.set_weekly_budget_limit(Decimal("15000"))
        await budget_ledger.ensure_week_initialized(WEEK)

        result = await reconciliation.reconcile_week(WEEK)
        assert result.weekly_budget_limit == Decimal("15000.00")
        assert result.budget_utilization == pytest.approx(80.0)

    async def test_weekly_summary(self, budget_ledger, expense_ledger, reconciliation):
        await budget_ledger.ensure_week_initialized(WEEK)
        await expense_ledger.add_expense(WEEK, 3, Decimal("1750"))

        summary = await reconciliation.weekly_summary(WEEK)
        assert summary.total_planned == Decimal("12000.00")
        assert summary.total_spent == Decimal("1750")
        assert summary.category_count == 11
        assert summary.weekly_budget_limit == Decimal("12000.00")
