"""
Analytics Summarizer

Read-only aggregation of the expense log across several weeks: trends,
top categories, next-week predictions, monthly forecasts and savings
suggestions.

A window of N weeks is the N week anchors ending at the week that contains
`today` (the current week included). Every method takes `today` so results
are reproducible; it defaults to the real date.

Averages are per week over the whole window: a category that spent 400 in
one week of a four-week window averages 100, not 400.
"""

import calendar
from collections import defaultdict
from datetime import date
from decimal import Decimal
from statistics import pstdev
from typing import Optional

from budget_planner.ledger.categories import CategoryRegistry
from budget_planner.ledger.expenses import ExpenseLedger
from budget_planner.ledger.weeks import DateLike, WeekResolver
from budget_planner.models.analytics import (
    CategoryPrediction,
    CategorySpending,
    MonthlyForecast,
    SavingsRecommendation,
    WeeklyTrend,
)
from budget_planner.models.budget import Category, Expense, to_money
from budget_planner.reconciliation.engine import ReconciliationEngine


PREDICTION_BUFFER = Decimal("1.1")
SAVINGS_RATE = Decimal("0.2")
SAVINGS_MIN_WEEKLY_SPEND = Decimal("100")
SAVINGS_MIN_POTENTIAL = Decimal("50")


def _spending_by_category(
    expenses: list[Expense],
    categories: dict[int, Category],
) -> list[CategorySpending]:
    totals: dict[int, Decimal] = defaultdict(lambda: Decimal("0"))
    counts: dict[int, int] = defaultdict(int)
    for expense in expenses:
        totals[expense.category_id] += expense.amount
        counts[expense.category_id] += 1

    rows = []
    for category_id, total in totals.items():
        category = categories.get(category_id)
        if category is None:
            continue
        rows.append(CategorySpending(
            category_id=category_id,
            category_name=category.name,
            bank_label=category.bank_label,
            total_spent=total,
            transaction_count=counts[category_id],
            avg_transaction=to_money(total / counts[category_id]),
        ))

    rows.sort(key=lambda r: (-r.total_spent, categories[r.category_id].priority_order))
    return rows


class AnalyticsSummarizer:
    """Multi-week views over the expense log."""

    def __init__(
        self,
        registry: CategoryRegistry,
        expense_ledger: ExpenseLedger,
        reconciliation: ReconciliationEngine,
        weeks: Optional[WeekResolver] = None,
        currency_symbol: str = "₱",
    ):
        self._registry = registry
        self._expense_ledger = expense_ledger
        self._reconciliation = reconciliation
        self._weeks = weeks or WeekResolver()
        self._currency = currency_symbol

    async def _window(
        self,
        weeks: int,
        today: Optional[DateLike],
    ) -> tuple[list[date], list[Expense]]:
        anchors = self._weeks.weeks_back(self._weeks.current_week(today), max(weeks, 1))
        expenses = await self._expense_ledger.get_by_date_range(anchors[-1], anchors[0])
        return anchors, expenses

    async def spending_trends(
        self,
        weeks: int = 4,
        today: Optional[DateLike] = None,
    ) -> list[WeeklyTrend]:
        """Per-week totals for weeks that had spending, newest first."""
        _, expenses = await self._window(weeks, today)

        by_week: dict[date, list[Decimal]] = defaultdict(list)
        for expense in expenses:
            by_week[expense.week_anchor].append(expense.amount)

        trends = []
        for week_anchor in sorted(by_week, reverse=True):
            amounts = by_week[week_anchor]
            total = sum(amounts, Decimal("0"))
            trends.append(WeeklyTrend(
                week_anchor=week_anchor,
                total_spent=total,
                transaction_count=len(amounts),
                avg_transaction=to_money(total / len(amounts)),
            ))
        return trends

    async def top_spending_categories(
        self,
        weeks: int = 4,
        today: Optional[DateLike] = None,
        limit: int = 10,
    ) -> list[CategorySpending]:
        _, expenses = await self._window(weeks, today)
        rows = _spending_by_category(expenses, await self._registry.by_id())
        return rows[:limit]

    async def predict_next_week_budget(
        self,
        weeks_history: int = 4,
        today: Optional[DateLike] = None,
    ) -> list[CategoryPrediction]:
        """
        Suggested allocations for next week.

        Suggested amount is the weekly average plus a 10% buffer. If the
        suggestions add up to more than the weekly limit, all of them are
        scaled down by the same ratio.
        """
        anchors, expenses = await self._window(weeks_history, today)
        categories = await self._registry.by_id()
        n_weeks = len(anchors)

        weekly: dict[int, dict[date, Decimal]] = defaultdict(
            lambda: defaultdict(lambda: Decimal("0"))
        )
        counts: dict[int, int] = defaultdict(int)
        for expense in expenses:
            weekly[expense.category_id][expense.week_anchor] += expense.amount
            counts[expense.category_id] += 1

        raw = []
        for category_id, per_week in weekly.items():
            category = categories.get(category_id)
            if category is None:
                continue
            series = [per_week.get(anchor, Decimal("0")) for anchor in anchors]
            average = sum(series, Decimal("0")) / n_weeks
            volatility = pstdev([float(v) for v in series]) if n_weeks > 1 else 0.0
            raw.append((category, average, volatility, counts[category_id]))

        suggested = {c.id: avg * PREDICTION_BUFFER for c, avg, _, _ in raw}
        total = sum(suggested.values(), Decimal("0"))
        limit = await self._reconciliation.weekly_budget_limit()
        if total > limit:
            ratio = limit / total
            suggested = {cid: amount * ratio for cid, amount in suggested.items()}

        predictions = [
            CategoryPrediction(
                category_id=category.id,
                category_name=category.name,
                priority_order=category.priority_order,
                avg_weekly_spending=to_money(average),
                spending_volatility=to_money(volatility),
                transaction_frequency=count,
                suggested_amount=to_money(suggested[category.id]),
            )
            for category, average, volatility, count in raw
        ]
        predictions.sort(key=lambda p: p.priority_order)
        return predictions

    async def monthly_forecast(self, month: int, year: int) -> MonthlyForecast:
        """Spending of the weeks anchored inside a calendar month."""
        days_in_month = calendar.monthrange(year, month)[1]
        start = date(year, month, 1)
        end = date(year, month, days_in_month)

        expenses = await self._expense_ledger.get_by_date_range(start, end)
        rows = _spending_by_category(expenses, await self._registry.by_id())
        total = sum((r.total_spent for r in rows), Decimal("0"))

        return MonthlyForecast(
            month=month,
            year=year,
            total_spent=total,
            categories=rows,
            daily_average=to_money(total / days_in_month),
        )

    async def savings_recommendations(
        self,
        weeks: int = 4,
        today: Optional[DateLike] = None,
    ) -> list[SavingsRecommendation]:
        """
        Non-essential categories worth trimming by 20%.

        Only categories averaging more than 100 a week, where 20% of that
        is more than 50, are suggested.
        """
        anchors, expenses = await self._window(weeks, today)
        categories = await self._registry.by_id()
        n_weeks = len(anchors)

        recommendations = []
        for row in _spending_by_category(expenses, categories):
            if categories[row.category_id].is_essential:
                continue
            average = row.total_spent / n_weeks
            if average <= SAVINGS_MIN_WEEKLY_SPEND:
                continue
            potential = to_money(average * SAVINGS_RATE)
            if potential <= SAVINGS_MIN_POTENTIAL:
                continue
            recommendations.append(SavingsRecommendation(
                category_id=row.category_id,
                category=row.category_name,
                current_spending=to_money(average),
                potential_savings=potential,
                suggestion=(
                    f"Consider reducing {row.category_name} spending by 20% "
                    f"to save {self._currency}{potential:,.2f} per week"
                ),
            ))
        return recommendations
