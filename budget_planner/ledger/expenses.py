"""
Expense Ledger

The transaction log, plus upkeep of the cached per-category totals.

After every add, update or delete the total for the affected
(week_anchor, category_id) pair is recomputed from the log and written to
the allocation row's `actual_amount`. If the week has no allocation row for
that category yet, nothing is written; Reconciliation recomputes the total
from the log anyway.

The week and category of an expense are fixed at creation.
"""

from datetime import date
from decimal import Decimal
from typing import Any, Optional
from uuid import UUID

import structlog

from budget_planner.errors import NotFoundError
from budget_planner.ledger.budget import BudgetLedger
from budget_planner.ledger.categories import CategoryRegistry
from budget_planner.models.budget import Expense, ExpenseUpdate, ExpenseView
from budget_planner.services.storage.interface import ExpenseStorageInterface
from budget_planner.validation import BudgetInputValidator


logger = structlog.get_logger(__name__)


def _newest_first(expenses: list[Expense]) -> list[Expense]:
    return sorted(expenses, key=lambda e: e.created_at, reverse=True)


class ExpenseLedger:
    """Add, edit and remove expenses, keeping cached totals in step."""

    def __init__(
        self,
        storage: ExpenseStorageInterface,
        registry: CategoryRegistry,
        budget_ledger: BudgetLedger,
        validator: Optional[BudgetInputValidator] = None,
    ):
        self._storage = storage
        self._registry = registry
        self._budget_ledger = budget_ledger
        self._validator = validator or BudgetInputValidator()

    async def actual_for(self, week_anchor: date, category_id: int) -> Decimal:
        """Exact sum of the live expenses of one category in one week."""
        expenses = await self._storage.get_expenses_by_week(week_anchor)
        return sum(
            (e.amount for e in expenses if e.category_id == category_id),
            Decimal("0"),
        )

    async def _refresh_aggregate(self, week_anchor: date, category_id: int) -> Decimal:
        total = await self.actual_for(week_anchor, category_id)
        updated = await self._budget_ledger.refresh_actual(week_anchor, category_id, total)
        if not updated:
            logger.debug(
                "actual_not_cached",
                week_anchor=week_anchor.isoformat(),
                category_id=category_id,
            )
        return total

    async def add_expense(
        self,
        week_anchor: date,
        category_id: int,
        amount: Any,
        description: str = "",
        payment_method: str = "",
        location: str = "",
    ) -> UUID:
        """
        Record an expense.

        Raises:
            InvalidArgumentError: If the amount is missing, not positive or malformed
            NotFoundError: If the category doesn't exist
        """
        value, warnings = self._validator.validate_expense_amount(amount)
        await self._registry.require(category_id)

        for issue in warnings:
            logger.warning("expense_warning", field=issue.field, message=issue.message)

        expense = Expense(
            week_anchor=week_anchor,
            category_id=category_id,
            amount=value,
            description=description or "",
            payment_method=payment_method or "",
            location=location or "",
        )
        expense_id = await self._storage.insert_expense(expense)
        await self._refresh_aggregate(week_anchor, category_id)
        return expense_id

    async def get_expense(self, expense_id: UUID) -> Optional[Expense]:
        return await self._storage.get_expense(expense_id)

    async def update_expense(
        self,
        expense_id: UUID,
        amount: Any,
        description: str = "",
        payment_method: str = "",
        location: str = "",
    ) -> bool:
        """
        Change the editable fields of an expense.

        The aggregate of the expense's original week and category is
        refreshed; those two fields are never changed here.

        Raises:
            InvalidArgumentError: If the amount is invalid
            NotFoundError: If the expense doesn't exist
        """
        value, _ = self._validator.validate_expense_amount(amount)

        existing = await self._storage.get_expense(expense_id)
        if existing is None:
            raise NotFoundError(f"Expense {expense_id} not found")

        fields = ExpenseUpdate(
            amount=value,
            description=description or "",
            payment_method=payment_method or "",
            location=location or "",
        )
        affected = await self._storage.update_expense(expense_id, fields)
        if affected == 0:
            raise NotFoundError(f"Expense {expense_id} not found")

        await self._refresh_aggregate(existing.week_anchor, existing.category_id)
        return True

    async def delete_expense(self, expense_id: UUID) -> bool:
        """
        Remove an expense.

        Raises:
            NotFoundError: If the expense doesn't exist
        """
        existing = await self._storage.get_expense(expense_id)
        if existing is None:
            raise NotFoundError(f"Expense {expense_id} not found")

        affected = await self._storage.delete_expense(expense_id)
        if affected == 0:
            raise NotFoundError(f"Expense {expense_id} not found")

        await self._refresh_aggregate(existing.week_anchor, existing.category_id)
        return True

    async def get_by_week(self, week_anchor: date) -> list[Expense]:
        return _newest_first(await self._storage.get_expenses_by_week(week_anchor))

    async def get_by_date_range(self, start: date, end: date) -> list[Expense]:
        """Expenses whose week anchor lies in [start, end], newest first."""
        if end < start:
            start, end = end, start
        return _newest_first(await self._storage.get_expenses_between(start, end))

    async def get_by_category(self, week_anchor: date, category_id: int) -> list[Expense]:
        return [
            e for e in await self.get_by_week(week_anchor)
            if e.category_id == category_id
        ]

    async def with_categories(self, expenses: list[Expense]) -> list[ExpenseView]:
        """Join expenses with their category name and bank label."""
        categories = await self._registry.by_id()
        views = []
        for expense in expenses:
            category = categories.get(expense.category_id)
            views.append(ExpenseView(
                expense=expense,
                category_name=category.name if category else "",
                bank_label=category.bank_label if category else "",
            ))
        return views
