"""
In-Memory Storage Implementation

Keeps every collection in dictionaries keyed the same way the Sheets
backend keys its rows. Used for tests and for ephemeral sessions.

Rows are copied on the way in and on the way out, so callers can never
mutate stored state by holding on to a model.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Iterable, Optional
from uuid import UUID

from budget_planner.models.audit import AuditEvent
from budget_planner.models.budget import (
    BudgetAllocation,
    BudgetConfig,
    Category,
    Expense,
    ExpenseUpdate,
)
from budget_planner.services.storage.interface import (
    AuditStorageInterface,
    BudgetStorage,
)


class InMemoryBudgetStorage(BudgetStorage):
    """Dictionary-backed implementation of every ledger collection."""

    def __init__(self, categories: Optional[Iterable[Category]] = None):
        self._categories: dict[int, Category] = {}
        self._allocations: dict[tuple[date, int], BudgetAllocation] = {}
        self._expenses: dict[UUID, Expense] = {}
        self._config: Optional[BudgetConfig] = None

        for category in categories or []:
            self._categories[category.id] = category

    # -- categories ---------------------------------------------------------

    async def list_categories(self) -> list[Category]:
        return sorted(self._categories.values(), key=lambda c: c.priority_order)

    async def save_category(self, category: Category) -> bool:
        self._categories[category.id] = category
        return True

    # -- allocations --------------------------------------------------------

    async def get_allocations_by_week(self, week_anchor: date) -> list[BudgetAllocation]:
        return [
            row.model_copy()
            for (week, _), row in self._allocations.items()
            if week == week_anchor
        ]

    async def get_allocation(
        self,
        week_anchor: date,
        category_id: int,
    ) -> Optional[BudgetAllocation]:
        row = self._allocations.get((week_anchor, category_id))
        return row.model_copy() if row else None

    async def upsert_allocation(self, allocation: BudgetAllocation) -> bool:
        existing = self._allocations.get(allocation.key)
        stored = allocation.model_copy(update={"updated_at": datetime.utcnow()})
        if existing is not None:
            stored = stored.model_copy(update={"actual_amount": existing.actual_amount})
        self._allocations[allocation.key] = stored
        return True

    async def update_actual_amount(
        self,
        week_anchor: date,
        category_id: int,
        amount: Decimal,
    ) -> int:
        key = (week_anchor, category_id)
        existing = self._allocations.get(key)
        if existing is None:
            return 0
        self._allocations[key] = existing.model_copy(update={"actual_amount": amount})
        return 1

    async def list_allocation_weeks(self) -> list[date]:
        return sorted({week for week, _ in self._allocations})

    # -- expenses -----------------------------------------------------------

    async def get_expenses_by_week(self, week_anchor: date) -> list[Expense]:
        return [
            expense.model_copy()
            for expense in self._expenses.values()
            if expense.week_anchor == week_anchor
        ]

    async def get_expenses_between(self, start: date, end: date) -> list[Expense]:
        return [
            expense.model_copy()
            for expense in self._expenses.values()
            if start <= expense.week_anchor <= end
        ]

    async def get_expense(self, expense_id: UUID) -> Optional[Expense]:
        expense = self._expenses.get(expense_id)
        return expense.model_copy() if expense else None

    async def insert_expense(self, expense: Expense) -> UUID:
        self._expenses[expense.id] = expense.model_copy()
        return expense.id

    async def update_expense(self, expense_id: UUID, fields: ExpenseUpdate) -> int:
        existing = self._expenses.get(expense_id)
        if existing is None:
            return 0
        self._expenses[expense_id] = existing.model_copy(update=fields.model_dump())
        return 1

    async def delete_expense(self, expense_id: UUID) -> int:
        return 1 if self._expenses.pop(expense_id, None) is not None else 0

    # -- config -------------------------------------------------------------

    async def get_config(self) -> Optional[BudgetConfig]:
        return self._config.model_copy() if self._config else None

    async def set_config(self, config: BudgetConfig) -> bool:
        self._config = config.model_copy()
        return True


class InMemoryAuditStorage(AuditStorageInterface):
    """List-backed audit log."""

    def __init__(self):
        self._events: list[AuditEvent] = []

    async def append_event(self, event: AuditEvent) -> bool:
        self._events.append(event)
        return True

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        return [e for e in self._events if e.correlation_id == correlation_id]

    async def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        # Append order is chronological; timestamps can tie
        return self._events[::-1][:limit]
