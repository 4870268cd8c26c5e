"""
Budget Ledger

Planned allocations per (week, category).

DESIGN DECISION: Initializing a week and reading it are two separate steps.
`ensure_week_initialized` is the only code path that creates rows for a
new week; `get_allocations` never writes. Callers that want the
"first read seeds the week" behaviour call both, in that order.

CONCURRENCY: Two requests reading the same empty week at once would both
see "no rows" and both seed. Initialization is therefore serialized per
week anchor with an asyncio.Lock, and every write is an upsert on the
natural key, so even an unserialized race converges to one row per key.
"""

import asyncio
import weakref
from datetime import date
from decimal import Decimal
from typing import Any, Optional

import structlog
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
)

from budget_planner.ledger.categories import DEFAULT_ALLOCATIONS, CategoryRegistry
from budget_planner.ledger.weeks import previous_week
from budget_planner.models.budget import (
    ActionPlan,
    AllocationView,
    BudgetAllocation,
    InitializationResult,
    InitializationSource,
)
from budget_planner.services.storage.interface import (
    AllocationStorageInterface,
    DuplicateError,
)
from budget_planner.validation import BudgetInputValidator


logger = structlog.get_logger(__name__)

DEFAULT_ALLOCATION_NOTE = "Default allocation"


class BudgetLedger:
    """
    Reads and writes planned allocations.

    Every write goes through `upsert_allocation` or the seeding in
    `ensure_week_initialized`; both are keyed by (week_anchor, category_id).
    """

    def __init__(
        self,
        storage: AllocationStorageInterface,
        registry: CategoryRegistry,
        validator: Optional[BudgetInputValidator] = None,
    ):
        self._storage = storage
        self._registry = registry
        self._validator = validator or BudgetInputValidator()
        # An entry lives only while some caller holds or waits on the lock
        self._week_locks: weakref.WeakValueDictionary[date, asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )

    def _lock_for(self, week_anchor: date) -> asyncio.Lock:
        lock = self._week_locks.get(week_anchor)
        if lock is None:
            lock = self._week_locks[week_anchor] = asyncio.Lock()
        return lock

    @retry(
        retry=retry_if_exception_type(DuplicateError),
        stop=stop_after_attempt(2),
        reraise=True,
    )
    async def _write(self, allocation: BudgetAllocation) -> None:
        """Upsert one row; a reported key collision is retried once."""
        await self._storage.upsert_allocation(allocation)

    async def get_allocations(self, week_anchor: date) -> list[AllocationView]:
        """
        Allocations of a week joined with their categories.

        Ordered by category priority. `actual_amount` is the cached
        aggregate; Reconciliation recomputes the real figure.
        """
        categories = await self._registry.by_id()
        rows = await self._storage.get_allocations_by_week(week_anchor)

        views = []
        for row in rows:
            category = categories.get(row.category_id)
            if category is None:
                logger.warning(
                    "allocation_for_unknown_category",
                    week_anchor=week_anchor.isoformat(),
                    category_id=row.category_id,
                )
                continue
            views.append(AllocationView(
                week_anchor=row.week_anchor,
                category=category,
                planned_amount=row.planned_amount,
                action_plan=row.action_plan,
                notes=row.notes,
                actual_amount=row.actual_amount,
                updated_at=row.updated_at,
            ))

        views.sort(key=lambda v: v.category.priority_order)
        return views

    async def get_planned_amount(self, week_anchor: date, category_id: int) -> Decimal:
        row = await self._storage.get_allocation(week_anchor, category_id)
        return row.planned_amount if row else Decimal("0")

    async def upsert_allocation(
        self,
        week_anchor: date,
        category_id: int,
        amount: Any,
        action_plan: ActionPlan = ActionPlan.SPEND,
        notes: str = "",
    ) -> BudgetAllocation:
        """
        Write the planned amount of one category in one week.

        Replaces any existing row for the pair. Nothing else is touched.

        Raises:
            InvalidArgumentError: If the amount is missing, negative or malformed
            NotFoundError: If the category doesn't exist
            StorageError: If the backend fails
        """
        planned, warnings = self._validator.validate_allocation_amount(amount)
        await self._registry.require(category_id)

        for issue in warnings:
            logger.warning("allocation_warning", field=issue.field, message=issue.message)

        allocation = BudgetAllocation(
            week_anchor=week_anchor,
            category_id=category_id,
            planned_amount=planned,
            action_plan=ActionPlan(action_plan),
            notes=notes or "",
        )
        await self._write(allocation)
        return allocation

    async def ensure_week_initialized(self, week_anchor: date) -> InitializationResult:
        """
        Make sure a week has allocation rows.

        - Rows exist: no-op
        - Previous week has rows: copy its amounts and action plans
        - Otherwise: seed the default allocation table

        Idempotent.
        """
        async with self._lock_for(week_anchor):
            if await self._storage.get_allocations_by_week(week_anchor):
                return InitializationResult(
                    week_anchor=week_anchor,
                    source=InitializationSource.EXISTING,
                )

            previous = await self._storage.get_allocations_by_week(
                previous_week(week_anchor)
            )

            if previous:
                source = InitializationSource.ROLLOVER
                seeds = [
                    BudgetAllocation(
                        week_anchor=week_anchor,
                        category_id=row.category_id,
                        planned_amount=row.planned_amount,
                        action_plan=row.action_plan,
                    )
                    for row in previous
                ]
            else:
                source = InitializationSource.DEFAULT
                seeds = [
                    BudgetAllocation(
                        week_anchor=week_anchor,
                        category_id=category.id,
                        planned_amount=DEFAULT_ALLOCATIONS.get(category.id, Decimal("0")),
                        notes=DEFAULT_ALLOCATION_NOTE,
                    )
                    for category in await self._registry.list_categories()
                ]

            for allocation in seeds:
                await self._write(allocation)

            logger.info(
                "week_initialized",
                week_anchor=week_anchor.isoformat(),
                source=source.value,
                rows_written=len(seeds),
            )
            return InitializationResult(
                week_anchor=week_anchor,
                source=source,
                rows_written=len(seeds),
            )

    async def refresh_actual(
        self,
        week_anchor: date,
        category_id: int,
        amount: Decimal,
    ) -> bool:
        """
        Store the recomputed expense total on the allocation row.

        Returns False when the week has no row for the category; no row
        is created in that case.
        """
        return await self._storage.update_actual_amount(week_anchor, category_id, amount) > 0

    async def list_weeks(self) -> list[date]:
        return await self._storage.list_allocation_weeks()
