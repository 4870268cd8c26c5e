"""
Shared fixtures.

Fixtures run on the in-memory backend; the SQLite tests use files under
tmp_path. No test touches Google APIs.
"""

from datetime import date

import pytest

from budget_planner.adjustment import AutoAdjustmentEngine
from budget_planner.audit import AuditLogger
from budget_planner.config import AppSettings
from budget_planner.ledger import (
    DEFAULT_CATEGORIES,
    BudgetLedger,
    CategoryRegistry,
    ExpenseLedger,
    WeekResolver,
)
from budget_planner.models.budget import BudgetAllocation, Category
from budget_planner.orchestrator import BudgetPlanner
from budget_planner.reconciliation import ReconciliationEngine
from budget_planner.services.storage import (
    DuplicateError,
    InMemoryAuditStorage,
    InMemoryBudgetStorage,
    StorageError,
)
from budget_planner.validation import BudgetInputValidator


# A Wednesday, and the Wednesdays around it
WEEK = date(2025, 8, 27)
PREVIOUS_WEEK = date(2025, 8, 20)
NEXT_WEEK = date(2025, 9, 3)


class FlakyBudgetStorage(InMemoryBudgetStorage):
    """
    In-memory storage that fails allocation writes on demand.

    - failing_categories: every upsert for these ids raises StorageError
    - duplicate_once: the next upsert for these ids raises DuplicateError
    """

    def __init__(self, categories=None):
        super().__init__(categories)
        self.failing_categories: set[int] = set()
        self.duplicate_once: set[int] = set()
        self.upsert_calls = 0

    async def upsert_allocation(self, allocation: BudgetAllocation) -> bool:
        self.upsert_calls += 1
        if allocation.category_id in self.failing_categories:
            raise StorageError(f"write rejected for category {allocation.category_id}")
        if allocation.category_id in self.duplicate_once:
            self.duplicate_once.discard(allocation.category_id)
            raise DuplicateError("duplicate key")
        return await super().upsert_allocation(allocation)


@pytest.fixture
def app_settings() -> AppSettings:
    return AppSettings(_env_file=None)


@pytest.fixture
def validator(app_settings) -> BudgetInputValidator:
    return BudgetInputValidator(app_settings)


@pytest.fixture
def storage() -> FlakyBudgetStorage:
    return FlakyBudgetStorage(DEFAULT_CATEGORIES)


@pytest.fixture
def audit_storage() -> InMemoryAuditStorage:
    return InMemoryAuditStorage()


@pytest.fixture
def registry(storage) -> CategoryRegistry:
    return CategoryRegistry(storage)


@pytest.fixture
def budget_ledger(storage, registry, validator) -> BudgetLedger:
    return BudgetLedger(storage, registry, validator)


@pytest.fixture
def expense_ledger(storage, registry, budget_ledger, validator) -> ExpenseLedger:
    return ExpenseLedger(storage, registry, budget_ledger, validator)


@pytest.fixture
def reconciliation(storage, registry, budget_ledger, expense_ledger) -> ReconciliationEngine:
    return ReconciliationEngine(registry, budget_ledger, expense_ledger, storage)


@pytest.fixture
def adjustment(registry, budget_ledger, reconciliation, validator) -> AutoAdjustmentEngine:
    return AutoAdjustmentEngine(registry, budget_ledger, reconciliation, validator=validator)


@pytest.fixture
def weeks() -> WeekResolver:
    return WeekResolver()


@pytest.fixture
def planner(storage, audit_storage, app_settings) -> BudgetPlanner:
    return BudgetPlanner(
        storage=storage,
        audit_logger=AuditLogger(audit_storage),
        app_settings=app_settings,
    )


def make_category(
    category_id: int,
    name: str,
    is_essential: bool = False,
) -> Category:
    return Category(
        id=category_id,
        name=name,
        is_essential=is_essential,
        priority_order=category_id,
    )
