"""
Abstract Storage Interface (the Persistence Port)

DESIGN DECISION: We define an abstract interface for storage operations.
This allows us to:
1. Run the same ledgers on Google Sheets or in memory
2. Use in-memory storage for testing
3. Keep the reconciliation and adjustment rules free of storage details

Exactly one backend is chosen per deployment, by configuration.
The interface is intentionally narrow - single-row reads and writes only,
no joins. Joins happen in the ledgers, in Python.
"""

from abc import ABC, abstractmethod
from datetime import date
from decimal import Decimal
from typing import Optional
from uuid import UUID

from budget_planner.errors import BudgetError, ErrorKind
from budget_planner.models.audit import AuditEvent
from budget_planner.models.budget import (
    BudgetAllocation,
    BudgetConfig,
    Category,
    Expense,
    ExpenseUpdate,
)


class CategoryStorageInterface(ABC):
    """Reference data: the list of spending categories."""

    @abstractmethod
    async def list_categories(self) -> list[Category]:
        """
        List all categories.

        Returns:
            Categories ordered by priority_order
        """
        pass

    @abstractmethod
    async def save_category(self, category: Category) -> bool:
        """
        Insert or replace a category by id. Used at setup time only.

        Returns:
            True if saved successfully
        """
        pass


class AllocationStorageInterface(ABC):
    """
    Planned allocations, keyed by (week_anchor, category_id).

    Implementations MUST write by that natural key. Two upserts for the
    same key leave exactly one row.
    """

    @abstractmethod
    async def get_allocations_by_week(self, week_anchor: date) -> list[BudgetAllocation]:
        """
        Get every allocation row of a week (unordered).
        """
        pass

    @abstractmethod
    async def get_allocation(
        self,
        week_anchor: date,
        category_id: int,
    ) -> Optional[BudgetAllocation]:
        """
        Get one allocation row by its natural key.

        Returns:
            The row if found, None otherwise
        """
        pass

    @abstractmethod
    async def upsert_allocation(self, allocation: BudgetAllocation) -> bool:
        """
        Insert or replace an allocation by (week_anchor, category_id).

        The cached actual_amount of an existing row is preserved.

        Raises:
            DuplicateError: If the backend reports a uniqueness violation
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    async def update_actual_amount(
        self,
        week_anchor: date,
        category_id: int,
        amount: Decimal,
    ) -> int:
        """
        Refresh the cached actual amount of an existing row.

        Never creates a row.

        Returns:
            Number of rows affected (0 or 1)
        """
        pass

    @abstractmethod
    async def list_allocation_weeks(self) -> list[date]:
        """
        List every week anchor that has at least one allocation row.

        Returns:
            Week anchors, oldest first
        """
        pass


class ExpenseStorageInterface(ABC):
    """The expense transaction log."""

    @abstractmethod
    async def get_expenses_by_week(self, week_anchor: date) -> list[Expense]:
        """Get every expense of a week."""
        pass

    @abstractmethod
    async def get_expenses_between(
        self,
        start: date,
        end: date,
    ) -> list[Expense]:
        """
        Get expenses whose week anchor falls within [start, end].
        """
        pass

    @abstractmethod
    async def get_expense(self, expense_id: UUID) -> Optional[Expense]:
        """
        Retrieve an expense by its ID.

        Returns:
            The expense if found, None otherwise
        """
        pass

    @abstractmethod
    async def insert_expense(self, expense: Expense) -> UUID:
        """
        Append an expense.

        Returns:
            The expense ID
        """
        pass

    @abstractmethod
    async def update_expense(self, expense_id: UUID, fields: ExpenseUpdate) -> int:
        """
        Apply the editable fields to an existing expense.

        Returns:
            Number of rows affected (0 if the expense doesn't exist)
        """
        pass

    @abstractmethod
    async def delete_expense(self, expense_id: UUID) -> int:
        """
        Delete an expense.

        Returns:
            Number of rows affected (0 if the expense doesn't exist)
        """
        pass


class SummaryStorageInterface(ABC):
    """Process-wide budget configuration."""

    @abstractmethod
    async def get_config(self) -> Optional[BudgetConfig]:
        """
        Get the stored configuration.

        Returns:
            The config if one was ever saved, None otherwise
        """
        pass

    @abstractmethod
    async def set_config(self, config: BudgetConfig) -> bool:
        """Replace the stored configuration."""
        pass


class BudgetStorage(
    CategoryStorageInterface,
    AllocationStorageInterface,
    ExpenseStorageInterface,
    SummaryStorageInterface,
):
    """
    Everything the ledgers need from one backend.

    Any storage implementation (Google Sheets, in-memory, etc.)
    must implement all of these methods.
    """
    pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """
        Get all events for a correlation ID (e.g., one budget edit).

        Returns:
            List of related events in chronological order
        """
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """
        Get the most recent audit events.

        Returns:
            List of recent events (newest first)
        """
        pass


class StorageError(BudgetError):
    """Base exception for storage operations."""

    kind = ErrorKind.PERSISTENCE_FAILURE


class DuplicateError(StorageError):
    """The backend reported a natural-key uniqueness violation."""

    kind = ErrorKind.CONFLICT_OR_RACE


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass
