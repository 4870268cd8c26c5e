"""Services package."""

from budget_planner.services.storage import (
    AuditStorageInterface,
    BudgetStorage,
    ConnectionError,
    DuplicateError,
    InMemoryAuditStorage,
    InMemoryBudgetStorage,
    StorageError,
    create_storage,
)

__all__ = [
    # Storage services
    "AuditStorageInterface",
    "BudgetStorage",
    "ConnectionError",
    "DuplicateError",
    "InMemoryAuditStorage",
    "InMemoryBudgetStorage",
    "StorageError",
    "create_storage",
]
