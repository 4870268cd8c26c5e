"""Storage package: the persistence port and its backends."""

from typing import Optional

import structlog

from budget_planner.config import Settings, get_settings
from budget_planner.services.storage.interface import (
    AllocationStorageInterface,
    AuditStorageInterface,
    BudgetStorage,
    CategoryStorageInterface,
    ConnectionError,
    DuplicateError,
    ExpenseStorageInterface,
    StorageError,
    SummaryStorageInterface,
)
from budget_planner.services.storage.memory import (
    InMemoryAuditStorage,
    InMemoryBudgetStorage,
)


logger = structlog.get_logger(__name__)


def create_storage(
    settings: Optional[Settings] = None,
) -> tuple[BudgetStorage, AuditStorageInterface]:
    """
    Build the storage pair selected by AppSettings.storage_backend.

    The Sheets and SQL backends are imported lazily so the in-memory backend
    works without their configuration. Any failure to build the selected
    backend (bad settings, unreachable database) is raised as ConnectionError.
    """
    settings = settings or get_settings()
    app = settings.app

    if app.storage_backend == "memory":
        logger.warning("memory_storage_selected", detail="nothing is kept after exit")
        return InMemoryBudgetStorage(), InMemoryAuditStorage()

    try:
        if app.storage_backend == "google_sheets":
            from budget_planner.services.storage.google_sheets import (
                GoogleSheetsAuditStorage,
                GoogleSheetsBudgetStorage,
                GoogleSheetsClient,
            )

            client = GoogleSheetsClient()
            return GoogleSheetsBudgetStorage(client), GoogleSheetsAuditStorage(client)

        from budget_planner.services.storage.sqlite import (
            SqliteAuditStorage,
            SqliteBudgetStorage,
            create_session_factory,
        )

        sessions = create_session_factory(app.database_url)
        return (
            SqliteBudgetStorage(session_factory=sessions),
            SqliteAuditStorage(sessions),
        )
    except StorageError:
        raise
    except Exception as e:
        raise ConnectionError(
            f"Could not configure the {app.storage_backend} backend: {e}"
        ) from e


__all__ = [
    "AllocationStorageInterface",
    "AuditStorageInterface",
    "BudgetStorage",
    "CategoryStorageInterface",
    "ConnectionError",
    "DuplicateError",
    "ExpenseStorageInterface",
    "InMemoryAuditStorage",
    "InMemoryBudgetStorage",
    "StorageError",
    "SummaryStorageInterface",
    "create_storage",
]
