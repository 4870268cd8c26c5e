"""
Google Sheets Storage Implementation

DESIGN DECISION: Google Sheets is offered as the persistent backend because:
1. The user can view and hand-edit their budget directly in Sheets
2. No database setup required
3. Built-in backup (Google's infrastructure)

TRADEOFFS:
- No transactions and no unique constraints. Allocations are upserted by
  scanning for the (week_anchor, category_id) row; if two writers ever race
  and leave duplicate rows, the next upsert for that key updates the first
  row and deletes the rest, so the sheet converges to one row per key.
- Limited query capabilities (we filter in Python)

The implementation follows the abstract interface, so the ledgers never
know which backend they run on.
"""

import json
from datetime import date, datetime
from decimal import Decimal
from typing import Callable, Optional
from uuid import UUID

import gspread
import structlog
from google.oauth2.service_account import Credentials
from tenacity import retry, stop_after_attempt, wait_exponential

from budget_planner.config import get_settings
from budget_planner.models.audit import AuditEvent, AuditEventType, AuditSeverity
from budget_planner.models.budget import (
    ActionPlan,
    BudgetAllocation,
    BudgetConfig,
    Category,
    Expense,
    ExpenseUpdate,
)
from budget_planner.services.storage.interface import (
    AuditStorageInterface,
    BudgetStorage,
    ConnectionError,
    StorageError,
)


logger = structlog.get_logger(__name__)


CATEGORY_COLUMNS = [
    "id",
    "name",
    "bank_label",
    "description",
    "is_essential",
    "priority_order",
]

ALLOCATION_COLUMNS = [
    "week_anchor",
    "category_id",
    "planned_amount",
    "action_plan",
    "notes",
    "actual_amount",
    "updated_at",
]

EXPENSE_COLUMNS = [
    "id",
    "week_anchor",
    "category_id",
    "amount",
    "description",
    "payment_method",
    "location",
    "created_at",
]

CONFIG_COLUMNS = [
    "key",
    "value",
    "updated_at",
]

AUDIT_COLUMNS = [
    "event_id",
    "timestamp",
    "event_type",
    "severity",
    "entity_type",
    "entity_id",
    "correlation_id",
    "description",
    "details_json",
    "error_message",
    "is_user_action",
]

WEEKLY_LIMIT_KEY = "weekly_budget_limit"

# 1-based column index of the cached actual amount in the allocations sheet
ACTUAL_AMOUNT_COL = ALLOCATION_COLUMNS.index("actual_amount") + 1


def _safe_getter(row: list) -> Callable[..., str]:
    """Build an accessor that tolerates short rows."""
    def safe_get(index: int, default: str = "") -> str:
        try:
            return row[index] if row[index] else default
        except IndexError:
            return default
    return safe_get


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and provides retry logic for API calls.
    """

    def __init__(self):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._settings = get_settings().google_sheets

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def connect(self) -> gspread.Client:
        """
        Establish connection to Google Sheets.

        Uses service account credentials for authentication.
        """
        if self._client is None:
            try:
                scopes = [
                    "https://www.googleapis.com/auth/spreadsheets",
                    "https://www.googleapis.com/auth/drive",
                ]
                credentials = Credentials.from_service_account_file(
                    self._settings.credentials_path,
                    scopes=scopes,
                )
                self._client = gspread.authorize(credentials)
            except FileNotFoundError:
                raise ConnectionError(
                    f"Google credentials file not found: {self._settings.credentials_path}"
                )
            except Exception as e:
                raise ConnectionError(f"Failed to connect to Google Sheets: {e}")

        return self._client

    def get_spreadsheet(self) -> gspread.Spreadsheet:
        """Get the configured spreadsheet."""
        if self._spreadsheet is None:
            client = self.connect()
            try:
                self._spreadsheet = client.open_by_key(
                    self._settings.spreadsheet_id
                )
            except gspread.SpreadsheetNotFound:
                raise ConnectionError(
                    f"Spreadsheet not found: {self._settings.spreadsheet_id}"
                )
        return self._spreadsheet

    def get_worksheet(
        self,
        title: str,
        columns: list[str],
        rows: int = 1000,
    ) -> gspread.Worksheet:
        """Get a worksheet by title, creating it with a header row if missing."""
        spreadsheet = self.get_spreadsheet()
        try:
            sheet = spreadsheet.worksheet(title)
        except gspread.WorksheetNotFound:
            sheet = spreadsheet.add_worksheet(
                title=title,
                rows=rows,
                cols=len(columns),
            )
            sheet.append_row(columns)
        return sheet

    def get_categories_sheet(self) -> gspread.Worksheet:
        return self.get_worksheet(self._settings.categories_sheet_name, CATEGORY_COLUMNS, rows=100)

    def get_allocations_sheet(self) -> gspread.Worksheet:
        return self.get_worksheet(self._settings.allocations_sheet_name, ALLOCATION_COLUMNS)

    def get_expenses_sheet(self) -> gspread.Worksheet:
        return self.get_worksheet(self._settings.expenses_sheet_name, EXPENSE_COLUMNS, rows=5000)

    def get_config_sheet(self) -> gspread.Worksheet:
        return self.get_worksheet(self._settings.config_sheet_name, CONFIG_COLUMNS, rows=20)

    def get_audit_sheet(self) -> gspread.Worksheet:
        return self.get_worksheet(self._settings.audit_sheet_name, AUDIT_COLUMNS, rows=5000)


class GoogleSheetsBudgetStorage(BudgetStorage):
    """
    Google Sheets implementation of the ledger collections.

    One worksheet per collection, one row per record, header in row 1.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    # -- row conversion -----------------------------------------------------

    def _category_to_row(self, category: Category) -> list:
        return [
            str(category.id),
            category.name,
            category.bank_label,
            category.description,
            str(category.is_essential),
            str(category.priority_order),
        ]

    def _row_to_category(self, row: list) -> Category:
        safe_get = _safe_getter(row)
        return Category(
            id=int(safe_get(0)),
            name=safe_get(1),
            bank_label=safe_get(2),
            description=safe_get(3),
            is_essential=safe_get(4).lower() in ("true", "1"),
            priority_order=int(safe_get(5, "0")),
        )

    def _allocation_to_row(self, allocation: BudgetAllocation) -> list:
        return [
            allocation.week_anchor.isoformat(),
            str(allocation.category_id),
            str(allocation.planned_amount),
            allocation.action_plan.value,
            allocation.notes,
            str(allocation.actual_amount),
            allocation.updated_at.isoformat(),
        ]

    def _row_to_allocation(self, row: list) -> BudgetAllocation:
        safe_get = _safe_getter(row)
        return BudgetAllocation(
            week_anchor=date.fromisoformat(safe_get(0)),
            category_id=int(safe_get(1)),
            planned_amount=Decimal(safe_get(2, "0")),
            action_plan=ActionPlan(safe_get(3, ActionPlan.SPEND.value)),
            notes=safe_get(4),
            actual_amount=Decimal(safe_get(5, "0")),
            updated_at=(
                datetime.fromisoformat(safe_get(6))
                if safe_get(6) else datetime.utcnow()
            ),
        )

    def _expense_to_row(self, expense: Expense) -> list:
        return [
            str(expense.id),
            expense.week_anchor.isoformat(),
            str(expense.category_id),
            str(expense.amount),
            expense.description,
            expense.payment_method,
            expense.location,
            expense.created_at.isoformat(),
        ]

    def _row_to_expense(self, row: list) -> Expense:
        safe_get = _safe_getter(row)
        return Expense(
            id=UUID(safe_get(0)),
            week_anchor=date.fromisoformat(safe_get(1)),
            category_id=int(safe_get(2)),
            amount=Decimal(safe_get(3)),
            description=safe_get(4),
            payment_method=safe_get(5),
            location=safe_get(6),
            created_at=datetime.fromisoformat(safe_get(7)),
        )

    def _parse_rows(self, rows: list[list], parse: Callable) -> list:
        """Parse data rows, skipping blank and malformed ones."""
        parsed = []
        for row in rows:
            if not row or not row[0]:
                continue
            try:
                parsed.append(parse(row))
            except Exception:
                logger.warning("malformed_sheet_row", row=row)
                continue
        return parsed

    def _update_row(self, sheet, row_number: int, values: list) -> None:
        for col_idx, value in enumerate(values, start=1):
            sheet.update_cell(row_number, col_idx, value)

    # -- categories ---------------------------------------------------------

    async def list_categories(self) -> list[Category]:
        try:
            sheet = self._client.get_categories_sheet()
            rows = sheet.get_all_values()[1:]
        except Exception as e:
            raise StorageError(f"Failed to list categories: {e}")

        categories = self._parse_rows(rows, self._row_to_category)
        categories.sort(key=lambda c: c.priority_order)
        return categories

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def save_category(self, category: Category) -> bool:
        try:
            sheet = self._client.get_categories_sheet()
            all_rows = sheet.get_all_values()
            new_row = self._category_to_row(category)

            for idx, row in enumerate(all_rows[1:], start=2):
                if row and row[0] == str(category.id):
                    self._update_row(sheet, idx, new_row)
                    return True

            sheet.append_row(new_row, value_input_option="RAW")
            return True
        except Exception as e:
            raise StorageError(f"Failed to save category: {e}")

    # -- allocations --------------------------------------------------------

    def _matching_allocation_rows(
        self,
        all_rows: list[list],
        week_anchor: date,
        category_id: int,
    ) -> list[tuple[int, list]]:
        """Find (sheet row number, row) pairs for a natural key."""
        week_str = week_anchor.isoformat()
        category_str = str(category_id)
        return [
            (idx, row)
            for idx, row in enumerate(all_rows[1:], start=2)
            if len(row) > 1 and row[0] == week_str and row[1] == category_str
        ]

    async def get_allocations_by_week(self, week_anchor: date) -> list[BudgetAllocation]:
        try:
            sheet = self._client.get_allocations_sheet()
            rows = sheet.get_all_values()[1:]
        except Exception as e:
            raise StorageError(f"Failed to get allocations: {e}")

        week_str = week_anchor.isoformat()
        allocations = {}
        for allocation in self._parse_rows(
            [row for row in rows if row and row[0] == week_str],
            self._row_to_allocation,
        ):
            # First row wins if duplicates slipped in
            allocations.setdefault(allocation.category_id, allocation)
        return list(allocations.values())

    async def get_allocation(
        self,
        week_anchor: date,
        category_id: int,
    ) -> Optional[BudgetAllocation]:
        try:
            sheet = self._client.get_allocations_sheet()
            all_rows = sheet.get_all_values()
        except Exception as e:
            raise StorageError(f"Failed to get allocation: {e}")

        matches = self._matching_allocation_rows(all_rows, week_anchor, category_id)
        if not matches:
            return None
        return self._row_to_allocation(matches[0][1])

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def upsert_allocation(self, allocation: BudgetAllocation) -> bool:
        """Insert or replace by (week_anchor, category_id)."""
        try:
            sheet = self._client.get_allocations_sheet()
            all_rows = sheet.get_all_values()
            matches = self._matching_allocation_rows(
                all_rows, allocation.week_anchor, allocation.category_id
            )

            stored = allocation.model_copy(update={"updated_at": datetime.utcnow()})

            if not matches:
                sheet.append_row(self._allocation_to_row(stored), value_input_option="RAW")
                return True

            first_idx, first_row = matches[0]
            existing = self._row_to_allocation(first_row)
            stored = stored.model_copy(update={"actual_amount": existing.actual_amount})
            self._update_row(sheet, first_idx, self._allocation_to_row(stored))

            # Collapse duplicates left behind by a race; delete bottom-up
            for idx, _ in reversed(matches[1:]):
                sheet.delete_rows(idx)
            if len(matches) > 1:
                logger.warning(
                    "duplicate_allocation_rows_collapsed",
                    week_anchor=allocation.week_anchor.isoformat(),
                    category_id=allocation.category_id,
                    removed=len(matches) - 1,
                )
            return True
        except Exception as e:
            raise StorageError(f"Failed to upsert allocation: {e}")

    async def update_actual_amount(
        self,
        week_anchor: date,
        category_id: int,
        amount: Decimal,
    ) -> int:
        try:
            sheet = self._client.get_allocations_sheet()
            all_rows = sheet.get_all_values()
            matches = self._matching_allocation_rows(all_rows, week_anchor, category_id)
            for idx, _ in matches:
                sheet.update_cell(idx, ACTUAL_AMOUNT_COL, str(amount))
            return min(len(matches), 1)
        except Exception as e:
            raise StorageError(f"Failed to update actual amount: {e}")

    async def list_allocation_weeks(self) -> list[date]:
        try:
            sheet = self._client.get_allocations_sheet()
            rows = sheet.get_all_values()[1:]
        except Exception as e:
            raise StorageError(f"Failed to list weeks: {e}")

        weeks = set()
        for row in rows:
            if not row or not row[0]:
                continue
            try:
                weeks.add(date.fromisoformat(row[0]))
            except ValueError:
                continue
        return sorted(weeks)

    # -- expenses -----------------------------------------------------------

    async def _all_expenses(self) -> list[Expense]:
        try:
            sheet = self._client.get_expenses_sheet()
            rows = sheet.get_all_values()[1:]
        except Exception as e:
            raise StorageError(f"Failed to read expenses: {e}")
        return self._parse_rows(rows, self._row_to_expense)

    async def get_expenses_by_week(self, week_anchor: date) -> list[Expense]:
        return [e for e in await self._all_expenses() if e.week_anchor == week_anchor]

    async def get_expenses_between(self, start: date, end: date) -> list[Expense]:
        return [
            e for e in await self._all_expenses()
            if start <= e.week_anchor <= end
        ]

    async def get_expense(self, expense_id: UUID) -> Optional[Expense]:
        for expense in await self._all_expenses():
            if expense.id == expense_id:
                return expense
        return None

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def insert_expense(self, expense: Expense) -> UUID:
        try:
            sheet = self._client.get_expenses_sheet()
            sheet.append_row(self._expense_to_row(expense), value_input_option="RAW")
            return expense.id
        except Exception as e:
            raise StorageError(f"Failed to save expense: {e}")

    async def update_expense(self, expense_id: UUID, fields: ExpenseUpdate) -> int:
        try:
            sheet = self._client.get_expenses_sheet()
            all_rows = sheet.get_all_values()

            for idx, row in enumerate(all_rows[1:], start=2):
                if row and row[0] == str(expense_id):
                    existing = self._row_to_expense(row)
                    updated = existing.model_copy(update=fields.model_dump())
                    self._update_row(sheet, idx, self._expense_to_row(updated))
                    return 1

            return 0
        except Exception as e:
            raise StorageError(f"Failed to update expense: {e}")

    async def delete_expense(self, expense_id: UUID) -> int:
        try:
            sheet = self._client.get_expenses_sheet()
            all_rows = sheet.get_all_values()

            for idx, row in enumerate(all_rows[1:], start=2):
                if row and row[0] == str(expense_id):
                    sheet.delete_rows(idx)
                    return 1

            return 0
        except Exception as e:
            raise StorageError(f"Failed to delete expense: {e}")

    # -- config -------------------------------------------------------------

    async def get_config(self) -> Optional[BudgetConfig]:
        try:
            sheet = self._client.get_config_sheet()
            rows = sheet.get_all_values()[1:]
        except Exception as e:
            raise StorageError(f"Failed to read config: {e}")

        for row in rows:
            safe_get = _safe_getter(row)
            if safe_get(0) == WEEKLY_LIMIT_KEY and safe_get(1):
                return BudgetConfig(
                    weekly_budget_limit=Decimal(safe_get(1)),
                    updated_at=(
                        datetime.fromisoformat(safe_get(2))
                        if safe_get(2) else datetime.utcnow()
                    ),
                )
        return None

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def set_config(self, config: BudgetConfig) -> bool:
        try:
            sheet = self._client.get_config_sheet()
            all_rows = sheet.get_all_values()
            new_row = [
                WEEKLY_LIMIT_KEY,
                str(config.weekly_budget_limit),
                config.updated_at.isoformat(),
            ]

            for idx, row in enumerate(all_rows[1:], start=2):
                if row and row[0] == WEEKLY_LIMIT_KEY:
                    self._update_row(sheet, idx, new_row)
                    return True

            sheet.append_row(new_row, value_input_option="RAW")
            return True
        except Exception as e:
            raise StorageError(f"Failed to save config: {e}")


class GoogleSheetsAuditStorage(AuditStorageInterface):
    """
    Google Sheets implementation of audit log storage.

    Audit events are append-only.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _row_to_event(self, row: list) -> AuditEvent:
        """Convert a spreadsheet row to an AuditEvent."""
        safe_get = _safe_getter(row)
        return AuditEvent(
            event_id=UUID(safe_get(0)),
            timestamp=datetime.fromisoformat(safe_get(1)),
            event_type=AuditEventType(safe_get(2)),
            severity=AuditSeverity(safe_get(3)),
            entity_type=safe_get(4) or None,
            entity_id=safe_get(5) or None,
            correlation_id=UUID(safe_get(6)) if safe_get(6) else None,
            description=safe_get(7),
            details=json.loads(safe_get(8)) if safe_get(8) else {},
            error_message=safe_get(9) or None,
            is_user_action=safe_get(10).lower() == "true",
        )

    async def append_event(self, event: AuditEvent) -> bool:
        """Append an audit event."""
        try:
            sheet = self._client.get_audit_sheet()
            sheet.append_row(event.to_sheets_row(), value_input_option="RAW")
            return True
        except Exception as e:
            # Audit logging must not break the main flow
            logger.warning(
                "audit_sheet_write_failed",
                error=str(e),
                event_id=str(event.event_id),
            )
            return False

    async def _all_events(self) -> list[AuditEvent]:
        try:
            sheet = self._client.get_audit_sheet()
            all_rows = sheet.get_all_values()[1:]
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")

        events = []
        for row in all_rows:
            if row and row[0]:
                try:
                    events.append(self._row_to_event(row))
                except Exception:
                    continue
        return events

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """Get events by correlation ID."""
        events = [
            e for e in await self._all_events()
            if e.correlation_id == correlation_id
        ]
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """Get recent events, newest first."""
        events = await self._all_events()
        events.sort(key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
