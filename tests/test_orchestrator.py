"""Tests for the BudgetPlanner facade."""

import pytest
from datetime import date
from decimal import Decimal
from uuid import uuid4

from budget_planner.config import Settings, validate_all_settings
from budget_planner.errors import ErrorKind, InvalidArgumentError, NotFoundError
from budget_planner.models.audit import AuditEventType
from budget_planner.models.budget import ActionPlan
from budget_planner.orchestrator import BudgetPlanner, create_app_components
from budget_planner.services.storage import (
    ConnectionError,
    InMemoryBudgetStorage,
    StorageError,
    create_storage,
)

from conftest import NEXT_WEEK, PREVIOUS_WEEK, WEEK


# Monday of WEEK
MONDAY = date(2025, 9, 1)


async def event_types(audit_storage) -> list[AuditEventType]:
    events = await audit_storage.get_recent_events()
    return [e.event_type for e in reversed(events)]


class TestWeeklyBudget:
    """Reads resolve the week anchor and seed the week."""

    async def test_first_read_seeds_defaults(self, planner, audit_storage):
        result = await planner.get_weekly_budget(MONDAY)

        assert result.week_anchor == WEEK
        assert len(result.categories) == 11
        assert result.total_planned == Decimal("12000.00")

        events = await audit_storage.get_recent_events()
        assert [e.event_type for e in events] == [AuditEventType.WEEK_INITIALIZED]
        assert events[0].details == {"source": "default", "rows_written": 11}

    async def test_second_read_is_not_audited(self, planner, audit_storage):
        await planner.get_weekly_budget(MONDAY)
        await planner.get_weekly_budget("2025-08-28")
        assert len(await audit_storage.get_recent_events()) == 1

    async def test_rollover_from_previous_week(self, planner):
        await planner.set_weekly_budget(PREVIOUS_WEEK, 3, "1800")
        result = await planner.get_weekly_budget(WEEK)
        assert result.for_category(3).planned_amount == Decimal("1800")

    async def test_current_week(self, planner):
        result = await planner.get_current_week_budget(today=MONDAY)
        assert result.week_anchor == WEEK

    async def test_next_week_is_not_seeded(self, planner):
        assert await planner.get_next_week_budget(today=MONDAY) == []

    async def test_invalid_date(self, planner):
        with pytest.raises(InvalidArgumentError):
            await planner.get_weekly_budget("someday")


class TestSetWeeklyBudget:
    """Edits are validated, rebalanced and audited."""

    async def test_within_limit(self, planner, audit_storage):
        await planner.get_weekly_budget(WEEK)
        result = await planner.set_weekly_budget(MONDAY, 3, "1500")

        assert result.overflow_detected is False
        assert result.old_amount == Decimal("1750.00")
        assert await planner.budget_ledger.get_planned_amount(WEEK, 3) == Decimal("1500")

        events = await audit_storage.get_recent_events()
        assert events[0].event_type == AuditEventType.ALLOCATION_UPSERTED
        assert events[0].entity_id == "2025-08-27:3"

    async def test_overflow_rebalances_and_audits(self, planner, audit_storage):
        # Defaults already sum to the 12000 limit
        result = await planner.set_weekly_budget(WEEK, 6, "2050", action_plan="spend")

        assert result.overflow_detected is True
        assert result.reduction_per_category == Decimal("250.00")
        assert result.reduced_categories == [8, 9, 10, 11]
        assert await planner.budget_ledger.get_planned_amount(WEEK, 9) == Decimal("3400.00")
        assert await planner.budget_ledger.get_planned_amount(WEEK, 8) == Decimal("0")
        # Zero rows can't give anything back
        assert result.total_planned_after == Decimal("12500.00")

        assert await event_types(audit_storage) == [
            AuditEventType.WEEK_INITIALIZED,
            AuditEventType.OVERFLOW_REBALANCED,
            AuditEventType.ALLOCATION_UPSERTED,
        ]

    async def test_one_correlation_id_per_request(self, planner, audit_storage):
        correlation_id = uuid4()
        await planner.set_weekly_budget(WEEK, 6, "2050", correlation_id=correlation_id)

        events = await audit_storage.get_events_by_correlation_id(correlation_id)
        assert len(events) == 3

    async def test_save_action_plan(self, planner):
        await planner.set_weekly_budget(WEEK, 7, "1000", action_plan="save", notes="Fund")
        views = await planner.budget_ledger.get_allocations(WEEK)
        savings = next(v for v in views if v.category_id == 7)
        assert savings.action_plan == ActionPlan.SAVE
        assert savings.notes == "Fund"

    @pytest.mark.parametrize(
        "category_id, amount, action_plan",
        [
            (3, "-100", "spend"),
            (3, "12.345", "spend"),
            (3, "abc", "spend"),
            ("x", "100", "spend"),
            (3, "100", "invest"),
        ],
    )
    async def test_invalid_input_is_rejected_and_audited(
        self, planner, storage, audit_storage, category_id, amount, action_plan
    ):
        with pytest.raises(InvalidArgumentError):
            await planner.set_weekly_budget(WEEK, category_id, amount, action_plan=action_plan)

        assert storage.upsert_calls == 0
        events = await audit_storage.get_recent_events()
        assert [e.event_type for e in events] == [AuditEventType.VALIDATION_FAILED]
        assert events[0].details["operation"] == "set_weekly_budget"

    async def test_unknown_category(self, planner, storage):
        with pytest.raises(NotFoundError):
            await planner.set_weekly_budget(WEEK, 42, "100")
        assert storage.upsert_calls == 0

    async def test_storage_failure_is_audited(self, planner, storage, audit_storage):
        await planner.get_weekly_budget(WEEK)
        storage.failing_categories.add(3)

        with pytest.raises(StorageError):
            await planner.set_weekly_budget(WEEK, 3, "100")

        events = await audit_storage.get_recent_events()
        assert events[0].event_type == AuditEventType.STORAGE_ERROR
        assert events[0].entity_id == "2025-08-27:3"


class TestWeeklyLimit:
    async def test_update_limit(self, planner, audit_storage):
        config = await planner.update_weekly_budget_limit("15000")

        assert config.weekly_budget_limit == Decimal("15000")
        assert await planner.get_weekly_budget_limit() == Decimal("15000")

        events = await audit_storage.get_recent_events()
        assert events[0].event_type == AuditEventType.BUDGET_LIMIT_UPDATED
        assert events[0].details == {"old_limit": "12000.00", "new_limit": "15000.00"}

    async def test_reject_zero_limit(self, planner):
        with pytest.raises(InvalidArgumentError):
            await planner.update_weekly_budget_limit("0")
        assert await planner.get_weekly_budget_limit() == Decimal("12000.00")

    async def test_limit_drives_overflow(self, planner):
        await planner.update_weekly_budget_limit("20000")
        result = await planner.set_weekly_budget(WEEK, 6, "2050")
        assert result.overflow_detected is False


class TestExpenses:
    """Expense CRUD through the facade."""

    async def test_add_expense_to_week_of_day(self, planner, audit_storage):
        await planner.get_weekly_budget(WEEK)
        expense_id = await planner.add_expense(MONDAY, 2, "125.50", description="Market")

        expenses = await planner.get_weekly_expenses(WEEK)
        assert [e.expense.id for e in expenses] == [expense_id]
        assert expenses[0].category_name == "Groceries"

        result = await planner.get_weekly_budget(WEEK)
        assert result.for_category(2).actual_amount == Decimal("125.50")

        events = await audit_storage.get_recent_events()
        assert events[0].event_type == AuditEventType.EXPENSE_ADDED
        assert events[0].details["week_anchor"] == "2025-08-27"
        assert events[0].details["amount"] == "125.50"

    async def test_add_expense_does_not_seed(self, planner):
        await planner.add_expense(WEEK, 2, "10")
        assert await planner.budget_ledger.get_allocations(WEEK) == []

    async def test_update_and_delete(self, planner, audit_storage):
        await planner.get_weekly_budget(WEEK)
        expense_id = await planner.add_expense(WEEK, 2, "100")

        assert await planner.update_expense(str(expense_id), "80") is True
        result = await planner.get_weekly_budget(WEEK)
        assert result.for_category(2).actual_amount == Decimal("80")

        assert await planner.delete_expense(expense_id) is True
        result = await planner.get_weekly_budget(WEEK)
        assert result.for_category(2).actual_amount == Decimal("0")

        assert (await event_types(audit_storage))[-3:] == [
            AuditEventType.EXPENSE_ADDED,
            AuditEventType.EXPENSE_UPDATED,
            AuditEventType.EXPENSE_DELETED,
        ]

    async def test_rejects_bad_expense_id(self, planner, audit_storage):
        with pytest.raises(InvalidArgumentError):
            await planner.delete_expense("not-a-uuid")
        events = await audit_storage.get_recent_events()
        assert events[0].event_type == AuditEventType.VALIDATION_FAILED

    async def test_rejects_zero_expense(self, planner, audit_storage):
        with pytest.raises(InvalidArgumentError):
            await planner.add_expense(WEEK, 2, "0")
        events = await audit_storage.get_recent_events()
        assert events[0].details["operation"] == "add_expense"

    async def test_expenses_by_date_range(self, planner):
        await planner.add_expense(PREVIOUS_WEEK, 2, "10")
        await planner.add_expense(WEEK, 2, "20")
        await planner.add_expense(NEXT_WEEK, 2, "30")

        expenses = await planner.get_expenses_by_date_range("2025-08-21", MONDAY)
        assert sorted(e.expense.amount for e in expenses) == [Decimal("10"), Decimal("20")]


class TestSmartFeatures:
    async def test_auto_adjust_next_week(self, planner, audit_storage):
        await planner.get_weekly_budget(WEEK)
        await planner.add_expense(WEEK, 6, "1500")   # planned 1050

        adjusted = await planner.auto_adjust_next_week(MONDAY)

        # Daily Expense goes up; untouched allocations above 300 go down
        assert adjusted == 9
        ledger = planner.budget_ledger
        assert await ledger.get_planned_amount(NEXT_WEEK, 6) == Decimal("1140.00")
        assert await ledger.get_planned_amount(NEXT_WEEK, 3) == Decimal("1225.00")
        assert await ledger.get_planned_amount(NEXT_WEEK, 8) == Decimal("0.00")

        types = await event_types(audit_storage)
        assert types[-2:] == [AuditEventType.WEEK_INITIALIZED, AuditEventType.NEXT_WEEK_ADJUSTED]

    async def test_health_and_alerts(self, planner):
        await planner.get_weekly_budget(WEEK)
        await planner.add_expense(WEEK, 10, "2600")

        assert 0 <= await planner.get_budget_health_score(WEEK) <= 100
        alerts = await planner.get_spending_alerts(WEEK)
        assert [a.category_id for a in alerts] == [10]

    async def test_smart_reallocate(self, planner):
        await planner.get_weekly_budget(WEEK)
        suggestions = await planner.smart_reallocate(WEEK)
        # Nothing spent: every allocation above 200 is underused
        assert {s.category_id for s in suggestions} == {1, 2, 3, 4, 5, 6, 7, 9, 10}

    async def test_monthly_forecast_rejects_bad_month(self, planner):
        with pytest.raises(InvalidArgumentError):
            await planner.get_monthly_forecast(13, 2025)

    @pytest.mark.parametrize("year", [0, -1, 10000])
    async def test_monthly_forecast_rejects_out_of_range_year(self, planner, year):
        with pytest.raises(InvalidArgumentError) as exc_info:
            await planner.get_monthly_forecast(8, year)
        assert exc_info.value.issues[0].field == "year"


class TestSetup:
    async def test_setup_seeds_categories(self, app_settings):
        planner = BudgetPlanner(InMemoryBudgetStorage(), app_settings=app_settings)
        assert await planner.setup() == 11
        assert len(await planner.get_categories()) == 11

    async def test_create_app_components_in_memory(self, monkeypatch):
        monkeypatch.setenv("APP_STORAGE_BACKEND", "memory")
        settings = Settings(_env_file=None)
        planner = create_app_components(settings)
        await planner.setup()
        result = await planner.get_weekly_budget(WEEK)
        assert result.total_planned == Decimal("12000.00")

    async def test_sqlite_is_the_default_backend(self, monkeypatch, tmp_path):
        """Without a backend setting, state is kept in the database file."""
        monkeypatch.delenv("APP_STORAGE_BACKEND", raising=False)
        db_file = tmp_path / "budget.db"
        monkeypatch.setenv("APP_DATABASE_URL", f"sqlite:///{db_file}")

        planner = create_app_components(Settings(_env_file=None))
        await planner.setup()
        await planner.set_weekly_budget(WEEK, 3, "1500")

        reopened = create_app_components(Settings(_env_file=None))
        assert await reopened.budget_ledger.get_planned_amount(WEEK, 3) == Decimal("1500.00")
        assert db_file.exists()

    def test_misconfigured_sheets_backend_fails_clearly(self, monkeypatch):
        monkeypatch.setenv("APP_STORAGE_BACKEND", "google_sheets")
        monkeypatch.delenv("GOOGLE_SHEETS_CREDENTIALS_PATH", raising=False)
        monkeypatch.delenv("GOOGLE_SHEETS_SPREADSHEET_ID", raising=False)

        with pytest.raises(ConnectionError) as exc_info:
            create_app_components(Settings(_env_file=None))
        assert "google_sheets" in str(exc_info.value)
        assert exc_info.value.kind == ErrorKind.PERSISTENCE_FAILURE

    def test_sheets_settings_errors_surface_as_connection_error(self, monkeypatch):
        """Building the backend directly wraps settings errors too."""
        monkeypatch.setenv("APP_STORAGE_BACKEND", "google_sheets")
        monkeypatch.delenv("GOOGLE_SHEETS_CREDENTIALS_PATH", raising=False)
        monkeypatch.delenv("GOOGLE_SHEETS_SPREADSHEET_ID", raising=False)

        with pytest.raises(ConnectionError):
            create_storage(Settings(_env_file=None))

    def test_bad_database_url_fails_clearly(self, monkeypatch):
        monkeypatch.setenv("APP_STORAGE_BACKEND", "sqlite")
        monkeypatch.setenv("APP_DATABASE_URL", "not a database url")

        with pytest.raises(ConnectionError):
            create_app_components(Settings(_env_file=None))

    def test_empty_database_url_is_reported(self, monkeypatch):
        monkeypatch.setenv("APP_STORAGE_BACKEND", "sqlite")
        monkeypatch.setenv("APP_DATABASE_URL", " ")

        checks = validate_all_settings(Settings(_env_file=None))
        assert checks["database"] is False
        assert "APP_DATABASE_URL" in checks["database_error"]
