"""
Tests for the SQLite backend.

Each test gets its own database file under tmp_path.
"""

import pytest
from datetime import date, datetime
from decimal import Decimal
from uuid import uuid4

from sqlalchemy.exc import IntegrityError

from budget_planner.errors import ErrorKind
from budget_planner.ledger import DEFAULT_CATEGORIES, BudgetLedger, CategoryRegistry
from budget_planner.models.audit import AuditEvent, AuditEventType
from budget_planner.models.budget import (
    ActionPlan,
    BudgetAllocation,
    BudgetConfig,
    Category,
    Expense,
    ExpenseUpdate,
)
from budget_planner.services.storage import ConnectionError, DuplicateError
from budget_planner.services.storage.sqlite import (
    AllocationRow,
    SqliteAuditStorage,
    SqliteBudgetStorage,
    create_session_factory,
)

from conftest import PREVIOUS_WEEK, WEEK


@pytest.fixture
def database_url(tmp_path) -> str:
    return f"sqlite:///{tmp_path / 'budget.db'}"


@pytest.fixture
def sessions(database_url):
    return create_session_factory(database_url)


@pytest.fixture
def db(sessions) -> SqliteBudgetStorage:
    return SqliteBudgetStorage(session_factory=sessions)


def allocation(week=WEEK, category_id=3, planned="1750.00", **kwargs) -> BudgetAllocation:
    return BudgetAllocation(
        week_anchor=week,
        category_id=category_id,
        planned_amount=Decimal(planned),
        **kwargs,
    )


class TestCategories:
    async def test_save_and_list_in_priority_order(self, db):
        await db.save_category(Category(id=2, name="Groceries", priority_order=2, is_essential=True))
        await db.save_category(Category(id=1, name="Phone", priority_order=1))

        categories = await db.list_categories()
        assert [c.name for c in categories] == ["Phone", "Groceries"]
        assert categories[1].is_essential is True

    async def test_save_replaces_existing_row(self, db):
        await db.save_category(Category(id=1, name="Phone", priority_order=1))
        await db.save_category(Category(id=1, name="Mobile", priority_order=1))

        categories = await db.list_categories()
        assert [c.name for c in categories] == ["Mobile"]


class TestAllocations:
    async def test_upsert_inserts_then_updates_in_place(self, db):
        await db.upsert_allocation(allocation(planned="1750.00"))
        await db.upsert_allocation(allocation(planned="1500.00", action_plan=ActionPlan.SAVE))

        rows = await db.get_allocations_by_week(WEEK)
        assert len(rows) == 1
        assert rows[0].planned_amount == Decimal("1500.00")
        assert rows[0].action_plan == ActionPlan.SAVE

    async def test_upsert_keeps_cached_actual(self, db):
        await db.upsert_allocation(allocation())
        assert await db.update_actual_amount(WEEK, 3, Decimal("420.00")) == 1

        await db.upsert_allocation(allocation(planned="2000.00"))

        stored = await db.get_allocation(WEEK, 3)
        assert stored.actual_amount == Decimal("420.00")
        assert stored.planned_amount == Decimal("2000.00")

    async def test_amounts_round_trip_exactly(self, db):
        await db.upsert_allocation(allocation(planned="0.10"))
        assert (await db.get_allocation(WEEK, 3)).planned_amount == Decimal("0.10")

    async def test_update_actual_without_row(self, db):
        assert await db.update_actual_amount(WEEK, 3, Decimal("1")) == 0

    async def test_weeks_listed_oldest_first(self, db):
        await db.upsert_allocation(allocation())
        await db.upsert_allocation(allocation(week=PREVIOUS_WEEK))
        await db.upsert_allocation(allocation(week=PREVIOUS_WEEK, category_id=4))

        assert len(await db.get_allocations_by_week(WEEK)) == 1
        assert await db.list_allocation_weeks() == [PREVIOUS_WEEK, WEEK]

    async def test_racing_insert_reports_duplicate(self, db, monkeypatch):
        """A row inserted after the lookup surfaces as DuplicateError."""
        await db.upsert_allocation(allocation(planned="100.00"))
        monkeypatch.setattr(
            SqliteBudgetStorage, "_find_allocation", staticmethod(lambda *args: None)
        )

        with pytest.raises(DuplicateError) as exc_info:
            await db.upsert_allocation(allocation(planned="200.00"))
        assert exc_info.value.kind == ErrorKind.CONFLICT_OR_RACE

    async def test_racing_insert_is_retried_by_the_ledger(self, db, monkeypatch, validator):
        """The ledger retries once; the second attempt takes the update path."""
        await db.save_category(Category(id=3, name="Rent", priority_order=3, is_essential=True))
        await db.upsert_allocation(allocation(planned="100.00"))

        lookups = []
        real_find = SqliteBudgetStorage._find_allocation

        def find_once_stale(session, week_anchor, category_id):
            lookups.append(category_id)
            if len(lookups) == 1:
                return None
            return real_find(session, week_anchor, category_id)

        monkeypatch.setattr(SqliteBudgetStorage, "_find_allocation", staticmethod(find_once_stale))
        ledger = BudgetLedger(db, CategoryRegistry(db), validator)

        await ledger.upsert_allocation(WEEK, 3, Decimal("200.00"))

        assert len(lookups) == 2
        assert (await db.get_allocation(WEEK, 3)).planned_amount == Decimal("200.00")

    def test_unique_key_enforced(self, sessions):
        with sessions() as session:
            for _ in range(2):
                session.add(AllocationRow(
                    week_anchor=WEEK,
                    category_id=3,
                    planned_amount="1.00",
                    updated_at=datetime.utcnow(),
                ))
            with pytest.raises(IntegrityError):
                session.commit()


class TestExpenses:
    async def test_insert_update_delete(self, db):
        expense = Expense(week_anchor=WEEK, category_id=2, amount=Decimal("99.50"))
        expense_id = await db.insert_expense(expense)

        stored = await db.get_expense(expense_id)
        assert stored.amount == Decimal("99.50")
        assert stored.week_anchor == WEEK

        changed = await db.update_expense(
            expense_id, ExpenseUpdate(amount=Decimal("80.00"), description="Market")
        )
        assert changed == 1
        stored = await db.get_expense(expense_id)
        assert stored.amount == Decimal("80.00")
        assert stored.description == "Market"
        assert stored.category_id == 2

        assert await db.delete_expense(expense_id) == 1
        assert await db.get_expense(expense_id) is None
        assert await db.delete_expense(expense_id) == 0

    async def test_update_missing_expense(self, db):
        assert await db.update_expense(uuid4(), ExpenseUpdate(amount=Decimal("1"))) == 0

    async def test_by_week_and_between(self, db):
        await db.insert_expense(Expense(week_anchor=WEEK, category_id=2, amount=Decimal("1")))
        await db.insert_expense(Expense(week_anchor=PREVIOUS_WEEK, category_id=2, amount=Decimal("2")))
        await db.insert_expense(Expense(week_anchor=date(2025, 8, 13), category_id=2, amount=Decimal("3")))

        assert len(await db.get_expenses_by_week(WEEK)) == 1
        between = await db.get_expenses_between(PREVIOUS_WEEK, WEEK)
        assert sorted(e.amount for e in between) == [Decimal("1"), Decimal("2")]


class TestConfig:
    async def test_missing_config(self, db):
        assert await db.get_config() is None

    async def test_set_twice_keeps_latest(self, db):
        await db.set_config(BudgetConfig(weekly_budget_limit=Decimal("15000.00")))
        await db.set_config(BudgetConfig(weekly_budget_limit=Decimal("9000.00")))

        config = await db.get_config()
        assert config.weekly_budget_limit == Decimal("9000.00")


class TestPersistence:
    """State written through one storage object is visible to the next."""

    async def test_reopen_same_file(self, database_url):
        first = SqliteBudgetStorage(database_url)
        for category in DEFAULT_CATEGORIES:
            await first.save_category(category)
        expense_id = await first.insert_expense(
            Expense(week_anchor=WEEK, category_id=2, amount=Decimal("12.34"))
        )
        await first.set_config(BudgetConfig(weekly_budget_limit=Decimal("15000.00")))

        second = SqliteBudgetStorage(database_url)
        assert len(await second.list_categories()) == len(DEFAULT_CATEGORIES)
        assert (await second.get_expense(expense_id)).amount == Decimal("12.34")
        assert (await second.get_config()).weekly_budget_limit == Decimal("15000.00")

    def test_unparseable_url(self):
        with pytest.raises(ConnectionError):
            create_session_factory("definitely not a url")

    def test_requires_url_or_factory(self):
        with pytest.raises(ValueError):
            SqliteBudgetStorage()


class TestAuditStorage:
    async def test_append_and_read_back(self, sessions):
        audit = SqliteAuditStorage(sessions)
        correlation_id = uuid4()
        first = AuditEvent(
            event_type=AuditEventType.EXPENSE_ADDED,
            entity_type="expense",
            entity_id="abc",
            correlation_id=correlation_id,
            description="Expense added",
            details={"amount": "10.00"},
            is_user_action=True,
        )
        second = AuditEvent(
            event_type=AuditEventType.ALLOCATION_UPSERTED,
            correlation_id=correlation_id,
            description="Allocation changed",
            timestamp=first.timestamp,
        )

        assert await audit.append_event(first) is True
        assert await audit.append_event(second) is True

        events = await audit.get_events_by_correlation_id(correlation_id)
        assert [e.event_id for e in events] == [first.event_id, second.event_id]
        assert events[0].details == {"amount": "10.00"}
        assert events[0].is_user_action is True

        recent = await audit.get_recent_events(limit=1)
        assert [e.event_id for e in recent] == [second.event_id]

    async def test_duplicate_event_returns_false(self, sessions):
        audit = SqliteAuditStorage(sessions)
        event = AuditEvent(event_type=AuditEventType.STORAGE_ERROR, description="boom")

        assert await audit.append_event(event) is True
        assert await audit.append_event(event) is False
