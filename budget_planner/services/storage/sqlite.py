"""
SQLite Storage Implementation

DESIGN DECISION: SQLite is the default persistent backend because:
1. A single file, nothing to provision
2. Real unique constraints, so a racing insert of the same
   (week_anchor, category_id) surfaces as DuplicateError
3. Survives between CLI invocations, unlike the in-memory backend

Any SQLAlchemy URL works (`APP_DATABASE_URL`); SQLite is just the default.
Money is stored as text so Decimal values come back exactly as written.
"""

import json
from datetime import date, datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

import structlog
from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    Integer,
    String,
    Text,
    UniqueConstraint,
    create_engine,
    delete,
    select,
)
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, sessionmaker

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
    DuplicateError,
    StorageError,
)


logger = structlog.get_logger(__name__)

WEEKLY_LIMIT_KEY = "weekly_budget_limit"


class Base(DeclarativeBase):
    pass


class CategoryRow(Base):
    __tablename__ = "categories"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    bank_label: Mapped[str] = mapped_column(String(100), default="")
    description: Mapped[str] = mapped_column(Text, default="")
    is_essential: Mapped[bool] = mapped_column(Boolean, default=False)
    priority_order: Mapped[int] = mapped_column(Integer, default=0)


class AllocationRow(Base):
    """One planned amount per (week_anchor, category_id)."""
    __tablename__ = "weekly_allocations"
    __table_args__ = (
        UniqueConstraint("week_anchor", "category_id", name="uq_allocation_week_category"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    week_anchor: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    category_id: Mapped[int] = mapped_column(Integer, nullable=False)
    planned_amount: Mapped[str] = mapped_column(String(32), nullable=False)
    action_plan: Mapped[str] = mapped_column(String(10), default=ActionPlan.SPEND.value)
    notes: Mapped[str] = mapped_column(Text, default="")
    actual_amount: Mapped[str] = mapped_column(String(32), default="0")
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)


class ExpenseRow(Base):
    __tablename__ = "expenses"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    week_anchor: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    category_id: Mapped[int] = mapped_column(Integer, nullable=False)
    amount: Mapped[str] = mapped_column(String(32), nullable=False)
    description: Mapped[str] = mapped_column(Text, default="")
    payment_method: Mapped[str] = mapped_column(String(100), default="")
    location: Mapped[str] = mapped_column(String(200), default="")
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)


class ConfigRow(Base):
    __tablename__ = "budget_config"

    key: Mapped[str] = mapped_column(String(64), primary_key=True)
    value: Mapped[str] = mapped_column(String(64), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)


class AuditRow(Base):
    """Append-only; the integer id keeps insertion order."""
    __tablename__ = "audit_log"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    event_id: Mapped[str] = mapped_column(String(36), unique=True, nullable=False)
    timestamp: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    event_type: Mapped[str] = mapped_column(String(64), nullable=False)
    severity: Mapped[str] = mapped_column(String(16), nullable=False)
    entity_type: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    entity_id: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    correlation_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True, index=True)
    description: Mapped[str] = mapped_column(Text, default="")
    details_json: Mapped[str] = mapped_column(Text, default="{}")
    error_code: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    is_user_action: Mapped[bool] = mapped_column(Boolean, default=False)


def create_session_factory(database_url: str) -> sessionmaker:
    """Create the engine, make sure the tables exist, return a session factory."""
    connect_args = {}
    if database_url.startswith("sqlite"):
        connect_args = {"check_same_thread": False}

    try:
        engine = create_engine(database_url, connect_args=connect_args)
        Base.metadata.create_all(engine)
    except SQLAlchemyError as e:
        raise ConnectionError(f"Failed to open database {database_url}: {e}")
    except Exception as e:
        # Malformed URLs and missing drivers fail before any SQL runs
        raise ConnectionError(f"Invalid database URL {database_url!r}: {e}")

    logger.info("database_ready", database_url=database_url)
    return sessionmaker(bind=engine, expire_on_commit=False)


class SqliteBudgetStorage(BudgetStorage):
    """
    SQLAlchemy implementation of the ledger collections.

    Calls are synchronous inside the async methods, the same way the
    Sheets backend calls gspread; the planner is single-process.
    """

    def __init__(
        self,
        database_url: Optional[str] = None,
        session_factory: Optional[sessionmaker] = None,
    ):
        if session_factory is None:
            if database_url is None:
                raise ValueError("database_url or session_factory is required")
            session_factory = create_session_factory(database_url)
        self._sessions = session_factory

    # -- row conversion -----------------------------------------------------

    @staticmethod
    def _to_category(row: CategoryRow) -> Category:
        return Category(
            id=row.id,
            name=row.name,
            bank_label=row.bank_label or "",
            description=row.description or "",
            is_essential=row.is_essential,
            priority_order=row.priority_order,
        )

    @staticmethod
    def _to_allocation(row: AllocationRow) -> BudgetAllocation:
        return BudgetAllocation(
            week_anchor=row.week_anchor,
            category_id=row.category_id,
            planned_amount=Decimal(row.planned_amount),
            action_plan=ActionPlan(row.action_plan),
            notes=row.notes or "",
            actual_amount=Decimal(row.actual_amount or "0"),
            updated_at=row.updated_at,
        )

    @staticmethod
    def _to_expense(row: ExpenseRow) -> Expense:
        return Expense(
            id=UUID(row.id),
            week_anchor=row.week_anchor,
            category_id=row.category_id,
            amount=Decimal(row.amount),
            description=row.description or "",
            payment_method=row.payment_method or "",
            location=row.location or "",
            created_at=row.created_at,
        )

    @staticmethod
    def _find_allocation(
        session,
        week_anchor: date,
        category_id: int,
    ) -> Optional[AllocationRow]:
        return session.scalars(
            select(AllocationRow).where(
                AllocationRow.week_anchor == week_anchor,
                AllocationRow.category_id == category_id,
            )
        ).first()

    # -- categories ---------------------------------------------------------

    async def list_categories(self) -> list[Category]:
        try:
            with self._sessions() as session:
                rows = session.scalars(
                    select(CategoryRow).order_by(CategoryRow.priority_order)
                ).all()
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to list categories: {e}")
        return [self._to_category(row) for row in rows]

    async def save_category(self, category: Category) -> bool:
        try:
            with self._sessions() as session:
                session.merge(CategoryRow(
                    id=category.id,
                    name=category.name,
                    bank_label=category.bank_label,
                    description=category.description,
                    is_essential=category.is_essential,
                    priority_order=category.priority_order,
                ))
                session.commit()
            return True
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to save category: {e}")

    # -- allocations --------------------------------------------------------

    async def get_allocations_by_week(self, week_anchor: date) -> list[BudgetAllocation]:
        try:
            with self._sessions() as session:
                rows = session.scalars(
                    select(AllocationRow)
                    .where(AllocationRow.week_anchor == week_anchor)
                    .order_by(AllocationRow.category_id)
                ).all()
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to get allocations: {e}")
        return [self._to_allocation(row) for row in rows]

    async def get_allocation(
        self,
        week_anchor: date,
        category_id: int,
    ) -> Optional[BudgetAllocation]:
        try:
            with self._sessions() as session:
                row = self._find_allocation(session, week_anchor, category_id)
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to get allocation: {e}")
        return self._to_allocation(row) if row else None

    async def upsert_allocation(self, allocation: BudgetAllocation) -> bool:
        """Insert or replace by (week_anchor, category_id), keeping the cached actual."""
        try:
            with self._sessions() as session:
                row = self._find_allocation(
                    session, allocation.week_anchor, allocation.category_id
                )
                if row is None:
                    session.add(AllocationRow(
                        week_anchor=allocation.week_anchor,
                        category_id=allocation.category_id,
                        planned_amount=str(allocation.planned_amount),
                        action_plan=allocation.action_plan.value,
                        notes=allocation.notes,
                        actual_amount=str(allocation.actual_amount),
                        updated_at=datetime.utcnow(),
                    ))
                else:
                    row.planned_amount = str(allocation.planned_amount)
                    row.action_plan = allocation.action_plan.value
                    row.notes = allocation.notes
                    row.updated_at = datetime.utcnow()
                session.commit()
            return True
        except IntegrityError as e:
            raise DuplicateError(
                f"Allocation {allocation.week_anchor.isoformat()}/{allocation.category_id} "
                f"was inserted concurrently: {e}"
            )
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to upsert allocation: {e}")

    async def update_actual_amount(
        self,
        week_anchor: date,
        category_id: int,
        amount: Decimal,
    ) -> int:
        try:
            with self._sessions() as session:
                row = self._find_allocation(session, week_anchor, category_id)
                if row is None:
                    return 0
                row.actual_amount = str(amount)
                session.commit()
            return 1
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to update actual amount: {e}")

    async def list_allocation_weeks(self) -> list[date]:
        try:
            with self._sessions() as session:
                weeks = session.scalars(
                    select(AllocationRow.week_anchor)
                    .distinct()
                    .order_by(AllocationRow.week_anchor)
                ).all()
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to list weeks: {e}")
        return list(weeks)

    # -- expenses -----------------------------------------------------------

    async def _select_expenses(self, *conditions) -> list[Expense]:
        try:
            with self._sessions() as session:
                rows = session.scalars(select(ExpenseRow).where(*conditions)).all()
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to read expenses: {e}")
        return [self._to_expense(row) for row in rows]

    async def get_expenses_by_week(self, week_anchor: date) -> list[Expense]:
        return await self._select_expenses(ExpenseRow.week_anchor == week_anchor)

    async def get_expenses_between(self, start: date, end: date) -> list[Expense]:
        return await self._select_expenses(
            ExpenseRow.week_anchor >= start,
            ExpenseRow.week_anchor <= end,
        )

    async def get_expense(self, expense_id: UUID) -> Optional[Expense]:
        try:
            with self._sessions() as session:
                row = session.get(ExpenseRow, str(expense_id))
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to get expense: {e}")
        return self._to_expense(row) if row else None

    async def insert_expense(self, expense: Expense) -> UUID:
        try:
            with self._sessions() as session:
                session.add(ExpenseRow(
                    id=str(expense.id),
                    week_anchor=expense.week_anchor,
                    category_id=expense.category_id,
                    amount=str(expense.amount),
                    description=expense.description,
                    payment_method=expense.payment_method,
                    location=expense.location,
                    created_at=expense.created_at,
                ))
                session.commit()
            return expense.id
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to save expense: {e}")

    async def update_expense(self, expense_id: UUID, fields: ExpenseUpdate) -> int:
        try:
            with self._sessions() as session:
                row = session.get(ExpenseRow, str(expense_id))
                if row is None:
                    return 0
                row.amount = str(fields.amount)
                row.description = fields.description
                row.payment_method = fields.payment_method
                row.location = fields.location
                session.commit()
            return 1
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to update expense: {e}")

    async def delete_expense(self, expense_id: UUID) -> int:
        try:
            with self._sessions() as session:
                result = session.execute(
                    delete(ExpenseRow).where(ExpenseRow.id == str(expense_id))
                )
                session.commit()
            return result.rowcount
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to delete expense: {e}")

    # -- config -------------------------------------------------------------

    async def get_config(self) -> Optional[BudgetConfig]:
        try:
            with self._sessions() as session:
                row = session.get(ConfigRow, WEEKLY_LIMIT_KEY)
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to read config: {e}")
        if row is None:
            return None
        return BudgetConfig(
            weekly_budget_limit=Decimal(row.value),
            updated_at=row.updated_at,
        )

    async def set_config(self, config: BudgetConfig) -> bool:
        try:
            with self._sessions() as session:
                session.merge(ConfigRow(
                    key=WEEKLY_LIMIT_KEY,
                    value=str(config.weekly_budget_limit),
                    updated_at=config.updated_at,
                ))
                session.commit()
            return True
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to save config: {e}")


class SqliteAuditStorage(AuditStorageInterface):
    """Audit log table. Events are append-only."""

    def __init__(self, session_factory: sessionmaker):
        self._sessions = session_factory

    @staticmethod
    def _to_event(row: AuditRow) -> AuditEvent:
        return AuditEvent(
            event_id=UUID(row.event_id),
            timestamp=row.timestamp,
            event_type=AuditEventType(row.event_type),
            severity=AuditSeverity(row.severity),
            entity_type=row.entity_type,
            entity_id=row.entity_id,
            correlation_id=UUID(row.correlation_id) if row.correlation_id else None,
            description=row.description or "",
            details=json.loads(row.details_json) if row.details_json else {},
            error_code=row.error_code,
            error_message=row.error_message,
            is_user_action=row.is_user_action,
        )

    async def append_event(self, event: AuditEvent) -> bool:
        try:
            with self._sessions() as session:
                session.add(AuditRow(
                    event_id=str(event.event_id),
                    timestamp=event.timestamp,
                    event_type=event.event_type.value,
                    severity=event.severity.value,
                    entity_type=event.entity_type,
                    entity_id=event.entity_id,
                    correlation_id=str(event.correlation_id) if event.correlation_id else None,
                    description=event.description,
                    details_json=json.dumps(event.details, default=str),
                    error_code=event.error_code,
                    error_message=event.error_message,
                    is_user_action=event.is_user_action,
                ))
                session.commit()
            return True
        except SQLAlchemyError as e:
            # Audit logging must not break the main flow
            logger.warning(
                "audit_db_write_failed",
                error=str(e),
                event_id=str(event.event_id),
            )
            return False

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        try:
            with self._sessions() as session:
                rows = session.scalars(
                    select(AuditRow)
                    .where(AuditRow.correlation_id == str(correlation_id))
                    .order_by(AuditRow.id)
                ).all()
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to get audit events: {e}")
        return [self._to_event(row) for row in rows]

    async def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        try:
            with self._sessions() as session:
                rows = session.scalars(
                    select(AuditRow).order_by(AuditRow.id.desc()).limit(limit)
                ).all()
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to get audit events: {e}")
        return [self._to_event(row) for row in rows]
