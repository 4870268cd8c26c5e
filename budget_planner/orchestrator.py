"""
Main Orchestrator for the Weekly Budget Planner

This module ties the ledgers and engines together behind one facade,
`BudgetPlanner`, which is what any request layer (the CLI, an HTTP handler)
talks to.

Flow of a budget read:
    date -> week anchor -> ensure week initialized -> reconcile -> response

Flow of a budget edit:
    validate -> ensure week initialized -> rebalance on overflow -> upsert

DESIGN DECISION: The facade enforces the boundaries:
- Every date is normalized to its week anchor before anything else
- Input is validated before any write
- Week initialization is an explicit step, never hidden inside a ledger read
- Every change is audited, with one correlation id per request

Engines stay free of audit and request concerns; that is the facade's job.
"""

from datetime import date
from decimal import Decimal
from typing import Any, Optional, Union
from uuid import UUID

import structlog

from budget_planner.adjustment import AutoAdjustmentEngine
from budget_planner.analytics import AnalyticsSummarizer
from budget_planner.audit import AuditLogger, create_correlation_id
from budget_planner.config import AppSettings, Settings, get_settings, validate_all_settings
from budget_planner.errors import InvalidArgumentError
from budget_planner.ledger import (
    BudgetLedger,
    CategoryRegistry,
    ExpenseLedger,
    WeekResolver,
)
from budget_planner.ledger.weeks import DateLike
from budget_planner.models.analytics import (
    CategoryPrediction,
    CategorySpending,
    MonthlyForecast,
    ReallocationSuggestion,
    SavingsRecommendation,
    SpendingAlert,
    WeeklyTrend,
)
from budget_planner.models.budget import (
    ActionPlan,
    AllocationView,
    BudgetConfig,
    Category,
    ExpenseView,
    InitializationResult,
    InitializationSource,
    RebalanceResult,
    ValidationIssue,
    WeeklySummary,
    WeekReconciliation,
)
from budget_planner.reconciliation import ReconciliationEngine
from budget_planner.services.storage import (
    BudgetStorage,
    ConnectionError,
    StorageError,
    create_storage,
)
from budget_planner.validation import BudgetInputValidator


logger = structlog.get_logger(__name__)


def _parse_action_plan(value: Union[ActionPlan, str]) -> ActionPlan:
    try:
        return ActionPlan(value)
    except ValueError:
        raise InvalidArgumentError(
            f"Invalid action plan: {value!r}",
            issues=[ValidationIssue(
                field="action_plan",
                issue_type="invalid_value",
                message=f"action_plan must be 'spend' or 'save', got {value!r}",
                severity="error",
            )],
        )


def _parse_expense_id(value: Union[UUID, str]) -> UUID:
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except ValueError:
        raise InvalidArgumentError(
            f"Invalid expense id: {value!r}",
            issues=[ValidationIssue(
                field="expense_id",
                issue_type="invalid_format",
                message=f"expense_id must be a UUID, got {value!r}",
                severity="error",
            )],
        )


class BudgetPlanner:
    """
    The core surface of the budget planner.

    Dates may be given as `date` objects or ISO `YYYY-MM-DD` strings; all of
    them are resolved to the anchor of their week.
    """

    def __init__(
        self,
        storage: BudgetStorage,
        audit_logger: Optional[AuditLogger] = None,
        app_settings: Optional[AppSettings] = None,
    ):
        app_settings = app_settings or get_settings().app

        self._storage = storage
        self._audit_logger = audit_logger
        self._settings = app_settings

        self.weeks = WeekResolver.from_settings(app_settings)
        self.validator = BudgetInputValidator(app_settings)
        self.registry = CategoryRegistry(storage)
        self.budget_ledger = BudgetLedger(storage, self.registry, self.validator)
        self.expense_ledger = ExpenseLedger(
            storage, self.registry, self.budget_ledger, self.validator
        )
        self.reconciliation = ReconciliationEngine(
            self.registry,
            self.budget_ledger,
            self.expense_ledger,
            storage,
            default_limit=Decimal(str(app_settings.default_weekly_budget_limit)),
        )
        self.adjustment = AutoAdjustmentEngine(
            self.registry,
            self.budget_ledger,
            self.reconciliation,
            validator=self.validator,
            alert_threshold=Decimal(str(app_settings.spending_alert_threshold)),
            currency_symbol=app_settings.currency_symbol,
        )
        self.analytics = AnalyticsSummarizer(
            self.registry,
            self.expense_ledger,
            self.reconciliation,
            weeks=self.weeks,
            currency_symbol=app_settings.currency_symbol,
        )

    async def setup(self) -> int:
        """Seed the default categories into an empty store."""
        return await self.registry.ensure_defaults()

    # -------------------------------------------------------------------------
    # Audit helpers
    # -------------------------------------------------------------------------

    async def _rejected(
        self,
        operation: str,
        error: InvalidArgumentError,
        correlation_id: UUID,
    ) -> None:
        if self._audit_logger:
            await self._audit_logger.log_validation_failed(
                operation=operation,
                issues=error.issues,
                correlation_id=correlation_id,
            )

    async def _storage_failed(
        self,
        operation: str,
        error: StorageError,
        correlation_id: UUID,
        entity_id: Optional[str] = None,
    ) -> None:
        if self._audit_logger:
            await self._audit_logger.log_storage_error(
                operation=operation,
                error_message=str(error),
                entity_id=entity_id,
                correlation_id=correlation_id,
            )

    async def _ensure_week(
        self,
        week_anchor: date,
        correlation_id: UUID,
    ) -> InitializationResult:
        result = await self.budget_ledger.ensure_week_initialized(week_anchor)
        if result.source != InitializationSource.EXISTING and self._audit_logger:
            await self._audit_logger.log_week_initialized(
                week_anchor=week_anchor,
                source=result.source.value,
                rows_written=result.rows_written,
                correlation_id=correlation_id,
            )
        return result

    # -------------------------------------------------------------------------
    # Budget
    # -------------------------------------------------------------------------

    async def get_categories(self) -> list[Category]:
        return await self.registry.list_categories()

    async def get_current_week_budget(
        self,
        today: Optional[DateLike] = None,
    ) -> WeekReconciliation:
        """Budget of the week containing today, seeding it if needed."""
        return await self.get_weekly_budget(self.weeks.current_week(today))

    async def get_weekly_budget(
        self,
        day: DateLike,
        correlation_id: Optional[UUID] = None,
    ) -> WeekReconciliation:
        """
        Budget of the week containing `day`.

        Two explicit steps: initialize the week (rollover or defaults),
        then reconcile it.
        """
        correlation_id = correlation_id or create_correlation_id()
        week_anchor = self.weeks.anchor_for(day)

        await self._ensure_week(week_anchor, correlation_id)
        return await self.reconciliation.reconcile_week(week_anchor)

    async def get_next_week_budget(
        self,
        today: Optional[DateLike] = None,
    ) -> list[AllocationView]:
        """Next week's allocations as they stand. Does not seed the week."""
        return await self.budget_ledger.get_allocations(
            self.weeks.next_week(self.weeks.current_week(today))
        )

    async def set_weekly_budget(
        self,
        day: DateLike,
        category_id: Any,
        amount: Any,
        action_plan: Union[ActionPlan, str] = ActionPlan.SPEND,
        notes: str = "",
        correlation_id: Optional[UUID] = None,
    ) -> RebalanceResult:
        """
        Set one category's planned amount for a week.

        If the edit pushes the week over the weekly limit, the other
        non-essential categories are reduced first.
        """
        correlation_id = correlation_id or create_correlation_id()

        try:
            week_anchor = self.weeks.anchor_for(day)
            category_id = self.validator.validate_category_id(category_id)
            plan = _parse_action_plan(action_plan)
            limit = await self.reconciliation.weekly_budget_limit()
            _, warnings = self.validator.validate_allocation_amount(amount, limit)
        except InvalidArgumentError as e:
            await self._rejected("set_weekly_budget", e, correlation_id)
            raise

        await self.registry.require(category_id)
        for issue in warnings:
            logger.warning(
                "allocation_warning",
                week_anchor=week_anchor.isoformat(),
                category_id=category_id,
                message=issue.message,
                correlation_id=str(correlation_id),
            )

        await self._ensure_week(week_anchor, correlation_id)

        try:
            result = await self.adjustment.rebalance_for_edit(
                week_anchor, category_id, amount, action_plan=plan, notes=notes
            )
        except StorageError as e:
            await self._storage_failed(
                "set_weekly_budget", e, correlation_id,
                entity_id=f"{week_anchor.isoformat()}:{category_id}",
            )
            raise

        if self._audit_logger:
            if result.overflow_detected:
                await self._audit_logger.log_overflow_rebalanced(
                    week_anchor=week_anchor,
                    category_id=category_id,
                    difference=result.new_amount - result.old_amount,
                    reduced_categories=result.reduced_categories,
                    reduction_per_category=result.reduction_per_category,
                    correlation_id=correlation_id,
                )
            await self._audit_logger.log_allocation_upserted(
                week_anchor=week_anchor,
                category_id=category_id,
                amount=result.new_amount,
                action_plan=plan.value,
                correlation_id=correlation_id,
            )

        return result

    async def get_weekly_budget_limit(self) -> Decimal:
        return await self.reconciliation.weekly_budget_limit()

    async def update_weekly_budget_limit(
        self,
        amount: Any,
        correlation_id: Optional[UUID] = None,
    ) -> BudgetConfig:
        correlation_id = correlation_id or create_correlation_id()

        try:
            new_limit = self.validator.validate_limit(amount)
        except InvalidArgumentError as e:
            await self._rejected("update_weekly_budget_limit", e, correlation_id)
            raise

        old_limit = await self.reconciliation.weekly_budget_limit()
        try:
            config = await self.reconciliation.set_weekly_budget_limit(new_limit)
        except StorageError as e:
            await self._storage_failed("update_weekly_budget_limit", e, correlation_id)
            raise

        if self._audit_logger:
            await self._audit_logger.log_budget_limit_updated(
                old_limit=old_limit,
                new_limit=config.weekly_budget_limit,
                correlation_id=correlation_id,
            )
        return config

    async def get_weekly_summary(self, day: DateLike) -> WeeklySummary:
        return await self.reconciliation.weekly_summary(self.weeks.anchor_for(day))

    # -------------------------------------------------------------------------
    # Expenses
    # -------------------------------------------------------------------------

    async def add_expense(
        self,
        day: DateLike,
        category_id: Any,
        amount: Any,
        description: str = "",
        payment_method: str = "",
        location: str = "",
        correlation_id: Optional[UUID] = None,
    ) -> UUID:
        """Record an expense against the week containing `day`."""
        correlation_id = correlation_id or create_correlation_id()

        try:
            week_anchor = self.weeks.anchor_for(day)
            category_id = self.validator.validate_category_id(category_id)
            expense_id = await self.expense_ledger.add_expense(
                week_anchor,
                category_id,
                amount,
                description=description,
                payment_method=payment_method,
                location=location,
            )
        except InvalidArgumentError as e:
            await self._rejected("add_expense", e, correlation_id)
            raise
        except StorageError as e:
            await self._storage_failed("add_expense", e, correlation_id)
            raise

        if self._audit_logger:
            expense = await self.expense_ledger.get_expense(expense_id)
            await self._audit_logger.log_expense_added(
                expense_id=expense_id,
                week_anchor=week_anchor,
                category_id=category_id,
                amount=expense.amount if expense else Decimal(str(amount)),
                correlation_id=correlation_id,
            )
        return expense_id

    async def update_expense(
        self,
        expense_id: Union[UUID, str],
        amount: Any,
        description: str = "",
        payment_method: str = "",
        location: str = "",
        correlation_id: Optional[UUID] = None,
    ) -> bool:
        correlation_id = correlation_id or create_correlation_id()

        try:
            expense_id = _parse_expense_id(expense_id)
            updated = await self.expense_ledger.update_expense(
                expense_id,
                amount,
                description=description,
                payment_method=payment_method,
                location=location,
            )
        except InvalidArgumentError as e:
            await self._rejected("update_expense", e, correlation_id)
            raise
        except StorageError as e:
            await self._storage_failed(
                "update_expense", e, correlation_id, entity_id=str(expense_id)
            )
            raise

        if self._audit_logger:
            expense = await self.expense_ledger.get_expense(expense_id)
            await self._audit_logger.log_expense_updated(
                expense_id=expense_id,
                amount=expense.amount if expense else Decimal(str(amount)),
                correlation_id=correlation_id,
            )
        return updated

    async def delete_expense(
        self,
        expense_id: Union[UUID, str],
        correlation_id: Optional[UUID] = None,
    ) -> bool:
        correlation_id = correlation_id or create_correlation_id()

        try:
            expense_id = _parse_expense_id(expense_id)
            deleted = await self.expense_ledger.delete_expense(expense_id)
        except InvalidArgumentError as e:
            await self._rejected("delete_expense", e, correlation_id)
            raise
        except StorageError as e:
            await self._storage_failed(
                "delete_expense", e, correlation_id, entity_id=str(expense_id)
            )
            raise

        if self._audit_logger:
            await self._audit_logger.log_expense_deleted(
                expense_id=expense_id,
                correlation_id=correlation_id,
            )
        return deleted

    async def get_weekly_expenses(self, day: DateLike) -> list[ExpenseView]:
        expenses = await self.expense_ledger.get_by_week(self.weeks.anchor_for(day))
        return await self.expense_ledger.with_categories(expenses)

    async def get_expenses_by_date_range(
        self,
        start: DateLike,
        end: DateLike,
    ) -> list[ExpenseView]:
        expenses = await self.expense_ledger.get_by_date_range(
            self.weeks.anchor_for(start),
            self.weeks.anchor_for(end),
        )
        return await self.expense_ledger.with_categories(expenses)

    # -------------------------------------------------------------------------
    # Smart features
    # -------------------------------------------------------------------------

    async def smart_reallocate(self, day: DateLike) -> list[ReallocationSuggestion]:
        return await self.adjustment.smart_reallocate(self.weeks.anchor_for(day))

    async def get_budget_health_score(self, day: DateLike) -> float:
        return await self.adjustment.health_score(self.weeks.anchor_for(day))

    async def get_spending_alerts(self, day: DateLike) -> list[SpendingAlert]:
        return await self.adjustment.spending_alerts(self.weeks.anchor_for(day))

    async def auto_adjust_next_week(
        self,
        day: DateLike,
        correlation_id: Optional[UUID] = None,
    ) -> int:
        """Apply next-week adjustments from this week's variance."""
        correlation_id = correlation_id or create_correlation_id()
        week_anchor = self.weeks.anchor_for(day)
        next_anchor = self.weeks.next_week(week_anchor)

        await self._ensure_week(next_anchor, correlation_id)
        adjusted = await self.adjustment.auto_adjust_next_week(week_anchor)

        if self._audit_logger:
            await self._audit_logger.log_next_week_adjusted(
                week_anchor=week_anchor,
                next_week_anchor=next_anchor,
                adjustments_made=adjusted,
                correlation_id=correlation_id,
            )
        return adjusted

    # -------------------------------------------------------------------------
    # Analytics
    # -------------------------------------------------------------------------

    async def predict_next_week_budget(
        self,
        weeks_history: int = 4,
        today: Optional[DateLike] = None,
    ) -> list[CategoryPrediction]:
        return await self.analytics.predict_next_week_budget(weeks_history, today)

    async def get_spending_trends(
        self,
        weeks: int = 4,
        today: Optional[DateLike] = None,
    ) -> list[WeeklyTrend]:
        return await self.analytics.spending_trends(weeks, today)

    async def get_top_spending_categories(
        self,
        weeks: int = 4,
        today: Optional[DateLike] = None,
        limit: int = 10,
    ) -> list[CategorySpending]:
        return await self.analytics.top_spending_categories(weeks, today, limit)

    async def get_monthly_forecast(self, month: int, year: int) -> MonthlyForecast:
        if not 1 <= month <= 12:
            raise InvalidArgumentError(
                f"Invalid month: {month}",
                issues=[ValidationIssue(
                    field="month",
                    issue_type="invalid_value",
                    message=f"month must be between 1 and 12, got {month}",
                    severity="error",
                )],
            )
        if not 1 <= year <= 9999:
            raise InvalidArgumentError(
                f"Invalid year: {year}",
                issues=[ValidationIssue(
                    field="year",
                    issue_type="invalid_value",
                    message=f"year must be between 1 and 9999, got {year}",
                    severity="error",
                )],
            )
        return await self.analytics.monthly_forecast(month, year)

    async def get_savings_recommendations(
        self,
        weeks: int = 4,
        today: Optional[DateLike] = None,
    ) -> list[SavingsRecommendation]:
        return await self.analytics.savings_recommendations(weeks, today)


def create_app_components(
    settings: Optional[Settings] = None,
) -> BudgetPlanner:
    """
    Factory function to create all application components.

    The storage backend is the one selected by APP_STORAGE_BACKEND.
    Settings are checked first; a misconfigured backend raises
    ConnectionError before anything is built.
    Call `await planner.setup()` once before first use to seed categories.

    Returns:
        A ready BudgetPlanner
    """
    settings = settings or get_settings()

    checks = validate_all_settings(settings)
    failed = [name for name, ok in checks.items() if ok is False]
    if failed:
        details = "; ".join(
            f"{name}: {checks.get(f'{name}_error', 'invalid')}" for name in failed
        )
        logger.error("settings_invalid", failed=failed)
        raise ConnectionError(f"Invalid configuration ({details})")

    storage, audit_storage = create_storage(settings)

    return BudgetPlanner(
        storage=storage,
        audit_logger=AuditLogger(audit_storage),
        app_settings=settings.app,
    )
