"""
Audit Logger

DESIGN DECISION: Every change to the ledgers is logged, including the
changes the engines make on the user's behalf (week seeding, overflow
rebalancing, next-week adjustment).

Events go to the JSON log first and then to audit storage. A failed
storage write is itself logged; the budget operation carries on. One
correlation id per request ties its events together.
"""

from datetime import date
from decimal import Decimal
from typing import Optional
from uuid import UUID, uuid4

import structlog

from budget_planner.models.audit import AuditEvent, AuditEventBuilder
from budget_planner.models.budget import ValidationIssue
from budget_planner.services.storage.interface import AuditStorageInterface


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


class AuditLogger:
    """
    Writes audit events to the structured log and, if given, to audit storage.

    Storage failures are logged and reported through the return value of
    `log`; they never propagate into the budget operation being audited.
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        self._storage = storage
        self._logger = structlog.get_logger()

    async def log(self, event: AuditEvent) -> bool:
        """
        Record one event.

        Returns False only when the storage write failed.
        """
        # Severity values double as stdlib level method names
        emit = getattr(self._logger, event.severity.value)
        emit("audit_event", **event.to_log_dict())

        if self._storage is None:
            return True

        try:
            return await self._storage.append_event(event)
        except Exception as e:
            self._logger.error(
                "audit_storage_failed",
                error=str(e),
                event_id=str(event.event_id),
            )
            return False

    async def log_week_initialized(
        self,
        week_anchor: date,
        source: str,
        rows_written: int,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log the seeding of a new week. Existing weeks are not logged."""
        event = AuditEventBuilder.week_initialized(
            week_anchor=week_anchor,
            source=source,
            rows_written=rows_written,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_allocation_upserted(
        self,
        week_anchor: date,
        category_id: int,
        amount: Decimal,
        action_plan: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.allocation_upserted(
            week_anchor=week_anchor,
            category_id=category_id,
            amount=amount,
            action_plan=action_plan,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_overflow_rebalanced(
        self,
        week_anchor: date,
        category_id: int,
        difference: Decimal,
        reduced_categories: list[int],
        reduction_per_category: Decimal,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.overflow_rebalanced(
            week_anchor=week_anchor,
            category_id=category_id,
            difference=difference,
            reduced_categories=reduced_categories,
            reduction_per_category=reduction_per_category,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_next_week_adjusted(
        self,
        week_anchor: date,
        next_week_anchor: date,
        adjustments_made: int,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.next_week_adjusted(
            week_anchor=week_anchor,
            next_week_anchor=next_week_anchor,
            adjustments_made=adjustments_made,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_expense_added(
        self,
        expense_id: UUID,
        week_anchor: date,
        category_id: int,
        amount: Decimal,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.expense_added(
            expense_id=expense_id,
            week_anchor=week_anchor,
            category_id=category_id,
            amount=amount,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_expense_updated(
        self,
        expense_id: UUID,
        amount: Decimal,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.expense_updated(
            expense_id=expense_id,
            amount=amount,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_expense_deleted(
        self,
        expense_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.expense_deleted(
            expense_id=expense_id,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_budget_limit_updated(
        self,
        old_limit: Decimal,
        new_limit: Decimal,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.budget_limit_updated(
            old_limit=old_limit,
            new_limit=new_limit,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_validation_failed(
        self,
        operation: str,
        issues: list[ValidationIssue],
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log rejected input."""
        event = AuditEventBuilder.validation_failed(
            operation=operation,
            issues=[issue.model_dump() for issue in issues],
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_storage_error(
        self,
        operation: str,
        error_message: str,
        entity_id: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.storage_error(
            operation=operation,
            error_message=error_message,
            entity_id=entity_id,
            correlation_id=correlation_id,
        )
        await self.log(event)


def create_correlation_id() -> UUID:
    """One id per facade call; every event of that call carries it."""
    return uuid4()
