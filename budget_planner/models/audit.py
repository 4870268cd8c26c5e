"""
Audit Models for the Weekly Budget Planner

Every write to the ledgers is logged for audit purposes, including the
writes the engines make on the user's behalf (rollover, rebalancing,
next-week adjustment). This makes it possible to answer "why did my
Misc budget drop by 500?" after the fact.

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

import json
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Budget ledger
    WEEK_INITIALIZED = "week_initialized"
    ALLOCATION_UPSERTED = "allocation_upserted"
    OVERFLOW_REBALANCED = "overflow_rebalanced"
    NEXT_WEEK_ADJUSTED = "next_week_adjusted"

    # Expense ledger
    EXPENSE_ADDED = "expense_added"
    EXPENSE_UPDATED = "expense_updated"
    EXPENSE_DELETED = "expense_deleted"

    # Configuration
    BUDGET_LIMIT_UPDATED = "budget_limit_updated"

    # Failures
    VALIDATION_FAILED = "validation_failed"
    STORAGE_ERROR = "storage_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    Every ledger write creates one of these.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=datetime.utcnow,
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # Context - what entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'allocation', 'expense', 'week')"
    )
    entity_id: Optional[str] = Field(
        default=None,
        description="ID of the entity (expense UUID, or 'week:category' for allocations)"
    )

    # Correlation - for tracking related events
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events (e.g., one budget edit and its rebalancing)"
    )

    # Event details
    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )
    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )

    # Error information (if applicable)
    error_code: Optional[str] = None
    error_message: Optional[str] = None

    is_user_action: bool = Field(
        default=False,
        description="Was this triggered directly by the user?"
    )

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_code": self.error_code,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }

    def to_sheets_row(self) -> list:
        """
        Convert to a row suitable for Google Sheets storage.

        Returns columns in order:
        [event_id, timestamp, event_type, severity, entity_type, entity_id,
         correlation_id, description, details_json, error_message, is_user_action]
        """
        return [
            str(self.event_id),
            self.timestamp.isoformat(),
            self.event_type.value,
            self.severity.value,
            self.entity_type or "",
            self.entity_id or "",
            str(self.correlation_id) if self.correlation_id else "",
            self.description,
            json.dumps(self.details) if self.details else "",
            self.error_message or "",
            str(self.is_user_action),
        ]


def allocation_key(week_anchor: date, category_id: int) -> str:
    """Entity id used for allocation events."""
    return f"{week_anchor.isoformat()}:{category_id}"


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.week_initialized(anchor, "rollover", 11)
        event = AuditEventBuilder.expense_deleted(expense_id, correlation_id)
    """

    @staticmethod
    def week_initialized(
        week_anchor: date,
        source: str,
        rows_written: int,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.WEEK_INITIALIZED,
            entity_type="week",
            entity_id=week_anchor.isoformat(),
            correlation_id=correlation_id,
            description=f"Week {week_anchor.isoformat()} initialized from {source}",
            details={
                "source": source,
                "rows_written": rows_written,
            },
        )

    @staticmethod
    def allocation_upserted(
        week_anchor: date,
        category_id: int,
        amount: Decimal,
        action_plan: str,
        correlation_id: Optional[UUID] = None,
        is_user_action: bool = True,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ALLOCATION_UPSERTED,
            entity_type="allocation",
            entity_id=allocation_key(week_anchor, category_id),
            correlation_id=correlation_id,
            description=f"Allocation set to {amount} for category {category_id}",
            details={
                "amount": str(amount),
                "action_plan": action_plan,
            },
            is_user_action=is_user_action,
        )

    @staticmethod
    def overflow_rebalanced(
        week_anchor: date,
        category_id: int,
        difference: Decimal,
        reduced_categories: list[int],
        reduction_per_category: Decimal,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.OVERFLOW_REBALANCED,
            severity=AuditSeverity.WARNING,
            entity_type="allocation",
            entity_id=allocation_key(week_anchor, category_id),
            correlation_id=correlation_id,
            description=(
                f"Weekly limit exceeded; reduced {len(reduced_categories)} "
                f"categories by {reduction_per_category} each"
            ),
            details={
                "difference": str(difference),
                "reduced_categories": reduced_categories,
                "reduction_per_category": str(reduction_per_category),
            },
        )

    @staticmethod
    def next_week_adjusted(
        week_anchor: date,
        next_week_anchor: date,
        adjustments_made: int,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.NEXT_WEEK_ADJUSTED,
            entity_type="week",
            entity_id=next_week_anchor.isoformat(),
            correlation_id=correlation_id,
            description=(
                f"Adjusted {adjustments_made} categories for week "
                f"{next_week_anchor.isoformat()}"
            ),
            details={
                "source_week": week_anchor.isoformat(),
                "adjustments_made": adjustments_made,
            },
        )

    @staticmethod
    def expense_added(
        expense_id: UUID,
        week_anchor: date,
        category_id: int,
        amount: Decimal,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXPENSE_ADDED,
            entity_type="expense",
            entity_id=str(expense_id),
            correlation_id=correlation_id,
            description=f"Expense of {amount} added to category {category_id}",
            details={
                "week_anchor": week_anchor.isoformat(),
                "category_id": category_id,
                "amount": str(amount),
            },
            is_user_action=True,
        )

    @staticmethod
    def expense_updated(
        expense_id: UUID,
        amount: Decimal,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXPENSE_UPDATED,
            entity_type="expense",
            entity_id=str(expense_id),
            correlation_id=correlation_id,
            description=f"Expense updated, new amount {amount}",
            details={"amount": str(amount)},
            is_user_action=True,
        )

    @staticmethod
    def expense_deleted(
        expense_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXPENSE_DELETED,
            entity_type="expense",
            entity_id=str(expense_id),
            correlation_id=correlation_id,
            description="Expense deleted",
            is_user_action=True,
        )

    @staticmethod
    def budget_limit_updated(
        old_limit: Decimal,
        new_limit: Decimal,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BUDGET_LIMIT_UPDATED,
            entity_type="config",
            entity_id="weekly_budget_limit",
            correlation_id=correlation_id,
            description=f"Weekly budget limit changed from {old_limit} to {new_limit}",
            details={
                "old_limit": str(old_limit),
                "new_limit": str(new_limit),
            },
            is_user_action=True,
        )

    @staticmethod
    def validation_failed(
        operation: str,
        issues: list[dict],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.VALIDATION_FAILED,
            severity=AuditSeverity.WARNING,
            correlation_id=correlation_id,
            description=f"{operation} rejected with {len(issues)} issues",
            details={
                "operation": operation,
                "issues": issues,
            },
        )

    @staticmethod
    def storage_error(
        operation: str,
        error_message: str,
        entity_id: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.STORAGE_ERROR,
            severity=AuditSeverity.ERROR,
            entity_id=entity_id,
            correlation_id=correlation_id,
            description=f"Storage error during {operation}",
            error_message=error_message,
            details={"operation": operation},
        )
