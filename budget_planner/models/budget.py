"""
Core Data Models for the Weekly Budget Planner

These models define the strict schemas for everything stored in the ledgers.
They are designed to:
1. Enforce type safety at runtime
2. Provide clear validation error messages
3. Be serializable for storage and logging

DESIGN DECISION: Money is always Decimal with two places. Any amount the
engines compute (splits, percentages of a variance) is quantized to cents
with `to_money` before it reaches a model, so float drift never enters
the ledgers.
"""

from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Optional, Union
from uuid import UUID, uuid4

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
)


CENTS = Decimal("0.01")


def to_money(value: Union[Decimal, int, float, str]) -> Decimal:
    """Quantize a value to two decimal places (half-up)."""
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(CENTS, rounding=ROUND_HALF_UP)


# =============================================================================
# ENUMS
# =============================================================================

class ActionPlan(str, Enum):
    """What the user intends to do with a category's allocation."""
    SPEND = "spend"
    SAVE = "save"


class BudgetStatus(str, Enum):
    """
    Planned-vs-actual classification of one category in one week.

    Thresholds are absolute currency units, not percentages.
    """
    ON_TRACK = "on_track"
    CLOSE_TO_LIMIT = "close_to_limit"
    OVER_BUDGET = "over_budget"


class InitializationSource(str, Enum):
    """Where the rows of a week came from when it was initialized."""
    EXISTING = "existing"   # Week already had rows, nothing written
    ROLLOVER = "rollover"   # Copied from the previous week
    DEFAULT = "default"     # Seeded from the default allocation table


# =============================================================================
# REFERENCE DATA
# =============================================================================

class Category(BaseModel):
    """
    A spending category.

    Static reference data, created at setup time. `priority_order` is the
    canonical order used by every ledger join.
    """
    model_config = ConfigDict(str_strip_whitespace=True, frozen=True)

    id: int = Field(..., ge=1)
    name: str = Field(..., min_length=1, max_length=100)
    bank_label: str = Field(default="", max_length=100)
    description: str = Field(default="", max_length=500)
    is_essential: bool = False
    priority_order: int = Field(..., ge=0)


# =============================================================================
# LEDGER ROWS
# =============================================================================

class BudgetAllocation(BaseModel):
    """
    Planned spending for one category in one week.

    CRITICAL: At most one row exists per (week_anchor, category_id).
    Storage writes it by that natural key, never by appending.

    `actual_amount` is a cached copy of the expense total for the pair.
    It is refreshed on every expense mutation and never edited directly.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    week_anchor: date
    category_id: int = Field(..., ge=1)
    planned_amount: Decimal = Field(..., ge=0, decimal_places=2)
    action_plan: ActionPlan = ActionPlan.SPEND
    notes: str = Field(default="", max_length=1000)
    actual_amount: Decimal = Field(default=Decimal("0"), ge=0, decimal_places=2)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    @property
    def key(self) -> tuple[date, int]:
        """Natural key of the row."""
        return self.week_anchor, self.category_id


class Expense(BaseModel):
    """
    A single spending transaction.

    Week and category are fixed at creation. Updates may only touch
    amount, description, payment method and location.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    week_anchor: date
    category_id: int = Field(..., ge=1)
    amount: Decimal = Field(..., gt=0, decimal_places=2)
    description: str = Field(default="", max_length=500)
    payment_method: str = Field(default="", max_length=100)
    location: str = Field(default="", max_length=200)
    created_at: datetime = Field(default_factory=datetime.utcnow)


class ExpenseUpdate(BaseModel):
    """The editable fields of an expense."""
    model_config = ConfigDict(str_strip_whitespace=True)

    amount: Decimal = Field(..., gt=0, decimal_places=2)
    description: str = Field(default="", max_length=500)
    payment_method: str = Field(default="", max_length=100)
    location: str = Field(default="", max_length=200)


class BudgetConfig(BaseModel):
    """Process-wide budget configuration."""

    weekly_budget_limit: Decimal = Field(..., gt=0, decimal_places=2)
    updated_at: datetime = Field(default_factory=datetime.utcnow)


# =============================================================================
# DERIVED VIEWS
# =============================================================================

class AllocationView(BaseModel):
    """An allocation row joined with its category."""

    week_anchor: date
    category: Category
    planned_amount: Decimal
    action_plan: ActionPlan
    notes: str = ""
    actual_amount: Decimal = Decimal("0")
    updated_at: Optional[datetime] = None

    @property
    def category_id(self) -> int:
        return self.category.id


class ExpenseView(BaseModel):
    """An expense joined with its category name and bank label."""

    expense: Expense
    category_name: str
    bank_label: str = ""


class CategoryStatus(BaseModel):
    """Reconciled planned-vs-actual figures for one category in one week."""

    category: Category
    planned_amount: Decimal
    actual_amount: Decimal
    remaining: Decimal
    variance: Decimal
    utilization_pct: float
    status: BudgetStatus
    transaction_count: int = 0


class WeekReconciliation(BaseModel):
    """Reconciliation of a whole week plus its rollup."""

    week_anchor: date
    categories: list[CategoryStatus] = Field(default_factory=list)
    total_planned: Decimal = Decimal("0")
    total_actual: Decimal = Decimal("0")
    total_remaining: Decimal = Decimal("0")
    weekly_budget_limit: Decimal
    budget_utilization: float = 0.0

    def for_category(self, category_id: int) -> Optional[CategoryStatus]:
        """Find the status row of a category, if the week has one."""
        for row in self.categories:
            if row.category.id == category_id:
                return row
        return None


class WeeklySummary(BaseModel):
    """Derivable rollup of one week."""

    week_anchor: date
    total_planned: Decimal
    total_spent: Decimal
    category_count: int
    weekly_budget_limit: Decimal


class InitializationResult(BaseModel):
    """Outcome of initializing a week."""

    week_anchor: date
    source: InitializationSource
    rows_written: int = 0


class RebalanceResult(BaseModel):
    """Outcome of a single-category edit with overflow rebalancing."""

    week_anchor: date
    category_id: int
    old_amount: Decimal
    new_amount: Decimal
    overflow_detected: bool = False
    reduction_per_category: Decimal = Decimal("0")
    reduced_categories: list[int] = Field(default_factory=list)
    skipped_categories: list[int] = Field(default_factory=list)
    total_planned_after: Decimal = Decimal("0")


# =============================================================================
# VALIDATION MODELS
# =============================================================================

class ValidationIssue(BaseModel):
    """A single validation issue found."""

    field: str = Field(
        ...,
        description="Field with the issue"
    )
    issue_type: str = Field(
        ...,
        description="Type of issue (e.g., 'missing', 'invalid_format', 'suspicious_value')"
    )
    message: str = Field(
        ...,
        description="Human-readable description of the issue"
    )
    severity: str = Field(
        ...,
        pattern="^(error|warning|info)$",
        description="Issue severity"
    )
    suggested_fix: Optional[str] = Field(
        default=None,
        description="Suggested fix if available"
    )

    @field_validator("field")
    @classmethod
    def field_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Issue field name cannot be blank")
        return v
