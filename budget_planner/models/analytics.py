"""
Analytics and Recommendation Models

Read-only outputs of the adjustment and analytics engines.
None of these are persisted; they are recomputed from the ledgers on demand.
"""

from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class AlertType(str, Enum):
    """Visual weight of a spending alert."""
    INFO = "info"
    WARNING = "warning"
    DANGER = "danger"


class AlertPriority(str, Enum):
    MEDIUM = "medium"
    HIGH = "high"


class SpendingAlert(BaseModel):
    """A single alert about the week's spending."""

    type: AlertType
    priority: AlertPriority
    message: str
    category_id: Optional[int] = None


class ReallocationSuggestion(BaseModel):
    """
    A suggested change to a category's allocation.

    Exactly one of `suggested_reduction` / `suggested_increase` is set.
    Suggestions are never applied automatically.
    """

    category_id: int
    category: str
    current_amount: Decimal
    suggested_reduction: Optional[Decimal] = None
    suggested_increase: Optional[Decimal] = None
    reason: str


class WeeklyTrend(BaseModel):
    """Spending totals of one week."""

    week_anchor: date
    total_spent: Decimal
    transaction_count: int
    avg_transaction: Decimal


class CategorySpending(BaseModel):
    """Spending of one category over an analytics window."""

    category_id: int
    category_name: str
    bank_label: str = ""
    total_spent: Decimal
    transaction_count: int
    avg_transaction: Decimal


class CategoryPrediction(BaseModel):
    """Predicted allocation for next week."""

    category_id: int
    category_name: str
    priority_order: int
    avg_weekly_spending: Decimal
    spending_volatility: Decimal
    transaction_frequency: int
    suggested_amount: Decimal


class MonthlyForecast(BaseModel):
    """Spending of a calendar month, broken down by category."""

    month: int = Field(..., ge=1, le=12)
    year: int
    total_spent: Decimal
    categories: list[CategorySpending] = Field(default_factory=list)
    daily_average: Decimal


class SavingsRecommendation(BaseModel):
    """A suggestion to trim a non-essential category."""

    category_id: int
    category: str
    current_spending: Decimal
    potential_savings: Decimal
    suggestion: str
