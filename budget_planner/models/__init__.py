"""
Data Models Package

This package contains all Pydantic models used by the Weekly Budget Planner.
All data flowing through the ledgers and engines must conform to these schemas.
"""

from budget_planner.models.budget import (
    ActionPlan,
    AllocationView,
    BudgetAllocation,
    BudgetConfig,
    BudgetStatus,
    Category,
    CategoryStatus,
    Expense,
    ExpenseUpdate,
    ExpenseView,
    InitializationResult,
    InitializationSource,
    RebalanceResult,
    ValidationIssue,
    WeeklySummary,
    WeekReconciliation,
    to_money,
)
from budget_planner.models.analytics import (
    AlertPriority,
    AlertType,
    CategoryPrediction,
    CategorySpending,
    MonthlyForecast,
    ReallocationSuggestion,
    SavingsRecommendation,
    SpendingAlert,
    WeeklyTrend,
)
from budget_planner.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Budget models
    "ActionPlan",
    "AllocationView",
    "BudgetAllocation",
    "BudgetConfig",
    "BudgetStatus",
    "Category",
    "CategoryStatus",
    "Expense",
    "ExpenseUpdate",
    "ExpenseView",
    "InitializationResult",
    "InitializationSource",
    "RebalanceResult",
    "ValidationIssue",
    "WeeklySummary",
    "WeekReconciliation",
    "to_money",
    # Analytics models
    "AlertPriority",
    "AlertType",
    "CategoryPrediction",
    "CategorySpending",
    "MonthlyForecast",
    "ReallocationSuggestion",
    "SavingsRecommendation",
    "SpendingAlert",
    "WeeklyTrend",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
