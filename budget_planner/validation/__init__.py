"""Validation package."""

from budget_planner.validation.validator import BudgetInputValidator

__all__ = ["BudgetInputValidator"]
