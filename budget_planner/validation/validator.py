"""
Two-Stage Input Validation

DESIGN DECISION: Validation happens in two distinct stages:

STAGE 1 - SCHEMA VALIDATION:
- Required field presence
- Numeric parsing
- Sign checks (allocations >= 0, expenses > 0)
- At most two decimal places
- This catches malformed input before it reaches a ledger

STAGE 2 - SEMANTIC VALIDATION:
- Absurd expense amounts
- Allocations larger than the whole weekly limit
- This catches suspicious but possible input

Stage 1 failures raise InvalidArgumentError before any write.
Stage 2 only ever produces warnings; the write goes ahead.

IMPORTANT: Validation NEVER silently fixes issues.
An amount with three decimal places is rejected, not rounded.
"""

from decimal import Decimal, InvalidOperation
from typing import Any, Optional

from budget_planner.config import AppSettings, get_settings
from budget_planner.errors import InvalidArgumentError
from budget_planner.models.budget import ValidationIssue


class BudgetInputValidator:
    """
    Validates user-supplied amounts and identifiers.

    Stage 1: Schema validation (raises)
    Stage 2: Semantic validation (warnings only)
    """

    def __init__(
        self,
        app_settings: Optional[AppSettings] = None,
    ):
        """
        Initialize validator.

        Args:
            app_settings: Thresholds for the semantic stage.
                          If None, loaded from the environment.
        """
        self._settings = app_settings or get_settings().app

    def _validate_amount_schema(
        self,
        value: Any,
        field: str,
        allow_zero: bool,
    ) -> tuple[Optional[Decimal], list[ValidationIssue]]:
        """
        Stage 1: Schema validation of a money amount.

        Returns: (parsed_amount_or_None, list_of_issues)
        """
        issues = []

        if value is None or (isinstance(value, str) and not value.strip()):
            issues.append(ValidationIssue(
                field=field,
                issue_type="missing",
                message=f"{field} is required",
                severity="error",
                suggested_fix="Enter an amount, e.g. 500 or 499.50",
            ))
            return None, issues

        if isinstance(value, bool):
            amount = None
        else:
            try:
                amount = Decimal(str(value).strip())
            except (InvalidOperation, ValueError):
                amount = None

        if amount is None or not amount.is_finite():
            issues.append(ValidationIssue(
                field=field,
                issue_type="invalid_format",
                message=f"{field} must be a number, got {value!r}",
                severity="error",
                suggested_fix="Use digits and an optional decimal point",
            ))
            return None, issues

        if amount < 0 or (amount == 0 and not allow_zero):
            issues.append(ValidationIssue(
                field=field,
                issue_type="invalid_value",
                message=(
                    f"{field} cannot be negative"
                    if allow_zero
                    else f"{field} must be greater than zero"
                ),
                severity="error",
            ))

        if amount.as_tuple().exponent < -2:
            issues.append(ValidationIssue(
                field=field,
                issue_type="invalid_format",
                message=f"{field} has more than two decimal places",
                severity="error",
                suggested_fix="Round the amount to cents",
            ))

        return amount, issues

    def _validate_expense_semantic(self, amount: Decimal) -> list[ValidationIssue]:
        """Stage 2: suspicious expense amounts."""
        issues = []
        symbol = self._settings.currency_symbol

        max_amount = Decimal(str(self._settings.max_expense_amount))
        if amount > max_amount:
            issues.append(ValidationIssue(
                field="amount",
                issue_type="suspicious_value",
                message=f"Amount ({symbol}{amount:,.2f}) seems unusually high",
                severity="warning",
                suggested_fix="Please verify this amount is correct",
            ))

        if amount < Decimal("1"):
            issues.append(ValidationIssue(
                field="amount",
                issue_type="suspicious_value",
                message=f"Amount ({symbol}{amount}) seems unusually low",
                severity="warning",
                suggested_fix="Please verify this amount is correct",
            ))

        return issues

    def _validate_allocation_semantic(
        self,
        amount: Decimal,
        weekly_limit: Optional[Decimal],
    ) -> list[ValidationIssue]:
        """Stage 2: an allocation bigger than the whole week."""
        if weekly_limit is None or amount <= weekly_limit:
            return []

        symbol = self._settings.currency_symbol
        return [ValidationIssue(
            field="amount",
            issue_type="exceeds_limit",
            message=(
                f"Allocation ({symbol}{amount:,.2f}) is larger than the weekly "
                f"budget limit ({symbol}{weekly_limit:,.2f})"
            ),
            severity="warning",
            suggested_fix="Raise the weekly limit or lower this allocation",
        )]

    def _raise_on_errors(
        self,
        operation: str,
        issues: list[ValidationIssue],
    ) -> None:
        errors = [issue for issue in issues if issue.severity == "error"]
        if errors:
            raise InvalidArgumentError(
                f"{operation}: " + "; ".join(issue.message for issue in errors),
                issues=issues,
            )

    def validate_allocation_amount(
        self,
        value: Any,
        weekly_limit: Optional[Decimal] = None,
    ) -> tuple[Decimal, list[ValidationIssue]]:
        """
        Validate a planned amount (zero allowed).

        Returns:
            (amount, warnings)

        Raises:
            InvalidArgumentError: On any schema error
        """
        amount, issues = self._validate_amount_schema(value, "amount", allow_zero=True)
        self._raise_on_errors("Invalid allocation", issues)
        return amount, self._validate_allocation_semantic(amount, weekly_limit)

    def validate_expense_amount(
        self,
        value: Any,
    ) -> tuple[Decimal, list[ValidationIssue]]:
        """
        Validate an expense amount (strictly positive).

        Returns:
            (amount, warnings)

        Raises:
            InvalidArgumentError: On any schema error
        """
        amount, issues = self._validate_amount_schema(value, "amount", allow_zero=False)
        self._raise_on_errors("Invalid expense", issues)
        return amount, self._validate_expense_semantic(amount)

    def validate_limit(self, value: Any) -> Decimal:
        """Validate a new weekly budget limit (strictly positive)."""
        amount, issues = self._validate_amount_schema(
            value, "weekly_budget_limit", allow_zero=False
        )
        self._raise_on_errors("Invalid weekly budget limit", issues)
        return amount

    def validate_category_id(self, value: Any) -> int:
        """Parse a category id. Existence is checked by the registry."""
        if value is None or isinstance(value, bool):
            category_id = None
        else:
            try:
                category_id = int(str(value).strip())
            except ValueError:
                category_id = None

        if category_id is None or category_id < 1:
            raise InvalidArgumentError(
                f"Invalid category id: {value!r}",
                issues=[ValidationIssue(
                    field="category_id",
                    issue_type="invalid_format" if category_id is None else "invalid_value",
                    message=f"category_id must be a positive integer, got {value!r}",
                    severity="error",
                )],
            )
        return category_id

    def get_user_friendly_summary(
        self,
        issues: list[ValidationIssue],
    ) -> str:
        """
        Summarize issues for a person reading a terminal.
        """
        if not issues:
            return "All checks passed."

        lines = []
        errors = [i for i in issues if i.severity == "error"]
        warnings = [i for i in issues if i.severity == "warning"]

        if errors:
            lines.append("The input could not be accepted:")
            for issue in errors:
                lines.append(f"  - {issue.message}")
                if issue.suggested_fix:
                    lines.append(f"    hint: {issue.suggested_fix}")

        if warnings:
            if lines:
                lines.append("")
            lines.append("Please verify the following:")
            for issue in warnings:
                lines.append(f"  - {issue.message}")

        return "\n".join(lines)
