"""
Error Taxonomy

Every failure the core can report falls into one of four kinds:

- INVALID_ARGUMENT: bad input, rejected before any write
- NOT_FOUND: unknown category or expense
- CONFLICT_OR_RACE: the backend reported a natural-key collision
- PERSISTENCE_FAILURE: the backend is unreachable or rejected the call

Callers branch on `error.kind` instead of on concrete classes, so a request
layer can map kinds to responses (400 / 404 / 409 / 500) in one place.
"""

from enum import Enum
from typing import Optional

from budget_planner.models.budget import ValidationIssue


class ErrorKind(str, Enum):
    """Kind of failure reported by the core."""
    INVALID_ARGUMENT = "invalid_argument"
    NOT_FOUND = "not_found"
    CONFLICT_OR_RACE = "conflict_or_race"
    PERSISTENCE_FAILURE = "persistence_failure"


class BudgetError(Exception):
    """Base exception for all budget planner errors."""

    kind: ErrorKind = ErrorKind.PERSISTENCE_FAILURE


class InvalidArgumentError(BudgetError):
    """Input failed validation. Carries the issues that were found."""

    kind = ErrorKind.INVALID_ARGUMENT

    def __init__(
        self,
        message: str,
        issues: Optional[list[ValidationIssue]] = None,
    ):
        super().__init__(message)
        self.issues = issues or []


class NotFoundError(BudgetError):
    """Referenced category or expense does not exist."""

    kind = ErrorKind.NOT_FOUND
