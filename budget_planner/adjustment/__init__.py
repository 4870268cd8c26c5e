"""Auto-adjustment package."""

from budget_planner.adjustment.engine import (
    AUTO_ADJUSTED_NOTE,
    AUTO_REDUCED_NOTE,
    SMART_ADJUSTMENT_NOTE,
    AutoAdjustmentEngine,
)

__all__ = [
    "AUTO_ADJUSTED_NOTE",
    "AUTO_REDUCED_NOTE",
    "SMART_ADJUSTMENT_NOTE",
    "AutoAdjustmentEngine",
]
