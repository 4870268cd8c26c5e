"""
Category Registry

Static reference data: the spending categories and the default weekly
allocation table used to seed a week that has nothing to roll over from.
"""

from decimal import Decimal
from typing import Optional

import structlog

from budget_planner.errors import NotFoundError
from budget_planner.models.budget import Category
from budget_planner.services.storage.interface import CategoryStorageInterface


logger = structlog.get_logger(__name__)


DEFAULT_CATEGORIES: tuple[Category, ...] = (
    Category(id=1, name="Phone", bank_label="UnoBank",
             description="Mobile phone bills and data",
             is_essential=True, priority_order=1),
    Category(id=2, name="Groceries", bank_label="GoTyme",
             description="Food and household items",
             is_essential=True, priority_order=2),
    Category(id=3, name="Rent", bank_label="GSave",
             description="Monthly rent payment",
             is_essential=True, priority_order=3),
    Category(id=4, name="Electric", bank_label="MayBank",
             description="Electricity bills",
             is_essential=True, priority_order=4),
    Category(id=5, name="Motorbike", bank_label="Maya",
             description="Transportation and fuel",
             is_essential=True, priority_order=5),
    Category(id=6, name="Daily Expense", bank_label="GCash",
             description="Daily miscellaneous expenses",
             is_essential=False, priority_order=6),
    Category(id=7, name="Savings", bank_label="Maya Savings",
             description="Emergency and future savings",
             is_essential=True, priority_order=7),
    Category(id=8, name="GCredit", bank_label="GCash",
             description="GCash credit payments",
             is_essential=False, priority_order=8),
    Category(id=9, name="CIMB Credit", bank_label="CIMB",
             description="CIMB credit card payments",
             is_essential=False, priority_order=9),
    Category(id=10, name="Misc", bank_label="BPI",
             description="Miscellaneous expenses",
             is_essential=False, priority_order=10),
    Category(id=11, name="Extra Debts", bank_label="Cebuana",
             description="Additional debt payments",
             is_essential=False, priority_order=11),
)

# Weekly amount seeded per category id when a week has no predecessor
DEFAULT_ALLOCATIONS: dict[int, Decimal] = {
    1: Decimal("750.00"),
    2: Decimal("500.00"),
    3: Decimal("1750.00"),
    4: Decimal("400.00"),
    5: Decimal("900.00"),
    6: Decimal("1050.00"),
    7: Decimal("1000.00"),
    8: Decimal("0.00"),
    9: Decimal("3650.00"),
    10: Decimal("2000.00"),
    11: Decimal("0.00"),
}


class CategoryRegistry:
    """Read access to the category table, ordered by priority."""

    def __init__(self, storage: CategoryStorageInterface):
        self._storage = storage

    async def list_categories(self) -> list[Category]:
        categories = await self._storage.list_categories()
        return sorted(categories, key=lambda c: c.priority_order)

    async def get(self, category_id: int) -> Optional[Category]:
        for category in await self._storage.list_categories():
            if category.id == category_id:
                return category
        return None

    async def require(self, category_id: int) -> Category:
        """
        Get a category or fail.

        Raises:
            NotFoundError: If no category has this id
        """
        category = await self.get(category_id)
        if category is None:
            raise NotFoundError(f"Category {category_id} not found")
        return category

    async def non_essential(self) -> list[Category]:
        return [c for c in await self.list_categories() if not c.is_essential]

    async def by_id(self) -> dict[int, Category]:
        return {c.id: c for c in await self.list_categories()}

    async def ensure_defaults(self) -> int:
        """
        Seed the default categories into an empty store.

        Returns:
            Number of categories written (0 if the store already had some)
        """
        if await self._storage.list_categories():
            return 0

        for category in DEFAULT_CATEGORIES:
            await self._storage.save_category(category)

        logger.info("default_categories_seeded", count=len(DEFAULT_CATEGORIES))
        return len(DEFAULT_CATEGORIES)
