"""Category taxonomy package."""

from ledger.categories.registry import (
    DEFAULT_EXPENSE_CATEGORIES,
    DEFAULT_INCOME_CATEGORIES,
    CategoryError,
    CategoryRegistry,
)

__all__ = [
    "DEFAULT_EXPENSE_CATEGORIES",
    "DEFAULT_INCOME_CATEGORIES",
    "CategoryError",
    "CategoryRegistry",
]
