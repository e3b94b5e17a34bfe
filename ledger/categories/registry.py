"""
Category Registry

Holds the learned (kind, main, sub) taxonomy and ranks it by usage.

DESIGN DECISION: The registry is in-memory and synchronous. Ranking is
called while the user is choosing a category and must not suspend. The
application loads the registry from storage at startup and persists the
entries this registry returns from its mutating methods.

Ranking rules:
- A main category's usage is the sum of its sub categories' usage
- Higher usage first, ties broken alphabetically
- Counters only ever grow; they exist purely for ordering
"""

from collections import defaultdict
from typing import Iterable, Optional

import structlog

from ledger.models.category import Category
from ledger.models.transaction import TransactionKind


logger = structlog.get_logger(__name__)


# Seed taxonomy, installed on an empty registry.
DEFAULT_EXPENSE_CATEGORIES: list[tuple[str, list[str]]] = [
    ("Clothing", ["Everyday Wear", "Personal Care", "Accessories"]),
    ("Food", ["Groceries", "Dining Out", "Social Dining", "Supplements"]),
    ("Housing", ["Rent & Utilities", "Household", "Healthcare", "Insurance & Subscriptions", "Gifts & Family"]),
    ("Transport", ["Commute", "Fitness", "Entertainment", "Travel", "Electronics"]),
]

DEFAULT_INCOME_CATEGORIES: list[tuple[str, list[str]]] = [
    ("Salary", ["Wages", "Part-time", "Bonus", "Allowances"]),
    ("Investment", ["Returns", "Interest", "Dividends", "Rental Income"]),
    ("Business", ["Sales", "Commission", "Royalties", "Advertising"]),
    ("Other", ["Gifts", "Refunds", "Winnings", "Other Income"]),
]


class CategoryError(ValueError):
    """Raised for an invalid taxonomy management edit."""
    pass


class CategoryRegistry:
    """
    In-memory category taxonomy with usage ranking.

    Usage:
        registry = CategoryRegistry(await storage.list_categories())
        seeded = registry.initialize_defaults()
        category = registry.add_or_update(TransactionKind.EXPENSE, "Food", "Dining Out")
    """

    def __init__(self, categories: Optional[Iterable[Category]] = None):
        self._entries: dict[tuple[str, str, str], Category] = {}
        if categories:
            self.load(categories)

    def load(self, categories: Iterable[Category]) -> None:
        """Replace the registry contents with stored categories."""
        self._entries = {c.key: c for c in categories}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: tuple[str, str, str]) -> bool:
        return key in self._entries

    def get(
        self,
        kind: TransactionKind,
        main_category: str,
        sub_category: str,
    ) -> Optional[Category]:
        return self._entries.get((kind.value, main_category, sub_category))

    def initialize_defaults(self) -> list[Category]:
        """
        Seed the default taxonomy when the registry is empty.

        Idempotent: does nothing if any category exists.

        Returns:
            The newly created categories (empty on a no-op)
        """
        if self._entries:
            return []

        created = []
        for kind, taxonomy in (
            (TransactionKind.EXPENSE, DEFAULT_EXPENSE_CATEGORIES),
            (TransactionKind.INCOME, DEFAULT_INCOME_CATEGORIES),
        ):
            for main_category, subs in taxonomy:
                for sub_category in subs:
                    category = Category(
                        kind=kind,
                        main_category=main_category,
                        sub_category=sub_category,
                        usage_count=0,
                    )
                    self._entries[category.key] = category
                    created.append(category)

        logger.info("category_defaults_seeded", count=len(created))
        return created

    def add_or_update(
        self,
        kind: TransactionKind,
        main_category: str,
        sub_category: str,
    ) -> Category:
        """
        Record one use of a category triple.

        Increments the counter of an existing triple, otherwise creates it
        with a count of 1. Never fails.
        """
        main_category = main_category.strip()
        sub_category = sub_category.strip()
        existing = self._entries.get((kind.value, main_category, sub_category))
        if existing is not None:
            existing.usage_count += 1
            return existing

        category = Category(
            kind=kind,
            main_category=main_category,
            sub_category=sub_category,
            usage_count=1,
        )
        self._entries[category.key] = category
        logger.debug(
            "category_created",
            kind=kind.value,
            main_category=main_category,
            sub_category=sub_category,
        )
        return category

    def all_categories(self, kind: Optional[TransactionKind] = None) -> list[Category]:
        """All categories, usage descending then main and sub alphabetically."""
        categories = [
            c for c in self._entries.values()
            if kind is None or c.kind == kind
        ]
        return sorted(
            categories,
            key=lambda c: (-c.usage_count, c.main_category, c.sub_category),
        )

    def main_categories(self, kind: TransactionKind) -> list[str]:
        """Distinct main categories ranked by the summed usage of their subs."""
        usage: dict[str, int] = defaultdict(int)
        for category in self._entries.values():
            if category.kind == kind:
                usage[category.main_category] += category.usage_count
        return sorted(usage, key=lambda main: (-usage[main], main))

    def sub_categories(self, main_category: str, kind: TransactionKind) -> list[str]:
        """Sub categories of one main category, ranked by usage."""
        subs = [
            c for c in self._entries.values()
            if c.kind == kind and c.main_category == main_category
        ]
        subs.sort(key=lambda c: (-c.usage_count, c.sub_category))
        return [c.sub_category for c in subs]

    def delete(self, category: Category) -> bool:
        """Remove one category. Transactions filed under it are untouched."""
        return self._entries.pop(category.key, None) is not None

    def rename(
        self,
        category: Category,
        main_category: str,
        sub_category: str,
    ) -> Category:
        """
        Rename a category in place, keeping its id and usage count.

        Transactions keep the names they were saved with.

        Raises:
            CategoryError: If the category is unknown, a name is empty, or
                the new triple already exists
        """
        main_category = main_category.strip()
        sub_category = sub_category.strip()
        if not main_category or not sub_category:
            raise CategoryError("Category names cannot be empty")
        if category.key not in self._entries:
            raise CategoryError(
                f"Unknown category: {category.main_category} / {category.sub_category}"
            )

        new_key = (category.kind.value, main_category, sub_category)
        if new_key == category.key:
            return category
        if new_key in self._entries:
            raise CategoryError(
                f"Category already exists: {main_category} / {sub_category}"
            )

        stored = self._entries.pop(category.key)
        stored.main_category = main_category
        stored.sub_category = sub_category
        self._entries[stored.key] = stored
        return stored

    def format_for_prompt(self, kind: TransactionKind) -> str:
        """
        Render the taxonomy for the extraction model, one line per main
        category in ranking order, subs alphabetical.
        """
        lines = [f"Existing {kind.value} categories (prefer these):", ""]
        for main_category in self.main_categories(kind):
            subs = sorted(
                c.sub_category for c in self._entries.values()
                if c.kind == kind and c.main_category == main_category
            )
            lines.append(f"[{main_category}] {', '.join(subs)}")
        return "\n".join(lines) + "\n"
