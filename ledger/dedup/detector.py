"""
Duplicate Detection

The same receipt can reach the ledger twice: a shortcut capture and a
photo capture a minute apart, or an archive imported a second time. These
predicates decide whether a candidate matches something already recorded.

Two policies are in use:
- AI capture: same kind, amounts within 0.01, times within 2 minutes
- Import: same kind, amounts within 0.01, times within 1 second, and the
  same main and sub category

A match is never an error. Callers report it as a skipped record.
"""

from datetime import timedelta
from decimal import Decimal
from typing import Iterable, Optional

from pydantic import BaseModel, ConfigDict

from ledger.config.settings import AppSettings
from ledger.models.transaction import Transaction


class DuplicatePolicy(BaseModel):
    """Tolerances for treating two records as the same transaction."""
    model_config = ConfigDict(frozen=True)

    time_window: timedelta
    amount_tolerance: Decimal
    match_categories: bool = False
    name: str = "custom"

    @classmethod
    def ai_capture(cls, settings: Optional[AppSettings] = None) -> "DuplicatePolicy":
        if settings is None:
            return cls(
                time_window=timedelta(minutes=2),
                amount_tolerance=Decimal("0.01"),
                name="ai_capture",
            )
        return cls(
            time_window=timedelta(seconds=settings.capture_duplicate_window_seconds),
            amount_tolerance=Decimal(str(settings.duplicate_amount_tolerance)),
            name="ai_capture",
        )

    @classmethod
    def bulk_import(cls, settings: Optional[AppSettings] = None) -> "DuplicatePolicy":
        if settings is None:
            return cls(
                time_window=timedelta(seconds=1),
                amount_tolerance=Decimal("0.01"),
                match_categories=True,
                name="import",
            )
        return cls(
            time_window=timedelta(seconds=settings.import_duplicate_window_seconds),
            amount_tolerance=Decimal(str(settings.duplicate_amount_tolerance)),
            match_categories=True,
            name="import",
        )

    def matches(self, candidate: Transaction, existing: Transaction) -> bool:
        if candidate.kind != existing.kind:
            return False
        if abs(candidate.amount - existing.amount) > self.amount_tolerance:
            return False
        if abs(candidate.occurred_at - existing.occurred_at) > self.time_window:
            return False
        if self.match_categories and (
            candidate.main_category != existing.main_category
            or candidate.sub_category != existing.sub_category
        ):
            return False
        return True


def find_duplicate(
    candidate: Transaction,
    existing: Iterable[Transaction],
    policy: DuplicatePolicy,
) -> Optional[Transaction]:
    """Return the first existing record the candidate duplicates, if any."""
    for record in existing:
        if record.id != candidate.id and policy.matches(candidate, record):
            return record
    return None


def is_duplicate(
    candidate: Transaction,
    existing: Iterable[Transaction],
    time_window: timedelta,
    amount_tolerance: Decimal,
    match_categories: bool = False,
) -> bool:
    """
    True iff some existing record has the same kind, an amount within
    amount_tolerance and a time within time_window (bounds inclusive).
    """
    policy = DuplicatePolicy(
        time_window=time_window,
        amount_tolerance=Decimal(str(amount_tolerance)),
        match_categories=match_categories,
    )
    return find_duplicate(candidate, existing, policy) is not None
