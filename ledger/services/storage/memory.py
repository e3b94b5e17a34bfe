"""
In-Memory Storage Implementation

Keeps transactions, categories and audit events in dictionaries. Used by
the test suite and by hosts that bring their own persistence and only need
the ledger logic.
"""

from typing import Optional
from uuid import UUID

from ledger.models.audit import AuditEvent
from ledger.models.category import Category
from ledger.models.transaction import Transaction
from ledger.services.storage.interface import (
    AuditStorageInterface,
    DuplicateError,
    LedgerStorageInterface,
    NotFoundError,
    TransactionPredicate,
)


class InMemoryLedgerStorage(LedgerStorageInterface):
    """Dictionary-backed ledger storage. Records are copied in and out."""

    def __init__(self):
        self._transactions: dict[UUID, Transaction] = {}
        self._categories: dict[UUID, Category] = {}

    async def save_transaction(self, transaction: Transaction) -> bool:
        if transaction.id in self._transactions:
            raise DuplicateError(f"Transaction already exists: {transaction.id}")
        self._transactions[transaction.id] = transaction.model_copy(deep=True)
        return True

    async def update_transaction(self, transaction: Transaction) -> bool:
        if transaction.id not in self._transactions:
            raise NotFoundError(f"Transaction not found: {transaction.id}")
        self._transactions[transaction.id] = transaction.model_copy(deep=True)
        return True

    async def delete_transaction(self, transaction_id: UUID) -> bool:
        return self._transactions.pop(transaction_id, None) is not None

    async def get_transaction(self, transaction_id: UUID) -> Optional[Transaction]:
        stored = self._transactions.get(transaction_id)
        return stored.model_copy(deep=True) if stored else None

    async def list_transactions(
        self,
        predicate: Optional[TransactionPredicate] = None,
    ) -> list[Transaction]:
        records = [
            t.model_copy(deep=True)
            for t in self._transactions.values()
            if predicate is None or predicate(t)
        ]
        records.sort(key=lambda t: t.occurred_at)
        return records

    async def find_by_group_id(self, group_id: UUID) -> list[Transaction]:
        return await self.list_transactions(lambda t: t.group_id == group_id)

    async def list_categories(self) -> list[Category]:
        return [c.model_copy() for c in self._categories.values()]

    async def save_category(self, category: Category) -> bool:
        self._categories[category.id] = category.model_copy()
        return True

    async def delete_category(self, category_id: UUID) -> bool:
        return self._categories.pop(category_id, None) is not None

    def __len__(self) -> int:
        return len(self._transactions)


class InMemoryAuditStorage(AuditStorageInterface):
    """Append-only list of audit events."""

    def __init__(self):
        self.events: list[AuditEvent] = []

    async def append_event(self, event: AuditEvent) -> bool:
        self.events.append(event)
        return True

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        events = [e for e in self.events if e.correlation_id == correlation_id]
        return sorted(events, key=lambda e: e.timestamp)

    async def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        return sorted(self.events, key=lambda e: e.timestamp, reverse=True)[:limit]
