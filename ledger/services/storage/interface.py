"""
Abstract Storage Interface

DESIGN DECISION: The ledger core talks to persistence only through this
interface. This allows us to:
1. Keep Google Sheets as the hosted backend
2. Use in-memory storage for tests and embedding hosts
3. Keep amortization and import logic free of storage details

The interface is intentionally small. Group membership is an index lookup
(find_by_group_id), not a relationship graph; filtering beyond that is a
predicate evaluated over listed records.
"""

from abc import ABC, abstractmethod
from typing import Callable, Optional
from uuid import UUID

from ledger.models.audit import AuditEvent
from ledger.models.category import Category
from ledger.models.transaction import Transaction


TransactionPredicate = Callable[[Transaction], bool]


class LedgerStorageInterface(ABC):
    """
    Abstract interface for ledger storage operations.

    Any storage implementation must implement these methods. Calls are
    made by a single logical writer; implementations need no locking.
    """

    @abstractmethod
    async def save_transaction(self, transaction: Transaction) -> bool:
        """
        Insert a new transaction.

        Raises:
            DuplicateError: If a transaction with the same id exists
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    async def update_transaction(self, transaction: Transaction) -> bool:
        """
        Replace a stored transaction with the given state.

        Raises:
            NotFoundError: If the transaction doesn't exist
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    async def delete_transaction(self, transaction_id: UUID) -> bool:
        """
        Delete a transaction by id.

        Returns:
            True if a record was removed, False if none matched
        """
        pass

    @abstractmethod
    async def get_transaction(self, transaction_id: UUID) -> Optional[Transaction]:
        """Retrieve a transaction by id, or None."""
        pass

    @abstractmethod
    async def list_transactions(
        self,
        predicate: Optional[TransactionPredicate] = None,
    ) -> list[Transaction]:
        """
        List transactions, optionally filtered.

        Returns records ordered by occurrence time (oldest first).
        """
        pass

    @abstractmethod
    async def find_by_group_id(self, group_id: UUID) -> list[Transaction]:
        """Return every record whose group_id equals the given id."""
        pass

    @abstractmethod
    async def list_categories(self) -> list[Category]:
        """Return every stored category."""
        pass

    @abstractmethod
    async def save_category(self, category: Category) -> bool:
        """Insert or replace a category (matched by id)."""
        pass

    @abstractmethod
    async def delete_category(self, category_id: UUID) -> bool:
        """Delete a category by id. Returns False if none matched."""
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """Append an audit event. Returns True if logged successfully."""
        pass

    @abstractmethod
    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """Get all events of one user action in chronological order."""
        pass

    @abstractmethod
    async def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        """Get the most recent audit events (newest first)."""
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class DuplicateError(StorageError):
    """Attempted to insert a duplicate entity."""
    pass


class StorageConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass
