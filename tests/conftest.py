"""
Shared fixtures.

Everything runs against in-memory storage; no network, no Google APIs.
Async code is driven with asyncio.run inside each test.
"""

from datetime import datetime
from decimal import Decimal

import pytest

from ledger.audit import AuditLogger
from ledger.categories import CategoryRegistry
from ledger.config import AppSettings, CurrencySettings
from ledger.models.transaction import Transaction, TransactionKind
from ledger.services.storage import InMemoryAuditStorage, InMemoryLedgerStorage


@pytest.fixture
def app_settings():
    return AppSettings(default_currency="CNY", default_category="Other")


@pytest.fixture
def currency_settings():
    return CurrencySettings(api_key=None, cache_ttl_seconds=3600)


@pytest.fixture
def storage():
    return InMemoryLedgerStorage()


@pytest.fixture
def audit_storage():
    return InMemoryAuditStorage()


@pytest.fixture
def audit_logger(audit_storage):
    return AuditLogger(audit_storage)


@pytest.fixture
def registry():
    return CategoryRegistry()


@pytest.fixture
def make_txn():
    """Factory for plain expense records with sensible defaults."""

    def _make(**overrides) -> Transaction:
        fields = {
            "kind": TransactionKind.EXPENSE,
            "occurred_at": datetime(2024, 1, 5, 12, 0, 0),
            "amount": Decimal("12.50"),
            "currency": "CNY",
            "main_category": "Food",
            "sub_category": "Dining Out",
            "counterparty": "Noodle Bar",
            "note": "",
        }
        fields.update(overrides)
        return Transaction(**fields)

    return _make
