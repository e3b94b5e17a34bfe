"""Validation package."""

from ledger.validation.validator import (
    LedgerValidationError,
    TransactionValidator,
    parse_amount,
    parse_rate,
)

__all__ = [
    "LedgerValidationError",
    "TransactionValidator",
    "parse_amount",
    "parse_rate",
]
