"""Services package."""

from ledger.services.archive import ArchiveCodec, ArchiveError, ZipArchiveCodec
from ledger.services.currency import CurrencyError, ExchangeRateService
from ledger.services.ocr import (
    InvalidImageError,
    MindeeOCRService,
    NoTextFoundError,
    OCRError,
)
from ledger.services.storage import (
    AuditStorageInterface,
    DuplicateError,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsLedgerStorage,
    InMemoryAuditStorage,
    InMemoryLedgerStorage,
    LedgerStorageInterface,
    NotFoundError,
    StorageConnectionError,
    StorageError,
)

__all__ = [
    # Archive
    "ArchiveCodec",
    "ArchiveError",
    "ZipArchiveCodec",
    # Currency
    "CurrencyError",
    "ExchangeRateService",
    # OCR
    "InvalidImageError",
    "MindeeOCRService",
    "NoTextFoundError",
    "OCRError",
    # Storage
    "AuditStorageInterface",
    "DuplicateError",
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "GoogleSheetsLedgerStorage",
    "InMemoryAuditStorage",
    "InMemoryLedgerStorage",
    "LedgerStorageInterface",
    "NotFoundError",
    "StorageConnectionError",
    "StorageError",
]
