"""
Data Models Package

This package contains all Pydantic models used in the Personal Ledger system.
All data flowing through the system must conform to these schemas.
"""

from ledger.models.transaction import (
    CaptureOutcome,
    ExtractedTransaction,
    ImportResult,
    InstallmentRequest,
    RowError,
    ScheduleEntry,
    Transaction,
    TransactionKind,
    parse_local_datetime,
)
from ledger.models.category import Category
from ledger.models.validation import ValidationIssue, ValidationResult
from ledger.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Ledger models
    "CaptureOutcome",
    "Category",
    "ExtractedTransaction",
    "ImportResult",
    "InstallmentRequest",
    "RowError",
    "ScheduleEntry",
    "Transaction",
    "TransactionKind",
    "ValidationIssue",
    "ValidationResult",
    "parse_local_datetime",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
