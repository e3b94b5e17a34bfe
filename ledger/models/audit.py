"""
Audit Models for Personal Ledger

Every change to the ledger is recorded as an audit event. This gives:
1. Traceability of each save, delete and bulk operation
2. A diagnostic trail when a capture or import goes wrong
3. The ability to reconstruct how an installment group evolved

DESIGN DECISION: Audit logs are append-only. Events are never edited or removed.
"""

import json
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AuditEventType(str, Enum):
    """Types of events recorded in the audit trail."""
    # Transactions
    TRANSACTION_SAVED = "transaction_saved"
    TRANSACTION_UPDATED = "transaction_updated"
    TRANSACTION_DELETED = "transaction_deleted"
    DUPLICATE_SKIPPED = "duplicate_skipped"
    VALIDATION_FAILED = "validation_failed"

    # Taxonomy
    CATEGORY_CREATED = "category_created"
    CATEGORY_DELETED = "category_deleted"

    # Installments
    INSTALLMENT_GROUP_CREATED = "installment_group_created"
    INSTALLMENT_GROUP_DELETED = "installment_group_deleted"
    INSTALLMENT_PERIOD_DELETED = "installment_period_deleted"
    INSTALLMENT_PAID_OFF_EARLY = "installment_paid_off_early"

    # Bulk transfer
    EXPORT_COMPLETED = "export_completed"
    IMPORT_COMPLETED = "import_completed"
    IMPORT_ROW_FAILED = "import_row_failed"

    # System events
    SYSTEM_ERROR = "system_error"
    EXTERNAL_SERVICE_ERROR = "external_service_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    Every significant ledger action creates one of these.
    """

    event_id: UUID = Field(default_factory=uuid4)
    timestamp: datetime = Field(
        default_factory=_utcnow,
        description="When the event was recorded (UTC)"
    )

    event_type: AuditEventType
    severity: AuditSeverity = AuditSeverity.INFO

    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'transaction', 'group', 'archive')"
    )
    entity_id: Optional[UUID] = None
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="Ties together the events of one user action"
    )

    description: str = Field(..., max_length=500)
    details: dict[str, Any] = Field(default_factory=dict)

    error_message: Optional[str] = None

    def to_log_dict(self) -> dict:
        """Convert to a dictionary suitable for structured logging."""
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": str(self.entity_id) if self.entity_id else None,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
        }

    def to_sheets_row(self) -> list:
        """
        Convert to a row for the audit worksheet.

        Columns: [event_id, timestamp, event_type, severity, entity_type,
        entity_id, correlation_id, description, details_json, error_message]
        """
        return [
            str(self.event_id),
            self.timestamp.isoformat(),
            self.event_type.value,
            self.severity.value,
            self.entity_type or "",
            str(self.entity_id) if self.entity_id else "",
            str(self.correlation_id) if self.correlation_id else "",
            self.description,
            json.dumps(self.details, default=str) if self.details else "",
            self.error_message or "",
        ]


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.transaction_saved(txn, "manual", correlation_id)
        event = AuditEventBuilder.import_completed(result.model_dump(), correlation_id)
    """

    @staticmethod
    def transaction_saved(
        transaction_id: UUID,
        amount: str,
        currency: str,
        source: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_SAVED,
            entity_type="transaction",
            entity_id=transaction_id,
            correlation_id=correlation_id,
            description=f"Transaction saved from {source}: {amount} {currency}",
            details={"amount": amount, "currency": currency, "source": source},
        )

    @staticmethod
    def transaction_updated(
        transaction_id: UUID,
        changed_fields: list[str],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_UPDATED,
            entity_type="transaction",
            entity_id=transaction_id,
            correlation_id=correlation_id,
            description=f"Transaction updated ({len(changed_fields)} fields)",
            details={"changed_fields": changed_fields},
        )

    @staticmethod
    def transaction_deleted(
        transaction_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_DELETED,
            entity_type="transaction",
            entity_id=transaction_id,
            correlation_id=correlation_id,
            description="Transaction deleted",
        )

    @staticmethod
    def duplicate_skipped(
        existing_id: UUID,
        amount: str,
        policy: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.DUPLICATE_SKIPPED,
            severity=AuditSeverity.WARNING,
            entity_type="transaction",
            entity_id=existing_id,
            correlation_id=correlation_id,
            description=f"Skipped duplicate of existing transaction ({amount})",
            details={"amount": amount, "policy": policy},
        )

    @staticmethod
    def validation_failed(
        issues: list[dict],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.VALIDATION_FAILED,
            severity=AuditSeverity.WARNING,
            entity_type="transaction",
            correlation_id=correlation_id,
            description=f"Validation failed with {len(issues)} issues",
            details={"issues": issues},
        )

    @staticmethod
    def category_created(
        kind: str,
        main_category: str,
        sub_category: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CATEGORY_CREATED,
            entity_type="category",
            correlation_id=correlation_id,
            description=f"Category created: {main_category} / {sub_category} ({kind})",
            details={
                "kind": kind,
                "main_category": main_category,
                "sub_category": sub_category,
            },
        )

    @staticmethod
    def category_deleted(
        kind: str,
        main_category: str,
        sub_category: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CATEGORY_DELETED,
            entity_type="category",
            correlation_id=correlation_id,
            description=f"Category deleted: {main_category} / {sub_category} ({kind})",
        )

    @staticmethod
    def installment_group_created(
        group_id: UUID,
        period_count: int,
        payment: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.INSTALLMENT_GROUP_CREATED,
            entity_type="group",
            entity_id=group_id,
            correlation_id=correlation_id,
            description=f"Installment group created: {period_count} x {payment}",
            details={"period_count": period_count, "payment": payment},
        )

    @staticmethod
    def installment_group_deleted(
        group_id: UUID,
        deleted_count: int,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.INSTALLMENT_GROUP_DELETED,
            entity_type="group",
            entity_id=group_id,
            correlation_id=correlation_id,
            description=f"Installment group deleted ({deleted_count} periods)",
            details={"deleted_count": deleted_count},
        )

    @staticmethod
    def installment_period_deleted(
        transaction_id: UUID,
        period_index: Optional[int],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.INSTALLMENT_PERIOD_DELETED,
            entity_type="transaction",
            entity_id=transaction_id,
            correlation_id=correlation_id,
            description=f"Installment period {period_index} deleted",
            details={"period_index": period_index},
        )

    @staticmethod
    def installment_paid_off_early(
        transaction_id: UUID,
        absorbed_periods: int,
        new_amount: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.INSTALLMENT_PAID_OFF_EARLY,
            entity_type="transaction",
            entity_id=transaction_id,
            correlation_id=correlation_id,
            description=f"Paid off early, absorbing {absorbed_periods} periods",
            details={"absorbed_periods": absorbed_periods, "new_amount": new_amount},
        )

    @staticmethod
    def export_completed(
        archive_path: str,
        transaction_count: int,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXPORT_COMPLETED,
            entity_type="archive",
            correlation_id=correlation_id,
            description=f"Exported {transaction_count} transactions",
            details={"archive_path": archive_path, "transaction_count": transaction_count},
        )

    @staticmethod
    def import_completed(
        counts: dict,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.IMPORT_COMPLETED,
            entity_type="archive",
            correlation_id=correlation_id,
            description=(
                f"Import finished: {counts.get('imported', 0)} imported, "
                f"{counts.get('skipped', 0)} skipped, {counts.get('failed', 0)} failed"
            ),
            details=counts,
        )

    @staticmethod
    def import_row_failed(
        row_number: int,
        reason: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.IMPORT_ROW_FAILED,
            severity=AuditSeverity.WARNING,
            entity_type="archive",
            correlation_id=correlation_id,
            description=f"Import row {row_number} failed",
            error_message=reason,
            details={"row_number": row_number},
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )

    @staticmethod
    def external_service_error(
        service: str,
        error_message: str,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXTERNAL_SERVICE_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"External service error: {service}",
            error_message=error_message,
            details={"service": service},
            correlation_id=correlation_id,
        )
