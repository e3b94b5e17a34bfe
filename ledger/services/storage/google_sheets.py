"""
Google Sheets Storage Implementation

DESIGN DECISION: Google Sheets is the hosted storage backend because:
1. The user can read their ledger directly in Sheets
2. No database setup required
3. Built-in backup (Google's infrastructure)

TRADEOFFS:
- Not suitable for high-volume data (fine for a personal ledger)
- No transactions (a multi-record change is a sequence of row writes)
- Limited query capabilities (we filter in Python)
- Attachments are stored base64-encoded in their own column, so very large
  images can exceed the per-cell limit; such saves fail with StorageError
"""

import base64
import json
from datetime import datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

import gspread
import structlog
from google.oauth2.service_account import Credentials
from tenacity import (
    retry,
    retry_if_not_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from ledger.config.settings import GoogleSheetsSettings
from ledger.models.audit import AuditEvent, AuditEventType, AuditSeverity
from ledger.models.category import Category
from ledger.models.transaction import Transaction, TransactionKind
from ledger.services.storage.interface import (
    AuditStorageInterface,
    DuplicateError,
    LedgerStorageInterface,
    NotFoundError,
    StorageConnectionError,
    StorageError,
    TransactionPredicate,
)


logger = structlog.get_logger(__name__)


TRANSACTION_COLUMNS = [
    "id",
    "kind",
    "occurred_at",
    "amount",
    "currency",
    "main_category",
    "sub_category",
    "counterparty",
    "note",
    "source_text",
    "attachment_b64",
    "created_at",
    "is_installment",
    "group_id",
    "period_index",
    "period_count",
    "annual_rate_percent",
    "total_principal",
]

CATEGORY_COLUMNS = [
    "id",
    "kind",
    "main_category",
    "sub_category",
    "usage_count",
    "created_at",
]

AUDIT_COLUMNS = [
    "event_id",
    "timestamp",
    "event_type",
    "severity",
    "entity_type",
    "entity_id",
    "correlation_id",
    "description",
    "details_json",
    "error_message",
]

# Shared retry policy for sheet writes. Missing rows are not retried.
sheets_retry = retry(
    retry=retry_if_not_exception_type((NotFoundError, DuplicateError)),
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=2, max=10),
    reraise=True,
)


def _cell(row: list, index: int, default: str = "") -> str:
    try:
        return row[index] if row[index] else default
    except IndexError:
        return default


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and creates worksheets on first use.
    """

    def __init__(self, settings: GoogleSheetsSettings):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._settings = settings

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def connect(self) -> gspread.Client:
        """Authenticate with the service account credentials."""
        if self._client is None:
            try:
                scopes = [
                    "https://www.googleapis.com/auth/spreadsheets",
                    "https://www.googleapis.com/auth/drive",
                ]
                credentials = Credentials.from_service_account_file(
                    self._settings.credentials_path,
                    scopes=scopes,
                )
                self._client = gspread.authorize(credentials)
            except FileNotFoundError as e:
                raise StorageConnectionError(
                    f"Google credentials file not found: {self._settings.credentials_path}"
                ) from e
            except Exception as e:
                raise StorageConnectionError(f"Failed to connect to Google Sheets: {e}") from e

        return self._client

    def get_spreadsheet(self) -> gspread.Spreadsheet:
        """Get the configured spreadsheet."""
        if self._spreadsheet is None:
            client = self.connect()
            try:
                self._spreadsheet = client.open_by_key(self._settings.spreadsheet_id)
            except gspread.SpreadsheetNotFound as e:
                raise StorageConnectionError(
                    f"Spreadsheet not found: {self._settings.spreadsheet_id}"
                ) from e
        return self._spreadsheet

    def _worksheet(self, title: str, columns: list[str], rows: int) -> gspread.Worksheet:
        spreadsheet = self.get_spreadsheet()
        try:
            return spreadsheet.worksheet(title)
        except gspread.WorksheetNotFound:
            sheet = spreadsheet.add_worksheet(title=title, rows=rows, cols=len(columns))
            sheet.append_row(columns)
            logger.info("worksheet_created", title=title)
            return sheet

    def get_transactions_sheet(self) -> gspread.Worksheet:
        return self._worksheet(
            self._settings.transactions_sheet_name, TRANSACTION_COLUMNS, 1000
        )

    def get_categories_sheet(self) -> gspread.Worksheet:
        return self._worksheet(
            self._settings.categories_sheet_name, CATEGORY_COLUMNS, 200
        )

    def get_audit_sheet(self) -> gspread.Worksheet:
        return self._worksheet(self._settings.audit_sheet_name, AUDIT_COLUMNS, 5000)


class GoogleSheetsLedgerStorage(LedgerStorageInterface):
    """
    Google Sheets implementation of ledger storage.

    One transaction per row in the transactions worksheet, one category per
    row in the categories worksheet. Rows are located by their id column.
    """

    def __init__(self, client: GoogleSheetsClient):
        self._client = client

    # ------------------------------------------------------------------
    # Row conversion
    # ------------------------------------------------------------------

    def _transaction_to_row(self, txn: Transaction) -> list:
        return [
            str(txn.id),
            txn.kind.value,
            txn.occurred_at.isoformat(),
            str(txn.amount),
            txn.currency,
            txn.main_category,
            txn.sub_category,
            txn.counterparty,
            txn.note,
            txn.source_text,
            base64.b64encode(txn.attachment).decode("ascii") if txn.attachment else "",
            txn.created_at.isoformat(),
            str(txn.is_installment),
            str(txn.group_id) if txn.group_id else "",
            str(txn.period_index) if txn.period_index is not None else "",
            str(txn.period_count) if txn.period_count is not None else "",
            str(txn.annual_rate_percent) if txn.annual_rate_percent is not None else "",
            str(txn.total_principal) if txn.total_principal is not None else "",
        ]

    def _row_to_transaction(self, row: list) -> Transaction:
        attachment = _cell(row, 10)
        return Transaction(
            id=UUID(_cell(row, 0)),
            kind=TransactionKind(_cell(row, 1)),
            occurred_at=datetime.fromisoformat(_cell(row, 2)),
            amount=Decimal(_cell(row, 3)),
            currency=_cell(row, 4),
            main_category=_cell(row, 5),
            sub_category=_cell(row, 6),
            counterparty=_cell(row, 7),
            note=_cell(row, 8),
            source_text=_cell(row, 9),
            attachment=base64.b64decode(attachment) if attachment else None,
            created_at=datetime.fromisoformat(_cell(row, 11)),
            is_installment=_cell(row, 12).lower() == "true",
            group_id=UUID(_cell(row, 13)) if _cell(row, 13) else None,
            period_index=int(_cell(row, 14)) if _cell(row, 14) else None,
            period_count=int(_cell(row, 15)) if _cell(row, 15) else None,
            annual_rate_percent=float(_cell(row, 16)) if _cell(row, 16) else None,
            total_principal=Decimal(_cell(row, 17)) if _cell(row, 17) else None,
        )

    def _category_to_row(self, category: Category) -> list:
        return [
            str(category.id),
            category.kind.value,
            category.main_category,
            category.sub_category,
            str(category.usage_count),
            category.created_at.isoformat(),
        ]

    def _row_to_category(self, row: list) -> Category:
        return Category(
            id=UUID(_cell(row, 0)),
            kind=TransactionKind(_cell(row, 1)),
            main_category=_cell(row, 2),
            sub_category=_cell(row, 3),
            usage_count=int(_cell(row, 4, "0")),
            created_at=datetime.fromisoformat(_cell(row, 5)),
        )

    @staticmethod
    def _find_row(all_rows: list[list], record_id: UUID) -> Optional[int]:
        """1-based sheet row number of the record, header excluded."""
        for idx, row in enumerate(all_rows[1:], start=2):
            if row and row[0] == str(record_id):
                return idx
        return None

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    @sheets_retry
    async def save_transaction(self, transaction: Transaction) -> bool:
        try:
            sheet = self._client.get_transactions_sheet()
            if self._find_row(sheet.get_all_values(), transaction.id) is not None:
                raise DuplicateError(f"Transaction already exists: {transaction.id}")
            sheet.append_row(self._transaction_to_row(transaction), value_input_option="RAW")
            return True
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to save transaction: {e}") from e

    @sheets_retry
    async def update_transaction(self, transaction: Transaction) -> bool:
        try:
            sheet = self._client.get_transactions_sheet()
            row_number = self._find_row(sheet.get_all_values(), transaction.id)
            if row_number is None:
                raise NotFoundError(f"Transaction not found: {transaction.id}")
            sheet.update(
                f"A{row_number}",
                [self._transaction_to_row(transaction)],
                value_input_option="RAW",
            )
            return True
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to update transaction: {e}") from e

    @sheets_retry
    async def delete_transaction(self, transaction_id: UUID) -> bool:
        try:
            sheet = self._client.get_transactions_sheet()
            row_number = self._find_row(sheet.get_all_values(), transaction_id)
            if row_number is None:
                return False
            sheet.delete_rows(row_number)
            return True
        except Exception as e:
            raise StorageError(f"Failed to delete transaction: {e}") from e

    async def get_transaction(self, transaction_id: UUID) -> Optional[Transaction]:
        try:
            all_rows = self._client.get_transactions_sheet().get_all_values()
        except Exception as e:
            raise StorageError(f"Failed to get transaction: {e}") from e
        row_number = self._find_row(all_rows, transaction_id)
        if row_number is None:
            return None
        return self._row_to_transaction(all_rows[row_number - 1])

    async def list_transactions(
        self,
        predicate: Optional[TransactionPredicate] = None,
    ) -> list[Transaction]:
        try:
            all_rows = self._client.get_transactions_sheet().get_all_values()[1:]
        except Exception as e:
            raise StorageError(f"Failed to list transactions: {e}") from e

        records = []
        for row in all_rows:
            if not row or not row[0]:
                continue
            try:
                txn = self._row_to_transaction(row)
            except (ValueError, TypeError) as e:
                logger.warning("malformed_transaction_row", row_id=row[0], error=str(e))
                continue
            if predicate is None or predicate(txn):
                records.append(txn)

        records.sort(key=lambda t: t.occurred_at)
        return records

    async def find_by_group_id(self, group_id: UUID) -> list[Transaction]:
        return await self.list_transactions(lambda t: t.group_id == group_id)

    # ------------------------------------------------------------------
    # Categories
    # ------------------------------------------------------------------

    async def list_categories(self) -> list[Category]:
        try:
            all_rows = self._client.get_categories_sheet().get_all_values()[1:]
        except Exception as e:
            raise StorageError(f"Failed to list categories: {e}") from e

        categories = []
        for row in all_rows:
            if not row or not row[0]:
                continue
            try:
                categories.append(self._row_to_category(row))
            except (ValueError, TypeError) as e:
                logger.warning("malformed_category_row", row_id=row[0], error=str(e))
        return categories

    @sheets_retry
    async def save_category(self, category: Category) -> bool:
        try:
            sheet = self._client.get_categories_sheet()
            row = self._category_to_row(category)
            row_number = self._find_row(sheet.get_all_values(), category.id)
            if row_number is None:
                sheet.append_row(row, value_input_option="RAW")
            else:
                sheet.update(f"A{row_number}", [row], value_input_option="RAW")
            return True
        except Exception as e:
            raise StorageError(f"Failed to save category: {e}") from e

    @sheets_retry
    async def delete_category(self, category_id: UUID) -> bool:
        try:
            sheet = self._client.get_categories_sheet()
            row_number = self._find_row(sheet.get_all_values(), category_id)
            if row_number is None:
                return False
            sheet.delete_rows(row_number)
            return True
        except Exception as e:
            raise StorageError(f"Failed to delete category: {e}") from e


class GoogleSheetsAuditStorage(AuditStorageInterface):
    """
    Google Sheets implementation of audit log storage.

    Audit events are append-only.
    """

    def __init__(self, client: GoogleSheetsClient):
        self._client = client

    def _row_to_event(self, row: list) -> AuditEvent:
        return AuditEvent(
            event_id=UUID(_cell(row, 0)),
            timestamp=datetime.fromisoformat(_cell(row, 1)),
            event_type=AuditEventType(_cell(row, 2)),
            severity=AuditSeverity(_cell(row, 3)),
            entity_type=_cell(row, 4) or None,
            entity_id=UUID(_cell(row, 5)) if _cell(row, 5) else None,
            correlation_id=UUID(_cell(row, 6)) if _cell(row, 6) else None,
            description=_cell(row, 7),
            details=json.loads(_cell(row, 8)) if _cell(row, 8) else {},
            error_message=_cell(row, 9) or None,
        )

    def _read_events(self) -> list[AuditEvent]:
        try:
            all_rows = self._client.get_audit_sheet().get_all_values()[1:]
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}") from e

        events = []
        for row in all_rows:
            if not row or not row[0]:
                continue
            try:
                events.append(self._row_to_event(row))
            except (ValueError, TypeError) as e:
                logger.warning("malformed_audit_row", row_id=row[0], error=str(e))
        return events

    async def append_event(self, event: AuditEvent) -> bool:
        """Append an audit event. Failures are logged, never raised."""
        try:
            sheet = self._client.get_audit_sheet()
            sheet.append_row(event.to_sheets_row(), value_input_option="RAW")
            return True
        except Exception as e:
            logger.warning("audit_event_write_failed", error=str(e))
            return False

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        events = [e for e in self._read_events() if e.correlation_id == correlation_id]
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        events = self._read_events()
        events.sort(key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
