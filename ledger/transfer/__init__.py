"""Bulk export/import package."""

from ledger.transfer.codec import ExportImportCodec, ProgressCallback, ProgressReporter
from ledger.transfer.csv_format import (
    CSV_COLUMNS,
    RowParseError,
    attachment_filename,
    parse_row,
    transaction_to_row,
)

__all__ = [
    "CSV_COLUMNS",
    "ExportImportCodec",
    "ProgressCallback",
    "ProgressReporter",
    "RowParseError",
    "attachment_filename",
    "parse_row",
    "transaction_to_row",
]
