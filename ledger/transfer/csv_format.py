"""
Ledger CSV row format.

Columns, in order:
    occurredAt, kind, amount, currency, mainCategory, subCategory,
    counterparty, note, attachmentFileName

- occurredAt is local time as "yyyy-MM-dd HH:mm:ss"
- amount always has two decimals
- A field containing a comma, a quote or a line break is quoted with
  internal quotes doubled (csv.QUOTE_MINIMAL); empty fields stay empty
- Quoted fields may span lines; the reader handles that
"""

import csv
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from pathlib import Path
from typing import Iterable, Optional

from pydantic import BaseModel, ValidationError

from ledger.models.transaction import CENT, Transaction, TransactionKind


CSV_COLUMNS = [
    "occurredAt",
    "kind",
    "amount",
    "currency",
    "mainCategory",
    "subCategory",
    "counterparty",
    "note",
    "attachmentFileName",
]

DATETIME_FORMAT = "%Y-%m-%d %H:%M:%S"
ATTACHMENT_STAMP_FORMAT = "%Y%m%d_%H%M%S"


class RowParseError(ValueError):
    """One CSV row could not be turned into a transaction."""
    pass


class ParsedRow(BaseModel):
    """A decoded data row plus the attachment file it references."""

    transaction: Transaction
    attachment_name: str = ""


def format_amount(amount: Decimal) -> str:
    return str(Decimal(amount).quantize(CENT, rounding=ROUND_HALF_UP))


def attachment_filename(occurred_at: datetime, amount: Decimal, suffix: int = 0) -> str:
    """images/ file name: <yyyyMMdd_HHmmss>_<amount with '_' for '.'>.jpg"""
    stem = f"{occurred_at.strftime(ATTACHMENT_STAMP_FORMAT)}_{format_amount(amount).replace('.', '_')}"
    if suffix:
        stem = f"{stem}_{suffix}"
    return f"{stem}.jpg"


def transaction_to_row(transaction: Transaction, attachment_name: str = "") -> list[str]:
    return [
        transaction.occurred_at.strftime(DATETIME_FORMAT),
        transaction.kind.value,
        format_amount(transaction.amount),
        transaction.currency,
        transaction.main_category,
        transaction.sub_category,
        transaction.counterparty,
        transaction.note,
        attachment_name,
    ]


def write_csv(path: Path, rows: Iterable[list[str]]) -> None:
    """Write the header and rows as UTF-8."""
    with open(path, "w", newline="", encoding="utf-8") as f:
        writer = csv.writer(f, quoting=csv.QUOTE_MINIMAL)
        writer.writerow(CSV_COLUMNS)
        writer.writerows(rows)


def read_csv(path: Path) -> tuple[Optional[list[str]], list[tuple[int, list[str]]]]:
    """
    Read a ledger CSV.

    Returns:
        (header or None for an empty file, [(data row number, fields)]).
        Blank lines are dropped; data rows are numbered from 1.

    Raises:
        csv.Error: If the file is not parseable as CSV at all
    """
    with open(path, newline="", encoding="utf-8-sig") as f:
        rows = [row for row in csv.reader(f) if row]

    if not rows:
        return None, []
    header, data = rows[0], rows[1:]
    return header, list(enumerate(data, start=1))


def parse_row(fields: list[str]) -> ParsedRow:
    """
    Decode one data row.

    Raises:
        RowParseError: Wrong column count, bad date, bad amount, unknown
            kind, or values the Transaction model rejects
    """
    if len(fields) != len(CSV_COLUMNS):
        raise RowParseError(
            f"Expected {len(CSV_COLUMNS)} columns, found {len(fields)}"
        )

    (occurred_text, kind_text, amount_text, currency, main_category,
     sub_category, counterparty, note, attachment_name) = fields

    try:
        occurred_at = datetime.strptime(occurred_text.strip(), DATETIME_FORMAT)
    except ValueError as e:
        raise RowParseError(f"Invalid date: {occurred_text!r}") from e

    try:
        amount = Decimal(amount_text.strip())
    except InvalidOperation as e:
        raise RowParseError(f"Invalid amount: {amount_text!r}") from e
    if not amount.is_finite() or amount < 0:
        raise RowParseError(f"Invalid amount: {amount_text!r}")

    try:
        kind = TransactionKind.from_label(kind_text)
    except ValueError as e:
        raise RowParseError(str(e)) from e

    try:
        transaction = Transaction(
            kind=kind,
            occurred_at=occurred_at,
            amount=amount,
            currency=currency,
            main_category=main_category,
            sub_category=sub_category,
            counterparty=counterparty,
            note=note,
        )
    except ValidationError as e:
        first = e.errors()[0]
        field = ".".join(str(p) for p in first.get("loc", ())) or "row"
        raise RowParseError(f"Invalid {field}: {first.get('msg')}") from e

    return ParsedRow(transaction=transaction, attachment_name=attachment_name.strip())
