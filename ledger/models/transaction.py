"""
Core Data Models for Personal Ledger

These models define the schemas for every record flowing through the ledger.
They are designed to:
1. Enforce type safety at runtime
2. Provide clear validation error messages
3. Be serializable for storage, export and logging
4. Carry the installment-group invariant with the record itself

DESIGN DECISION: Occurrence timestamps are naive local civil time.
A timezone-aware value is accepted but its tzinfo is dropped without
conversion, so the wall-clock reading on the receipt is what gets stored.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)


CENT = Decimal("0.01")

# Upper bound for stored amounts; anything larger cannot be written with two decimals
MAX_AMOUNT = Decimal("999999999999.99")

# Formats accepted for dates coming back from the extraction collaborator,
# tried in order. ISO-8601 is handled separately.
EXTRACTED_DATE_FORMATS = (
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%d %H:%M",
    "%Y-%m-%d",
    "%Y/%m/%d %H:%M:%S",
    "%Y/%m/%d",
)


# =============================================================================
# ENUMS
# =============================================================================

class TransactionKind(str, Enum):
    """Expense or income classification of a transaction."""
    EXPENSE = "expense"
    INCOME = "income"

    @classmethod
    def from_label(cls, label: str) -> "TransactionKind":
        """
        Resolve a kind from its value or a known display label.

        Accepts "expense"/"income" in any case, plus the labels written by
        older exports ("支出"/"收入").

        Raises:
            ValueError: If the label is not recognized
        """
        normalized = (label or "").strip()
        aliases = {
            "expense": cls.EXPENSE,
            "income": cls.INCOME,
            "支出": cls.EXPENSE,
            "收入": cls.INCOME,
        }
        kind = aliases.get(normalized.lower()) or aliases.get(normalized)
        if kind is None:
            raise ValueError(f"Unknown transaction kind: {label!r}")
        return kind


# =============================================================================
# TRANSACTION
# =============================================================================

class Transaction(BaseModel):
    """
    The ledger's atomic record.

    Installment metadata is present only when this record is one period of
    a split purchase. The period with period_index == 1 is the
    representative: its id names the group and its own group_id is None.
    Every other period points back at it through group_id.
    """
    model_config = ConfigDict(
        str_strip_whitespace=True,
        validate_assignment=True,
    )

    # Identity
    id: UUID = Field(
        default_factory=uuid4,
        description="Globally unique identifier, immutable once assigned"
    )
    kind: TransactionKind = Field(
        default=TransactionKind.EXPENSE,
        description="Expense or income"
    )
    occurred_at: datetime = Field(
        ...,
        description="When the transaction happened (local civil time)"
    )
    amount: Decimal = Field(
        ...,
        ge=0,
        le=MAX_AMOUNT,
        description="Amount in the transaction's currency"
    )
    currency: str = Field(
        default="CNY",
        min_length=3,
        max_length=3,
        description="ISO-style currency code"
    )
    main_category: str = Field(
        ...,
        min_length=1,
        description="Main taxonomy entry"
    )
    sub_category: str = Field(
        ...,
        min_length=1,
        description="Sub taxonomy entry"
    )
    counterparty: str = Field(
        default="",
        description="Merchant or income source"
    )
    note: str = Field(
        default="",
        description="Free-text annotation"
    )
    source_text: str = Field(
        default="",
        description="Raw text this record was derived from (empty for manual entry)"
    )
    attachment: Optional[bytes] = Field(
        default=None,
        description="Optional image payload (e.g. the receipt photo)"
    )
    created_at: datetime = Field(
        default_factory=datetime.now,
        description="When the record was created"
    )

    # Installment metadata
    is_installment: bool = False
    group_id: Optional[UUID] = Field(
        default=None,
        description="Representative's id; a back-reference, never a storage key"
    )
    period_index: Optional[int] = Field(default=None, ge=1)
    period_count: Optional[int] = Field(default=None, ge=1)
    annual_rate_percent: Optional[float] = Field(default=None, ge=0)
    total_principal: Optional[Decimal] = Field(default=None, ge=0, le=MAX_AMOUNT)

    @field_validator('occurred_at')
    @classmethod
    def drop_timezone(cls, v: datetime) -> datetime:
        """Keep the wall-clock reading, discard tzinfo."""
        if v.tzinfo is not None:
            return v.replace(tzinfo=None)
        return v

    @field_validator('currency')
    @classmethod
    def uppercase_currency(cls, v: str) -> str:
        return v.upper()

    @model_validator(mode='after')
    def validate_installment(self) -> 'Transaction':
        """Validate the installment-group invariant."""
        if not self.is_installment:
            if self.group_id is not None or self.period_index is not None:
                raise ValueError(
                    "Installment fields set on a non-installment transaction"
                )
            return self

        if self.period_index is None or self.period_count is None:
            raise ValueError("Installment period index and count are required")
        if self.period_index > self.period_count:
            raise ValueError(
                f"Period index {self.period_index} exceeds period count {self.period_count}"
            )
        if self.period_index == 1 and self.group_id is not None:
            raise ValueError("The first period is the group representative and has no group_id")
        if self.period_index > 1 and self.group_id is None:
            raise ValueError("Non-representative periods must reference their group")

        return self

    @property
    def is_representative(self) -> bool:
        """True for the period whose id names the installment group."""
        return self.is_installment and self.period_index == 1

    @property
    def group_key(self) -> Optional[UUID]:
        """Identifier of the group this record belongs to, if any."""
        if not self.is_installment:
            return None
        return self.id if self.is_representative else self.group_id

    def category_key(self) -> tuple[str, str, str]:
        """(kind, main, sub) triple this record is filed under."""
        return (self.kind.value, self.main_category, self.sub_category)


# =============================================================================
# EXTRACTION (AI collaborator output)
# =============================================================================

def parse_local_datetime(value: Optional[str]) -> Optional[datetime]:
    """
    Parse a date string returned by the extraction collaborator.

    Accepts "yyyy-MM-dd HH:mm:ss", "yyyy-MM-dd" and friends, and ISO-8601
    (a trailing "Z" or offset is discarded; the wall clock is kept).
    Returns None when nothing matches.
    """
    if not value:
        return None
    text = value.strip()
    for fmt in EXTRACTED_DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt)
        except ValueError:
            continue
    try:
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        return None
    return parsed.replace(tzinfo=None)


class ExtractedTransaction(BaseModel):
    """
    Best-effort record produced by the AI extraction collaborator.

    CRITICAL: This is PROPOSED data. Every field may be missing and must be
    defaulted by the caller before it becomes a Transaction.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    date_text: Optional[str] = None
    amount: Optional[Decimal] = None
    currency: Optional[str] = None
    main_category: Optional[str] = None
    sub_category: Optional[str] = None
    counterparty: Optional[str] = None
    note: Optional[str] = None
    kind: Optional[TransactionKind] = None

    def resolve_kind(self, preferred_kind: TransactionKind) -> TransactionKind:
        return self.kind or preferred_kind

    def to_transaction(
        self,
        preferred_kind: TransactionKind,
        default_currency: str = "CNY",
        default_category: str = "Other",
        source_text: str = "",
        attachment: Optional[bytes] = None,
        now: Optional[datetime] = None,
    ) -> Transaction:
        """
        Build a Transaction, filling every missing field with its default.

        date -> now, currency -> default_currency, categories ->
        default_category, kind -> preferred_kind.

        Raises:
            ValueError: If no amount was extracted
        """
        if self.amount is None:
            raise ValueError("Extraction returned no amount")

        occurred_at = parse_local_datetime(self.date_text) or now or datetime.now()
        return Transaction(
            kind=self.resolve_kind(preferred_kind),
            occurred_at=occurred_at,
            amount=self.amount,
            currency=self.currency or default_currency,
            main_category=self.main_category or default_category,
            sub_category=self.sub_category or default_category,
            counterparty=self.counterparty or "",
            note=self.note or "",
            source_text=source_text,
            attachment=attachment,
        )


# =============================================================================
# INSTALLMENTS
# =============================================================================

class InstallmentRequest(BaseModel):
    """A validated request to split one purchase into equal payments."""

    principal: Decimal = Field(..., gt=0, le=MAX_AMOUNT)
    annual_rate_percent: float = Field(default=0.0, ge=0)
    period_count: int = Field(..., gt=0)


class ScheduleEntry(BaseModel):
    """One period of an equal-payment amortization schedule."""
    model_config = ConfigDict(frozen=True)

    period: int
    payment: float
    interest: float
    principal: float
    remaining_principal: float


# =============================================================================
# OUTCOMES
# =============================================================================

class RowError(BaseModel):
    """Why a single import row was counted as failed."""

    row_number: int = Field(..., ge=1, description="1-based data row number")
    reason: str


class ImportResult(BaseModel):
    """
    Aggregate counts for one import call.

    total == imported + skipped + failed always holds.
    """

    total: int = 0
    imported: int = 0
    skipped: int = 0
    failed: int = 0
    errors: list[RowError] = Field(default_factory=list)


class CaptureOutcome(BaseModel):
    """Result of one AI-driven capture: either saved or skipped as a duplicate."""

    transaction: Optional[Transaction] = None
    duplicate_of: Optional[Transaction] = None
    message: str = ""

    @property
    def skipped_duplicate(self) -> bool:
        return self.duplicate_of is not None
