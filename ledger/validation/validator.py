"""
Transaction Validation

DESIGN DECISION: Validation happens in two stages:

STAGE 1 - SCHEMA VALIDATION:
- Amount present and positive (for captures)
- Currency code shape
- Category names present

STAGE 2 - SEMANTIC VALIDATION:
- Occurrence dates far in the future
- Suspiciously small amounts

Stage 2 only produces warnings; it never blocks a save.

IMPORTANT: Validation never silently fixes issues. User-typed text that
cannot be parsed raises LedgerValidationError with a message the user can
act on. The one documented exception is the installment rate text, which
falls back to 0 when it is not a number.
"""

from datetime import datetime, timedelta
from decimal import Decimal, InvalidOperation
from typing import Optional

from ledger.models.transaction import MAX_AMOUNT, Transaction
from ledger.models.validation import ValidationIssue, ValidationResult


class LedgerValidationError(ValueError):
    """
    A user-correctable validation failure.

    Carries the individual issues so a host can show them next to the
    offending fields.
    """

    def __init__(self, message: str, issues: Optional[list[ValidationIssue]] = None):
        super().__init__(message)
        self.message = message
        self.issues = issues or []


def parse_amount(text: str, field: str = "amount", allow_zero: bool = True) -> Decimal:
    """
    Parse user-typed amount text.

    Raises:
        LedgerValidationError: If the text is not a finite non-negative
            number (or not positive when allow_zero is False)
    """
    raw = (text or "").strip().replace(",", "")
    try:
        value = Decimal(raw)
    except InvalidOperation:
        value = None

    if value is None or not value.is_finite():
        issue = ValidationIssue(
            field=field,
            issue_type="invalid_format",
            message=f"'{text}' is not a valid amount",
            suggested_fix="Enter a number such as 12.50",
        )
        raise LedgerValidationError(issue.message, [issue])

    if value < 0 or (value == 0 and not allow_zero):
        requirement = "zero or more" if allow_zero else "greater than zero"
        issue = ValidationIssue(
            field=field,
            issue_type="out_of_range",
            message=f"Amount must be {requirement}",
        )
        raise LedgerValidationError(issue.message, [issue])

    if value > MAX_AMOUNT:
        issue = ValidationIssue(
            field=field,
            issue_type="out_of_range",
            message=f"Amount must not exceed {MAX_AMOUNT}",
        )
        raise LedgerValidationError(issue.message, [issue])

    return value


def parse_rate(text: Optional[str]) -> float:
    """Parse an annual rate percentage. Anything unparsable or negative is 0."""
    try:
        rate = float((text or "").strip())
    except ValueError:
        return 0.0
    if rate != rate or rate < 0:
        return 0.0
    return rate


class TransactionValidator:
    """
    Validates transactions before they are saved.

    Stage 1: Schema validation (errors block the save)
    Stage 2: Semantic validation (warnings only)
    """

    def __init__(self, future_tolerance_days: int = 1):
        self._future_tolerance = timedelta(days=future_tolerance_days)

    def _validate_schema(
        self,
        transaction: Transaction,
        require_positive_amount: bool,
    ) -> list[ValidationIssue]:
        issues = []

        if require_positive_amount and transaction.amount <= 0:
            issues.append(ValidationIssue(
                field="amount",
                issue_type="invalid_value",
                message="Amount must be greater than zero",
                suggested_fix="Check if the amount was read correctly",
            ))

        if not transaction.currency.isalpha():
            issues.append(ValidationIssue(
                field="currency",
                issue_type="invalid_format",
                message=f"Currency code '{transaction.currency}' is not valid",
                suggested_fix="Use a three-letter code such as CNY or USD",
            ))

        return issues

    def _validate_semantic(
        self,
        transaction: Transaction,
        now: datetime,
    ) -> list[ValidationIssue]:
        issues = []

        if transaction.occurred_at > now + self._future_tolerance:
            issues.append(ValidationIssue(
                field="occurred_at",
                issue_type="future_date",
                message=f"Date ({transaction.occurred_at:%Y-%m-%d}) is in the future",
                severity="warning",
                suggested_fix="Please verify the date is correct",
            ))

        if Decimal("0") < transaction.amount < Decimal("0.1"):
            issues.append(ValidationIssue(
                field="amount",
                issue_type="suspicious_value",
                message=f"Amount ({transaction.amount}) seems unusually low",
                severity="warning",
            ))

        return issues

    def validate(
        self,
        transaction: Transaction,
        require_positive_amount: bool = True,
        now: Optional[datetime] = None,
    ) -> ValidationResult:
        """Run both stages; stage 2 only when stage 1 found no errors."""
        issues = self._validate_schema(transaction, require_positive_amount)
        if not issues:
            issues.extend(self._validate_semantic(transaction, now or datetime.now()))
        return ValidationResult(issues=issues)

    def ensure_valid(
        self,
        transaction: Transaction,
        require_positive_amount: bool = True,
    ) -> ValidationResult:
        """
        Validate and raise on errors.

        Raises:
            LedgerValidationError: If any error-level issue was found
        """
        result = self.validate(transaction, require_positive_amount)
        if result.has_errors:
            errors = [i for i in result.issues if i.severity == "error"]
            raise LedgerValidationError(errors[0].message, result.issues)
        return result

    def get_user_friendly_summary(self, result: ValidationResult) -> str:
        """Short text summary for display next to a rejected entry."""
        if not result.issues:
            return "All checks passed."

        lines = []
        for issue in result.issues:
            prefix = "Error" if issue.severity == "error" else "Check"
            lines.append(f"{prefix}: {issue.message}")
            if issue.suggested_fix:
                lines.append(f"  Hint: {issue.suggested_fix}")
        return "\n".join(lines)
