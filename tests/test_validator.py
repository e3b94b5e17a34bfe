"""Tests for transaction validation and user-text parsing."""

import pytest
from datetime import datetime, timedelta
from decimal import Decimal

from ledger.models.transaction import MAX_AMOUNT
from ledger.validation import (
    LedgerValidationError,
    TransactionValidator,
    parse_amount,
    parse_rate,
)


class TestParseAmount:
    """Tests for user-typed amounts."""

    def test_plain_and_grouped(self):
        """Test plain numbers and thousands separators."""
        assert parse_amount("12.50") == Decimal("12.50")
        assert parse_amount(" 1,234.5 ") == Decimal("1234.5")

    def test_zero_allowed_by_default(self):
        """Test zero is accepted unless disallowed."""
        assert parse_amount("0") == Decimal("0")
        with pytest.raises(LedgerValidationError):
            parse_amount("0", allow_zero=False)

    @pytest.mark.parametrize("text", ["", "abc", "-5", "NaN", "Infinity", "1e30", "1000000000000"])
    def test_rejected(self, text):
        """Test unparsable or negative text raises with an issue."""
        with pytest.raises(LedgerValidationError) as exc_info:
            parse_amount(text)
        assert exc_info.value.issues[0].field == "amount"


    def test_largest_amount_accepted(self):
        assert parse_amount("999,999,999,999.99") == MAX_AMOUNT


class TestParseRate:
    """Tests for the installment rate text."""

    def test_valid(self):
        assert parse_rate("3.6") == pytest.approx(3.6)

    @pytest.mark.parametrize("text", [None, "", "abc", "-1", "nan"])
    def test_falls_back_to_zero(self, text):
        """Test anything unusable is treated as an interest-free rate."""
        assert parse_rate(text) == 0.0


class TestTransactionValidator:
    """Tests for the two-stage validator."""

    def test_valid_transaction(self, make_txn):
        """Test an ordinary record passes."""
        result = TransactionValidator().validate(make_txn())
        assert result.is_valid
        assert result.issues == []

    def test_zero_amount_rejected_for_capture(self, make_txn):
        """Test captures must have a positive amount."""
        validator = TransactionValidator()
        txn = make_txn(amount=Decimal("0"))
        assert validator.validate(txn).has_errors
        assert validator.validate(txn, require_positive_amount=False).is_valid

    def test_non_alpha_currency_rejected(self, make_txn):
        """Test currency codes must be letters."""
        result = TransactionValidator().validate(make_txn(currency="1$2"))
        assert result.has_errors
        assert result.issues[0].field == "currency"

    def test_future_date_is_warning(self, make_txn):
        """Test a far-future date warns but does not block."""
        now = datetime(2024, 1, 1)
        txn = make_txn(occurred_at=now + timedelta(days=30))
        result = TransactionValidator().validate(txn, now=now)
        assert result.is_valid
        assert result.issues[0].issue_type == "future_date"

    def test_tiny_amount_is_warning(self, make_txn):
        """Test a suspiciously small amount warns."""
        result = TransactionValidator().validate(
            make_txn(amount=Decimal("0.05")), now=datetime(2024, 6, 1)
        )
        assert result.is_valid
        assert result.issues[0].issue_type == "suspicious_value"

    def test_ensure_valid_raises(self, make_txn):
        """Test ensure_valid raises with the issues attached."""
        with pytest.raises(LedgerValidationError) as exc_info:
            TransactionValidator().ensure_valid(make_txn(amount=Decimal("0")))
        assert exc_info.value.issues[0].field == "amount"

    def test_summary(self, make_txn):
        """Test the user-facing summary text."""
        validator = TransactionValidator()
        result = validator.validate(make_txn(amount=Decimal("0")))
        summary = validator.get_user_friendly_summary(result)
        assert summary.startswith("Error: Amount must be greater than zero")
        assert "Hint:" in summary
        assert validator.get_user_friendly_summary(validator.validate(make_txn(), now=datetime(2024, 6, 1))) == "All checks passed."
