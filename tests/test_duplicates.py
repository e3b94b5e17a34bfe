"""Tests for duplicate detection policies."""

from datetime import datetime, timedelta
from decimal import Decimal

from ledger.config import AppSettings
from ledger.dedup import DuplicatePolicy, find_duplicate, is_duplicate
from ledger.models.transaction import TransactionKind


BASE = datetime(2024, 3, 1, 12, 0, 0)


class TestCapturePolicy:
    """Tests for the AI-capture policy (2 minutes, 0.01)."""

    def test_close_in_time_and_amount(self, make_txn):
        """Test a near-identical capture 90 s later is a duplicate."""
        existing = make_txn(occurred_at=BASE, amount=Decimal("25.000"))
        candidate = make_txn(occurred_at=BASE + timedelta(seconds=90), amount=Decimal("25.005"))
        assert find_duplicate(candidate, [existing], DuplicatePolicy.ai_capture()) == existing

    def test_outside_window(self, make_txn):
        """Test three minutes apart is not a duplicate."""
        existing = make_txn(occurred_at=BASE)
        candidate = make_txn(occurred_at=BASE + timedelta(minutes=3))
        assert find_duplicate(candidate, [existing], DuplicatePolicy.ai_capture()) is None

    def test_bounds_inclusive(self, make_txn):
        """Test exactly 2 minutes and exactly 0.01 still match."""
        existing = make_txn(occurred_at=BASE, amount=Decimal("10.00"))
        candidate = make_txn(occurred_at=BASE + timedelta(minutes=2), amount=Decimal("10.01"))
        assert find_duplicate(candidate, [existing], DuplicatePolicy.ai_capture()) is not None

    def test_amount_outside_tolerance(self, make_txn):
        """Test amounts 0.02 apart do not match."""
        existing = make_txn(amount=Decimal("10.00"))
        candidate = make_txn(amount=Decimal("10.02"))
        assert find_duplicate(candidate, [existing], DuplicatePolicy.ai_capture()) is None

    def test_kind_must_match(self, make_txn):
        """Test an income never duplicates an expense."""
        existing = make_txn()
        candidate = make_txn(kind=TransactionKind.INCOME)
        assert find_duplicate(candidate, [existing], DuplicatePolicy.ai_capture()) is None

    def test_categories_ignored(self, make_txn):
        """Test the capture policy does not compare categories."""
        existing = make_txn(main_category="Food")
        candidate = make_txn(main_category="Transport")
        assert find_duplicate(candidate, [existing], DuplicatePolicy.ai_capture()) is not None

    def test_same_record_not_a_duplicate_of_itself(self, make_txn):
        """Test a record is never reported as its own duplicate."""
        txn = make_txn()
        assert find_duplicate(txn, [txn], DuplicatePolicy.ai_capture()) is None

    def test_window_from_settings(self, make_txn):
        """Test the capture window can be configured."""
        policy = DuplicatePolicy.ai_capture(AppSettings(capture_duplicate_window_seconds=30))
        existing = make_txn(occurred_at=BASE)
        candidate = make_txn(occurred_at=BASE + timedelta(seconds=45))
        assert find_duplicate(candidate, [existing], policy) is None


class TestImportPolicy:
    """Tests for the bulk-import policy (1 second, 0.01, same categories)."""

    def test_capture_duplicate_is_not_import_duplicate(self, make_txn):
        """Test 90 s apart matches under capture but not under import."""
        existing = make_txn(occurred_at=BASE)
        candidate = make_txn(occurred_at=BASE + timedelta(seconds=90))
        assert find_duplicate(candidate, [existing], DuplicatePolicy.ai_capture()) is not None
        assert find_duplicate(candidate, [existing], DuplicatePolicy.bulk_import()) is None

    def test_same_second_matches(self, make_txn):
        """Test an identical row is a duplicate."""
        existing = make_txn(occurred_at=BASE)
        candidate = make_txn(occurred_at=BASE + timedelta(seconds=1))
        assert find_duplicate(candidate, [existing], DuplicatePolicy.bulk_import()) is not None

    def test_category_must_match(self, make_txn):
        """Test a different sub category is not a duplicate on import."""
        existing = make_txn(sub_category="Dining Out")
        candidate = make_txn(sub_category="Groceries")
        assert find_duplicate(candidate, [existing], DuplicatePolicy.bulk_import()) is None


class TestIsDuplicate:
    """Tests for the standalone predicate."""

    def test_predicate(self, make_txn):
        """Test is_duplicate with explicit tolerances."""
        existing = [make_txn(occurred_at=BASE)]
        near = make_txn(occurred_at=BASE + timedelta(seconds=5))
        assert is_duplicate(near, existing, timedelta(seconds=10), Decimal("0.01"))
        assert not is_duplicate(near, existing, timedelta(seconds=1), Decimal("0.01"))

    def test_empty_existing(self, make_txn):
        """Test nothing duplicates an empty ledger."""
        assert not is_duplicate(make_txn(), [], timedelta(minutes=2), Decimal("0.01"))
