"""Tests for the equal-payment amortization math."""

import pytest
from decimal import Decimal

from ledger.installments import monthly_payment, schedule_detail, total_interest
from ledger.installments.amortization import monthly_rate


class TestMonthlyPayment:
    """Tests for the fixed per-period payment."""

    def test_zero_rate_divides_evenly(self):
        """Test a zero rate splits the principal into equal parts."""
        assert monthly_payment(1000, 0, 4) == pytest.approx(250.0)

    def test_with_interest(self):
        """Test 12000 at 12% over 12 months."""
        assert monthly_payment(12000, 12, 12) == pytest.approx(1066.19, abs=0.01)
        assert total_interest(12000, 12, 12) == pytest.approx(794.23, abs=0.01)

    def test_accepts_decimal(self):
        """Test Decimal principals are accepted."""
        assert monthly_payment(Decimal("600.00"), 0, 6) == pytest.approx(100.0)

    def test_non_positive_periods_returns_principal(self):
        """Test a degenerate period count returns the principal unchanged."""
        assert monthly_payment(500, 5, 0) == 500.0

    def test_monthly_rate(self):
        """Test annual percent to monthly fraction."""
        assert monthly_rate(12) == pytest.approx(0.01)

    def test_zero_rate_has_no_interest(self):
        """Test no interest accrues at a zero rate."""
        assert total_interest(900, 0, 3) == pytest.approx(0.0)


class TestScheduleDetail:
    """Tests for the per-period breakdown."""

    def test_schedule_shape(self):
        """Test one entry per period, numbered from 1."""
        schedule = schedule_detail(12000, 12, 12)
        assert [e.period for e in schedule] == list(range(1, 13))

    @pytest.mark.parametrize("principal,rate,periods", [(12000, 12, 12), (999.99, 3.6, 7), (5000, 0, 5)])
    def test_payments_sum(self, principal, rate, periods):
        """Test the schedule's payments total payment * n."""
        schedule = schedule_detail(principal, rate, periods)
        expected = monthly_payment(principal, rate, periods) * periods
        assert sum(e.payment for e in schedule) == pytest.approx(expected)
        assert schedule[-1].remaining_principal == 0.0

    def test_final_remaining_is_zero(self):
        """Test the last entry's remaining principal is exactly zero."""
        assert schedule_detail(12000, 12, 12)[-1].remaining_principal == 0.0

    def test_principal_parts_sum_to_principal(self):
        """Test the principal parts repay the loan."""
        schedule = schedule_detail(12000, 12, 12)
        assert sum(e.principal for e in schedule) == pytest.approx(12000, abs=0.01)
        assert sum(e.interest for e in schedule) == pytest.approx(
            total_interest(12000, 12, 12), abs=0.01
        )

    def test_first_period_interest(self):
        """Test interest is charged on the outstanding principal."""
        first = schedule_detail(12000, 12, 12)[0]
        assert first.interest == pytest.approx(120.0)
        assert first.principal == pytest.approx(first.payment - 120.0)

    def test_remaining_never_negative(self):
        """Test remaining principal never dips below zero."""
        assert all(e.remaining_principal >= 0 for e in schedule_detail(1000, 0, 3))

    def test_empty_for_no_periods(self):
        """Test no schedule for zero periods."""
        assert schedule_detail(1000, 5, 0) == []
