"""Installment amortization and group lifecycle."""

from ledger.installments.amortization import (
    monthly_payment,
    schedule_detail,
    total_interest,
)
from ledger.installments.groups import (
    PAID_OFF_LABEL,
    InstallmentGroupManager,
    add_months,
    parse_installment_request,
    period_label,
)

__all__ = [
    "PAID_OFF_LABEL",
    "InstallmentGroupManager",
    "add_months",
    "monthly_payment",
    "parse_installment_request",
    "period_label",
    "schedule_detail",
    "total_interest",
]
