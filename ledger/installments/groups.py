"""
Installment Groups

Expands one purchase into N period records and mutates the group
afterwards (delete one period, delete all, pay off early).

DESIGN DECISION: A group is not an entity of its own. Period 1 is the
representative and its id doubles as the group id; every other period
carries that id in group_id. Membership is resolved with an index lookup
(find_by_group_id) each time it is needed, so deleting a single period
never needs to touch the others.

Dates: period 1 keeps the purchase date; period k is k-1 calendar months
later, with the day clamped to the end of a shorter month (Jan 31 ->
Feb 28/29 -> Mar 31).
"""

import calendar
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional
from uuid import UUID, uuid4

import structlog

from ledger.audit.logger import AuditLogger
from ledger.installments.amortization import monthly_payment
from ledger.models.transaction import (
    CENT,
    MAX_AMOUNT,
    InstallmentRequest,
    Transaction,
    TransactionKind,
)
from ledger.models.validation import ValidationIssue
from ledger.services.storage import LedgerStorageInterface
from ledger.validation.validator import LedgerValidationError, parse_amount, parse_rate


logger = structlog.get_logger(__name__)

PAID_OFF_LABEL = "Paid off early"


def add_months(value: datetime, months: int) -> datetime:
    """Shift by whole calendar months, clamping the day to the month's end."""
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


def period_label(period_index: int, period_count: int) -> str:
    return f"Period {period_index}/{period_count}"


def period_note(note: str, period_index: int, period_count: int) -> str:
    label = period_label(period_index, period_count)
    return f"{note} - {label}" if note else label


def parse_installment_request(
    principal_text: str,
    rate_text: Optional[str],
    period_count: int,
) -> InstallmentRequest:
    """
    Validate the user's installment settings.

    Raises:
        LedgerValidationError: If period_count <= 0 or the principal is not
            a positive number. An unparsable rate is treated as 0.
    """
    if period_count <= 0:
        issue = ValidationIssue(
            field="period_count",
            issue_type="out_of_range",
            message="Number of periods must be at least 1",
        )
        raise LedgerValidationError(issue.message, [issue])

    principal = parse_amount(principal_text, field="principal", allow_zero=False)
    return InstallmentRequest(
        principal=principal,
        annual_rate_percent=parse_rate(rate_text),
        period_count=period_count,
    )


class InstallmentGroupManager:
    """
    Creates and mutates installment groups over a ledger store.

    All operations are sequences of single-record storage calls made by
    one logical writer.
    """

    def __init__(
        self,
        storage: LedgerStorageInterface,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._storage = storage
        self._audit = audit_logger if audit_logger is not None else AuditLogger()

    def build_periods(
        self,
        template: Transaction,
        request: InstallmentRequest,
        group_id: Optional[UUID] = None,
    ) -> list[Transaction]:
        """
        Expand a template transaction into its period records (not saved).

        The template supplies kind, date, currency, categories, counterparty,
        note, source text and attachment. Only period 1 keeps the attachment.
        """
        if template.kind != TransactionKind.EXPENSE:
            issue = ValidationIssue(
                field="kind",
                issue_type="invalid_value",
                message="Only expenses can be split into installments",
            )
            raise LedgerValidationError(issue.message, [issue])

        group_id = group_id or uuid4()
        try:
            payment = Decimal(str(monthly_payment(
                request.principal,
                request.annual_rate_percent,
                request.period_count,
            )))
        except OverflowError:
            payment = Decimal("Infinity")
        if not payment.is_finite() or payment > MAX_AMOUNT:
            issue = ValidationIssue(
                field="annual_rate_percent",
                issue_type="out_of_range",
                message="The rate produces a payment too large to record",
            )
            raise LedgerValidationError(issue.message, [issue])
        payment = payment.quantize(CENT, rounding=ROUND_HALF_UP)

        periods = []
        for index in range(1, request.period_count + 1):
            periods.append(Transaction(
                id=group_id if index == 1 else uuid4(),
                kind=template.kind,
                occurred_at=add_months(template.occurred_at, index - 1),
                amount=payment,
                currency=template.currency,
                main_category=template.main_category,
                sub_category=template.sub_category,
                counterparty=template.counterparty,
                note=period_note(template.note, index, request.period_count),
                source_text=template.source_text,
                attachment=template.attachment if index == 1 else None,
                is_installment=True,
                group_id=None if index == 1 else group_id,
                period_index=index,
                period_count=request.period_count,
                annual_rate_percent=request.annual_rate_percent,
                total_principal=request.principal,
            ))
        return periods

    async def create_group(
        self,
        template: Transaction,
        request: InstallmentRequest,
        correlation_id: Optional[UUID] = None,
    ) -> list[Transaction]:
        """
        Persist a new installment group built from the template.

        Returns:
            The saved periods, period 1 first
        """
        periods = self.build_periods(template, request)
        for period in periods:
            await self._storage.save_transaction(period)

        await self._audit.log_group_created(
            group_id=periods[0].id,
            period_count=len(periods),
            payment=str(periods[0].amount),
            correlation_id=correlation_id,
        )
        return periods

    async def convert_to_group(
        self,
        transaction: Transaction,
        request: InstallmentRequest,
        correlation_id: Optional[UUID] = None,
    ) -> list[Transaction]:
        """
        Turn a saved single expense into an installment group.

        The original record is deleted and the group is created from its
        fields.

        Raises:
            LedgerValidationError: If the record is already an installment
                period or is income
        """
        if transaction.is_installment:
            issue = ValidationIssue(
                field="is_installment",
                issue_type="invalid_value",
                message="Transaction is already part of an installment group",
            )
            raise LedgerValidationError(issue.message, [issue])

        # Validate before anything is deleted
        self.build_periods(transaction, request)

        await self._storage.delete_transaction(transaction.id)
        return await self.create_group(transaction, request, correlation_id)

    async def locate_members(self, transaction: Transaction) -> list[Transaction]:
        """
        Resolve every period of the transaction's group, ordered by index.

        A non-installment transaction resolves to itself.
        """
        if not transaction.is_installment:
            return [transaction]

        group_id = transaction.group_key
        members = await self._storage.find_by_group_id(group_id)
        representative = await self._storage.get_transaction(group_id)

        if representative is None:
            logger.warning(
                "installment_representative_missing",
                group_id=str(group_id),
                member_count=len(members),
            )
        elif not representative.is_representative:
            logger.warning(
                "installment_representative_invalid",
                group_id=str(group_id),
                period_index=representative.period_index,
            )
        else:
            members.append(representative)

        members.sort(key=lambda t: t.period_index or 0)
        return members

    async def delete_period(
        self,
        transaction: Transaction,
        correlation_id: Optional[UUID] = None,
    ) -> bool:
        """Delete exactly this one record. Other periods are untouched."""
        deleted = await self._storage.delete_transaction(transaction.id)
        if deleted:
            await self._audit.log_period_deleted(
                transaction_id=transaction.id,
                period_index=transaction.period_index,
                correlation_id=correlation_id,
            )
        return deleted

    async def delete_group(
        self,
        transaction: Transaction,
        correlation_id: Optional[UUID] = None,
    ) -> int:
        """
        Delete every located member of the transaction's group.

        Returns:
            Number of records deleted
        """
        members = await self.locate_members(transaction)
        deleted = 0
        for member in members:
            if await self._storage.delete_transaction(member.id):
                deleted += 1

        await self._audit.log_group_deleted(
            group_id=transaction.group_key or transaction.id,
            deleted_count=deleted,
            correlation_id=correlation_id,
        )
        return deleted

    async def early_payoff(
        self,
        transaction: Transaction,
        correlation_id: Optional[UUID] = None,
    ) -> Transaction:
        """
        Settle the rest of the group on this period.

        Adds the amounts of all later periods to this one, marks its note
        as paid off early and deletes the later periods. Earlier periods
        are untouched.

        Raises:
            LedgerValidationError: If the transaction is not an installment period
        """
        if not transaction.is_installment:
            issue = ValidationIssue(
                field="is_installment",
                issue_type="invalid_value",
                message="Only installment periods can be paid off early",
            )
            raise LedgerValidationError(issue.message, [issue])

        members = await self.locate_members(transaction)
        future = [m for m in members if (m.period_index or 0) > transaction.period_index]
        future_amount = sum((m.amount for m in future), Decimal("0"))

        updated = transaction.model_copy(deep=True)
        updated.amount = updated.amount + future_amount
        label = period_label(transaction.period_index, transaction.period_count)
        if label in updated.note:
            updated.note = updated.note.replace(label, PAID_OFF_LABEL)
        elif PAID_OFF_LABEL not in updated.note:
            # Note was edited after creation
            updated.note = f"{updated.note} - {PAID_OFF_LABEL}" if updated.note else PAID_OFF_LABEL

        await self._storage.update_transaction(updated)
        for member in future:
            await self._storage.delete_transaction(member.id)

        await self._audit.log_paid_off_early(
            transaction_id=updated.id,
            absorbed_periods=len(future),
            new_amount=str(updated.amount),
            correlation_id=correlation_id,
        )
        return updated
