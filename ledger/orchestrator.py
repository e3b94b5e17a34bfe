"""
Main Orchestrator for Personal Ledger

Ties the components together and defines the end-to-end flows:
1. Manual entry (typed fields -> validate -> register category -> save)
2. AI capture (text or image -> OCR -> extraction -> defaults -> validate
   -> duplicate check -> save)
3. Installments (create, convert, delete one/all, pay off early)
4. Bulk export/import and currency conversion

DESIGN DECISION: The orchestrator enforces the boundaries:
- AI output is a proposal; defaults and validation are applied here
- AI captures are checked for duplicates; manual entries are not
- Every change is audited

Everything a component needs is passed in through its constructor.
create_app_components() is the only place that reads settings.
"""

from datetime import datetime
from decimal import Decimal
from pathlib import Path
from typing import Optional, Union
from uuid import UUID

import structlog
from pydantic import ValidationError

from ledger.agents import ExtractionAgentInterface, ExtractionFailedError, GeminiExtractionAgent
from ledger.audit import AuditLogger, create_correlation_id
from ledger.categories import CategoryRegistry
from ledger.config import AppSettings, Settings, get_settings
from ledger.dedup import DuplicatePolicy, find_duplicate
from ledger.installments import InstallmentGroupManager, parse_installment_request
from ledger.models.category import Category
from ledger.models.transaction import (
    CaptureOutcome,
    ImportResult,
    Transaction,
    TransactionKind,
)
from ledger.models.validation import ValidationIssue
from ledger.services.archive import ArchiveCodec
from ledger.services.currency import ExchangeRateService
from ledger.services.ocr import MindeeOCRService, OCRError
from ledger.services.storage import (
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsLedgerStorage,
    InMemoryLedgerStorage,
    LedgerStorageInterface,
    NotFoundError,
)
from ledger.transfer import ExportImportCodec, ProgressCallback
from ledger.validation import LedgerValidationError, TransactionValidator, parse_amount


logger = structlog.get_logger(__name__)

EDITABLE_FIELDS = {
    "kind",
    "occurred_at",
    "amount",
    "currency",
    "main_category",
    "sub_category",
    "counterparty",
    "note",
    "attachment",
}


def _reject(field: str, message: str) -> LedgerValidationError:
    issue = ValidationIssue(field=field, issue_type="not_allowed", message=message)
    return LedgerValidationError(message, [issue])


class LedgerService:
    """
    Application-level ledger operations.

    Collaborators that talk to external services (extraction agent, OCR,
    currency) are optional; the flows that need a missing one raise.
    """

    def __init__(
        self,
        storage: LedgerStorageInterface,
        settings: AppSettings,
        registry: Optional[CategoryRegistry] = None,
        extraction_agent: Optional[ExtractionAgentInterface] = None,
        ocr_service: Optional[MindeeOCRService] = None,
        currency_service: Optional[ExchangeRateService] = None,
        archive_codec: Optional[ArchiveCodec] = None,
        audit_logger: Optional[AuditLogger] = None,
        validator: Optional[TransactionValidator] = None,
        work_dir: Optional[Path] = None,
    ):
        self._storage = storage
        self._settings = settings
        self._registry = registry if registry is not None else CategoryRegistry()
        self._agent = extraction_agent
        self._ocr = ocr_service
        self._currency = currency_service
        self._audit = audit_logger if audit_logger is not None else AuditLogger()
        self._validator = validator if validator is not None else TransactionValidator()
        self._installments = InstallmentGroupManager(storage, self._audit)
        self._transfer = ExportImportCodec(
            storage,
            self._registry,
            archive_codec=archive_codec,
            settings=settings,
            audit_logger=self._audit,
            work_dir=work_dir,
        )
        self._capture_policy = DuplicatePolicy.ai_capture(settings)

    @property
    def registry(self) -> CategoryRegistry:
        return self._registry

    @property
    def installments(self) -> InstallmentGroupManager:
        return self._installments

    # ------------------------------------------------------------------
    # Setup and shared steps
    # ------------------------------------------------------------------

    async def initialize(self) -> None:
        """Load the stored taxonomy, seeding defaults on first run."""
        self._registry.load(await self._storage.list_categories())
        for category in self._registry.initialize_defaults():
            await self._storage.save_category(category)

    async def rename_category(
        self,
        category: Category,
        main_category: str,
        sub_category: str,
    ) -> Category:
        """Rename a taxonomy entry. Saved transactions keep their old names."""
        renamed = self._registry.rename(category, main_category, sub_category)
        await self._storage.save_category(renamed)
        return renamed

    async def delete_category(
        self,
        category: Category,
        correlation_id: Optional[UUID] = None,
    ) -> bool:
        """Remove a taxonomy entry. Transactions filed under it are untouched."""
        if not self._registry.delete(category):
            return False
        await self._storage.delete_category(category.id)
        await self._audit.log_category_deleted(
            kind=category.kind.value,
            main_category=category.main_category,
            sub_category=category.sub_category,
            correlation_id=correlation_id,
        )
        return True

    async def _get_required(self, transaction_id: UUID) -> Transaction:
        transaction = await self._storage.get_transaction(transaction_id)
        if transaction is None:
            raise NotFoundError(f"Transaction not found: {transaction_id}")
        return transaction

    async def _register_category(
        self,
        transaction: Transaction,
        correlation_id: Optional[UUID],
    ) -> None:
        is_new = self._registry.get(
            transaction.kind, transaction.main_category, transaction.sub_category
        ) is None
        category = self._registry.add_or_update(
            transaction.kind, transaction.main_category, transaction.sub_category
        )
        await self._storage.save_category(category)
        if is_new:
            await self._audit.log_category_created(
                kind=category.kind.value,
                main_category=category.main_category,
                sub_category=category.sub_category,
                correlation_id=correlation_id,
            )

    async def _save_new(
        self,
        transaction: Transaction,
        source: str,
        correlation_id: Optional[UUID],
    ) -> Transaction:
        await self._storage.save_transaction(transaction)
        await self._register_category(transaction, correlation_id)
        await self._audit.log_transaction_saved(
            transaction_id=transaction.id,
            amount=str(transaction.amount),
            currency=transaction.currency,
            source=source,
            correlation_id=correlation_id,
        )
        return transaction

    # ------------------------------------------------------------------
    # Manual entry
    # ------------------------------------------------------------------

    async def record_transaction(
        self,
        kind: TransactionKind,
        occurred_at: datetime,
        amount_text: str,
        main_category: str,
        sub_category: str,
        currency: Optional[str] = None,
        counterparty: str = "",
        note: str = "",
        attachment: Optional[bytes] = None,
        correlation_id: Optional[UUID] = None,
    ) -> Transaction:
        """
        Save a manually entered transaction.

        No duplicate check: a person typing an entry twice means it.

        Raises:
            LedgerValidationError: If the amount text or any field is invalid
        """
        correlation_id = correlation_id or create_correlation_id()
        amount = parse_amount(amount_text)
        try:
            transaction = Transaction(
                kind=kind,
                occurred_at=occurred_at,
                amount=amount,
                currency=currency or self._settings.default_currency,
                main_category=main_category,
                sub_category=sub_category,
                counterparty=counterparty,
                note=note,
                attachment=attachment,
            )
        except ValidationError as e:
            raise LedgerValidationError(f"Invalid transaction: {e.errors()[0]['msg']}") from e

        self._validator.ensure_valid(transaction, require_positive_amount=False)
        return await self._save_new(transaction, "manual", correlation_id)

    async def update_transaction(
        self,
        transaction_id: UUID,
        correlation_id: Optional[UUID] = None,
        **changes,
    ) -> Transaction:
        """
        Edit a saved transaction.

        Installment periods keep their amount and kind; changing either is
        rejected. The category triple is registered again when it changes.

        Raises:
            NotFoundError: If the transaction doesn't exist
            LedgerValidationError: For unknown fields, invalid values or a
                forbidden installment edit
        """
        unknown = set(changes) - EDITABLE_FIELDS
        if unknown:
            raise _reject(sorted(unknown)[0], f"Fields cannot be edited: {', '.join(sorted(unknown))}")

        current = await self._get_required(transaction_id)
        if "amount" in changes and not isinstance(changes["amount"], Decimal):
            changes["amount"] = parse_amount(str(changes["amount"]))

        if current.is_installment:
            if "kind" in changes and changes["kind"] != current.kind:
                raise _reject("kind", "The kind of an installment period cannot be changed")
            if "amount" in changes and changes["amount"] != current.amount:
                raise _reject("amount", "The amount of an installment period cannot be changed")

        try:
            updated = Transaction.model_validate({**current.model_dump(), **changes})
        except ValidationError as e:
            raise LedgerValidationError(f"Invalid transaction: {e.errors()[0]['msg']}") from e
        self._validator.ensure_valid(updated, require_positive_amount=False)

        await self._storage.update_transaction(updated)
        if updated.category_key() != current.category_key():
            await self._register_category(updated, correlation_id)

        changed = sorted(
            name for name in changes if getattr(current, name) != getattr(updated, name)
        )
        await self._audit.log_transaction_updated(
            transaction_id=updated.id,
            changed_fields=changed,
            correlation_id=correlation_id,
        )
        return updated

    async def delete_transaction(
        self,
        transaction_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> bool:
        """Delete one record. For an installment period this deletes only that period."""
        transaction = await self._get_required(transaction_id)
        if transaction.is_installment:
            return await self._installments.delete_period(transaction, correlation_id)

        deleted = await self._storage.delete_transaction(transaction.id)
        if deleted:
            await self._audit.log_transaction_deleted(transaction.id, correlation_id)
        return deleted

    # ------------------------------------------------------------------
    # AI capture
    # ------------------------------------------------------------------

    async def capture_from_text(
        self,
        raw_text: str,
        preferred_kind: TransactionKind = TransactionKind.EXPENSE,
        attachment: Optional[bytes] = None,
        correlation_id: Optional[UUID] = None,
    ) -> CaptureOutcome:
        """
        Extract, default, validate, de-duplicate and save one transaction.

        Returns:
            CaptureOutcome with the saved transaction, or with duplicate_of
            set when an equivalent capture already exists

        Raises:
            ExtractionFailedError: If extraction fails or no agent is configured
            LedgerValidationError: If the extracted record is not usable
        """
        correlation_id = correlation_id or create_correlation_id()
        if self._agent is None:
            raise ExtractionFailedError("No extraction agent configured")

        try:
            extracted = await self._agent.extract(
                raw_text,
                preferred_kind,
                self._registry.format_for_prompt(preferred_kind),
            )
        except ExtractionFailedError as e:
            await self._audit.log_external_service_error(
                service="extraction",
                error_message=str(e),
                correlation_id=correlation_id,
            )
            raise

        if extracted.amount is None or extracted.amount <= 0:
            issue = ValidationIssue(
                field="amount",
                issue_type="missing",
                message="No amount could be read from the text",
                suggested_fix="Enter the transaction manually",
            )
            await self._audit.log_validation_failed([issue.model_dump()], correlation_id)
            raise LedgerValidationError(issue.message, [issue])

        try:
            candidate = extracted.to_transaction(
                preferred_kind=preferred_kind,
                default_currency=self._settings.default_currency,
                default_category=self._settings.default_category,
                source_text=raw_text,
                attachment=attachment,
            )
        except ValidationError as e:
            raise LedgerValidationError(f"Extracted record is invalid: {e.errors()[0]['msg']}") from e

        try:
            self._validator.ensure_valid(candidate)
        except LedgerValidationError as e:
            await self._audit.log_validation_failed(
                [i.model_dump() for i in e.issues], correlation_id
            )
            raise

        existing = await self._storage.list_transactions(lambda t: t.kind == candidate.kind)
        duplicate = find_duplicate(candidate, existing, self._capture_policy)
        if duplicate is not None:
            await self._audit.log_duplicate_skipped(
                existing_id=duplicate.id,
                amount=str(candidate.amount),
                policy=self._capture_policy.name,
                correlation_id=correlation_id,
            )
            return CaptureOutcome(
                duplicate_of=duplicate,
                message=(
                    f"Skipped: {duplicate.amount} {duplicate.currency} was already "
                    f"recorded at {duplicate.occurred_at:%Y-%m-%d %H:%M}"
                ),
            )

        saved = await self._save_new(candidate, "ai_capture", correlation_id)
        return CaptureOutcome(
            transaction=saved,
            message=f"Recorded {saved.amount} {saved.currency} under {saved.main_category} / {saved.sub_category}",
        )

    async def capture_from_image(
        self,
        image_bytes: bytes,
        filename: str = "receipt.jpg",
        preferred_kind: TransactionKind = TransactionKind.EXPENSE,
        correlation_id: Optional[UUID] = None,
    ) -> CaptureOutcome:
        """
        OCR an image and capture the result, keeping the image attached.

        Raises:
            OCRError: InvalidImageError / NoTextFoundError / service failure
        """
        correlation_id = correlation_id or create_correlation_id()
        if self._ocr is None:
            raise OCRError("No OCR service configured")

        try:
            text = await self._ocr.recognize_text(image_bytes, filename)
        except OCRError as e:
            await self._audit.log_external_service_error(
                service="ocr",
                error_message=str(e),
                correlation_id=correlation_id,
            )
            raise

        return await self.capture_from_text(
            text,
            preferred_kind,
            attachment=image_bytes,
            correlation_id=correlation_id,
        )

    # ------------------------------------------------------------------
    # Installments
    # ------------------------------------------------------------------

    async def create_installment_group(
        self,
        template: Transaction,
        period_count: int,
        rate_text: Optional[str] = None,
        principal_text: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> list[Transaction]:
        """
        Split a purchase into period records.

        The principal defaults to the template's amount.

        Raises:
            LedgerValidationError: period_count <= 0, non-positive principal,
                or an income template
        """
        correlation_id = correlation_id or create_correlation_id()
        request = parse_installment_request(
            principal_text if principal_text is not None else str(template.amount),
            rate_text,
            period_count,
        )
        periods = await self._installments.create_group(template, request, correlation_id)
        await self._register_category(periods[0], correlation_id)
        return periods

    async def convert_to_installments(
        self,
        transaction_id: UUID,
        period_count: int,
        rate_text: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> list[Transaction]:
        """Replace a saved single expense with an installment group of the same amount."""
        correlation_id = correlation_id or create_correlation_id()
        transaction = await self._get_required(transaction_id)
        request = parse_installment_request(str(transaction.amount), rate_text, period_count)
        return await self._installments.convert_to_group(transaction, request, correlation_id)

    async def installment_members(self, transaction_id: UUID) -> list[Transaction]:
        return await self._installments.locate_members(await self._get_required(transaction_id))

    async def delete_installment_period(
        self,
        transaction_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> bool:
        return await self.delete_transaction(transaction_id, correlation_id)

    async def delete_installment_group(
        self,
        transaction_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> int:
        transaction = await self._get_required(transaction_id)
        return await self._installments.delete_group(transaction, correlation_id)

    async def pay_off_early(
        self,
        transaction_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> Transaction:
        transaction = await self._get_required(transaction_id)
        return await self._installments.early_payoff(transaction, correlation_id)

    # ------------------------------------------------------------------
    # Bulk transfer and currency
    # ------------------------------------------------------------------

    async def export_ledger(
        self,
        output_dir: Path,
        progress: Optional[ProgressCallback] = None,
    ) -> Path:
        return await self._transfer.export(
            output_dir, progress, correlation_id=create_correlation_id()
        )

    async def import_ledger(
        self,
        archive_path: Path,
        progress: Optional[ProgressCallback] = None,
    ) -> ImportResult:
        """Import an archive. Append-only per row; see ExportImportCodec.import_archive."""
        return await self._transfer.import_archive(
            archive_path, progress, correlation_id=create_correlation_id()
        )

    async def convert_amount(
        self,
        amount: Union[Decimal, float, int],
        from_currency: str,
        to_currency: Optional[str] = None,
    ) -> Decimal:
        """Convert an amount; the target defaults to the ledger's default currency."""
        if self._currency is None:
            raise RuntimeError("No currency service configured")
        return await self._currency.convert(
            amount, from_currency, to_currency or self._settings.default_currency
        )


def create_app_components(
    settings: Optional[Settings] = None,
    use_storage: bool = True,
) -> LedgerService:
    """
    Factory function wiring a LedgerService for a host application.

    Args:
        settings: Root settings; defaults to get_settings()
        use_storage: Whether to use Google Sheets storage. Set to False
                    (or leave Sheets unconfigured) for in-memory storage.

    Call `await service.initialize()` before use.
    """
    settings = settings or get_settings()
    app_settings = settings.app

    storage: LedgerStorageInterface = InMemoryLedgerStorage()
    audit_logger = AuditLogger()
    if use_storage:
        try:
            sheets_client = GoogleSheetsClient(settings.google_sheets)
            storage = GoogleSheetsLedgerStorage(sheets_client)
            audit_logger = AuditLogger(GoogleSheetsAuditStorage(sheets_client))
        except ValidationError as e:
            logger.warning("storage_not_configured", error=str(e))

    extraction_agent = None
    try:
        extraction_agent = GeminiExtractionAgent(settings.gemini)
    except ValidationError as e:
        logger.warning("extraction_not_configured", error=str(e))

    ocr_service = None
    try:
        ocr_service = MindeeOCRService(settings.mindee)
    except ValidationError as e:
        logger.warning("ocr_not_configured", error=str(e))

    return LedgerService(
        storage=storage,
        settings=app_settings,
        registry=CategoryRegistry(),
        extraction_agent=extraction_agent,
        ocr_service=ocr_service,
        currency_service=ExchangeRateService(settings.currency),
        audit_logger=audit_logger,
    )
