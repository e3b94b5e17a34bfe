"""
Integration tests for LedgerService flows.

External collaborators (extraction model, OCR) are replaced with stubs.
"""

import asyncio
import pytest
from datetime import datetime
from decimal import Decimal
from uuid import uuid4

from ledger.agents import ExtractionAgentInterface, ExtractionFailedError
from ledger.models.audit import AuditEventType
from ledger.models.transaction import ExtractedTransaction, TransactionKind
from ledger.orchestrator import LedgerService
from ledger.services.currency import ExchangeRateService
from ledger.services.ocr import NoTextFoundError
from ledger.services.storage import NotFoundError
from ledger.validation import LedgerValidationError


class StubAgent(ExtractionAgentInterface):
    """Returns queued extraction results and records the prompts it got."""

    def __init__(self, *results):
        self.results = list(results)
        self.calls = []

    async def extract(self, raw_text, preferred_kind, categories_prompt=""):
        self.calls.append((raw_text, preferred_kind, categories_prompt))
        result = self.results.pop(0)
        if isinstance(result, Exception):
            raise result
        return result


class StubOCR:
    def __init__(self, text=None, error=None):
        self.text = text
        self.error = error

    async def recognize_text(self, image_bytes, filename="receipt.jpg"):
        if self.error:
            raise self.error
        return self.text


def _extracted(**fields):
    defaults = {"amount": Decimal("25.50"), "date_text": "2024-03-01 12:00:00"}
    defaults.update(fields)
    return ExtractedTransaction(**defaults)


@pytest.fixture
def make_service(storage, registry, app_settings, audit_logger, currency_settings, tmp_path):
    def _make(agent=None, ocr=None):
        return LedgerService(
            storage=storage,
            settings=app_settings,
            registry=registry,
            extraction_agent=agent,
            ocr_service=ocr,
            currency_service=ExchangeRateService(currency_settings),
            audit_logger=audit_logger,
            work_dir=tmp_path / "work",
        )

    return _make


class TestInitialize:
    """Tests for loading and seeding the taxonomy."""

    def test_injected_empty_registry_is_used(self, make_service, registry):
        """Test an empty registry passed in is the one the service fills."""
        service = make_service()
        assert service.registry is registry
        asyncio.run(service.initialize())
        assert len(registry) > 0

    def test_seeds_and_persists_defaults(self, make_service, storage, registry):
        service = make_service()
        asyncio.run(service.initialize())
        stored = asyncio.run(storage.list_categories())
        assert len(stored) == len(registry) > 0

        asyncio.run(service.initialize())
        assert len(asyncio.run(storage.list_categories())) == len(stored)

    def test_rename_and_delete_persisted(self, make_service, storage, registry, audit_storage):
        """Test taxonomy edits reach storage."""
        service = make_service()
        asyncio.run(service.initialize())
        category = registry.get(TransactionKind.EXPENSE, "Food", "Groceries")

        renamed = asyncio.run(service.rename_category(category, "Food", "Supermarket"))
        stored = {c.id: c for c in asyncio.run(storage.list_categories())}
        assert stored[renamed.id].sub_category == "Supermarket"

        assert asyncio.run(service.delete_category(renamed))
        assert renamed.id not in {c.id for c in asyncio.run(storage.list_categories())}
        assert audit_storage.events[-1].event_type == AuditEventType.CATEGORY_DELETED
        assert not asyncio.run(service.delete_category(renamed))


class TestManualEntry:
    """Tests for record_transaction."""

    def test_record(self, make_service, storage, registry):
        """Test a typed entry is saved and its category counted."""
        service = make_service()
        txn = asyncio.run(service.record_transaction(
            TransactionKind.EXPENSE,
            datetime(2024, 3, 1, 9, 0),
            "1,234.50",
            "Housing",
            "Rent & Utilities",
        ))
        assert txn.amount == Decimal("1234.50")
        assert txn.currency == "CNY"
        assert len(storage) == 1
        assert registry.get(TransactionKind.EXPENSE, "Housing", "Rent & Utilities").usage_count == 1

    def test_no_duplicate_check(self, make_service, storage):
        """Test the same manual entry twice is saved twice."""
        service = make_service()
        for _ in range(2):
            asyncio.run(service.record_transaction(
                TransactionKind.EXPENSE, datetime(2024, 3, 1, 9, 0), "10", "Food", "Snacks",
            ))
        assert len(storage) == 2

    def test_bad_amount(self, make_service, storage):
        service = make_service()
        with pytest.raises(LedgerValidationError):
            asyncio.run(service.record_transaction(
                TransactionKind.EXPENSE, datetime(2024, 3, 1), "ten", "Food", "Snacks",
            ))
        assert len(storage) == 0

    def test_empty_category(self, make_service):
        service = make_service()
        with pytest.raises(LedgerValidationError):
            asyncio.run(service.record_transaction(
                TransactionKind.EXPENSE, datetime(2024, 3, 1), "10", " ", "Snacks",
            ))


class TestCapture:
    """Tests for AI capture from text and images."""

    def test_capture_saves_with_defaults(self, make_service, storage, registry, audit_storage):
        """Test missing fields get the ledger defaults."""
        agent = StubAgent(_extracted())
        service = make_service(agent=agent)

        outcome = asyncio.run(service.capture_from_text("Paid 25.50 at the market"))

        assert not outcome.skipped_duplicate
        txn = outcome.transaction
        assert txn.amount == Decimal("25.50")
        assert txn.currency == "CNY"
        assert (txn.main_category, txn.sub_category) == ("Other", "Other")
        assert txn.source_text == "Paid 25.50 at the market"
        assert len(storage) == 1
        assert registry.get(TransactionKind.EXPENSE, "Other", "Other") is not None
        assert AuditEventType.TRANSACTION_SAVED in [e.event_type for e in audit_storage.events]

    def test_prompt_includes_taxonomy(self, make_service, registry):
        """Test the extraction prompt carries the existing categories."""
        registry.add_or_update(TransactionKind.EXPENSE, "Food", "Groceries")
        agent = StubAgent(_extracted())
        asyncio.run(make_service(agent=agent).capture_from_text("receipt"))
        assert "[Food] Groceries" in agent.calls[0][2]

    def test_duplicate_capture_skipped(self, make_service, storage, audit_storage):
        """Test a second capture 90 s later is skipped, not saved."""
        agent = StubAgent(
            _extracted(),
            _extracted(date_text="2024-03-01 12:01:30", amount=Decimal("25.505")),
        )
        service = make_service(agent=agent)
        first = asyncio.run(service.capture_from_text("shortcut text"))
        second = asyncio.run(service.capture_from_text("photo text"))

        assert second.skipped_duplicate
        assert second.duplicate_of.id == first.transaction.id
        assert second.transaction is None
        assert "already recorded" in second.message
        assert len(storage) == 1
        assert audit_storage.events[-1].event_type == AuditEventType.DUPLICATE_SKIPPED

    def test_income_not_duplicate_of_expense(self, make_service, storage):
        agent = StubAgent(_extracted(), _extracted(kind=TransactionKind.INCOME))
        service = make_service(agent=agent)
        asyncio.run(service.capture_from_text("a"))
        outcome = asyncio.run(service.capture_from_text("b"))
        assert not outcome.skipped_duplicate
        assert len(storage) == 2

    @pytest.mark.parametrize("amount", [None, Decimal("0")])
    def test_missing_amount_rejected(self, make_service, storage, audit_storage, amount):
        """Test a capture without a usable amount saves nothing."""
        service = make_service(agent=StubAgent(_extracted(amount=amount)))
        with pytest.raises(LedgerValidationError):
            asyncio.run(service.capture_from_text("illegible"))
        assert len(storage) == 0
        assert audit_storage.events[-1].event_type == AuditEventType.VALIDATION_FAILED

    def test_extraction_failure_audited(self, make_service, audit_storage):
        service = make_service(agent=StubAgent(ExtractionFailedError("model down")))
        with pytest.raises(ExtractionFailedError):
            asyncio.run(service.capture_from_text("anything"))
        assert audit_storage.events[-1].event_type == AuditEventType.EXTERNAL_SERVICE_ERROR

    def test_no_agent(self, make_service):
        with pytest.raises(ExtractionFailedError):
            asyncio.run(make_service().capture_from_text("anything"))

    def test_capture_from_image(self, make_service, storage):
        """Test the OCR text is extracted and the image kept as attachment."""
        agent = StubAgent(_extracted(main_category="Food", sub_category="Groceries"))
        service = make_service(agent=agent, ocr=StubOCR(text="TOTAL 25.50"))

        outcome = asyncio.run(service.capture_from_image(b"\xff\xd8image", "r.jpg"))

        assert agent.calls[0][0] == "TOTAL 25.50"
        assert outcome.transaction.attachment == b"\xff\xd8image"
        assert outcome.transaction.source_text == "TOTAL 25.50"

    def test_ocr_failure(self, make_service, storage, audit_storage):
        service = make_service(agent=StubAgent(), ocr=StubOCR(error=NoTextFoundError("blank")))
        with pytest.raises(NoTextFoundError):
            asyncio.run(service.capture_from_image(b"img"))
        assert len(storage) == 0
        assert audit_storage.events[-1].event_type == AuditEventType.EXTERNAL_SERVICE_ERROR


class TestUpdateAndDelete:
    """Tests for editing and deleting saved records."""

    def _record(self, service):
        return asyncio.run(service.record_transaction(
            TransactionKind.EXPENSE, datetime(2024, 3, 1, 9, 0), "600", "Transport", "Electronics",
        ))

    def test_update_fields(self, make_service, registry):
        """Test editing note and category re-registers the category."""
        service = make_service()
        txn = self._record(service)
        updated = asyncio.run(service.update_transaction(
            txn.id, note="new phone", sub_category="Travel", amount="650",
        ))
        assert updated.note == "new phone"
        assert updated.amount == Decimal("650")
        assert registry.get(TransactionKind.EXPENSE, "Transport", "Travel").usage_count == 1

    def test_update_unknown_field(self, make_service):
        service = make_service()
        txn = self._record(service)
        with pytest.raises(LedgerValidationError):
            asyncio.run(service.update_transaction(txn.id, group_id=uuid4()))

    def test_update_missing(self, make_service):
        with pytest.raises(NotFoundError):
            asyncio.run(make_service().update_transaction(uuid4(), note="x"))

    def test_installment_kind_change_rejected(self, make_service):
        """Test an installment period cannot become income."""
        service = make_service()
        periods = asyncio.run(service.convert_to_installments(self._record(service).id, 6))
        with pytest.raises(LedgerValidationError):
            asyncio.run(service.update_transaction(periods[1].id, kind=TransactionKind.INCOME))

    def test_installment_amount_change_rejected(self, make_service):
        service = make_service()
        periods = asyncio.run(service.convert_to_installments(self._record(service).id, 6))
        with pytest.raises(LedgerValidationError):
            asyncio.run(service.update_transaction(periods[1].id, amount="1"))
        note_only = asyncio.run(service.update_transaction(periods[1].id, note="edited"))
        assert note_only.amount == Decimal("100.00")

    def test_delete_plain(self, make_service, storage, audit_storage):
        service = make_service()
        txn = self._record(service)
        assert asyncio.run(service.delete_transaction(txn.id))
        assert len(storage) == 0
        assert audit_storage.events[-1].event_type == AuditEventType.TRANSACTION_DELETED

    def test_delete_missing(self, make_service):
        with pytest.raises(NotFoundError):
            asyncio.run(make_service().delete_transaction(uuid4()))


class TestInstallmentFlows:
    """Tests for the installment pass-throughs."""

    def test_create_group(self, make_service, storage, make_txn, registry):
        service = make_service()
        periods = asyncio.run(service.create_installment_group(
            make_txn(amount=Decimal("1200"), main_category="Transport", sub_category="Electronics"),
            period_count=12,
            rate_text="0",
        ))
        assert len(periods) == 12
        assert len(storage) == 12
        assert registry.get(TransactionKind.EXPENSE, "Transport", "Electronics").usage_count == 1

    def test_create_group_bad_periods(self, make_service, make_txn, storage):
        with pytest.raises(LedgerValidationError):
            asyncio.run(make_service().create_installment_group(make_txn(), period_count=0))
        assert len(storage) == 0

    def test_members_delete_and_payoff(self, make_service, storage, make_txn):
        service = make_service()
        periods = asyncio.run(service.create_installment_group(
            make_txn(amount=Decimal("600")), period_count=6,
        ))
        assert len(asyncio.run(service.installment_members(periods[4].id))) == 6

        assert asyncio.run(service.delete_installment_period(periods[5].id))
        paid = asyncio.run(service.pay_off_early(periods[2].id))
        assert paid.amount == Decimal("300.00")
        assert len(storage) == 3

        assert asyncio.run(service.delete_installment_group(periods[0].id)) == 3
        assert len(storage) == 0


class TestTransferAndCurrency:
    """Tests for export/import and conversion through the service."""

    def test_export_then_reimport(self, make_service, make_txn, storage, tmp_path):
        service = make_service()
        asyncio.run(service.record_transaction(
            TransactionKind.INCOME, datetime(2024, 3, 1, 9, 0), "5000", "Salary", "Wages",
        ))
        archive = asyncio.run(service.export_ledger(tmp_path))
        result = asyncio.run(service.import_ledger(archive))
        assert (result.total, result.skipped) == (1, 1)
        assert len(storage) == 1

    def test_convert_amount_defaults_to_ledger_currency(self, make_service):
        service = make_service()
        assert asyncio.run(service.convert_amount(Decimal("10"), "USD")) == Decimal("72.00")
