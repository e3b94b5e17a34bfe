"""Tests for the audit logger, settings and application wiring."""

import asyncio
import pytest

from ledger.audit import AuditLogger, create_correlation_id
from ledger.config import AppSettings, Settings, validate_all_settings
from ledger.models.audit import AuditEventBuilder, AuditEventType
from ledger.orchestrator import LedgerService, create_app_components
from ledger.services.storage import InMemoryLedgerStorage


class FailingAuditStorage:
    async def append_event(self, event):
        raise RuntimeError("sheet unavailable")


class TestAuditLogger:
    """Tests for audit logging."""

    def test_persists_events(self, audit_logger, audit_storage):
        correlation_id = create_correlation_id()
        asyncio.run(audit_logger.log_export_completed("/tmp/x.zip", 3, correlation_id))
        events = asyncio.run(audit_storage.get_events_by_correlation_id(correlation_id))
        assert [e.event_type for e in events] == [AuditEventType.EXPORT_COMPLETED]

    def test_local_only(self):
        """Test a logger without storage still reports success."""
        assert asyncio.run(AuditLogger().log(AuditEventBuilder.system_error("x", "y")))

    def test_storage_failure_never_raises(self):
        """Test a failed audit write does not fail the caller."""
        logger = AuditLogger(FailingAuditStorage())
        assert asyncio.run(logger.log(AuditEventBuilder.system_error("x", "y"))) is False


class TestSettings:
    """Tests for configuration loading."""

    def test_app_defaults(self, monkeypatch):
        monkeypatch.delenv("LEDGER_DEFAULT_CURRENCY", raising=False)
        settings = AppSettings()
        assert settings.default_currency == "CNY"
        assert settings.capture_duplicate_window_seconds == 120
        assert settings.import_duplicate_window_seconds == 1

    def test_env_override(self, monkeypatch):
        monkeypatch.setenv("LEDGER_DEFAULT_CURRENCY", "usd")
        assert AppSettings().default_currency == "USD"

    def test_validate_all_reports_missing_keys(self, monkeypatch):
        monkeypatch.delenv("MINDEE_API_KEY", raising=False)
        results = validate_all_settings(Settings())
        assert results["mindee"] is False
        assert "mindee_error" in results
        assert results["app"] is True


class TestCreateAppComponents:
    """Tests for the application factory."""

    def test_falls_back_to_memory(self, monkeypatch):
        """Test an unconfigured environment still yields a working service."""
        for name in ("GEMINI_API_KEY", "MINDEE_API_KEY"):
            monkeypatch.delenv(name, raising=False)

        service = create_app_components(Settings(), use_storage=False)

        assert isinstance(service, LedgerService)
        assert isinstance(service._storage, InMemoryLedgerStorage)
        asyncio.run(service.initialize())
        assert len(service.registry) > 0
