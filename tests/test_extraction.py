"""Tests for parsing extraction model replies. No model calls."""

import pytest
from decimal import Decimal

from ledger.agents import (
    ExtractionAgentInterface,
    ExtractionFailedError,
    GeminiExtractionAgent,
    parse_extraction_reply,
)
from ledger.models.transaction import TransactionKind


class TestParseExtractionReply:
    """Tests for turning a model reply into a proposed record."""

    def test_fenced_json(self):
        """Test JSON wrapped in a markdown fence is found."""
        reply = """Here you go:
```json
{"date": "2024-03-01 18:45:00", "amount": 42.5, "currency": "usd",
 "mainCategory": "Food", "subCategory": "Dining Out",
 "counterparty": "Cafe Luna", "note": null}
```"""
        extracted = parse_extraction_reply(reply)
        assert extracted.amount == Decimal("42.5")
        assert extracted.currency == "USD"
        assert extracted.date_text == "2024-03-01 18:45:00"
        assert extracted.main_category == "Food"
        assert extracted.counterparty == "Cafe Luna"
        assert extracted.note is None

    def test_amount_as_string(self):
        """Test a quoted amount with separators is accepted."""
        assert parse_extraction_reply('{"amount": "1,299.00"}').amount == Decimal("1299.00")

    @pytest.mark.parametrize("amount", ["free", -3, True, None])
    def test_unusable_amount_is_none(self, amount):
        """Test unusable amounts become None instead of failing."""
        import json
        assert parse_extraction_reply(json.dumps({"amount": amount})).amount is None

    def test_bad_currency_dropped(self):
        """Test a non-code currency is left for the default."""
        assert parse_extraction_reply('{"amount": 1, "currency": "dollars"}').currency is None

    def test_merchant_fallback(self):
        assert parse_extraction_reply('{"merchant": "Metro"}').counterparty == "Metro"

    def test_kind_label(self):
        """Test an explicit kind is recognized, unknown kinds ignored."""
        assert parse_extraction_reply('{"kind": "收入"}').kind == TransactionKind.INCOME
        assert parse_extraction_reply('{"kind": "refund"}').kind is None

    def test_blank_strings_are_none(self):
        extracted = parse_extraction_reply('{"mainCategory": "  ", "subCategory": ""}')
        assert extracted.main_category is None
        assert extracted.sub_category is None

    @pytest.mark.parametrize("reply", ["", "no json here", "{not valid}", "[1, 2]"])
    def test_no_json_object(self, reply):
        """Test replies without a JSON object raise."""
        with pytest.raises(ExtractionFailedError):
            parse_extraction_reply(reply)


class TestExtractionAgentInterface:
    """Tests for the provider abstraction."""

    def test_gemini_implements_interface(self):
        assert issubclass(GeminiExtractionAgent, ExtractionAgentInterface)

    def test_incomplete_provider_rejected(self):
        """Test a provider without extract cannot be constructed."""

        class Incomplete(ExtractionAgentInterface):
            pass

        with pytest.raises(TypeError):
            Incomplete()
