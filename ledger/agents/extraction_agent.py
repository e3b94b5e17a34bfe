"""
AI Extraction Agent

DESIGN DECISION: The language model is a TRANSLATOR, not an ORACLE.
It turns free text (OCR output, a shared message, a typed sentence) into a
proposed record. It never saves anything and it never fills in what it
cannot read: any field it cannot extract comes back as None and the
caller applies the ledger defaults.

CRITICAL BOUNDARIES:
- CAN: Propose amount, date, currency, categories, counterparty, note
- CAN: Prefer the user's existing categories (they are part of the prompt)
- CANNOT: Persist data
- CANNOT: Invent values for fields missing from the text

No automatic retries: a failed extraction is reported to the user.
"""

import json
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

import google.generativeai as genai
import structlog

from ledger.agents.interface import ExtractionAgentInterface
from ledger.config.settings import GeminiSettings
from ledger.models.transaction import ExtractedTransaction, TransactionKind


logger = structlog.get_logger(__name__)


class ExtractionFailedError(Exception):
    """The model call failed or its reply held no usable record."""
    pass


EXTRACTION_PROMPT = """You are a bookkeeping assistant. Extract one {kind} record from the text below.

{categories}
Classification rules:
- Main categories are areas of life (food, transport, housing, ...), never payment channels
- Sub categories name the concrete purpose (dining out, commute, ...)
- Prefer the existing categories listed above; create a new one only if none fits
- Ignore advertised prices of items that were not actually paid for

Respond with ONLY a JSON object with these fields (use null when a value cannot be read):
{{
  "date": "YYYY-MM-DD HH:mm:ss in the local time shown on the receipt, no timezone",
  "amount": number,
  "currency": "currency code such as CNY, USD, EUR, JPY, GBP, HKD",
  "mainCategory": "main category",
  "subCategory": "sub category",
  "counterparty": "merchant, or a short description of what was bought",
  "note": "anything else worth keeping"
}}
If only a date is shown, use 12:00:00 as the time.

Text:
{text}"""


def _as_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _as_amount(value: Any) -> Optional[Decimal]:
    if value is None or isinstance(value, bool):
        return None
    try:
        amount = Decimal(str(value).replace(",", "").strip())
    except InvalidOperation:
        return None
    return amount if amount.is_finite() and amount >= 0 else None


def parse_extraction_reply(reply: str) -> ExtractedTransaction:
    """
    Parse the first JSON object in a model reply.

    Unusable individual fields become None; a reply with no JSON object
    at all is an error.

    Raises:
        ExtractionFailedError: If no JSON object can be decoded
    """
    text = (reply or "").strip()
    start = text.find("{")
    end = text.rfind("}") + 1
    if start < 0 or end <= start:
        raise ExtractionFailedError("Model reply contained no JSON object")

    try:
        data = json.loads(text[start:end])
    except json.JSONDecodeError as e:
        raise ExtractionFailedError(f"Model reply was not valid JSON: {e}") from e
    if not isinstance(data, dict):
        raise ExtractionFailedError("Model reply JSON was not an object")

    kind = None
    if _as_text(data.get("kind")):
        try:
            kind = TransactionKind.from_label(data["kind"])
        except ValueError:
            kind = None

    currency = _as_text(data.get("currency"))
    if currency and (len(currency) != 3 or not currency.isalpha()):
        currency = None

    return ExtractedTransaction(
        date_text=_as_text(data.get("date")),
        amount=_as_amount(data.get("amount")),
        currency=currency.upper() if currency else None,
        main_category=_as_text(data.get("mainCategory")),
        sub_category=_as_text(data.get("subCategory")),
        counterparty=_as_text(data.get("counterparty") or data.get("merchant")),
        note=_as_text(data.get("note")),
        kind=kind,
    )


class GeminiExtractionAgent(ExtractionAgentInterface):
    """
    Extracts a proposed transaction from raw text with Gemini.

    BOUNDARIES:
    - NEVER persists data
    - NEVER fills in missing fields itself
    """

    def __init__(self, settings: GeminiSettings):
        self._settings = settings
        self._configure_genai()

    def _configure_genai(self):
        """Configure Google Generative AI."""
        genai.configure(api_key=self._settings.api_key)
        self._model = genai.GenerativeModel(
            model_name=self._settings.model_name,
            generation_config={
                "temperature": self._settings.temperature,
                "max_output_tokens": self._settings.max_tokens,
            }
        )

    def build_prompt(
        self,
        raw_text: str,
        preferred_kind: TransactionKind,
        categories_prompt: str = "",
    ) -> str:
        return EXTRACTION_PROMPT.format(
            kind=preferred_kind.value,
            categories=categories_prompt,
            text=raw_text,
        )

    async def extract(
        self,
        raw_text: str,
        preferred_kind: TransactionKind,
        categories_prompt: str = "",
    ) -> ExtractedTransaction:
        """
        Propose a transaction for the text.

        Args:
            raw_text: OCR output or user text
            preferred_kind: Kind the user is entering (used when the model
                does not say otherwise)
            categories_prompt: Existing taxonomy, from
                CategoryRegistry.format_for_prompt

        Raises:
            ExtractionFailedError: If the model call fails or returns no record
        """
        prompt = self.build_prompt(raw_text, preferred_kind, categories_prompt)
        try:
            response = await self._model.generate_content_async(prompt)
            reply = response.text
        except Exception as e:
            logger.error("extraction_request_failed", error=str(e))
            raise ExtractionFailedError(f"Extraction request failed: {e}") from e

        extracted = parse_extraction_reply(reply)
        logger.info(
            "extraction_completed",
            has_amount=extracted.amount is not None,
            has_date=extracted.date_text is not None,
        )
        return extracted
