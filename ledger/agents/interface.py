"""
Abstract Extraction Agent Interface

The ledger asks a language model to turn free text into a proposed
transaction. Providers differ (Gemini today); the capture flow only depends
on this interface, so a provider can be swapped without touching it.
"""

from abc import ABC, abstractmethod

from ledger.models.transaction import ExtractedTransaction, TransactionKind


class ExtractionAgentInterface(ABC):
    """Turns raw text into a proposed transaction."""

    @abstractmethod
    async def extract(
        self,
        raw_text: str,
        preferred_kind: TransactionKind,
        categories_prompt: str = "",
    ) -> ExtractedTransaction:
        """
        Propose a transaction for the text.

        Fields the provider could not read are left as None; the caller
        applies defaults.

        Raises:
            ExtractionFailedError: If the provider fails or returns no record
        """
        pass
