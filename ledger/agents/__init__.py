"""AI Agents package."""

from ledger.agents.extraction_agent import (
    ExtractionFailedError,
    GeminiExtractionAgent,
    parse_extraction_reply,
)
from ledger.agents.interface import ExtractionAgentInterface

__all__ = [
    "ExtractionAgentInterface",
    "ExtractionFailedError",
    "GeminiExtractionAgent",
    "parse_extraction_reply",
]
