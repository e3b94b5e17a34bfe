"""OCR services package."""

from ledger.services.ocr.mindee_service import (
    InvalidImageError,
    MindeeOCRService,
    NoTextFoundError,
    OCRError,
)

__all__ = [
    "InvalidImageError",
    "MindeeOCRService",
    "NoTextFoundError",
    "OCRError",
]
