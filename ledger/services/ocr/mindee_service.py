"""
OCR Service using Mindee

DESIGN DECISION: OCR here only turns an image into text. Interpreting the
text (amount, date, categories) is the extraction agent's job, so the same
text path serves receipts photographed in the app and text shared from
other apps.

This service handles:
1. Verifying the payload is a readable image (Pillow) before upload
2. Sending it to Mindee's receipt/invoice model with word output enabled
3. Returning the recognized text

No automatic retries: an OCR failure is reported to the user, who can
retake the photo.
"""

import io
from typing import Optional

import structlog
from mindee import Client
from mindee.product import InvoiceV4
from PIL import Image, UnidentifiedImageError

from ledger.config.settings import MindeeSettings


logger = structlog.get_logger(__name__)


class OCRError(Exception):
    """Base exception for OCR errors."""
    pass


class InvalidImageError(OCRError):
    """The payload is not a readable image."""
    pass


class NoTextFoundError(OCRError):
    """The image was processed but contained no text."""
    pass


class MindeeOCRService:
    """
    OCR service returning the raw text of a receipt or invoice image.

    IMPORTANT BOUNDARIES:
    1. This service ONLY recognizes text; it does not interpret it
    2. Unreadable images are rejected before any network call
    """

    def __init__(self, settings: MindeeSettings):
        self._settings = settings
        self._client: Optional[Client] = None

    def _get_client(self) -> Client:
        """Get or create Mindee client."""
        if self._client is None:
            self._client = Client(api_key=self._settings.api_key)
        return self._client

    @staticmethod
    def verify_image(image_bytes: bytes) -> None:
        """
        Check that the bytes decode as an image.

        Raises:
            InvalidImageError: If Pillow cannot identify or verify the image
        """
        if not image_bytes:
            raise InvalidImageError("Image is empty")
        try:
            with Image.open(io.BytesIO(image_bytes)) as image:
                image.verify()
        except (UnidentifiedImageError, OSError, SyntaxError) as e:
            raise InvalidImageError(f"Not a readable image: {e}") from e

    @staticmethod
    def _fallback_text(prediction) -> str:
        """Assemble text from predicted fields when no word layer is returned."""
        parts = []
        supplier = getattr(prediction, "supplier_name", None)
        if supplier is not None and supplier.value:
            parts.append(str(supplier.value))
        invoice_date = getattr(prediction, "date", None)
        if invoice_date is not None and invoice_date.value:
            parts.append(f"Date: {invoice_date.value}")
        total = getattr(prediction, "total_amount", None)
        if total is not None and total.value is not None:
            parts.append(f"Total: {total.value}")
        return "\n".join(parts)

    async def recognize_text(self, image_bytes: bytes, filename: str = "receipt.jpg") -> str:
        """
        Recognize the text in an image.

        Raises:
            InvalidImageError: If the payload is not an image
            NoTextFoundError: If no text was recognized
            OCRError: If the Mindee call fails
        """
        self.verify_image(image_bytes)
        client = self._get_client()

        try:
            input_doc = client.source_from_bytes(image_bytes, filename)
            result = client.parse(InvoiceV4, input_doc, include_words=True)
        except Exception as e:
            logger.error("ocr_request_failed", filename=filename, error=str(e))
            raise OCRError(f"OCR request failed: {e}") from e

        document = result.document
        text = str(document.ocr).strip() if document.ocr else ""
        if not text:
            text = self._fallback_text(document.inference.prediction).strip()

        if not text:
            raise NoTextFoundError("No text was found in the image")

        logger.info("ocr_completed", filename=filename, characters=len(text))
        return text
