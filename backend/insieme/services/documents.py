"""
Document intake - decodes and validates PDFs sent as base64 data URLs.
"""

import asyncio
import logging
from typing import Tuple

import fitz  # PyMuPDF

from ..config.settings import settings
from ..errors import ValidationError
from ..utils import decode_data_url, validate_file_size

logger = logging.getLogger(__name__)


class DocumentIntakeService:
    """Turns a client-supplied PDF data URL into validated PDF bytes."""

    def __init__(self, max_file_size_mb: int = settings.MAX_FILE_SIZE_MB):
        self.max_file_size_mb = max_file_size_mb

    async def load_pdf(self, data_url: str, field_name: str = "pdfData") -> bytes:
        """
        Decode and validate a PDF data URL.

        Raises:
            ValidationError: not base64, too large, or not a readable PDF
        """
        try:
            mime, pdf_bytes = decode_data_url(data_url)
        except ValueError as e:
            raise ValidationError(
                f"{field_name} is not a valid data URL",
                details={"error": str(e)},
                reason="invalid_pdf",
            ) from e

        if mime and mime != "application/pdf":
            raise ValidationError(
                f"{field_name} must be a PDF, got {mime}", reason="invalid_pdf"
            )

        is_valid, msg = validate_file_size(pdf_bytes, self.max_file_size_mb)
        if not is_valid:
            raise ValidationError(msg, reason="file_too_large")

        is_valid, msg = await asyncio.to_thread(self.validate_pdf, pdf_bytes)
        if not is_valid:
            raise ValidationError(msg, reason="invalid_pdf")

        logger.info(f"✅ {field_name}: {msg}")
        return pdf_bytes

    @staticmethod
    def validate_pdf(pdf_bytes: bytes) -> Tuple[bool, str]:
        """
        Validate PDF file.

        Returns:
            Tuple of (is_valid, message)
        """
        try:
            pdf_document = fitz.open(stream=pdf_bytes, filetype="pdf")
            page_count = pdf_document.page_count
            pdf_document.close()

            if page_count == 0:
                return False, "PDF has no pages"

            return True, f"Valid PDF with {page_count} pages"
        except Exception as e:
            return False, f"Invalid PDF: {str(e)}"
