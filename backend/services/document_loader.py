"""Full-text extraction for uploaded text and PDF documents."""
import logging
from typing import List

import fitz  # PyMuPDF

logger = logging.getLogger(__name__)

PDF_MIME_TYPE = "application/pdf"


class DocumentLoader:
    """Extracts plain text from stored document bytes."""

    def extract_text(self, data: bytes, mime_type: str) -> str:
        """
        Extract text from a document.

        Args:
            data: Raw file bytes as stored in object storage
            mime_type: Document MIME type

        Returns:
            Extracted text; PDFs are joined page by page with blank lines
        """
        if (mime_type or "").lower() == PDF_MIME_TYPE:
            return "\n\n".join(self._load_pdf_pages(data))

        return data.decode("utf-8", errors="replace")

    def _load_pdf_pages(self, data: bytes) -> List[str]:
        """
        Extract text page-by-page from PDF bytes.

        Raises:
            ValueError: If the bytes are not a readable PDF
        """
        try:
            pdf_document = fitz.open(stream=data, filetype="pdf")
        except Exception as e:
            logger.error(f"Failed to open PDF: {str(e)}")
            raise ValueError(f"Unreadable PDF: {str(e)}") from e

        try:
            pages = [page.get_text() for page in pdf_document]
        finally:
            pdf_document.close()

        logger.info(f"Extracted text from {len(pages)} PDF pages")
        return pages
