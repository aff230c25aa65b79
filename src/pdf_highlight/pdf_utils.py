"""PDF utilities for document inspection.

Provides:
- open_pdf: Open PDF bytes, raising InvalidInputFormatError on bad input
- get_page_count: Number of pages
"""

import fitz  # PyMuPDF

from .errors import EmptyPayloadError, InvalidInputFormatError

PDF_CONTENT_TYPE = "application/pdf"


def open_pdf(pdf_bytes: bytes) -> fitz.Document:
    """Open PDF bytes as a fresh document. Caller closes it.

    Raises:
        EmptyPayloadError: if there are no bytes
        InvalidInputFormatError: if PyMuPDF cannot read the bytes as a PDF
    """
    if not pdf_bytes:
        raise EmptyPayloadError("PDF payload is empty")
    # PDF readers accept junk before the header, but only within the first 1 KB
    if b"%PDF-" not in pdf_bytes[:1024]:
        raise InvalidInputFormatError("Missing %PDF- header")

    try:
        doc = fitz.open(stream=pdf_bytes, filetype="pdf")
    except (RuntimeError, ValueError) as e:
        raise InvalidInputFormatError(f"Unreadable PDF: {e}") from e

    if not doc.is_pdf or len(doc) == 0:
        doc.close()
        raise InvalidInputFormatError("Document is not a PDF or has no pages")
    return doc


def get_page_count(pdf_bytes: bytes) -> int:
    """Get number of pages in a PDF."""
    doc = open_pdf(pdf_bytes)
    try:
        return len(doc)
    finally:
        doc.close()
