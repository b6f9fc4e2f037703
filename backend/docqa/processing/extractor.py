"""
PDF text-layer extraction (PyMuPDF)

Used at upload time when the client did not send already-extracted text.
Reads the native PDF text layer in-process; scanned / image-only PDFs come
back empty (or nearly so) and are routed to the OCR sub-flow instead.
"""

from __future__ import annotations

import asyncio
import logging
import time

logger = logging.getLogger(__name__)

# If average extracted chars per page is below this threshold,
# the document is classified as scanned / image-based.
MIN_CHARS_PER_PAGE_THRESHOLD = 50

PDF_MAGIC = b"%PDF"


def is_pdf(filename: str, mime_hint: str | None, head: bytes = b"") -> bool:
    return (
        head.startswith(PDF_MAGIC)
        or filename.lower().endswith(".pdf")
        or (mime_hint or "").lower() == "application/pdf"
    )


def _extract_sync(pdf_bytes: bytes) -> list[str]:
    """Blocking extraction, run in the default thread executor."""
    import fitz  # PyMuPDF; imported here to avoid module-level import cost

    with fitz.open(stream=pdf_bytes, filetype="pdf") as doc:
        return [(page.get_text("text") or "").strip() for page in doc]


async def extract_pdf_text(pdf_bytes: bytes) -> str:
    """
    Return the PDF's text layer, or "" when it looks scanned or unreadable.

    Never raises: a PDF PyMuPDF cannot open is treated like a scanned one so
    the caller falls through to OCR.
    """
    loop = asyncio.get_running_loop()
    t0 = time.monotonic()

    try:
        pages = await loop.run_in_executor(None, _extract_sync, pdf_bytes)
    except Exception as exc:
        logger.warning("PyMuPDF extraction failed: %s", exc)
        return ""

    total_chars = sum(len(p) for p in pages)
    avg = total_chars / len(pages) if pages else 0.0

    logger.info(
        "PyMuPDF | pages=%d total_chars=%d avg_chars_per_page=%.0f elapsed_ms=%.0f",
        len(pages), total_chars, avg, (time.monotonic() - t0) * 1000,
    )

    if avg < MIN_CHARS_PER_PAGE_THRESHOLD:
        return ""
    return "\n\n".join(p for p in pages if p)
