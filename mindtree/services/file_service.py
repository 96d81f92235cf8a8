import logging
import asyncio

import fitz  # PyMuPDF

from mindtree.core.config import settings

logger = logging.getLogger(__name__)

PDF_MAGIC = b"%PDF"


async def extract_text_from_pdf(file_content: bytes, filename: str) -> str:
    """
    PDF source text with PyMuPDF.
    Rejects non-PDF uploads, empty or oversized files, and PDFs without text.
    """
    filename = (filename or "").lower()

    # ── Validate upload ───────────────────────────────
    if not filename.endswith(".pdf"):
        raise ValueError("Unsupported format. Only PDF files are accepted.")

    if len(file_content) == 0:
        raise ValueError("File is empty.")

    max_bytes = settings.MAX_FILE_SIZE_MB * 1024 * 1024
    if len(file_content) > max_bytes:
        raise ValueError(f"File exceeds {settings.MAX_FILE_SIZE_MB}MB limit.")

    if not file_content.startswith(PDF_MAGIC):
        raise ValueError("File is not a valid PDF.")

    try:
        text = await asyncio.to_thread(_process_pdf, file_content)
    except ValueError:
        raise
    except Exception as e:
        logger.error(f"[PDF] ✗ Processing failed for {filename}: {str(e)}")
        raise ValueError(f"Processing error: {str(e)}")

    if len(text) > settings.MAX_CONTENT_LENGTH:
        logger.info(f"[PDF] Truncating {len(text)} chars to {settings.MAX_CONTENT_LENGTH}")
        text = text[: settings.MAX_CONTENT_LENGTH]

    logger.info(f"[PDF] ✓ Extracted {len(text)} chars from {filename}")
    return text


def _process_pdf(data: bytes) -> str:
    """Synchronous extraction; run in a thread to keep the event loop free."""
    try:
        with fitz.open(stream=data, filetype="pdf") as doc:
            if doc.page_count == 0:
                raise ValueError("PDF has no pages.")

            if doc.page_count > settings.MAX_PDF_PAGES:
                raise ValueError(f"PDF too large (>{settings.MAX_PDF_PAGES} pages).")

            text_blocks = []
            for page in doc:
                page_text = page.get_text("text")
                if page_text.strip():
                    text_blocks.append(page_text)

            if not text_blocks:
                raise ValueError("No text content found in PDF.")

            return "\n\n".join(text_blocks).strip()
    except Exception as e:
        if isinstance(e, ValueError):
            raise
        raise ValueError(f"PDF extraction failed: {str(e)}")
