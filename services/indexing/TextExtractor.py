"""PDF text extraction with pypdf."""

import asyncio
import io

from pydantic import BaseModel
from pypdf import PdfReader
from pypdf.errors import DependencyError, PyPdfError

from shared.models.errors import ExtractionError


class ExtractedText(BaseModel):
    text: str
    page_count: int


def extract_pdf_text(content: bytes) -> ExtractedText:
    """Extract the text of every page.

    Args:
        content (bytes): The PDF file content.

    Returns:
        ExtractedText: Page texts joined by newlines and the page count.

    Raises:
        ExtractionError: If the content is not a readable PDF.
    """
    try:
        reader = PdfReader(io.BytesIO(content))
        if reader.is_encrypted:
            # most "encrypted" PDFs only carry an owner password
            reader.decrypt("")
        pages = [page.extract_text() or "" for page in reader.pages]
    except (PyPdfError, DependencyError, ValueError, KeyError, TypeError, NotImplementedError) as exc:
        raise ExtractionError("Failed to parse PDF content", detail=str(exc)) from exc
    return ExtractedText(text="\n".join(pages), page_count=len(pages))


class TextExtractor:
    """Runs the blocking PDF parser in a worker thread."""

    async def extract(self, content: bytes) -> ExtractedText:
        return await asyncio.to_thread(extract_pdf_text, content)
