"""PDF loader backed by PyMuPDF (fitz).

Extracts text page-by-page and joins non-empty pages with blank lines.
Works for text-based PDFs and scanned PDFs that carry an OCR text layer;
image-only pages contribute nothing.
"""

from __future__ import annotations

import asyncio

import fitz  # PyMuPDF -- the "fitz" import name is a PyMuPDF convention
import structlog

from src.interfaces.document_loader import IDocumentLoader
from src.models.ingestion import LoaderContext, LoaderResult
from src.utils.errors import LoaderError
from src.utils.text import count_words

logger = structlog.get_logger(logger_name=__name__)


class PdfLoader(IDocumentLoader):
    """Extracts text and document-info metadata from PDF files."""

    name = "pdf-loader"
    mime_types = ("application/pdf",)
    extensions = (".pdf",)

    async def load(self, data: bytes, context: LoaderContext) -> LoaderResult:
        return await asyncio.to_thread(self._extract, data, context)

    def _extract(self, data: bytes, context: LoaderContext) -> LoaderResult:
        try:
            doc = fitz.open(stream=data, filetype="pdf")
        except (fitz.FileDataError, RuntimeError, ValueError) as exc:
            raise LoaderError(
                message=f"Could not open {context.filename} as PDF: {exc}",
                provider_name=self.name,
            ) from exc

        try:
            pages: list[str] = []
            for page in doc:
                text = page.get_text("text").replace("\x00", "").strip()
                if text:
                    pages.append(text)
            info = doc.metadata or {}
            page_count = doc.page_count
        finally:
            doc.close()

        if not pages:
            logger.warning("pdf_no_text_extracted", filename=context.filename)

        text = "\n\n".join(pages)
        return LoaderResult(
            text=text,
            metadata={
                "title": info.get("title") or context.filename,
                "author": info.get("author") or None,
                "pages": page_count,
                "words": count_words(text),
            },
        )
