"""Word (.docx) loader backed by python-docx.

python-docx reads the XML inside the DOCX zip archive; formatting is
stripped and non-empty paragraphs are joined with blank lines so the
semantic chunker sees the original paragraph boundaries.
"""

from __future__ import annotations

import asyncio
import io
import zipfile

import docx
import structlog
from docx.opc.exceptions import PackageNotFoundError

from src.interfaces.document_loader import IDocumentLoader
from src.models.ingestion import LoaderContext, LoaderResult
from src.utils.errors import LoaderError
from src.utils.text import count_words

logger = structlog.get_logger(logger_name=__name__)


class DocxLoader(IDocumentLoader):
    """Extracts paragraph text and core properties from DOCX files."""

    name = "docx-loader"
    mime_types = ("application/vnd.openxmlformats-officedocument.wordprocessingml.document",)
    extensions = (".docx",)

    async def load(self, data: bytes, context: LoaderContext) -> LoaderResult:
        return await asyncio.to_thread(self._extract, data, context)

    def _extract(self, data: bytes, context: LoaderContext) -> LoaderResult:
        try:
            document = docx.Document(io.BytesIO(data))
        except (PackageNotFoundError, zipfile.BadZipFile, KeyError, ValueError) as exc:
            raise LoaderError(
                message=f"Could not parse {context.filename} as DOCX: {exc}",
                provider_name=self.name,
            ) from exc

        paragraphs = [p.text.strip() for p in document.paragraphs if p.text.strip()]
        text = "\n\n".join(paragraphs)
        properties = document.core_properties

        logger.debug("docx_loaded", filename=context.filename, paragraphs=len(paragraphs))
        return LoaderResult(
            text=text,
            metadata={
                "title": properties.title or context.filename,
                "author": properties.author or None,
                "paragraphs": len(paragraphs),
                "words": count_words(text),
            },
        )
