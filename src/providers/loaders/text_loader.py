"""Plain-text and Markdown loader."""

from __future__ import annotations

import re

from src.interfaces.document_loader import IDocumentLoader
from src.models.ingestion import LoaderContext, LoaderResult
from src.utils.text import count_words

_LINE_ENDINGS = re.compile(r"\r\n?")
_PARAGRAPH_BREAK = re.compile(r"\n{2,}")


class TextLoader(IDocumentLoader):
    """Decodes UTF-8 text and normalises line endings to ``\\n``.

    Undecodable bytes are replaced rather than rejected, so a stray Latin-1
    character does not fail the whole upload.
    """

    name = "text-loader"
    mime_types = ("text/plain", "text/markdown")
    extensions = (".txt", ".md", ".markdown")

    async def load(self, data: bytes, context: LoaderContext) -> LoaderResult:
        text = _LINE_ENDINGS.sub("\n", data.decode("utf-8", errors="replace"))
        # Strip a UTF-8 byte-order mark left by some editors.
        text = text.lstrip("\ufeff")

        return LoaderResult(
            text=text,
            metadata={
                "title": context.filename,
                "paragraphs": len(_PARAGRAPH_BREAK.split(text)) if text else 0,
                "words": count_words(text),
                "encoding": "utf-8",
            },
        )
