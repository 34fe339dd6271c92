"""HTML loader backed by BeautifulSoup."""

from __future__ import annotations

import re

import structlog
from bs4 import BeautifulSoup

from src.interfaces.document_loader import IDocumentLoader
from src.models.ingestion import LoaderContext, LoaderResult
from src.utils.text import count_words

logger = structlog.get_logger(logger_name=__name__)

_BLANK_LINE = re.compile(r"\n\s*\n")

# Elements that never carry readable body text.
_DROP_TAGS = ("script", "style", "noscript", "template", "svg", "head")
_BLOCK_TAGS = (
    "p", "div", "section", "article", "header", "footer", "aside", "main",
    "blockquote", "pre", "li", "tr", "table", "h1", "h2", "h3", "h4", "h5", "h6",
)


class HtmlLoader(IDocumentLoader):
    """Strips markup and returns the visible text of an HTML page.

    Block elements become paragraph breaks so the semantic chunker can split
    along them; inline markup (``<b>``, ``<a>``, ...) stays within its
    paragraph.
    """

    name = "html-loader"
    mime_types = ("text/html", "application/xhtml+xml")
    extensions = (".html", ".htm", ".xhtml")

    async def load(self, data: bytes, context: LoaderContext) -> LoaderResult:
        soup = BeautifulSoup(data.decode("utf-8", errors="replace"), "html.parser")

        title_tag = soup.find("title")
        title = title_tag.get_text(strip=True) if title_tag else ""

        for tag in soup(_DROP_TAGS):
            tag.decompose()
        for br in soup("br"):
            br.replace_with("\n")
        for tag in soup(_BLOCK_TAGS):
            tag.insert_before("\n\n")
            tag.insert_after("\n\n")

        paragraphs = [" ".join(block.split()) for block in _BLANK_LINE.split(soup.get_text())]
        paragraphs = [p for p in paragraphs if p]
        text = "\n\n".join(paragraphs)

        logger.debug("html_loaded", filename=context.filename, paragraphs=len(paragraphs))
        return LoaderResult(
            text=text,
            metadata={
                "title": title or context.filename,
                "paragraphs": len(paragraphs),
                "words": count_words(text),
            },
        )
