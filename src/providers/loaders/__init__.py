"""Document loader implementations.

Four implementations of IDocumentLoader, resolved by LoaderRegistry on MIME
type first and extension second:
    1. TextLoader  ("text-loader") — text/plain, text/markdown.
    2. DocxLoader  ("docx-loader") — Word documents via python-docx.
    3. PdfLoader   ("pdf-loader")  — PDFs via PyMuPDF.
    4. HtmlLoader  ("html-loader") — HTML pages via BeautifulSoup.
"""

from src.providers.loaders.docx_loader import DocxLoader
from src.providers.loaders.html_loader import HtmlLoader
from src.providers.loaders.pdf_loader import PdfLoader
from src.providers.loaders.registry import LoaderRegistry, create_default_loader_registry
from src.providers.loaders.text_loader import TextLoader

__all__ = [
    "DocxLoader",
    "HtmlLoader",
    "LoaderRegistry",
    "PdfLoader",
    "TextLoader",
    "create_default_loader_registry",
]
