"""Loader registry: maps MIME types and file extensions to extractors."""

from __future__ import annotations

import posixpath

import structlog

from src.interfaces.document_loader import IDocumentLoader
from src.models.ingestion import LoaderContext, LoaderResult
from src.utils.errors import ConfigurationError

logger = structlog.get_logger(logger_name=__name__)


class LoaderRegistry:
    """Ordered collection of :class:`IDocumentLoader` instances.

    Resolution tries the MIME type first and the filename extension second;
    among loaders that match the same key, the earliest registered wins.
    """

    def __init__(self, loaders: list[IDocumentLoader] | None = None) -> None:
        self._loaders: list[IDocumentLoader] = []
        for loader in loaders or []:
            self.register(loader)

    def register(self, loader: IDocumentLoader) -> None:
        self._loaders.append(loader)

    def resolve(self, mime_type: str, filename: str) -> IDocumentLoader:
        """Return the loader for *mime_type*, falling back to *filename*'s extension.

        Raises
        ------
        ConfigurationError
            If neither the MIME type nor the extension is supported.
        """
        normalized_mime = mime_type.split(";", 1)[0].strip().lower()
        for loader in self._loaders:
            if normalized_mime in loader.mime_types:
                return loader

        extension = posixpath.splitext(filename.replace("\\", "/"))[1].lower()
        if extension:
            for loader in self._loaders:
                if extension in loader.extensions:
                    return loader

        raise ConfigurationError(
            message=f"No document loader registered for {mime_type} ({extension or 'no extension'})"
        )

    async def load(self, data: bytes, context: LoaderContext) -> LoaderResult:
        """Resolve a loader for *context* and run it, tagging the result with its name."""
        loader = self.resolve(context.mime_type, context.filename)
        result = await loader.load(data, context)
        logger.debug(
            "document_loaded",
            loader=loader.name,
            filename=context.filename,
            characters=len(result.text),
        )
        return result.model_copy(update={"loader": loader.name})


def create_default_loader_registry() -> LoaderRegistry:
    """Registry with every built-in loader: text, DOCX, PDF, and HTML."""
    from src.providers.loaders.docx_loader import DocxLoader
    from src.providers.loaders.html_loader import HtmlLoader
    from src.providers.loaders.pdf_loader import PdfLoader
    from src.providers.loaders.text_loader import TextLoader

    return LoaderRegistry([TextLoader(), DocxLoader(), PdfLoader(), HtmlLoader()])
