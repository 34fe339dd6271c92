"""Abstract base class for per-format text extractors.

A loader turns raw uploaded bytes into normalised plain text plus whatever
source metadata the format carries (title, author, page count, ...).  The
:class:`~src.providers.loaders.registry.LoaderRegistry` picks a loader by
MIME type first and file extension second.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from src.models.ingestion import LoaderContext, LoaderResult


class IDocumentLoader(ABC):
    """Contract for document content extractors."""

    #: Registry name, recorded on every chunk as ``metadata["loader"]``.
    name: str = ""
    #: MIME types this loader accepts (lower-case).
    mime_types: tuple[str, ...] = ()
    #: File extensions this loader accepts, with leading dot (lower-case).
    extensions: tuple[str, ...] = ()

    @abstractmethod
    async def load(self, data: bytes, context: LoaderContext) -> LoaderResult:
        """Extract text and source metadata from *data*.

        Parameters
        ----------
        data:
            The raw document bytes.
        context:
            Filename, MIME type, and byte size of the upload.

        Returns
        -------
        LoaderResult
            Extracted text (may be empty) and loader-specific metadata.

        Raises
        ------
        src.utils.errors.LoaderError
            If the bytes cannot be parsed as this format.
        """
