"""Abstract base class for integrity-check remediators.

When the integrity checker finds a document whose blob is missing or
corrupted, it asks a remediator for a fresh copy of the original bytes.
Returning ``None`` means "cannot help"; the document is then marked stale.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from src.models.document import Document
from src.models.ingestion import RemediationContext


class IDocumentRemediator(ABC):
    """Contract for sources of replacement document bytes."""

    @abstractmethod
    async def reupload(self, document: Document, context: RemediationContext) -> bytes | None:
        """Return replacement bytes for *document*, or ``None``.

        Parameters
        ----------
        document:
            The affected document as currently stored.
        context:
            Why the document was flagged and which storage provider holds it.
        """
