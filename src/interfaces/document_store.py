"""Abstract base classes for the relational document/chunk store.

The store owns two record types, :class:`~src.models.document.Document` and
:class:`~src.models.document.Chunk`, and exposes three kinds of access:

* **Transactional CRUD** through :meth:`IDocumentStore.transaction`, which
  yields an :class:`IDocumentSession` bound to a single database
  transaction.  The upload pipeline uses one session to claim a document and
  a second one to swap its chunks and finalise it.
* **Non-transactional helpers** used by the integrity checker for paging and
  status updates.
* **Search primitives** (:meth:`IDocumentStore.keyword_search` and
  :meth:`IDocumentStore.vector_search`) consumed by the hybrid retriever.
  Both only ever return chunks of *ready* documents of the given tenant.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence
from contextlib import AbstractAsyncContextManager

from src.models.document import Chunk, Document, DocumentStatus
from src.models.rag import SearchHit


class IDocumentSession(ABC):
    """Operations available inside one store transaction."""

    @abstractmethod
    async def get_document(self, document_id: str, tenant_id: str | None = None) -> Document | None:
        """Return the document with *document_id*, optionally scoped to *tenant_id*."""

    @abstractmethod
    async def find_document(self, tenant_id: str, filename: str) -> Document | None:
        """Return the tenant's document named *filename*, if any."""

    @abstractmethod
    async def create_document(self, document: Document) -> Document:
        """Insert *document* and return the stored record."""

    @abstractmethod
    async def update_document(self, document: Document) -> Document:
        """Overwrite the stored row for ``document.id`` and return it.

        Implementations refresh ``updated_at``.
        """

    @abstractmethod
    async def delete_chunks(self, document_id: str) -> int:
        """Delete every chunk of *document_id* and return how many were removed."""

    @abstractmethod
    async def insert_chunks(self, chunks: Sequence[Chunk]) -> None:
        """Insert *chunks* in the given order."""


class IDocumentStore(ABC):
    """Contract for the persistent knowledge-base store."""

    @abstractmethod
    async def initialize(self) -> None:
        """Create tables and indexes if they do not already exist."""

    @abstractmethod
    async def close(self) -> None:
        """Release any held connections."""

    @abstractmethod
    def transaction(self) -> AbstractAsyncContextManager[IDocumentSession]:
        """Open a transaction.

        Usage::

            async with store.transaction() as session:
                doc = await session.find_document(tenant_id, filename)

        The transaction commits when the block exits normally and rolls back
        when it raises.
        """

    # -- Non-transactional helpers ----------------------------------------

    @abstractmethod
    async def get_document(self, document_id: str) -> Document | None:
        """Return the document with *document_id*, or ``None``."""

    @abstractmethod
    async def update_document(self, document: Document) -> Document:
        """Overwrite the stored row for ``document.id`` in its own transaction."""

    @abstractmethod
    async def list_documents(
        self,
        statuses: Sequence[DocumentStatus] | None = None,
        after_id: str | None = None,
        limit: int = 50,
    ) -> list[Document]:
        """Return up to *limit* documents ordered by id, strictly after *after_id*.

        Parameters
        ----------
        statuses:
            Restrict the page to these statuses; ``None`` means all.
        after_id:
            Cursor: the id of the last document of the previous page.
        limit:
            Maximum page size.
        """

    @abstractmethod
    async def get_chunks(self, document_id: str) -> list[Chunk]:
        """Return all chunks of *document_id* ordered by position."""

    # -- Search primitives ------------------------------------------------

    @abstractmethod
    async def keyword_search(self, tenant_id: str, query: str, top_k: int) -> list[SearchHit]:
        """Full-text search over the tenant's ready chunks.

        Returns
        -------
        list[SearchHit]
            At most *top_k* hits, best first.  ``score`` is a positive text
            rank where larger is better.
        """

    @abstractmethod
    async def vector_search(
        self,
        tenant_id: str,
        embedding: Sequence[float],
        top_k: int,
        min_similarity: float,
    ) -> list[SearchHit]:
        """Similarity search over the tenant's ready, embedded chunks.

        Returns
        -------
        list[SearchHit]
            At most *top_k* hits with cosine similarity of at least
            *min_similarity*, best first.  ``score`` is the similarity.
        """
