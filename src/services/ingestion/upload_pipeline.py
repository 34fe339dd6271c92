"""Versioned, checksum-verified document upload pipeline.

Pipeline stages: **claim -> store -> verify -> load -> chunk -> embed -> finalise**.

The :class:`DocumentUploadPipeline` turns uploaded bytes into a ``ready``
:class:`~src.models.document.Document` with a full set of chunks.  Blob
storage and embedding calls cannot join a database transaction, so the
upload runs as a saga over the document's status:

    1. **Claim** (transaction 1) -- resolve the document by explicit id or by
       ``(tenant_id, filename)``.  Identical bytes for a ready document are
       a no-op.  Otherwise create or update the row as ``processing`` with
       the new checksum, version, and merged metadata, and commit.
    2. **Work** (no transaction) -- save the bytes, re-read their checksum
       from storage, extract text, chunk it, and embed the chunks.
    3. **Finalise** (transaction 2) -- delete the old chunks, insert the new
       ones, and flip the row to ``ready``, all in one commit.  Skipped with
       :class:`~src.utils.errors.DocumentSupersededError` if the row is no longer
       the ``processing`` claim from step 1 (a later upload claimed it).
    4. **Fail** -- if anything in 2 or 3 raises, mark the row ``failed`` with
       the reason in ``metadata["integrity"]``, then re-raise.  A superseded
       upload leaves the row alone.

A crash at any point therefore leaves the row ``processing`` or ``failed``,
never a half-built ``ready``.  The chunk swap is a single commit, so readers
see either the old chunk set or the new one.
"""

from __future__ import annotations

import uuid
from typing import Any

import structlog

from src.interfaces.document_store import IDocumentSession, IDocumentStore
from src.models.document import Chunk, Document, DocumentStatus, utc_now
from src.models.ingestion import DocumentUploadRequest, LoaderContext, LoaderResult
from src.models.rag import ChunkCandidate, ChunkerOptions, EmbeddingRequest
from src.providers.loaders.registry import LoaderRegistry
from src.providers.storage.registry import StorageProviderRegistry
from src.services.embeddings import EmbeddingsService
from src.services.ingestion.chunker import TextChunker
from src.utils.checksum import compute_checksum
from src.utils.errors import (
    ChecksumMismatchError,
    DocumentNotFoundError,
    DocumentSupersededError,
)
from src.utils.metadata import Metadata, merge_metadata
from src.utils.text import detect_language

logger = structlog.get_logger(logger_name=__name__)

CHECKSUM_MISMATCH_ON_UPLOAD = "checksum_mismatch_on_upload"
PROCESSING_ERROR = "processing_error"


class DocumentUploadPipeline:
    """Orchestrates loader, chunker, embeddings, storage, and store for one upload.

    All collaborators are injected, so backends can be swapped without
    touching this class.

    Parameters
    ----------
    store:
        Relational store for documents and chunks.
    storage:
        Registry of blob storage backends; uploads go to the named backend
        or the registry default.
    loaders:
        Registry that turns bytes into text based on MIME type/extension.
    chunker:
        Text chunker; its defaults apply when a request has no options.
    embeddings:
        Embeddings service, or ``None`` to store chunks without vectors.
    """

    def __init__(
        self,
        store: IDocumentStore,
        storage: StorageProviderRegistry,
        loaders: LoaderRegistry,
        chunker: TextChunker,
        embeddings: EmbeddingsService | None = None,
    ) -> None:
        self._store = store
        self._storage = storage
        self._loaders = loaders
        self._chunker = chunker
        self._embeddings = embeddings

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def upload(self, request: DocumentUploadRequest) -> Document:
        """Store, index, and version one document upload.

        Parameters
        ----------
        request:
            Tenant, filename, MIME type, bytes, and optional metadata,
            target document id, chunker options, storage backend name, and
            ``force`` flag.

        Returns
        -------
        Document
            The ``ready`` document, or the existing one unchanged when the
            bytes match a ready document and ``force`` is not set.

        Raises
        ------
        ConfigurationError
            Unknown storage backend or no loader for the document type.
        DocumentNotFoundError
            ``request.document_id`` does not name a document of the tenant.
        ChecksumMismatchError
            Storage returned different bytes than were written.
        DocumentSupersededError
            The row no longer holds this upload's claim, or is not at
            ``request.expected_version``.
        """
        provider = self._storage.resolve(request.storage_provider)
        checksum = compute_checksum(request.data)
        size = request.size if request.size is not None else len(request.data)
        options = request.chunker or self._chunker.defaults

        # -- 1. Claim ---------------------------------------------------
        async with self._store.transaction() as session:
            existing = await self._resolve_existing(session, request)

            if request.expected_version is not None and (
                existing is None or existing.version != request.expected_version
            ):
                raise DocumentSupersededError(
                    existing.id if existing else request.document_id or request.filename,
                    request.expected_version,
                )

            if (
                existing is not None
                and existing.checksum == checksum
                and existing.status == DocumentStatus.READY
                and not request.force
            ):
                logger.info(
                    "upload_skipped_identical_checksum",
                    document_id=existing.id,
                    tenant_id=existing.tenant_id,
                    version=existing.version,
                )
                return existing

            if existing is None:
                version = 1
            elif existing.checksum == checksum:
                # Reprocessing the same bytes (forced, or healing a failed/stale row).
                version = existing.version
            else:
                version = existing.version + 1

            metadata = merge_metadata(existing.metadata if existing else None, request.metadata)

            if existing is None:
                document = await session.create_document(
                    Document(
                        id=str(uuid.uuid4()),
                        tenant_id=request.tenant_id,
                        filename=request.filename,
                        mime_type=request.mime_type,
                        size=size,
                        path="",
                        checksum=checksum,
                        storage_provider=provider.name,
                        version=version,
                        status=DocumentStatus.PROCESSING,
                        metadata=metadata,
                    )
                )
            else:
                document = await session.update_document(
                    existing.model_copy(
                        update={
                            "mime_type": request.mime_type,
                            "size": size,
                            "checksum": checksum,
                            "storage_provider": provider.name,
                            "version": version,
                            "status": DocumentStatus.PROCESSING,
                            "metadata": metadata,
                        }
                    )
                )

        log = logger.bind(
            document_id=document.id,
            tenant_id=document.tenant_id,
            version=version,
            storage_provider=provider.name,
        )
        log.debug("upload_claimed", checksum=checksum, size=size)

        # -- 2. Work, 3. Finalise ----------------------------------------
        try:
            saved = await provider.save(
                document.tenant_id, document.id, version, document.filename, request.data
            )
            stored_checksum = await provider.get_checksum(saved.path)
            if stored_checksum != checksum:
                await provider.remove(saved.path)
                raise ChecksumMismatchError(
                    document_id=document.id,
                    expected=checksum,
                    actual=stored_checksum,
                    provider_name=provider.name,
                )

            loaded = await self._loaders.load(
                request.data,
                LoaderContext(filename=document.filename, mime_type=request.mime_type, size=size),
            )
            candidates = self._chunker.chunk(loaded.text, options)
            if not candidates:
                log.warning("upload_no_text_extracted", loader=loaded.loader)

            chunks, embedding_tokens, embedding_cost = await self._build_chunks(
                document, version, loaded, candidates
            )

            metadata = self._finalised_metadata(
                document.metadata,
                indexing={
                    "loader": loaded.loader,
                    "chunk_count": len(chunks),
                    "strategy": options.strategy.value,
                    "max_tokens": options.max_tokens,
                    "overlap": options.overlap,
                    "embedding_model": self._embeddings.model if self._embeddings else None,
                    "embedding_tokens": embedding_tokens,
                    "embedding_cost": embedding_cost,
                    "source": loaded.metadata,
                    "indexed_at": utc_now().isoformat(),
                },
                integrity={
                    "status": "healthy",
                    "last_checked_at": utc_now().isoformat(),
                    "checksum": checksum,
                },
            )

            async with self._store.transaction() as session:
                current = await session.get_document(document.id)
                if not _still_claimed(current, document):
                    raise DocumentSupersededError(document.id, version)
                removed = await session.delete_chunks(document.id)
                await session.insert_chunks(chunks)
                final = await session.update_document(
                    current.model_copy(
                        update={
                            "path": saved.path,
                            "size": saved.size,
                            "status": DocumentStatus.READY,
                            "metadata": metadata,
                        }
                    )
                )
        except DocumentSupersededError:
            log.warning("upload_superseded")
            raise
        except Exception as exc:
            await self._mark_failed(document, exc)
            raise

        log.info(
            "upload_completed",
            chunk_count=len(chunks),
            replaced_chunks=removed,
            embedding_tokens=embedding_tokens,
        )
        return final

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @staticmethod
    async def _resolve_existing(
        session: IDocumentSession, request: DocumentUploadRequest
    ) -> Document | None:
        if request.document_id:
            existing = await session.get_document(request.document_id, tenant_id=request.tenant_id)
            if existing is None:
                raise DocumentNotFoundError(request.document_id)
            return existing
        return await session.find_document(request.tenant_id, request.filename)

    async def _build_chunks(
        self,
        document: Document,
        version: int,
        loaded: LoaderResult,
        candidates: list[ChunkCandidate],
    ) -> tuple[list[Chunk], int, float]:
        """Attach ids, metadata, and (optionally) embeddings to chunk candidates.

        Returns the chunks plus the embedding tokens and cost they incurred.
        """
        chunk_ids = [str(uuid.uuid4()) for _ in candidates]
        vectors: list[list[float] | None] = [None] * len(candidates)
        tokens = 0
        cost = 0.0

        if self._embeddings is not None and candidates:
            responses = await self._embeddings.embed(
                [
                    EmbeddingRequest(id=chunk_id, text=candidate.content)
                    for chunk_id, candidate in zip(chunk_ids, candidates)
                ]
            )
            vectors = [response.embedding for response in responses]
            tokens = sum(response.tokens for response in responses)
            cost = sum(response.cost for response in responses)

        chunks = [
            Chunk(
                id=chunk_id,
                tenant_id=document.tenant_id,
                document_id=document.id,
                content=candidate.content,
                embedding=vector,
                position=candidate.position,
                metadata={
                    **candidate.metadata,
                    "loader": loaded.loader,
                    "token_count": candidate.token_count,
                    "start_token": candidate.start_token,
                    "end_token": candidate.end_token,
                    "language": detect_language(candidate.content),
                    "document_version": version,
                },
            )
            for chunk_id, candidate, vector in zip(chunk_ids, candidates, vectors)
        ]
        return chunks, tokens, cost

    @staticmethod
    def _finalised_metadata(existing: Metadata, **sections: dict[str, Any]) -> Metadata:
        """Replace whole top-level sections (``indexing``, ``integrity``) of *existing*.

        Unlike a deep merge, stale keys from a previous run (an old failure
        ``reason``, say) do not survive.
        """
        base = {key: value for key, value in existing.items() if key not in sections}
        return merge_metadata(base, sections)

    async def _mark_failed(self, document: Document, error: Exception) -> None:
        """Durably record the failure; never raises so *error* stays visible."""
        if isinstance(error, ChecksumMismatchError):
            integrity: dict[str, Any] = {
                "status": "failed",
                "last_checked_at": utc_now().isoformat(),
                "reason": CHECKSUM_MISMATCH_ON_UPLOAD,
                "expected": error.expected,
                "actual": error.actual,
            }
        else:
            integrity = {
                "status": "failed",
                "last_checked_at": utc_now().isoformat(),
                "reason": PROCESSING_ERROR,
                "error": str(error),
            }

        try:
            async with self._store.transaction() as session:
                current = await session.get_document(document.id)
                if not _still_claimed(current, document):
                    logger.warning(
                        "upload_failure_not_recorded_superseded",
                        document_id=document.id,
                        version=document.version,
                        original_error=str(error),
                    )
                    return
                await session.update_document(
                    current.model_copy(
                        update={
                            "status": DocumentStatus.FAILED,
                            "metadata": merge_metadata(current.metadata, {"integrity": integrity}),
                        }
                    )
                )
        except Exception as mark_error:  # noqa: BLE001
            logger.error(
                "upload_failure_not_recorded",
                document_id=document.id,
                error=str(mark_error),
                original_error=str(error),
            )
            return

        logger.warning(
            "upload_failed",
            document_id=document.id,
            tenant_id=document.tenant_id,
            version=document.version,
            reason=integrity["reason"],
            error=str(error),
        )


def _still_claimed(current: Document | None, claimed: Document) -> bool:
    """``True`` while the row is the ``processing`` claim this upload committed."""
    return (
        current is not None
        and current.status == DocumentStatus.PROCESSING
        and current.version == claimed.version
        and current.checksum == claimed.checksum
    )


def indexed_chunker_options(metadata: Metadata, fallback: ChunkerOptions) -> ChunkerOptions:
    """Rebuild the chunker options a document was last indexed with.

    Reads ``metadata["indexing"]``; any missing or invalid field falls back to
    *fallback*.
    """
    indexing = metadata.get("indexing")
    if not isinstance(indexing, dict):
        return fallback
    try:
        return ChunkerOptions(
            strategy=indexing.get("strategy") or fallback.strategy,
            max_tokens=indexing.get("max_tokens") or fallback.max_tokens,
            overlap=indexing.get("overlap", fallback.overlap),
        )
    except ValueError:
        return fallback
