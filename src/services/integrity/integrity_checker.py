"""Background reconciliation between stored blobs and document rows.

The upload pipeline cannot make blob storage and the relational store fail
together, so the two can drift: a blob is deleted out-of-band, a disk flips
bits, a remote bucket is restored from an old snapshot.  The
:class:`DocumentIntegrityChecker` walks documents page by page (id-ordered
cursor) and, for each one:

- **unknown storage provider** -- skipped with a warning; it can be neither
  verified nor repaired.
- **blob missing** -> issue ``missing``.
- **checksum differs** -> issue ``checksum_mismatch``.
- **otherwise** -> stamped ``integrity.status = healthy`` with a fresh
  ``last_checked_at``.

For an issue, an optional remediator is asked for replacement bytes.  If it
returns some, the document is fully reprocessed through the upload pipeline
with its previous chunking parameters.  If it returns nothing, fails, or
there is no remediator, the document is marked ``stale`` with the reason and
the expected/actual checksums.

Status writes only touch ``status`` and ``metadata``, and only while the row
still has the version, checksum, path, and status the scan read.  A document
that an upload changed in the meantime is counted as skipped and left for
the next scan.

The checker never deletes a document row.  Exceptions are caught per
document and counted, so one bad document cannot abort a scan.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

import structlog

from src.interfaces.document_store import IDocumentStore
from src.interfaces.remediator import IDocumentRemediator
from src.interfaces.storage_provider import IStorageProvider
from src.models.document import Document, DocumentStatus, utc_now
from src.models.ingestion import (
    DocumentUploadRequest,
    IntegrityCheckOptions,
    IntegrityIssueReason,
    IntegrityReport,
    RemediationContext,
)
from src.models.rag import ChunkerOptions
from src.providers.storage.registry import StorageProviderRegistry
from src.services.ingestion.upload_pipeline import DocumentUploadPipeline, indexed_chunker_options
from src.utils.checksum import compute_checksum
from src.utils.metadata import Metadata, merge_metadata

logger = structlog.get_logger(logger_name=__name__)


class DocumentIntegrityChecker:
    """Verifies stored blobs against recorded checksums and repairs or flags drift.

    Parameters
    ----------
    store:
        Document store to scan and update.
    storage:
        Registry used to find each document's storage provider by name.
    pipeline:
        Upload pipeline used to reprocess remediated documents.
    chunker_defaults:
        Chunker options used for remediation when a document's metadata does
        not record how it was indexed.
    """

    def __init__(
        self,
        store: IDocumentStore,
        storage: StorageProviderRegistry,
        pipeline: DocumentUploadPipeline,
        chunker_defaults: ChunkerOptions | None = None,
    ) -> None:
        self._store = store
        self._storage = storage
        self._pipeline = pipeline
        self._chunker_defaults = chunker_defaults or ChunkerOptions()

    async def run(
        self,
        options: IntegrityCheckOptions | None = None,
        remediator: IDocumentRemediator | None = None,
    ) -> IntegrityReport:
        """Scan every document in ``options.statuses`` and return the counters."""
        opts = options or IntegrityCheckOptions()
        report = IntegrityReport()
        cursor: str | None = None

        while True:
            documents = await self._store.list_documents(
                statuses=opts.statuses, after_id=cursor, limit=opts.batch_size
            )
            if not documents:
                break

            for document in documents:
                report.checked += 1
                try:
                    await self._check_document(document, remediator, report)
                except Exception as exc:  # noqa: BLE001
                    report.errors += 1
                    logger.error(
                        "integrity_check_document_failed",
                        document_id=document.id,
                        tenant_id=document.tenant_id,
                        error=str(exc),
                    )

            cursor = documents[-1].id
            if len(documents) < opts.batch_size:
                break

        logger.info("integrity_scan_complete", **report.model_dump())
        return report

    # ------------------------------------------------------------------
    # Per-document checks
    # ------------------------------------------------------------------

    async def _check_document(
        self,
        document: Document,
        remediator: IDocumentRemediator | None,
        report: IntegrityReport,
    ) -> None:
        provider = self._storage.get(document.storage_provider)
        if provider is None:
            report.skipped += 1
            logger.warning(
                "integrity_check_skipped_unknown_provider",
                document_id=document.id,
                storage_provider=document.storage_provider,
            )
            return

        if not document.path or not await provider.exists(document.path):
            await self._handle_issue(
                document, provider, IntegrityIssueReason.MISSING, None, remediator, report
            )
            return

        checksum = await provider.get_checksum(document.path)
        if checksum != document.checksum:
            await self._handle_issue(
                document,
                provider,
                IntegrityIssueReason.CHECKSUM_MISMATCH,
                checksum,
                remediator,
                report,
            )
            return

        if await self._mark_healthy(document, checksum):
            report.healthy += 1
        else:
            report.skipped += 1

    async def _handle_issue(
        self,
        document: Document,
        provider: IStorageProvider,
        reason: IntegrityIssueReason,
        actual_checksum: str | None,
        remediator: IDocumentRemediator | None,
        report: IntegrityReport,
    ) -> None:
        log = logger.bind(
            document_id=document.id,
            tenant_id=document.tenant_id,
            reason=reason.value,
            storage_provider=provider.name,
        )
        log.warning("integrity_issue_detected")

        if remediator is not None and await self._remediate(document, provider, reason, remediator):
            report.remediated += 1
            log.info("integrity_issue_remediated")
            return

        if not await self._mark_stale(document, reason, actual_checksum):
            report.skipped += 1
            return
        report.stale += 1
        log.warning("document_marked_stale", expected=document.checksum, actual=actual_checksum)

    async def _remediate(
        self,
        document: Document,
        provider: IStorageProvider,
        reason: IntegrityIssueReason,
        remediator: IDocumentRemediator,
    ) -> bool:
        """Reprocess *document* from remediator bytes; ``False`` if that was impossible."""
        context = RemediationContext(reason=reason, provider_name=provider.name)
        try:
            data = await remediator.reupload(document, context)
            if not data:
                return False
            await self._pipeline.upload(
                DocumentUploadRequest(
                    tenant_id=document.tenant_id,
                    filename=document.filename,
                    mime_type=document.mime_type,
                    data=data,
                    document_id=document.id,
                    storage_provider=provider.name,
                    chunker=indexed_chunker_options(document.metadata, self._chunker_defaults),
                    force=True,
                    expected_version=document.version,
                )
            )
        except Exception as exc:  # noqa: BLE001
            logger.error(
                "integrity_remediation_failed",
                document_id=document.id,
                reason=reason.value,
                error=str(exc),
            )
            return False
        return True

    # ------------------------------------------------------------------
    # Status updates
    # ------------------------------------------------------------------

    async def _mark_healthy(self, document: Document, checksum: str) -> bool:
        def stamp(metadata: Metadata) -> Metadata:
            return merge_metadata(
                metadata,
                {
                    "integrity": {
                        "status": "healthy",
                        "last_checked_at": utc_now().isoformat(),
                        "checksum": checksum,
                    }
                },
            )

        return await self._update_if_unchanged(document, DocumentStatus.READY, stamp)

    async def _mark_stale(
        self,
        document: Document,
        reason: IntegrityIssueReason,
        actual_checksum: str | None,
    ) -> bool:
        # Replaced wholesale; ``actual`` stays None for a missing blob.
        integrity: dict[str, Any] = {
            "status": "stale",
            "last_checked_at": utc_now().isoformat(),
            "reason": reason.value,
            "expected": document.checksum,
            "actual": actual_checksum,
        }

        def replace(metadata: Metadata) -> Metadata:
            kept = {key: value for key, value in metadata.items() if key != "integrity"}
            kept["integrity"] = integrity
            return kept

        return await self._update_if_unchanged(document, DocumentStatus.STALE, replace)

    async def _update_if_unchanged(
        self,
        document: Document,
        status: DocumentStatus,
        build_metadata: Callable[[Metadata], Metadata],
    ) -> bool:
        """Set *status* and rebuilt metadata on the row if it still matches *document*.

        Returns ``False`` (and writes nothing) when the row was removed or an
        upload changed its version, checksum, path, or status since the scan
        read it.
        """
        async with self._store.transaction() as session:
            current = await session.get_document(document.id)
            if current is None or (
                current.version,
                current.checksum,
                current.path,
                current.status,
            ) != (document.version, document.checksum, document.path, document.status):
                logger.info(
                    "integrity_update_skipped_document_changed",
                    document_id=document.id,
                    scanned_version=document.version,
                    current_version=current.version if current else None,
                    current_status=current.status.value if current else None,
                )
                return False
            await session.update_document(
                current.model_copy(
                    update={"status": status, "metadata": build_metadata(current.metadata)}
                )
            )
        return True


class BackupStorageRemediator(IDocumentRemediator):
    """Restores documents from a secondary storage provider.

    Reads the blob at the document's recorded path from *backup* and hands it
    back only if its SHA-256 matches the checksum on the document row.
    """

    def __init__(self, backup: IStorageProvider) -> None:
        self._backup = backup

    async def reupload(self, document: Document, context: RemediationContext) -> bytes | None:
        if not document.path or not await self._backup.exists(document.path):
            logger.info(
                "backup_blob_unavailable",
                document_id=document.id,
                backup_provider=self._backup.name,
                reason=context.reason.value,
            )
            return None

        data = await self._backup.read(document.path)
        if compute_checksum(data) != document.checksum:
            logger.warning(
                "backup_blob_checksum_mismatch",
                document_id=document.id,
                backup_provider=self._backup.name,
            )
            return None
        return data
