"""Integration tests for DocumentIntegrityChecker over a real SQLite store."""

from __future__ import annotations

import asyncio

import pytest

from src.interfaces.remediator import IDocumentRemediator
from src.models.document import Document, DocumentStatus
from src.models.ingestion import (
    DocumentUploadRequest,
    IntegrityCheckOptions,
    RemediationContext,
)
from src.providers.document_store.sqlite_document_store import SQLiteDocumentStore
from src.providers.storage.registry import StorageProviderRegistry
from src.services.ingestion.upload_pipeline import DocumentUploadPipeline
from src.services.integrity.integrity_checker import (
    BackupStorageRemediator,
    DocumentIntegrityChecker,
)
from src.utils.checksum import compute_checksum
from tests.conftest import InMemoryStorageProvider


class _StaticRemediator(IDocumentRemediator):
    """Hands back fixed bytes and records what it was asked for."""

    def __init__(self, data: bytes | None) -> None:
        self.data = data
        self.contexts: list[RemediationContext] = []

    async def reupload(self, document: Document, context: RemediationContext) -> bytes | None:
        self.contexts.append(context)
        return self.data


class _ExplodingStorageProvider(InMemoryStorageProvider):
    async def exists(self, path: str) -> bool:
        raise RuntimeError("storage backend offline")


class _GatedStorageProvider(InMemoryStorageProvider):
    """Parks one ``exists`` call, armed with ``hold_next``, until ``release`` is set."""

    def __init__(self, name: str = "gated") -> None:
        super().__init__(name=name)
        self.hold_next = False
        self.entered = asyncio.Event()
        self.release = asyncio.Event()

    async def exists(self, path: str) -> bool:
        if self.hold_next:
            self.hold_next = False
            self.entered.set()
            await self.release.wait()
        return await super().exists(path)


@pytest.fixture
def checker(
    store: SQLiteDocumentStore,
    storage_registry: StorageProviderRegistry,
    pipeline: DocumentUploadPipeline,
) -> DocumentIntegrityChecker:
    return DocumentIntegrityChecker(store=store, storage=storage_registry, pipeline=pipeline)


async def _upload(pipeline: DocumentUploadPipeline, filename: str, text: str) -> Document:
    return await pipeline.upload(
        DocumentUploadRequest(
            tenant_id="acme",
            filename=filename,
            mime_type="text/plain",
            data=text.encode("utf-8"),
        )
    )


# ======================================================================
# Healthy and drifted documents
# ======================================================================


class TestScan:
    @pytest.mark.asyncio
    async def test_healthy_document_is_stamped(
        self,
        checker: DocumentIntegrityChecker,
        pipeline: DocumentUploadPipeline,
        store: SQLiteDocumentStore,
    ) -> None:
        document = await _upload(pipeline, "faq.txt", "Refunds take five days.")

        report = await checker.run()

        assert (report.checked, report.healthy, report.stale) == (1, 1, 0)
        stored = await store.get_document(document.id)
        assert stored.status is DocumentStatus.READY
        assert stored.metadata["integrity"]["status"] == "healthy"
        assert stored.metadata["integrity"]["checksum"] == document.checksum
        assert stored.metadata["integrity"]["last_checked_at"] >= document.metadata["integrity"]["last_checked_at"]

    @pytest.mark.asyncio
    async def test_missing_blob_marks_stale(
        self,
        checker: DocumentIntegrityChecker,
        pipeline: DocumentUploadPipeline,
        store: SQLiteDocumentStore,
        memory_storage: InMemoryStorageProvider,
    ) -> None:
        document = await _upload(pipeline, "faq.txt", "Refunds take five days.")
        del memory_storage.blobs[document.path]

        report = await checker.run()

        assert (report.checked, report.stale, report.healthy) == (1, 1, 0)
        stored = await store.get_document(document.id)
        assert stored.status is DocumentStatus.STALE
        assert stored.metadata["integrity"]["status"] == "stale"
        assert stored.metadata["integrity"]["reason"] == "missing"
        assert stored.metadata["integrity"]["expected"] == document.checksum
        assert stored.metadata["integrity"]["actual"] is None
        assert "checksum" not in stored.metadata["integrity"]
        assert len(await store.get_chunks(document.id)) == 1

    @pytest.mark.asyncio
    async def test_tampered_blob_marks_stale_with_actual_checksum(
        self,
        checker: DocumentIntegrityChecker,
        pipeline: DocumentUploadPipeline,
        store: SQLiteDocumentStore,
        memory_storage: InMemoryStorageProvider,
    ) -> None:
        document = await _upload(pipeline, "faq.txt", "Refunds take five days.")
        memory_storage.blobs[document.path] = b"tampered"

        report = await checker.run()

        assert report.stale == 1
        stored = await store.get_document(document.id)
        assert stored.metadata["integrity"]["reason"] == "checksum_mismatch"
        assert stored.metadata["integrity"]["actual"] == compute_checksum(b"tampered")

    @pytest.mark.asyncio
    async def test_stale_documents_are_excluded_from_search(
        self,
        checker: DocumentIntegrityChecker,
        pipeline: DocumentUploadPipeline,
        store: SQLiteDocumentStore,
        memory_storage: InMemoryStorageProvider,
    ) -> None:
        document = await _upload(pipeline, "faq.txt", "Refunds take five days.")
        del memory_storage.blobs[document.path]

        await checker.run()

        assert await store.keyword_search("acme", "refunds", 5) == []

    @pytest.mark.asyncio
    async def test_unknown_provider_is_skipped(
        self,
        checker: DocumentIntegrityChecker,
        pipeline: DocumentUploadPipeline,
        store: SQLiteDocumentStore,
    ) -> None:
        document = await _upload(pipeline, "faq.txt", "Refunds take five days.")
        await store.update_document(document.model_copy(update={"storage_provider": "retired"}))

        report = await checker.run()

        assert (report.checked, report.skipped, report.stale) == (1, 1, 0)
        assert (await store.get_document(document.id)).status is DocumentStatus.READY

    @pytest.mark.asyncio
    async def test_one_failing_document_does_not_abort_scan(
        self,
        checker: DocumentIntegrityChecker,
        pipeline: DocumentUploadPipeline,
        store: SQLiteDocumentStore,
        storage_registry: StorageProviderRegistry,
    ) -> None:
        storage_registry.register(_ExplodingStorageProvider("exploding"))
        broken = await _upload(pipeline, "a.txt", "First document.")
        await _upload(pipeline, "b.txt", "Second document.")
        await store.update_document(broken.model_copy(update={"storage_provider": "exploding"}))

        report = await checker.run()

        assert (report.checked, report.errors, report.healthy) == (2, 1, 1)

    @pytest.mark.asyncio
    async def test_pages_through_every_document(
        self, checker: DocumentIntegrityChecker, pipeline: DocumentUploadPipeline
    ) -> None:
        for i in range(5):
            await _upload(pipeline, f"doc-{i}.txt", f"Document number {i}.")

        report = await checker.run(IntegrityCheckOptions(batch_size=2))

        assert (report.checked, report.healthy) == (5, 5)

    @pytest.mark.asyncio
    async def test_status_filter(
        self,
        checker: DocumentIntegrityChecker,
        pipeline: DocumentUploadPipeline,
        memory_storage: InMemoryStorageProvider,
    ) -> None:
        document = await _upload(pipeline, "faq.txt", "Refunds take five days.")
        del memory_storage.blobs[document.path]
        await checker.run()

        assert (await checker.run()).checked == 0
        report = await checker.run(IntegrityCheckOptions(statuses=[DocumentStatus.STALE]))
        assert (report.checked, report.stale) == (1, 1)


# ======================================================================
# Remediation
# ======================================================================


class TestRemediation:
    @pytest.mark.asyncio
    async def test_remediated_document_is_reprocessed(
        self,
        checker: DocumentIntegrityChecker,
        pipeline: DocumentUploadPipeline,
        store: SQLiteDocumentStore,
        memory_storage: InMemoryStorageProvider,
    ) -> None:
        text = "Refunds take five days."
        document = await _upload(pipeline, "faq.txt", text)
        old_chunks = await store.get_chunks(document.id)
        del memory_storage.blobs[document.path]
        remediator = _StaticRemediator(text.encode("utf-8"))

        report = await checker.run(remediator=remediator)

        assert (report.remediated, report.stale) == (1, 0)
        assert remediator.contexts[0].reason.value == "missing"
        assert remediator.contexts[0].provider_name == "memory"
        stored = await store.get_document(document.id)
        assert stored.status is DocumentStatus.READY
        assert stored.version == document.version
        assert memory_storage.blobs[stored.path] == text.encode("utf-8")
        new_chunks = await store.get_chunks(document.id)
        assert [c.content for c in new_chunks] == [c.content for c in old_chunks]
        assert {c.id for c in new_chunks} != {c.id for c in old_chunks}

    @pytest.mark.asyncio
    async def test_remediator_without_bytes_falls_back_to_stale(
        self,
        checker: DocumentIntegrityChecker,
        pipeline: DocumentUploadPipeline,
        store: SQLiteDocumentStore,
        memory_storage: InMemoryStorageProvider,
    ) -> None:
        document = await _upload(pipeline, "faq.txt", "Refunds take five days.")
        memory_storage.blobs[document.path] = b"tampered"

        report = await checker.run(remediator=_StaticRemediator(None))

        assert (report.remediated, report.stale) == (0, 1)
        assert (await store.get_document(document.id)).status is DocumentStatus.STALE

    @pytest.mark.asyncio
    async def test_backup_storage_restores_matching_blob(
        self,
        checker: DocumentIntegrityChecker,
        pipeline: DocumentUploadPipeline,
        store: SQLiteDocumentStore,
        memory_storage: InMemoryStorageProvider,
    ) -> None:
        document = await _upload(pipeline, "faq.txt", "Refunds take five days.")
        backup = InMemoryStorageProvider("backup")
        backup.blobs[document.path] = memory_storage.blobs.pop(document.path)

        report = await checker.run(remediator=BackupStorageRemediator(backup))

        assert report.remediated == 1
        assert (await store.get_document(document.id)).status is DocumentStatus.READY
        assert document.path in memory_storage.blobs

    @pytest.mark.asyncio
    async def test_backup_with_wrong_bytes_is_rejected(
        self,
        checker: DocumentIntegrityChecker,
        pipeline: DocumentUploadPipeline,
        store: SQLiteDocumentStore,
        memory_storage: InMemoryStorageProvider,
    ) -> None:
        document = await _upload(pipeline, "faq.txt", "Refunds take five days.")
        backup = InMemoryStorageProvider("backup")
        backup.blobs[document.path] = b"an older copy"
        del memory_storage.blobs[document.path]

        report = await checker.run(remediator=BackupStorageRemediator(backup))

        assert (report.remediated, report.stale) == (0, 1)
        assert (await store.get_document(document.id)).status is DocumentStatus.STALE

    @pytest.mark.asyncio
    async def test_stale_document_recovers_on_reupload(
        self,
        checker: DocumentIntegrityChecker,
        pipeline: DocumentUploadPipeline,
        store: SQLiteDocumentStore,
        memory_storage: InMemoryStorageProvider,
    ) -> None:
        text = "Refunds take five days."
        document = await _upload(pipeline, "faq.txt", text)
        del memory_storage.blobs[document.path]
        await checker.run()

        healed = await _upload(pipeline, "faq.txt", text)

        assert healed.status is DocumentStatus.READY
        assert healed.metadata["integrity"]["status"] == "healthy"
        assert (await checker.run()).healthy == 1


# ======================================================================
# Uploads racing a scan
# ======================================================================


class TestConcurrentUpload:
    @pytest.fixture
    def gated(self, storage_registry: StorageProviderRegistry) -> _GatedStorageProvider:
        provider = _GatedStorageProvider()
        storage_registry.register(provider)
        return provider

    @staticmethod
    async def _upload_gated(pipeline: DocumentUploadPipeline, text: str) -> Document:
        return await pipeline.upload(
            DocumentUploadRequest(
                tenant_id="acme",
                filename="faq.txt",
                mime_type="text/plain",
                data=text.encode("utf-8"),
                storage_provider="gated",
            )
        )

    @pytest.mark.asyncio
    async def test_healthy_stamp_does_not_roll_back_newer_version(
        self,
        checker: DocumentIntegrityChecker,
        pipeline: DocumentUploadPipeline,
        store: SQLiteDocumentStore,
        gated: _GatedStorageProvider,
    ) -> None:
        await self._upload_gated(pipeline, "Refunds take five days.")
        gated.hold_next = True
        scan = asyncio.create_task(checker.run())
        await asyncio.wait_for(gated.entered.wait(), timeout=5)

        newer = await self._upload_gated(pipeline, "Refunds take ten days.")
        gated.release.set()
        report = await scan

        assert (report.checked, report.healthy, report.skipped) == (1, 0, 1)
        stored = await store.get_document(newer.id)
        assert stored.status is DocumentStatus.READY
        assert stored.version == 2
        assert stored.checksum == compute_checksum(b"Refunds take ten days.")
        assert stored.path == newer.path

    @pytest.mark.asyncio
    async def test_stale_mark_skips_document_reuploaded_during_scan(
        self,
        checker: DocumentIntegrityChecker,
        pipeline: DocumentUploadPipeline,
        store: SQLiteDocumentStore,
        gated: _GatedStorageProvider,
    ) -> None:
        document = await self._upload_gated(pipeline, "Refunds take five days.")
        del gated.blobs[document.path]
        gated.hold_next = True
        scan = asyncio.create_task(checker.run())
        await asyncio.wait_for(gated.entered.wait(), timeout=5)

        await self._upload_gated(pipeline, "Refunds take ten days.")
        gated.release.set()
        report = await scan

        assert (report.stale, report.skipped) == (0, 1)
        stored = await store.get_document(document.id)
        assert (stored.status, stored.version) == (DocumentStatus.READY, 2)
        assert stored.metadata["integrity"]["status"] == "healthy"
