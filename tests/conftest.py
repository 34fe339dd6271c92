"""Shared pytest fixtures for the knowledge-base test suite."""

from __future__ import annotations

import hashlib
import math
import re
from pathlib import Path

import pytest
import pytest_asyncio

from src.interfaces.embedding_provider import IEmbeddingProvider
from src.interfaces.storage_provider import IStorageProvider, build_storage_path
from src.models.ingestion import SaveResult
from src.models.rag import ChunkerOptions, ProviderEmbedding
from src.providers.document_store.sqlite_document_store import SQLiteDocumentStore
from src.providers.loaders.registry import create_default_loader_registry
from src.providers.storage.registry import StorageProviderRegistry
from src.services.embeddings import EmbeddingsService
from src.services.ingestion.chunker import TextChunker
from src.services.ingestion.upload_pipeline import DocumentUploadPipeline
from src.services.retrieval.retriever import HybridRetriever
from src.utils.checksum import compute_checksum
from src.utils.errors import EmbeddingError

_WORD_RE = re.compile(r"\w+")

# ---------------------------------------------------------------------------
# Fake collaborators
# ---------------------------------------------------------------------------


class HashingEmbeddingProvider(IEmbeddingProvider):
    """Deterministic bag-of-words embeddings.

    Each lower-cased word is hashed into one of ``dimension`` buckets and the
    vector is L2-normalised, so texts sharing words have a high cosine
    similarity.  ``fail_times`` makes the first N calls raise
    :class:`EmbeddingError`.
    """

    def __init__(self, dimension: int = 64, fail_times: int = 0) -> None:
        self.dimension = dimension
        self.fail_times = fail_times
        self.calls: list[list[str]] = []

    async def embed(self, texts: list[str], model: str) -> list[ProviderEmbedding]:
        self.calls.append(list(texts))
        if self.fail_times > 0:
            self.fail_times -= 1
            raise EmbeddingError(message="transient failure", provider_name="hashing")
        return [
            ProviderEmbedding(
                embedding=self.vector(text),
                tokens=max(1, len(_WORD_RE.findall(text))),
                model=model,
            )
            for text in texts
        ]

    def vector(self, text: str) -> list[float]:
        values = [0.0] * self.dimension
        for word in _WORD_RE.findall(text.lower()):
            bucket = int(hashlib.md5(word.encode()).hexdigest(), 16) % self.dimension
            values[bucket] += 1.0
        norm = math.sqrt(sum(v * v for v in values))
        return [v / norm for v in values] if norm else values

    def get_provider_name(self) -> str:
        return "hashing"

    def is_available(self) -> bool:
        return True


class InMemoryStorageProvider(IStorageProvider):
    """Dict-backed storage; ``blobs`` maps path to bytes."""

    def __init__(self, name: str = "memory") -> None:
        self._name = name
        self.blobs: dict[str, bytes] = {}
        self.removed: list[str] = []

    @property
    def name(self) -> str:
        return self._name

    async def save(
        self,
        tenant_id: str,
        document_id: str,
        version: int,
        filename: str,
        data: bytes,
    ) -> SaveResult:
        path = build_storage_path(tenant_id, document_id, version, filename)
        self.blobs[path] = self._transform(data)
        return SaveResult(path=path, size=len(data))

    async def exists(self, path: str) -> bool:
        return path in self.blobs

    async def get_checksum(self, path: str) -> str:
        return compute_checksum(self.blobs[path])

    async def read(self, path: str) -> bytes:
        return self.blobs[path]

    async def remove(self, path: str) -> None:
        self.removed.append(path)
        self.blobs.pop(path, None)

    def _transform(self, data: bytes) -> bytes:
        return data


class CorruptingStorageProvider(InMemoryStorageProvider):
    """Storage that silently flips the bytes it is asked to write."""

    def __init__(self, name: str = "corrupt") -> None:
        super().__init__(name=name)

    def _transform(self, data: bytes) -> bytes:
        return data + b"\x00corrupted"


# ---------------------------------------------------------------------------
# Sample text
# ---------------------------------------------------------------------------


@pytest.fixture
def three_paragraph_text() -> str:
    """Three paragraphs of roughly 30 words each."""
    return (
        "Acme support handles refund requests for annual plans within thirty days "
        "of purchase. Customers must provide the original invoice number and the "
        "email address used at checkout. Refunds are issued to the original card.\n\n"
        "Monthly plans are not refundable, but they can be cancelled at any time "
        "from the billing page. Cancellation takes effect at the end of the current "
        "billing period and no further charges are made after that date.\n\n"
        "Enterprise contracts follow the terms negotiated in the master services "
        "agreement. Account managers handle billing disputes for enterprise tenants "
        "and escalate unresolved cases to the finance team within five business days."
    )


# ---------------------------------------------------------------------------
# Wiring
# ---------------------------------------------------------------------------


@pytest.fixture
def embedding_provider() -> HashingEmbeddingProvider:
    return HashingEmbeddingProvider()


@pytest.fixture
def embeddings(embedding_provider: HashingEmbeddingProvider) -> EmbeddingsService:
    return EmbeddingsService(
        provider=embedding_provider,
        model="hashing-64",
        batch_size=4,
        retry_base_delay=0.0,
    )


@pytest.fixture
def memory_storage() -> InMemoryStorageProvider:
    return InMemoryStorageProvider()


@pytest.fixture
def corrupting_storage() -> CorruptingStorageProvider:
    return CorruptingStorageProvider()


@pytest.fixture
def storage_registry(
    memory_storage: InMemoryStorageProvider,
    corrupting_storage: CorruptingStorageProvider,
) -> StorageProviderRegistry:
    registry = StorageProviderRegistry(default_provider=memory_storage)
    registry.register(corrupting_storage)
    return registry


@pytest_asyncio.fixture
async def store(tmp_path: Path) -> SQLiteDocumentStore:
    """A freshly initialised store in a temp directory."""
    document_store = SQLiteDocumentStore(db_path=tmp_path / "knowledge_base.db")
    await document_store.initialize()
    return document_store


@pytest.fixture
def chunker() -> TextChunker:
    return TextChunker(ChunkerOptions(max_tokens=40, overlap=8))


@pytest.fixture
def pipeline(
    store: SQLiteDocumentStore,
    storage_registry: StorageProviderRegistry,
    chunker: TextChunker,
    embeddings: EmbeddingsService,
) -> DocumentUploadPipeline:
    return DocumentUploadPipeline(
        store=store,
        storage=storage_registry,
        loaders=create_default_loader_registry(),
        chunker=chunker,
        embeddings=embeddings,
    )


@pytest.fixture
def retriever(store: SQLiteDocumentStore, embeddings: EmbeddingsService) -> HybridRetriever:
    return HybridRetriever(store=store, embeddings=embeddings)
