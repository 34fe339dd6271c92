"""Knowledge-base domain models -- re-exports all public model classes.

Other parts of the codebase can import directly from ``src.models``
(e.g. ``from src.models import Document``) instead of the submodules.

The models are organized across three submodules by domain concern:
    - document.py   -- Persisted records (Document, Chunk) and their status
    - ingestion.py  -- Upload requests, loader/storage results, integrity scans
    - rag.py        -- Chunking, embedding, and hybrid-retrieval value objects

If you add a new model class, remember to add it to ``__all__`` too.
"""

from __future__ import annotations

from src.models.document import Chunk, Document, DocumentStatus, utc_now
from src.models.ingestion import (
    DocumentUploadRequest,
    IntegrityCheckOptions,
    IntegrityIssueReason,
    IntegrityReport,
    LoaderContext,
    LoaderResult,
    RemediationContext,
    SaveResult,
)
from src.models.rag import (
    ChunkCandidate,
    ChunkerOptions,
    ChunkingStrategy,
    EmbeddingRequest,
    EmbeddingResponse,
    EmbeddingUsage,
    ProviderEmbedding,
    RetrievalQuery,
    RetrievalResult,
    RetrievalType,
    RetrievalWeights,
    RetrievedChunk,
    SearchHit,
)

__all__ = [
    "Chunk",
    "ChunkCandidate",
    "ChunkerOptions",
    "ChunkingStrategy",
    "Document",
    "DocumentStatus",
    "DocumentUploadRequest",
    "EmbeddingRequest",
    "EmbeddingResponse",
    "EmbeddingUsage",
    "IntegrityCheckOptions",
    "IntegrityIssueReason",
    "IntegrityReport",
    "LoaderContext",
    "LoaderResult",
    "ProviderEmbedding",
    "RemediationContext",
    "RetrievalQuery",
    "RetrievalResult",
    "RetrievalType",
    "RetrievalWeights",
    "RetrievedChunk",
    "SaveResult",
    "SearchHit",
    "utc_now",
]
