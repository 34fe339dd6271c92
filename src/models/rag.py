"""Models for chunking, embedding, and hybrid retrieval.

These are the in-flight shapes passed between the chunker, the embeddings
service, the document store's search primitives, and the retriever.  None of
them are persisted directly; :class:`~src.models.document.Chunk` is the
stored form of a :class:`ChunkCandidate`.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


# ---------------------------------------------------------------------------
# Chunking
# ---------------------------------------------------------------------------
class ChunkingStrategy(str, Enum):
    """Available text chunking algorithms."""

    FIXED = "fixed"
    SEMANTIC = "semantic"
    RECURSIVE = "recursive"


class ChunkerOptions(BaseModel):
    """Parameters for :meth:`~src.services.ingestion.chunker.TextChunker.chunk`.

    Token counts are whitespace-delimited words.
    """

    model_config = ConfigDict(frozen=True)

    strategy: ChunkingStrategy = ChunkingStrategy.RECURSIVE
    max_tokens: int = Field(default=512, ge=1)
    overlap: int = Field(default=64, ge=0)


class ChunkCandidate(BaseModel):
    """One chunk produced by the chunker, before it is embedded and stored.

    ``start_token`` and ``end_token`` are inclusive indices into the token
    stream of the *whole* document text, not the chunk.
    """

    model_config = ConfigDict(frozen=True)

    content: str
    position: int = Field(ge=0)
    token_count: int = Field(ge=0)
    start_token: int = Field(ge=0)
    end_token: int = Field(ge=0)
    metadata: dict[str, Any] = Field(default_factory=dict)


# ---------------------------------------------------------------------------
# Embeddings
# ---------------------------------------------------------------------------
class EmbeddingRequest(BaseModel):
    """A text to embed, with an optional caller-chosen id echoed back in the response."""

    model_config = ConfigDict(frozen=True)

    id: str | None = None
    text: str
    metadata: dict[str, Any] | None = None


class ProviderEmbedding(BaseModel):
    """A single vector as returned by an embedding provider."""

    model_config = ConfigDict(frozen=True)

    embedding: list[float]
    tokens: int = Field(default=0, ge=0)
    model: str


class EmbeddingResponse(BaseModel):
    """Result for one :class:`EmbeddingRequest`; ``cost`` is 0 for cache hits."""

    model_config = ConfigDict(frozen=True)

    id: str
    embedding: list[float]
    cached: bool = False
    tokens: int = Field(default=0, ge=0)
    cost: float = Field(default=0.0, ge=0.0)
    model: str
    metadata: dict[str, Any] | None = None


class EmbeddingUsage(BaseModel):
    """Lifetime usage counters of one embeddings service instance."""

    model_config = ConfigDict(frozen=True)

    total_tokens: int = 0
    total_cost: float = 0.0
    total_requests: int = 0
    cache_hits: int = 0


# ---------------------------------------------------------------------------
# Retrieval
# ---------------------------------------------------------------------------
class SearchHit(BaseModel):
    """A row from the store's keyword or vector search primitive.

    ``score`` is the raw backend score: a text-rank for keyword search, a
    cosine similarity for vector search.
    """

    model_config = ConfigDict(frozen=True)

    chunk_id: str
    document_id: str
    content: str
    position: int = 0
    metadata: dict[str, Any] = Field(default_factory=dict)
    score: float = 0.0


class RetrievalType(str, Enum):
    """Which search branch(es) produced a fused result."""

    KEYWORD = "keyword"
    VECTOR = "vector"
    HYBRID = "hybrid"


class RetrievalWeights(BaseModel):
    """Per-branch weights applied to normalised scores during fusion."""

    model_config = ConfigDict(frozen=True)

    keyword: float = Field(default=0.3, ge=0.0)
    vector: float = Field(default=0.7, ge=0.0)


class RetrievalQuery(BaseModel):
    """Input to :meth:`~src.services.retrieval.retriever.HybridRetriever.retrieve`."""

    model_config = ConfigDict(frozen=True)

    tenant_id: str
    query: str
    top_k: int = Field(default=5, ge=1)
    min_similarity: float = Field(default=0.7, ge=0.0, le=1.0)
    weights: RetrievalWeights = Field(default_factory=RetrievalWeights)


class RetrievedChunk(BaseModel):
    """Reference to a stored chunk as surfaced by retrieval (no embedding attached)."""

    model_config = ConfigDict(frozen=True)

    id: str
    document_id: str
    content: str
    position: int = 0
    metadata: dict[str, Any] = Field(default_factory=dict)


class RetrievalResult(BaseModel):
    """One fused, ranked retrieval result."""

    model_config = ConfigDict(frozen=True)

    chunk: RetrievedChunk
    score: float
    type: RetrievalType
