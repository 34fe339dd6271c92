"""Hybrid keyword + vector retrieval over the knowledge base.

For one query the :class:`HybridRetriever`:

1. Runs the store's keyword search and the query-embedding + vector search
   concurrently, each asking for ``top_k * 2`` candidates.
2. Normalises each branch's raw scores by that branch's maximum, so a text
   rank and a cosine similarity land on the same 0..1 scale.
3. Fuses by chunk id with :func:`fuse_results`:
   ``score = keyword_norm * w_keyword + vector_norm * w_vector``.
4. Sorts descending and truncates to ``top_k``.

If the query cannot be embedded (provider down, empty vector, or no
embeddings configured) retrieval degrades to keyword-only with a warning
instead of failing.
"""

from __future__ import annotations

import asyncio

import structlog

from src.interfaces.document_store import IDocumentStore
from src.models.rag import (
    EmbeddingRequest,
    RetrievalQuery,
    RetrievalResult,
    RetrievalType,
    RetrievalWeights,
    RetrievedChunk,
    SearchHit,
)
from src.services.embeddings import EmbeddingsService

logger = structlog.get_logger(logger_name=__name__)

DEFAULT_CHUNK_SOURCE = "knowledge_base"


class HybridRetriever:
    """Fuses keyword and vector search results from an :class:`IDocumentStore`.

    Parameters
    ----------
    store:
        Store exposing ``keyword_search`` and ``vector_search``.
    embeddings:
        Service used to embed the query.  ``None`` means keyword-only.
    """

    def __init__(self, store: IDocumentStore, embeddings: EmbeddingsService | None = None) -> None:
        self._store = store
        self._embeddings = embeddings

    async def retrieve(self, query: RetrievalQuery) -> list[RetrievalResult]:
        """Return up to ``query.top_k`` fused results, best first."""
        if not query.query.strip():
            return []

        candidates = query.top_k * 2
        keyword_hits, vector_hits = await asyncio.gather(
            self._store.keyword_search(query.tenant_id, query.query, candidates),
            self._vector_branch(query, candidates),
        )

        results = fuse_results(keyword_hits, vector_hits, query.weights, query.top_k)
        logger.debug(
            "retrieval_complete",
            tenant_id=query.tenant_id,
            keyword_hits=len(keyword_hits),
            vector_hits=len(vector_hits),
            returned=len(results),
        )
        return results

    async def _vector_branch(self, query: RetrievalQuery, top_k: int) -> list[SearchHit]:
        """Embed the query and run vector search; any failure yields no hits."""
        if self._embeddings is None:
            return []

        try:
            responses = await self._embeddings.embed([EmbeddingRequest(id="query", text=query.query)])
            vector = responses[0].embedding if responses else []
            if not vector:
                logger.warning(
                    "retrieval_degraded_keyword_only",
                    tenant_id=query.tenant_id,
                    reason="empty_query_embedding",
                )
                return []
            return await self._store.vector_search(
                query.tenant_id, vector, top_k, query.min_similarity
            )
        except Exception as exc:  # noqa: BLE001
            logger.warning(
                "retrieval_degraded_keyword_only",
                tenant_id=query.tenant_id,
                reason="vector_search_failed",
                error=str(exc),
            )
            return []


def fuse_results(
    keyword_hits: list[SearchHit],
    vector_hits: list[SearchHit],
    weights: RetrievalWeights,
    top_k: int,
) -> list[RetrievalResult]:
    """Combine two raw hit lists into one weighted, ranked list.

    Each list is divided by its own largest absolute score (zero is treated
    as one), which keeps the branch's order even if its raw scores are
    negative.  A chunk found by only one branch gets zero for the
    other component.  With weights 0.3/0.7, a keyword-only hit at 1.0 scores
    0.3, a vector-only hit at 1.0 scores 0.7, and a hit at 0.8 in both
    scores 0.8.
    """
    keyword_max = _scale(keyword_hits)
    vector_max = _scale(vector_hits)

    # chunk id -> [chunk, keyword_norm, vector_norm, type]
    combined: dict[str, list] = {}

    for hit in keyword_hits:
        if hit.chunk_id in combined:
            continue
        combined[hit.chunk_id] = [_to_chunk(hit), hit.score / keyword_max, 0.0, RetrievalType.KEYWORD]

    for hit in vector_hits:
        normalised = hit.score / vector_max
        entry = combined.get(hit.chunk_id)
        if entry is None:
            combined[hit.chunk_id] = [_to_chunk(hit), 0.0, normalised, RetrievalType.VECTOR]
        elif entry[3] is RetrievalType.KEYWORD:
            entry[2] = normalised
            entry[3] = RetrievalType.HYBRID

    fused = [
        RetrievalResult(
            chunk=chunk,
            score=keyword * weights.keyword + vector * weights.vector,
            type=kind,
        )
        for chunk, keyword, vector, kind in combined.values()
    ]
    fused.sort(key=lambda result: result.score, reverse=True)
    return fused[:top_k]


def _scale(hits: list[SearchHit]) -> float:
    return max((abs(hit.score) for hit in hits), default=0.0) or 1.0


def _to_chunk(hit: SearchHit) -> RetrievedChunk:
    metadata = dict(hit.metadata)
    metadata.setdefault("source", DEFAULT_CHUNK_SOURCE)
    metadata["position"] = hit.position
    return RetrievedChunk(
        id=hit.chunk_id,
        document_id=hit.document_id,
        content=hit.content,
        position=hit.position,
        metadata=metadata,
    )
