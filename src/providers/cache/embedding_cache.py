"""In-memory embedding cache backed by ``cachetools.LRUCache``.

Keys are SHA-256 digests of the embedded text, so identical text always maps
to the same entry regardless of which document it came from.  Entries are
deterministic for a given (text, model) pair, which makes last-writer-wins
safe when concurrent uploads embed the same text.  Nothing here is persisted:
losing the cache costs recomputation, never correctness.
"""

from __future__ import annotations

from typing import NamedTuple

import structlog
from cachetools import LRUCache

logger = structlog.get_logger(logger_name=__name__)


class CachedEmbedding(NamedTuple):
    """Cached provider output for one text."""

    embedding: list[float]
    tokens: int
    model: str


class EmbeddingCache:
    """Bounded LRU mapping of content hash to :class:`CachedEmbedding`.

    Parameters
    ----------
    max_size:
        Maximum number of entries before the least-recently-used entry
        is evicted.
    """

    def __init__(self, max_size: int = 10_000) -> None:
        self._cache: LRUCache[str, CachedEmbedding] = LRUCache(maxsize=max_size)

    def get(self, key: str) -> CachedEmbedding | None:
        """Return the entry for *key*, or ``None`` (and refresh its recency)."""
        entry = self._cache.get(key)
        if entry is not None:
            logger.debug("embedding_cache_hit", key=key[:12])
        return entry

    def set(self, key: str, entry: CachedEmbedding) -> None:
        self._cache[key] = entry

    def clear(self) -> None:
        self._cache.clear()

    def __contains__(self, key: object) -> bool:
        return key in self._cache

    def __len__(self) -> int:
        return len(self._cache)

    @property
    def max_size(self) -> int:
        return int(self._cache.maxsize)
