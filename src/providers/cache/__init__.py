"""Cache providers.

EmbeddingCache is a process-local LRU cache owned by one EmbeddingsService.
It lets re-uploads and repeated queries skip paid embedding calls for text
that has been embedded before. It is not shared across processes.
"""

from src.providers.cache.embedding_cache import CachedEmbedding, EmbeddingCache

__all__ = ["CachedEmbedding", "EmbeddingCache"]
