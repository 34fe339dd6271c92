"""Embedding provider implementations.

Embeddings convert text into numeric vectors that capture semantic meaning.
They are stored alongside each chunk and used for the vector half of
hybrid retrieval.

Two implementations of IEmbeddingProvider:
    1. OpenAIEmbeddingProvider — text-embedding-3-small by default; also
       any OpenAI-compatible API via OPENAI_BASE_URL. Requires an API key.
    2. OllamaEmbeddingProvider — nomic-embed-text via a local Ollama
       server. Free, but requires the server to be running.
"""

from src.providers.embedding.ollama_embedding_provider import OllamaEmbeddingProvider
from src.providers.embedding.openai_embedding_provider import OpenAIEmbeddingProvider

__all__ = ["OllamaEmbeddingProvider", "OpenAIEmbeddingProvider"]
