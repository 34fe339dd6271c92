"""Abstract base class for text-embedding service providers.

Defines the contract for turning a batch of texts into embedding vectors.
Implementations may wrap the OpenAI embeddings API, a local Ollama server,
or any other OpenAI-compatible backend.  The
:class:`~src.services.embeddings.EmbeddingsService` handles caching,
batching, retries, and cost accounting on top of this narrow contract, so
providers only have to make one call per batch.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from src.models.rag import ProviderEmbedding


# Concrete implementations:
#   OpenAIEmbeddingProvider  — hosted OpenAI (or compatible) embeddings API
#   OllamaEmbeddingProvider  — local model server via its /v1 endpoint
# Located in: src/providers/embedding/
class IEmbeddingProvider(ABC):
    """Contract for text-embedding services used by the knowledge base."""

    @abstractmethod
    async def embed(self, texts: list[str], model: str) -> list[ProviderEmbedding]:
        """Generate embedding vectors for a batch of texts.

        Parameters
        ----------
        texts:
            One or more text strings to embed, sent in a single request.
        model:
            The embedding model identifier (e.g. ``"text-embedding-3-small"``).

        Returns
        -------
        list[ProviderEmbedding]
            One entry per input text, in input order.  Each entry carries
            the vector, the tokens attributed to that text, and the model
            that produced it.

        Raises
        ------
        src.utils.errors.EmbeddingError
            If the embedding API call fails.  Subclasses distinguish rate
            limiting and connectivity failures.
        """

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a short identifier for this provider (e.g. ``"openai"``)."""

    @abstractmethod
    def is_available(self) -> bool:
        """Return ``True`` if the provider is configured and reachable."""
