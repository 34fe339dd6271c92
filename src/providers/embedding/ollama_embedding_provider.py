"""Ollama embedding provider adapter (local/free).

Wraps the Ollama OpenAI-compatible endpoint to implement
:class:`IEmbeddingProvider`, defaulting to ``nomic-embed-text``.  Runs
locally with no API key required.  Ollama does not report token usage for
embeddings, so token counts are estimated from text length.
"""

from __future__ import annotations

import httpx
import openai
import structlog

from src.config.settings import Settings
from src.interfaces.embedding_provider import IEmbeddingProvider
from src.models.rag import ProviderEmbedding
from src.providers.embedding.openai_embedding_provider import estimate_tokens
from src.utils.errors import EmbeddingError, ProviderUnavailableError

logger = structlog.get_logger(logger_name=__name__)

DEFAULT_OLLAMA_EMBEDDING_MODEL = "nomic-embed-text"


class OllamaEmbeddingProvider(IEmbeddingProvider):
    """Embedding provider backed by a model served via Ollama.

    Communicates through the OpenAI-compatible ``/v1`` endpoint that Ollama
    exposes.
    """

    def __init__(self, settings: Settings) -> None:
        self._settings = settings
        self._base_url = settings.ollama_base_url.rstrip("/")
        self._client = openai.AsyncOpenAI(
            base_url=f"{self._base_url}/v1",
            api_key="ollama",  # Ollama doesn't require a real key
        )
        self._model = settings.embedding_model or DEFAULT_OLLAMA_EMBEDDING_MODEL

    @property
    def default_model(self) -> str:
        return self._model

    # ------------------------------------------------------------------
    # IEmbeddingProvider implementation
    # ------------------------------------------------------------------

    async def embed(self, texts: list[str], model: str) -> list[ProviderEmbedding]:
        if not texts:
            return []

        model_name = model or self._model
        try:
            response = await self._client.embeddings.create(input=texts, model=model_name)
        except openai.APIConnectionError as exc:
            raise ProviderUnavailableError(
                message=f"Ollama server unreachable at {self._base_url}: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc
        except openai.APIError as exc:
            raise EmbeddingError(
                message=f"Ollama embedding API error: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        logger.info("ollama_embedding_batch", model=model_name, batch_size=len(texts))
        return [
            ProviderEmbedding(
                embedding=list(item.embedding),
                tokens=estimate_tokens(texts[i] if i < len(texts) else ""),
                model=model_name,
            )
            for i, item in enumerate(response.data)
        ]

    def get_provider_name(self) -> str:
        return "ollama"

    def is_available(self) -> bool:
        """Return ``True`` if the Ollama server is reachable."""
        if not self._base_url:
            return False
        try:
            response = httpx.get(f"{self._base_url}/api/tags", timeout=3.0)
            return response.status_code == 200
        except (httpx.ConnectError, httpx.TimeoutException):
            return False
