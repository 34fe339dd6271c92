"""OpenAI-compatible embedding provider adapter.

Wraps the ``openai`` async client to implement :class:`IEmbeddingProvider`.
Supports both real OpenAI and OpenAI-compatible providers (TogetherAI,
Anyscale, Fireworks) via custom ``base_url`` and model name settings.
"""

from __future__ import annotations

import openai
import structlog

from src.config.settings import Settings
from src.interfaces.embedding_provider import IEmbeddingProvider
from src.models.rag import ProviderEmbedding
from src.utils.errors import (
    ConfigurationError,
    EmbeddingError,
    ProviderUnavailableError,
    RateLimitError,
)

logger = structlog.get_logger(logger_name=__name__)

DEFAULT_OPENAI_EMBEDDING_MODEL = "text-embedding-3-small"


def estimate_tokens(text: str) -> int:
    """Rough token estimate (4 characters per token) used when usage is absent."""
    return max(1, len(text) // 4)


class OpenAIEmbeddingProvider(IEmbeddingProvider):
    """Embedding provider backed by an OpenAI-compatible embeddings API.

    Uses ``text-embedding-3-small`` by default.  When ``openai_base_url`` is
    configured (e.g. TogetherAI), the client points at that URL.  Each call
    to :meth:`embed` is exactly one API request; batching is the caller's
    job.  The ``openai`` client is created on first use, so a provider
    without a key can still be built and asked :meth:`is_available`.
    """

    def __init__(self, settings: Settings) -> None:
        self._settings = settings
        self._api_key = settings.openai_api_key
        self._client: openai.AsyncOpenAI | None = None
        self._model = settings.embedding_model or DEFAULT_OPENAI_EMBEDDING_MODEL
        self._provider_label = "openai-compatible" if settings.openai_base_url else "openai"

    @property
    def default_model(self) -> str:
        return self._model

    def _get_client(self) -> openai.AsyncOpenAI:
        if self._client is None:
            if not self._api_key:
                raise ConfigurationError(
                    message="OPENAI_API_KEY is not set", provider_name=self.get_provider_name()
                )
            # Build client kwargs — add base_url only when configured.
            client_kwargs: dict = {"api_key": self._api_key}
            if self._settings.openai_base_url:
                client_kwargs["base_url"] = self._settings.openai_base_url
            self._client = openai.AsyncOpenAI(**client_kwargs)
        return self._client

    # ------------------------------------------------------------------
    # IEmbeddingProvider implementation
    # ------------------------------------------------------------------

    async def embed(self, texts: list[str], model: str) -> list[ProviderEmbedding]:
        """Embed *texts* in one request and split the reported usage across them.

        The API reports one ``total_tokens`` figure per request, so each
        item is attributed an equal share (at least one token).
        """
        if not texts:
            return []

        model_name = model or self._model
        client = self._get_client()
        try:
            response = await client.embeddings.create(input=texts, model=model_name)
        except openai.RateLimitError as exc:
            raise RateLimitError(
                message=f"{self._provider_label} rate limit: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc
        except openai.APIConnectionError as exc:
            raise ProviderUnavailableError(
                message=f"{self._provider_label} unreachable: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc
        except openai.APIError as exc:
            raise EmbeddingError(
                message=f"{self._provider_label} API error: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        total_tokens = response.usage.total_tokens if response.usage else None
        response_model = getattr(response, "model", None) or model_name

        logger.info(
            "openai_embedding_batch",
            model=response_model,
            provider=self._provider_label,
            batch_size=len(texts),
            tokens=total_tokens,
        )

        # Items are returned as-is even if the count is off; the
        # embeddings service owns the length check.
        share = max(1, total_tokens // len(texts)) if total_tokens else None
        return [
            ProviderEmbedding(
                embedding=list(item.embedding),
                tokens=share or estimate_tokens(texts[i] if i < len(texts) else ""),
                model=response_model,
            )
            for i, item in enumerate(response.data)
        ]

    def get_provider_name(self) -> str:
        return self._provider_label

    def is_available(self) -> bool:
        """Return ``True`` if an API key is configured."""
        return bool(self._api_key)
