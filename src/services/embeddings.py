"""Embeddings service: caching, batching, retries, and cost tracking.

Sits between the upload pipeline / retriever and an
:class:`~src.interfaces.embedding_provider.IEmbeddingProvider`.  For each
call to :meth:`EmbeddingsService.embed`:

1. Every request's text is hashed (SHA-256).  Hashes already in the
   service's :class:`~src.providers.cache.embedding_cache.EmbeddingCache`
   are answered from the cache at zero cost.  Texts repeated within the same
   call are sent to the provider once.
2. The remaining texts go to the provider in sequential batches of
   ``batch_size``.  One batch is one provider call, retried with
   exponential backoff on :class:`~src.utils.errors.EmbeddingError`.
3. A provider that answers a batch with the wrong number of vectors has a
   bug; that raises :class:`~src.utils.errors.EmbeddingContractError` and is
   never retried.
4. Each fresh embedding costs ``tokens / 1000 * price_per_1k_tokens``.
   Lifetime counters are available from :meth:`EmbeddingsService.get_usage`.

Responses come back in request order.
"""

from __future__ import annotations

import asyncio

import structlog

from src.interfaces.embedding_provider import IEmbeddingProvider
from src.models.rag import EmbeddingRequest, EmbeddingResponse, EmbeddingUsage, ProviderEmbedding
from src.providers.cache.embedding_cache import CachedEmbedding, EmbeddingCache
from src.utils.checksum import text_cache_key
from src.utils.errors import EmbeddingContractError, EmbeddingError

logger = structlog.get_logger(logger_name=__name__)

DEFAULT_EMBEDDING_MODEL = "text-embedding-3-small"
DEFAULT_BATCH_SIZE = 32
DEFAULT_PRICE_PER_1K_TOKENS = 0.00002
DEFAULT_RETRY_ATTEMPTS = 3
DEFAULT_RETRY_BASE_DELAY = 0.5


class EmbeddingsService:
    """Provider-agnostic embedding front end.

    Parameters
    ----------
    provider:
        The backend that actually computes vectors.
    model:
        Model identifier passed to the provider on every call.
    batch_size:
        Maximum number of texts per provider call.
    price_per_1k_tokens:
        Price used for cost accounting.
    retry_attempts:
        Total attempts per batch (first try included).
    retry_base_delay:
        Seconds to wait after the first failure; doubles per attempt.
    cache:
        Cache owned by this service.  A fresh one is created when omitted;
        it lives and dies with the service instance.
    """

    def __init__(
        self,
        provider: IEmbeddingProvider,
        model: str = DEFAULT_EMBEDDING_MODEL,
        batch_size: int = DEFAULT_BATCH_SIZE,
        price_per_1k_tokens: float = DEFAULT_PRICE_PER_1K_TOKENS,
        retry_attempts: int = DEFAULT_RETRY_ATTEMPTS,
        retry_base_delay: float = DEFAULT_RETRY_BASE_DELAY,
        cache: EmbeddingCache | None = None,
    ) -> None:
        self._provider = provider
        self._model = model
        self._batch_size = max(1, batch_size)
        self._price_per_1k = price_per_1k_tokens
        self._retry_attempts = max(1, retry_attempts)
        self._retry_base_delay = retry_base_delay
        self._cache = cache if cache is not None else EmbeddingCache()

        self._total_tokens = 0
        self._total_cost = 0.0
        self._total_requests = 0
        self._cache_hits = 0

    @property
    def model(self) -> str:
        return self._model

    @property
    def provider(self) -> IEmbeddingProvider:
        return self._provider

    @property
    def cache(self) -> EmbeddingCache:
        return self._cache

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def embed(self, requests: list[EmbeddingRequest]) -> list[EmbeddingResponse]:
        """Embed *requests*, returning one response per request in input order.

        Raises
        ------
        EmbeddingError
            When a batch still fails after the final retry.
        EmbeddingContractError
            When the provider returns the wrong number of vectors for a batch.
        """
        responses: list[EmbeddingResponse | None] = [None] * len(requests)
        # cache key -> indices of every request carrying that text
        pending: dict[str, list[int]] = {}

        for index, request in enumerate(requests):
            key = text_cache_key(request.text)
            if key in pending:
                pending[key].append(index)
                continue
            cached = self._cache.get(key)
            if cached is not None:
                self._cache_hits += 1
                responses[index] = self._response(request, key, cached, cached=True, cost=0.0)
            else:
                pending[key] = [index]

        keys = list(pending)
        for start in range(0, len(keys), self._batch_size):
            batch_keys = keys[start : start + self._batch_size]
            texts = [requests[pending[key][0]].text for key in batch_keys]
            results = await self._embed_batch(texts)

            for key, result in zip(batch_keys, results):
                entry = CachedEmbedding(result.embedding, result.tokens, result.model)
                self._cache.set(key, entry)

                cost = result.tokens / 1000 * self._price_per_1k
                self._total_tokens += result.tokens
                self._total_cost += cost

                first, *duplicates = pending[key]
                responses[first] = self._response(requests[first], key, entry, cached=False, cost=cost)
                for index in duplicates:
                    self._cache_hits += 1
                    responses[index] = self._response(requests[index], key, entry, cached=True, cost=0.0)

        if pending:
            logger.debug(
                "embeddings_computed",
                requested=len(requests),
                computed=len(keys),
                model=self._model,
            )
        return [response for response in responses if response is not None]

    def get_usage(self) -> EmbeddingUsage:
        """Return a snapshot of this service's lifetime usage counters."""
        return EmbeddingUsage(
            total_tokens=self._total_tokens,
            total_cost=self._total_cost,
            total_requests=self._total_requests,
            cache_hits=self._cache_hits,
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _embed_batch(self, texts: list[str]) -> list[ProviderEmbedding]:
        """One provider call with retry and a strict length check."""
        self._total_requests += 1
        provider_name = self._provider.get_provider_name()

        attempt = 1
        while True:
            try:
                results = await self._provider.embed(texts, self._model)
                break
            except EmbeddingError as exc:
                if attempt >= self._retry_attempts:
                    logger.error(
                        "embedding_batch_failed",
                        provider=provider_name,
                        attempts=attempt,
                        batch_size=len(texts),
                        error=str(exc),
                    )
                    raise
                delay = self._retry_base_delay * (2 ** (attempt - 1))
                logger.warning(
                    "embedding_batch_retry",
                    provider=provider_name,
                    attempt=attempt,
                    retries_left=self._retry_attempts - attempt,
                    backoff_s=delay,
                    error=str(exc),
                )
                await asyncio.sleep(delay)
                attempt += 1

        if len(results) != len(texts):
            raise EmbeddingContractError(
                expected=len(texts),
                actual=len(results),
                provider_name=provider_name,
            )
        return results

    @staticmethod
    def _response(
        request: EmbeddingRequest,
        key: str,
        entry: CachedEmbedding,
        cached: bool,
        cost: float,
    ) -> EmbeddingResponse:
        return EmbeddingResponse(
            id=request.id or key,
            embedding=list(entry.embedding),
            cached=cached,
            tokens=entry.tokens,
            cost=cost,
            model=entry.model,
            metadata=request.metadata,
        )
