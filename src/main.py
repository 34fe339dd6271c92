"""Knowledge-base composition root.

Wires together all providers and services via dependency injection.  Loads
configuration from ``.env`` / environment variables through
:class:`~src.config.settings.Settings` and returns one
:class:`KnowledgeBase` holding every component:

    store        -- SQLiteDocumentStore (documents, chunks, FTS index)
    storage      -- StorageProviderRegistry (local default + optional http)
    loaders      -- LoaderRegistry (text, markdown, docx, pdf, html)
    chunker      -- TextChunker with the configured defaults
    embeddings   -- EmbeddingsService, or None when embeddings are disabled
    pipeline     -- DocumentUploadPipeline
    retriever    -- HybridRetriever
    integrity    -- DocumentIntegrityChecker

Used by the CLI (``python -m src.cli``) and by any host process that embeds
the knowledge base as a library.
"""

from __future__ import annotations

from typing import Any

from src.config import settings
from src.config.settings import Settings
from src.models.rag import ChunkerOptions, RetrievalQuery, RetrievalResult, RetrievalWeights
from src.providers.cache.embedding_cache import EmbeddingCache
from src.providers.document_store.sqlite_document_store import SQLiteDocumentStore
from src.providers.embedding.ollama_embedding_provider import OllamaEmbeddingProvider
from src.providers.embedding.openai_embedding_provider import OpenAIEmbeddingProvider
from src.providers.loaders.registry import LoaderRegistry, create_default_loader_registry
from src.providers.storage.http_storage_provider import HttpObjectStorageProvider
from src.providers.storage.local_storage_provider import LocalStorageProvider
from src.providers.storage.registry import StorageProviderRegistry
from src.services.embeddings import EmbeddingsService
from src.services.ingestion.chunker import TextChunker
from src.services.ingestion.upload_pipeline import DocumentUploadPipeline
from src.services.integrity.integrity_checker import DocumentIntegrityChecker
from src.services.knowledge_base_function import (
    FunctionDefinition,
    build_search_knowledge_base_function,
)
from src.services.retrieval.retriever import HybridRetriever
from src.utils.errors import ConfigurationError
from src.utils.logging import get_logger

_logger = get_logger(__name__)


# ---------------------------------------------------------------------------
# Provider selection helpers
# ---------------------------------------------------------------------------


def _build_embedding_provider(
    app_settings: Settings,
) -> OpenAIEmbeddingProvider | OllamaEmbeddingProvider | None:
    """Select the embedding provider.

    Priority: explicit ``EMBEDDING_PROVIDER`` ->
              OpenAI/OpenAI-compatible (if API key set) ->
              Ollama.
    Returns ``None`` when embeddings are disabled.

    Raises
    ------
    ConfigurationError
        Unknown provider name, or ``openai`` selected without an API key.
    """
    if not app_settings.embeddings_enabled:
        return None

    name = app_settings.embedding_provider.strip().lower()

    if name == "openai" or (not name and app_settings.openai_api_key):
        if not app_settings.openai_api_key:
            raise ConfigurationError(
                message="OPENAI_API_KEY is required for the openai embedding provider",
                provider_name="openai",
            )
        return OpenAIEmbeddingProvider(settings=app_settings)

    if name in ("", "ollama"):
        if not app_settings.ollama_base_url:
            raise ConfigurationError(
                message="OLLAMA_BASE_URL is required for the ollama embedding provider",
                provider_name="ollama",
            )
        return OllamaEmbeddingProvider(settings=app_settings)

    raise ConfigurationError(message=f"Unknown embedding provider: {name}")


def _build_storage_registry(app_settings: Settings) -> StorageProviderRegistry:
    local = LocalStorageProvider(root_path=app_settings.storage_root)
    http = (
        HttpObjectStorageProvider(
            base_url=app_settings.storage_http_base_url,
            api_token=app_settings.storage_http_token or None,
        )
        if app_settings.storage_http_base_url
        else None
    )

    providers = {local.name: local}
    if http is not None:
        providers[http.name] = http

    default = providers.get(app_settings.default_storage_provider)
    if default is None:
        raise ConfigurationError(
            message=f"Default storage provider {app_settings.default_storage_provider} "
            "is not configured"
        )

    registry = StorageProviderRegistry(default_provider=default)
    for provider in providers.values():
        registry.register(provider)
    return registry


# ---------------------------------------------------------------------------
# Knowledge base facade
# ---------------------------------------------------------------------------


class KnowledgeBase:
    """Every knowledge-base component, built once and shared.

    Call :meth:`initialize` before first use and :meth:`close` on shutdown,
    or use the instance as an async context manager.
    """

    def __init__(
        self,
        settings: Settings,
        store: SQLiteDocumentStore,
        storage: StorageProviderRegistry,
        loaders: LoaderRegistry,
        chunker: TextChunker,
        embeddings: EmbeddingsService | None,
        pipeline: DocumentUploadPipeline,
        retriever: HybridRetriever,
        integrity: DocumentIntegrityChecker,
    ) -> None:
        self.settings = settings
        self.store = store
        self.storage = storage
        self.loaders = loaders
        self.chunker = chunker
        self.embeddings = embeddings
        self.pipeline = pipeline
        self.retriever = retriever
        self.integrity = integrity

    async def initialize(self) -> None:
        await self.store.initialize()
        _logger.info(
            "knowledge_base_ready",
            database=str(self.store.db_path),
            storage_providers=self.storage.names,
            embedding_provider=(
                self.embeddings.provider.get_provider_name() if self.embeddings else None
            ),
            embedding_model=self.embeddings.model if self.embeddings else None,
        )

    async def close(self) -> None:
        for name in self.storage.names:
            provider = self.storage.get(name)
            if isinstance(provider, HttpObjectStorageProvider):
                await provider.close()
        await self.store.close()
        if self.embeddings is not None:
            _logger.info("embedding_usage", **self.embeddings.get_usage().model_dump())

    async def __aenter__(self) -> KnowledgeBase:
        await self.initialize()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    async def search(
        self,
        tenant_id: str,
        query: str,
        top_k: int | None = None,
        min_similarity: float | None = None,
    ) -> list[RetrievalResult]:
        """Run a hybrid search using the configured retrieval defaults."""
        s = self.settings
        return await self.retriever.retrieve(
            RetrievalQuery(
                tenant_id=tenant_id,
                query=query,
                top_k=top_k or s.retrieval_top_k,
                min_similarity=(
                    min_similarity if min_similarity is not None else s.retrieval_min_similarity
                ),
                weights=RetrievalWeights(
                    keyword=s.retrieval_keyword_weight,
                    vector=s.retrieval_vector_weight,
                ),
            )
        )

    def search_function(self) -> FunctionDefinition:
        """The ``search_knowledge_base`` tool bound to this knowledge base."""
        return build_search_knowledge_base_function(
            self.retriever,
            default_top_k=self.settings.retrieval_top_k,
            default_min_similarity=self.settings.retrieval_min_similarity,
        )


def build_knowledge_base(custom_settings: Settings | None = None) -> KnowledgeBase:
    """Construct all knowledge-base components with injected dependencies.

    Parameters
    ----------
    custom_settings:
        Application settings.  Uses module-level ``settings`` if not provided.
    """
    s = custom_settings or settings

    store = SQLiteDocumentStore(db_path=s.database_path)
    storage = _build_storage_registry(s)
    loaders = create_default_loader_registry()
    chunker = TextChunker(
        ChunkerOptions(
            strategy=s.chunk_strategy,
            max_tokens=s.chunk_max_tokens,
            overlap=s.chunk_overlap,
        )
    )

    embeddings: EmbeddingsService | None = None
    provider = _build_embedding_provider(s)
    if provider is not None:
        embeddings = EmbeddingsService(
            provider=provider,
            model=s.embedding_model or provider.default_model,
            batch_size=s.embedding_batch_size,
            price_per_1k_tokens=s.embedding_price_per_1k_tokens,
            retry_attempts=s.embedding_retry_attempts,
            retry_base_delay=s.embedding_retry_base_delay,
            cache=EmbeddingCache(max_size=s.embedding_cache_size),
        )
    else:
        _logger.warning("embeddings_disabled", message="Chunks are stored without vectors")

    pipeline = DocumentUploadPipeline(
        store=store,
        storage=storage,
        loaders=loaders,
        chunker=chunker,
        embeddings=embeddings,
    )
    retriever = HybridRetriever(store=store, embeddings=embeddings)
    integrity = DocumentIntegrityChecker(
        store=store,
        storage=storage,
        pipeline=pipeline,
        chunker_defaults=chunker.defaults,
    )

    return KnowledgeBase(
        settings=s,
        store=store,
        storage=storage,
        loaders=loaders,
        chunker=chunker,
        embeddings=embeddings,
        pipeline=pipeline,
        retriever=retriever,
        integrity=integrity,
    )
