"""Application settings loaded from environment variables via pydantic-settings.

# ─── HOW SETTINGS WORK ───────────────────────────────────────────────
#
# This class uses pydantic-settings to read configuration from TWO
# sources (in priority order):
#
#   1. **Environment variables** — e.g., OPENAI_API_KEY=sk-abc123
#      (highest priority — always wins)
#   2. **.env file** — key=value lines in the project root .env file
#      (lower priority — used for local development)
#
# The mapping is automatic: field name `openai_api_key` maps to env var
# `OPENAI_API_KEY` (pydantic-settings uppercases and matches).
#
# Default values are used when neither an env var nor .env entry exists
# for that field.
# ──────────────────────────────────────────────────────────────────────
"""

from pydantic_settings import BaseSettings, SettingsConfigDict

from src.models.rag import ChunkingStrategy


class Settings(BaseSettings):
    """Knowledge-base engine settings.

    Environment variables override defaults. Loaded from .env file when present.
    """

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # === Relational store ===
    database_path: str = "data/knowledge_base.db"

    # === Blob storage ===
    storage_root: str = "./storage"
    default_storage_provider: str = "local"
    # Remote object store; the "http" provider is only registered when set.
    storage_http_base_url: str = ""
    storage_http_token: str = ""

    # === Embedding providers ===
    # Empty string = "not configured" → the provider selection logic in
    # main.py skips providers with empty keys and falls through to the next.
    embedding_provider: str = ""  # "openai", "ollama", or "" for auto-detect
    openai_api_key: str = ""
    openai_base_url: str = ""  # Custom base URL for OpenAI-compatible APIs
    ollama_base_url: str = "http://localhost:11434"
    embedding_model: str = ""  # Empty = provider default
    embeddings_enabled: bool = True

    # === Embeddings service ===
    embedding_batch_size: int = 32
    embedding_price_per_1k_tokens: float = 0.00002
    embedding_retry_attempts: int = 3
    embedding_retry_base_delay: float = 0.5  # seconds; doubles per attempt
    embedding_cache_size: int = 10_000

    # === Chunker defaults ===
    chunk_strategy: ChunkingStrategy = ChunkingStrategy.RECURSIVE
    chunk_max_tokens: int = 512
    chunk_overlap: int = 64

    # === Retrieval defaults ===
    retrieval_top_k: int = 5
    retrieval_min_similarity: float = 0.7
    retrieval_keyword_weight: float = 0.3
    retrieval_vector_weight: float = 0.7

    # === Integrity checker ===
    integrity_batch_size: int = 50

    # === App Config ===
    app_env: str = "development"
    log_level: str = "INFO"

    def get_available_embedding_providers(self) -> list[str]:
        """Return embedding provider names that have the configuration they need."""
        providers: list[str] = []
        if self.openai_api_key:
            providers.append("openai")
        if self.ollama_base_url:
            providers.append("ollama")
        return providers
