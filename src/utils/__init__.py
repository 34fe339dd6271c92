"""Utility modules for the knowledge-base engine.

Available utility modules (all re-exported here for convenience):

- **errors** -- Exception hierarchy rooted at KnowledgeBaseError; each
  backend raises its own subclass so callers can tell configuration
  problems from transient provider failures.
- **logging** -- structlog setup with a dual-renderer pattern: coloured
  console output in development, structured JSON in production.
- **metadata** -- Deep-merge and (de)serialisation of nested JSON metadata.
- **checksum** -- SHA-256 digests for document bytes and cache keys.
- **text** (not re-exported here) -- Whitespace tokenisation, sentence
  splitting, and stop-word language guessing used by the chunker.
"""

# -- SHA-256 helpers --------------------------------------------------------
from src.utils.checksum import compute_checksum, text_cache_key

# -- Domain exception hierarchy --------------------------------------------
from src.utils.errors import (
    ChecksumMismatchError,
    ConfigurationError,
    DocumentNotFoundError,
    DocumentSupersededError,
    EmbeddingContractError,
    EmbeddingError,
    IntegrityError,
    KnowledgeBaseError,
    LoaderError,
    ProviderUnavailableError,
    RateLimitError,
    StorageError,
)

# -- Structured logging setup ----------------------------------------------
from src.utils.logging import configure_logging, get_logger

# -- Nested metadata helpers -----------------------------------------------
from src.utils.metadata import dump_metadata, merge_metadata, parse_metadata

__all__ = [
    "ChecksumMismatchError",
    "ConfigurationError",
    "DocumentNotFoundError",
    "DocumentSupersededError",
    "EmbeddingContractError",
    "EmbeddingError",
    "IntegrityError",
    "KnowledgeBaseError",
    "LoaderError",
    "ProviderUnavailableError",
    "RateLimitError",
    "StorageError",
    "compute_checksum",
    "configure_logging",
    "dump_metadata",
    "get_logger",
    "merge_metadata",
    "parse_metadata",
    "text_cache_key",
]
