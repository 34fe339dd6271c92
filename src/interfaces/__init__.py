"""Public interface definitions for every pluggable backend.

Business logic in ``src/services/`` talks to storage, embeddings, document
loaders, and the relational store exclusively through the abstract base
classes defined in this package.  Concrete adapters live in
``src/providers/`` and are wired together in :mod:`src.main`.

CONCRETE PROVIDER MAP:
    Interface              →  Concrete implementations (in src/providers/)
    ─────────────────────────────────────────────────────────────────────
    IEmbeddingProvider     →  OpenAIEmbeddingProvider, OllamaEmbeddingProvider
    IStorageProvider       →  LocalStorageProvider, HttpObjectStorageProvider
    IDocumentLoader        →  TextLoader, DocxLoader, PdfLoader, HtmlLoader
    IDocumentStore         →  SQLiteDocumentStore
    IDocumentRemediator    →  BackupStorageRemediator (src/services/integrity/)
"""

from src.interfaces.document_loader import IDocumentLoader
from src.interfaces.document_store import IDocumentSession, IDocumentStore
from src.interfaces.embedding_provider import IEmbeddingProvider
from src.interfaces.remediator import IDocumentRemediator
from src.interfaces.storage_provider import IStorageProvider, build_storage_path

__all__ = [
    "IDocumentLoader",
    "IDocumentRemediator",
    "IDocumentSession",
    "IDocumentStore",
    "IEmbeddingProvider",
    "IStorageProvider",
    "build_storage_path",
]
