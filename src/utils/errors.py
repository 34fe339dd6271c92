"""Exception hierarchy for the knowledge-base engine.

Every exception raised on purpose by this package inherits from
:class:`KnowledgeBaseError`, which carries an optional ``provider_name`` so
handlers and log lines can tell which backend (``"openai"``, ``"local"``,
``"pdf-loader"`` ...) produced the failure.

    KnowledgeBaseError  (base)
    +-- ConfigurationError       (unknown provider, no loader, missing credentials)
    +-- DocumentNotFoundError    (explicit document id that does not exist)
    +-- DocumentSupersededError  (a newer upload claimed the row first)
    +-- LoaderError              (text extraction failed)
    +-- StorageError             (blob backend failure)
    +-- EmbeddingError           (embedding provider call failed -- transient)
    |   +-- RateLimitError
    |   +-- ProviderUnavailableError
    +-- EmbeddingContractError   (provider returned the wrong number of vectors)
    +-- IntegrityError
        +-- ChecksumMismatchError

The split matters for control flow: the embeddings service retries
``EmbeddingError`` and its subclasses, but never ``EmbeddingContractError``
or ``ConfigurationError``.
"""


class KnowledgeBaseError(Exception):
    """Base exception for all knowledge-base errors.

    The ``__str__`` method prefixes the provider name in brackets for
    structured log output, e.g. ``[openai_embedding] Rate limit exceeded``.
    """

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        provider_name: str | None = None,
    ) -> None:
        self._message = message
        self._provider_name = provider_name
        super().__init__(self._message)

    @property
    def message(self) -> str:
        return self._message

    @property
    def provider_name(self) -> str | None:
        return self._provider_name

    def __str__(self) -> str:
        if self._provider_name:
            return f"[{self._provider_name}] {self._message}"
        return self._message


# ---------------------------------------------------------------------------
# Configuration / lookup errors (fatal, never retried)
# ---------------------------------------------------------------------------

class ConfigurationError(KnowledgeBaseError):
    """Raised when configuration is invalid, incomplete, or references unknown providers."""

    def __init__(
        self,
        message: str = "Invalid or missing configuration",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class DocumentNotFoundError(KnowledgeBaseError):
    """Raised when an upload targets a document id that does not exist."""

    def __init__(self, document_id: str) -> None:
        self.document_id = document_id
        super().__init__(message=f"Document {document_id} not found for re-upload")


class DocumentSupersededError(KnowledgeBaseError):
    """Raised when another upload has claimed a document since this one started.

    The row and its chunks belong to the newer upload and are left untouched.
    """

    def __init__(self, document_id: str, version: int) -> None:
        self.document_id = document_id
        self.version = version
        super().__init__(
            message=f"Upload of document {document_id} v{version} was superseded by a newer upload"
        )


# ---------------------------------------------------------------------------
# Extraction / storage errors
# ---------------------------------------------------------------------------

class LoaderError(KnowledgeBaseError):
    """Raised when a document loader cannot extract text from the supplied bytes."""

    def __init__(
        self,
        message: str = "Document text extraction failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class StorageError(KnowledgeBaseError):
    """Raised when a storage backend fails to save, read, or hash a blob."""

    def __init__(
        self,
        message: str = "Storage operation failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# Embedding errors
# ---------------------------------------------------------------------------

class EmbeddingError(KnowledgeBaseError):
    """Raised when an embedding provider call fails.

    Treated as transient by :class:`~src.services.embeddings.EmbeddingsService`,
    which retries with exponential backoff before giving up.
    """

    def __init__(
        self,
        message: str = "Embedding provider call failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class RateLimitError(EmbeddingError):
    """Raised when an embedding API rate limit is exceeded."""

    def __init__(
        self,
        message: str = "Rate limit exceeded",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class ProviderUnavailableError(EmbeddingError):
    """Raised when the embedding backend is unreachable."""

    def __init__(
        self,
        message: str = "External service is unavailable",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class EmbeddingContractError(KnowledgeBaseError):
    """Raised when a provider returns a result list whose length differs from its input.

    This is a provider bug rather than a transient fault, so it is never retried.
    """

    def __init__(
        self,
        expected: int,
        actual: int,
        provider_name: str | None = None,
    ) -> None:
        self.expected = expected
        self.actual = actual
        super().__init__(
            message=(
                "Embedding provider returned unexpected result length "
                f"(expected {expected}, got {actual})"
            ),
            provider_name=provider_name,
        )


# ---------------------------------------------------------------------------
# Integrity errors
# ---------------------------------------------------------------------------

class IntegrityError(KnowledgeBaseError):
    """Raised when stored bytes no longer match what the database recorded."""


class ChecksumMismatchError(IntegrityError):
    """Raised when a freshly written blob hashes to something other than the upload."""

    def __init__(
        self,
        document_id: str,
        expected: str,
        actual: str,
        provider_name: str | None = None,
    ) -> None:
        self.document_id = document_id
        self.expected = expected
        self.actual = actual
        super().__init__(
            message=(
                f"Checksum mismatch after uploading document {document_id} "
                f"(expected {expected}, got {actual})"
            ),
            provider_name=provider_name,
        )
