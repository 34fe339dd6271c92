"""Models for the ingestion side: loaders, storage, uploads, and integrity scans."""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from src.models.document import DocumentStatus
from src.models.rag import ChunkerOptions


# ---------------------------------------------------------------------------
# Loaders
# ---------------------------------------------------------------------------
class LoaderContext(BaseModel):
    """What a loader knows about the bytes it is asked to extract."""

    model_config = ConfigDict(frozen=True)

    filename: str
    mime_type: str
    size: int = Field(default=0, ge=0)


class LoaderResult(BaseModel):
    """Normalised text plus loader-specific source metadata.

    ``loader`` is filled in by the registry with the name of the loader that
    produced the result (e.g. ``"text-loader"``).
    """

    model_config = ConfigDict(frozen=True)

    text: str
    metadata: dict[str, Any] = Field(default_factory=dict)
    loader: str = ""


# ---------------------------------------------------------------------------
# Storage
# ---------------------------------------------------------------------------
class SaveResult(BaseModel):
    """Where a storage provider put a blob and how many bytes it wrote."""

    model_config = ConfigDict(frozen=True)

    path: str
    size: int = Field(ge=0)


# ---------------------------------------------------------------------------
# Upload pipeline
# ---------------------------------------------------------------------------
class DocumentUploadRequest(BaseModel):
    """Input to :meth:`~src.services.ingestion.upload_pipeline.DocumentUploadPipeline.upload`.

    Either ``document_id`` names an existing document to re-upload, or the
    document is resolved by ``(tenant_id, filename)`` and created if absent.
    """

    model_config = ConfigDict(frozen=True)

    tenant_id: str
    filename: str
    mime_type: str
    data: bytes
    metadata: dict[str, Any] | None = None
    document_id: str | None = None
    chunker: ChunkerOptions | None = None
    storage_provider: str | None = None
    size: int | None = Field(default=None, ge=0)
    # Reprocess even when the checksum matches a ready document.
    force: bool = False
    # Claim fails with DocumentSupersededError unless the row is still at this version.
    expected_version: int | None = Field(default=None, ge=1)


# ---------------------------------------------------------------------------
# Integrity checks
# ---------------------------------------------------------------------------
class IntegrityIssueReason(str, Enum):
    """Why the integrity checker flagged a document."""

    MISSING = "missing"
    CHECKSUM_MISMATCH = "checksum_mismatch"


class RemediationContext(BaseModel):
    """Passed to a remediator alongside the affected document."""

    model_config = ConfigDict(frozen=True)

    reason: IntegrityIssueReason
    provider_name: str


class IntegrityCheckOptions(BaseModel):
    """Scan parameters for :meth:`~src.services.integrity.integrity_checker.DocumentIntegrityChecker.run`."""

    model_config = ConfigDict(frozen=True)

    batch_size: int = Field(default=50, ge=1)
    statuses: list[DocumentStatus] = Field(default_factory=lambda: [DocumentStatus.READY])


class IntegrityReport(BaseModel):
    """Counters summarising one integrity scan."""

    checked: int = 0
    healthy: int = 0
    remediated: int = 0
    stale: int = 0
    skipped: int = 0
    errors: int = 0
