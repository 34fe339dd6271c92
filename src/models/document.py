"""Persistent records of the knowledge base: documents and their chunks.

A :class:`Document` is one tenant-owned upload.  Its ``checksum`` (SHA-256 of
the bytes) doubles as its content identity: re-uploading identical bytes is
a no-op, different bytes bump ``version`` by one.  ``status`` moves through a
small state machine:

    processing --> ready          (pipeline finished)
    processing --> failed         (checksum mismatch or extraction/embedding error)
    ready      --> stale          (integrity scan found a missing/corrupt blob)
    stale      --> ready          (remediation or a later re-upload succeeded)

A :class:`Chunk` is a contiguous slice of a document's extracted text.  All
chunks of a document are replaced together whenever the document is
reprocessed, so ``position`` is always ``0..n-1`` without gaps.

Models are frozen; stores hand back fresh instances after every write.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


def utc_now() -> datetime:
    """Timezone-aware current time used for record timestamps."""
    return datetime.now(timezone.utc)


class DocumentStatus(str, Enum):
    """Lifecycle states of a :class:`Document`."""

    PROCESSING = "processing"
    READY = "ready"
    FAILED = "failed"
    STALE = "stale"


class Document(BaseModel):
    """A tenant-owned unit of knowledge and the bookkeeping for its stored bytes."""

    model_config = ConfigDict(frozen=True, use_enum_values=False)

    id: str = Field(description="Primary key (UUID string).")
    tenant_id: str = Field(description="Owning tenant; every query is scoped by it.")
    filename: str = Field(description="Original filename; unique per tenant.")
    mime_type: str = Field(description="MIME type supplied at upload time.")
    size: int = Field(default=0, ge=0, description="Byte size of the stored blob.")
    path: str = Field(
        default="",
        description="Storage-relative path ({tenant}/{document}/v{version}/{filename}).",
    )
    checksum: str = Field(default="", description="SHA-256 hex digest of the document bytes.")
    storage_provider: str = Field(description="Name of the storage provider holding the blob.")
    version: int = Field(default=1, ge=1, description="Increments whenever the checksum changes.")
    status: DocumentStatus = Field(default=DocumentStatus.PROCESSING)
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @property
    def is_ready(self) -> bool:
        return self.status == DocumentStatus.READY


class Chunk(BaseModel):
    """A bounded slice of a document's text, independently embeddable and retrievable."""

    model_config = ConfigDict(frozen=True)

    id: str
    tenant_id: str
    document_id: str
    content: str
    # None when embeddings are disabled for the deployment.
    embedding: list[float] | None = None
    position: int = Field(ge=0, description="Zero-based order within the document.")
    metadata: dict[str, Any] = Field(default_factory=dict)
