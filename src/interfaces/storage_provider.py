"""Abstract base class for document blob storage backends.

Every stored document version lives at
``{tenant_id}/{document_id}/v{version}/{filename}`` relative to the
backend's root, so historical versions are never overwritten and tenants
never share a prefix.  :func:`build_storage_path` is the single place that
convention is spelled out.
"""

from __future__ import annotations

import posixpath
from abc import ABC, abstractmethod

from src.models.ingestion import SaveResult


def build_storage_path(tenant_id: str, document_id: str, version: int, filename: str) -> str:
    """Return the storage-relative path for one document version.

    Only the base name of *filename* is used, so a client-supplied name such
    as ``"../../etc/passwd"`` cannot escape the version directory.
    """
    name = posixpath.basename(filename.replace("\\", "/")) or "document"
    return f"{tenant_id}/{document_id}/v{version}/{name}"


# Concrete implementations:
#   LocalStorageProvider       — filesystem under a root directory
#   HttpObjectStorageProvider  — remote object store via PUT/HEAD/GET/DELETE
# Located in: src/providers/storage/
class IStorageProvider(ABC):
    """Contract for pluggable, content-addressable blob storage.

    Paths passed to :meth:`exists`, :meth:`get_checksum`, :meth:`read`, and
    :meth:`remove` are the ``path`` values returned by :meth:`save`.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Registry name of this backend (e.g. ``"local"``)."""

    @abstractmethod
    async def save(
        self,
        tenant_id: str,
        document_id: str,
        version: int,
        filename: str,
        data: bytes,
    ) -> SaveResult:
        """Persist *data* for one document version.

        Returns
        -------
        SaveResult
            The storage-relative path and the number of bytes written.

        Raises
        ------
        src.utils.errors.StorageError
            If the backend rejects the write.
        """

    @abstractmethod
    async def exists(self, path: str) -> bool:
        """Return ``True`` if a blob is stored at *path*."""

    @abstractmethod
    async def get_checksum(self, path: str) -> str:
        """Return the SHA-256 hex digest of the blob at *path*, as stored.

        Raises
        ------
        src.utils.errors.StorageError
            If the blob cannot be read.
        """

    @abstractmethod
    async def read(self, path: str) -> bytes:
        """Return the raw bytes stored at *path*."""

    @abstractmethod
    async def remove(self, path: str) -> None:
        """Delete the blob at *path*.

        Best-effort: implementations log failures and never raise, because
        removal runs during cleanup after another, more important error.
        """
