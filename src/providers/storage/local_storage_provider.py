"""Filesystem storage provider.

Stores document blobs under a root directory using the
``{tenant}/{document}/v{version}/{filename}`` layout from
:func:`~src.interfaces.storage_provider.build_storage_path`.  File I/O is
blocking, so every operation is pushed to a worker thread with
:func:`asyncio.to_thread` to keep the event loop free.
"""

from __future__ import annotations

import asyncio
import hashlib
from pathlib import Path

import structlog

from src.interfaces.storage_provider import IStorageProvider, build_storage_path
from src.models.ingestion import SaveResult
from src.utils.errors import StorageError

logger = structlog.get_logger(logger_name=__name__)

_DEFAULT_ROOT = Path("storage")
_READ_CHUNK_SIZE = 1024 * 1024


class LocalStorageProvider(IStorageProvider):
    """Blob storage on the local filesystem.

    Parameters
    ----------
    root_path:
        Directory under which all tenants' blobs are written.  Created
        lazily on first save.
    """

    def __init__(self, root_path: str | Path = _DEFAULT_ROOT) -> None:
        self._root = Path(root_path).resolve()

    @property
    def name(self) -> str:
        return "local"

    @property
    def root_path(self) -> Path:
        return self._root

    # ------------------------------------------------------------------
    # IStorageProvider implementation
    # ------------------------------------------------------------------

    async def save(
        self,
        tenant_id: str,
        document_id: str,
        version: int,
        filename: str,
        data: bytes,
    ) -> SaveResult:
        relative_path = build_storage_path(tenant_id, document_id, version, filename)
        absolute_path = self._resolve(relative_path)

        def _write() -> int:
            absolute_path.parent.mkdir(parents=True, exist_ok=True)
            absolute_path.write_bytes(data)
            return absolute_path.stat().st_size

        try:
            size = await asyncio.to_thread(_write)
        except OSError as exc:
            raise StorageError(
                message=f"Failed to write {relative_path}: {exc}",
                provider_name=self.name,
            ) from exc

        logger.info("local_storage_saved", path=relative_path, size=size)
        return SaveResult(path=relative_path, size=size)

    async def exists(self, path: str) -> bool:
        return await asyncio.to_thread(self._resolve(path).is_file)

    async def get_checksum(self, path: str) -> str:
        absolute_path = self._resolve(path)

        def _hash() -> str:
            digest = hashlib.sha256()
            with absolute_path.open("rb") as handle:
                for block in iter(lambda: handle.read(_READ_CHUNK_SIZE), b""):
                    digest.update(block)
            return digest.hexdigest()

        try:
            return await asyncio.to_thread(_hash)
        except OSError as exc:
            raise StorageError(
                message=f"Failed to hash {path}: {exc}",
                provider_name=self.name,
            ) from exc

    async def read(self, path: str) -> bytes:
        try:
            return await asyncio.to_thread(self._resolve(path).read_bytes)
        except OSError as exc:
            raise StorageError(
                message=f"Failed to read {path}: {exc}",
                provider_name=self.name,
            ) from exc

    async def remove(self, path: str) -> None:
        try:
            await asyncio.to_thread(self._resolve(path).unlink)
        except FileNotFoundError:
            return
        except (OSError, StorageError) as exc:
            logger.warning("local_storage_remove_failed", path=path, error=str(exc))

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _resolve(self, relative_path: str) -> Path:
        """Map a storage-relative path to an absolute path inside the root."""
        candidate = (self._root / relative_path).resolve()
        if candidate != self._root and self._root not in candidate.parents:
            raise StorageError(
                message=f"Path {relative_path!r} escapes the storage root",
                provider_name=self.name,
            )
        return candidate
