"""Remote object-store provider over plain HTTP.

Addresses each blob as ``{base_url}/{path}`` and maps the storage contract
onto HTTP verbs:

    save        -> PUT     (body = document bytes)
    exists      -> HEAD    (200 = present, 404 = absent)
    read        -> GET
    get_checksum-> GET, then SHA-256 of the downloaded body
    remove      -> DELETE  (best-effort)

The checksum is computed locally from what the server hands back rather than
trusted from a response header, so corruption on the remote side is caught.
Follows the injected ``httpx.AsyncClient`` pattern used by the other HTTP
adapters so tests can pass a client built on ``httpx.MockTransport``.
"""

from __future__ import annotations

from urllib.parse import quote

import httpx
import structlog

from src.interfaces.storage_provider import IStorageProvider, build_storage_path
from src.models.ingestion import SaveResult
from src.utils.checksum import compute_checksum
from src.utils.errors import StorageError

logger = structlog.get_logger(logger_name=__name__)

_DEFAULT_TIMEOUT = 30.0


class HttpObjectStorageProvider(IStorageProvider):
    """Blob storage on a remote HTTP object store.

    Parameters
    ----------
    base_url:
        Prefix that storage-relative paths are appended to.
    api_token:
        Optional bearer token sent on every request.
    http_client:
        Injected client; one is created (and owned) when omitted.
    """

    def __init__(
        self,
        base_url: str,
        api_token: str | None = None,
        http_client: httpx.AsyncClient | None = None,
        timeout: float = _DEFAULT_TIMEOUT,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        headers = {"Authorization": f"Bearer {api_token}"} if api_token else {}
        self._owns_client = http_client is None
        self._http = http_client or httpx.AsyncClient(timeout=timeout)
        self._headers = headers

    @property
    def name(self) -> str:
        return "http"

    async def close(self) -> None:
        if self._owns_client:
            await self._http.aclose()

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
        response = await self._request("PUT", relative_path, content=data)
        self._raise_for_status(response, "save", relative_path)
        logger.info("http_storage_saved", path=relative_path, size=len(data))
        return SaveResult(path=relative_path, size=len(data))

    async def exists(self, path: str) -> bool:
        response = await self._request("HEAD", path)
        if response.status_code == 404:
            return False
        self._raise_for_status(response, "exists", path)
        return True

    async def get_checksum(self, path: str) -> str:
        return compute_checksum(await self.read(path))

    async def read(self, path: str) -> bytes:
        response = await self._request("GET", path)
        self._raise_for_status(response, "read", path)
        return response.content

    async def remove(self, path: str) -> None:
        try:
            response = await self._request("DELETE", path)
        except StorageError as exc:
            logger.warning("http_storage_remove_failed", path=path, error=str(exc))
            return
        if response.status_code >= 400 and response.status_code != 404:
            logger.warning(
                "http_storage_remove_failed",
                path=path,
                status_code=response.status_code,
            )

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _url(self, path: str) -> str:
        return f"{self._base_url}/{quote(path.lstrip('/'))}"

    async def _request(self, method: str, path: str, **kwargs: object) -> httpx.Response:
        try:
            return await self._http.request(
                method, self._url(path), headers=self._headers, **kwargs
            )
        except httpx.HTTPError as exc:
            raise StorageError(
                message=f"{method} {path} failed: {exc}",
                provider_name=self.name,
            ) from exc

    def _raise_for_status(self, response: httpx.Response, operation: str, path: str) -> None:
        if response.status_code >= 400:
            raise StorageError(
                message=f"{operation} {path} returned HTTP {response.status_code}",
                provider_name=self.name,
            )
