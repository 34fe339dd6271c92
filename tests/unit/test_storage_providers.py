"""Unit tests for storage providers (local filesystem, HTTP object store) and their registry."""

from __future__ import annotations

import hashlib
from pathlib import Path

import httpx
import pytest

from src.interfaces.storage_provider import build_storage_path
from src.providers.storage.http_storage_provider import HttpObjectStorageProvider
from src.providers.storage.local_storage_provider import LocalStorageProvider
from src.providers.storage.registry import StorageProviderRegistry
from src.utils.errors import ConfigurationError, StorageError
from tests.conftest import InMemoryStorageProvider


# ======================================================================
# Path convention
# ======================================================================


class TestBuildStoragePath:
    def test_layout(self) -> None:
        assert build_storage_path("acme", "doc-1", 3, "faq.md") == "acme/doc-1/v3/faq.md"

    def test_filename_reduced_to_base_name(self) -> None:
        assert build_storage_path("acme", "d", 1, "../../etc/passwd") == "acme/d/v1/passwd"
        assert build_storage_path("acme", "d", 1, "C:\\docs\\faq.md") == "acme/d/v1/faq.md"

    def test_empty_filename(self) -> None:
        assert build_storage_path("acme", "d", 1, "") == "acme/d/v1/document"


# ======================================================================
# LocalStorageProvider
# ======================================================================


class TestLocalStorageProvider:
    @pytest.fixture()
    def provider(self, tmp_path: Path) -> LocalStorageProvider:
        return LocalStorageProvider(root_path=tmp_path / "blobs")

    @pytest.mark.asyncio
    async def test_save_then_read_back(self, provider: LocalStorageProvider) -> None:
        saved = await provider.save("acme", "doc-1", 1, "faq.md", b"hello")

        assert saved.path == "acme/doc-1/v1/faq.md"
        assert saved.size == 5
        assert (provider.root_path / saved.path).read_bytes() == b"hello"
        assert await provider.exists(saved.path) is True
        assert await provider.read(saved.path) == b"hello"
        assert await provider.get_checksum(saved.path) == hashlib.sha256(b"hello").hexdigest()

    @pytest.mark.asyncio
    async def test_versions_do_not_overwrite(self, provider: LocalStorageProvider) -> None:
        v1 = await provider.save("acme", "doc-1", 1, "faq.md", b"one")
        v2 = await provider.save("acme", "doc-1", 2, "faq.md", b"two")

        assert await provider.read(v1.path) == b"one"
        assert await provider.read(v2.path) == b"two"

    @pytest.mark.asyncio
    async def test_remove_is_best_effort(self, provider: LocalStorageProvider) -> None:
        saved = await provider.save("acme", "doc-1", 1, "faq.md", b"x")

        await provider.remove(saved.path)
        await provider.remove(saved.path)

        assert await provider.exists(saved.path) is False

    @pytest.mark.asyncio
    async def test_missing_blob_raises_storage_error(self, provider: LocalStorageProvider) -> None:
        with pytest.raises(StorageError):
            await provider.get_checksum("acme/none/v1/x.txt")
        with pytest.raises(StorageError):
            await provider.read("acme/none/v1/x.txt")

    @pytest.mark.asyncio
    async def test_paths_cannot_escape_root(self, provider: LocalStorageProvider) -> None:
        with pytest.raises(StorageError):
            await provider.read("../outside.txt")

    def test_name(self, provider: LocalStorageProvider) -> None:
        assert provider.name == "local"


# ======================================================================
# HttpObjectStorageProvider
# ======================================================================


def _object_store() -> tuple[dict[str, bytes], list[httpx.Request], httpx.MockTransport]:
    objects: dict[str, bytes] = {}
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        key = request.url.path
        if request.method == "PUT":
            objects[key] = request.content
            return httpx.Response(201)
        if request.method == "DELETE":
            return httpx.Response(204 if objects.pop(key, None) is not None else 404)
        if key not in objects:
            return httpx.Response(404)
        if request.method == "HEAD":
            return httpx.Response(200)
        return httpx.Response(200, content=objects[key])

    return objects, seen, httpx.MockTransport(handler)


class TestHttpObjectStorageProvider:
    @pytest.mark.asyncio
    async def test_round_trip(self) -> None:
        objects, seen, transport = _object_store()
        async with httpx.AsyncClient(transport=transport) as client:
            provider = HttpObjectStorageProvider(
                "https://blobs.example.com/kb/", api_token="secret", http_client=client
            )

            saved = await provider.save("acme", "doc-1", 2, "faq.md", b"payload")

            assert saved.path == "acme/doc-1/v2/faq.md"
            assert objects["/kb/acme/doc-1/v2/faq.md"] == b"payload"
            assert await provider.exists(saved.path) is True
            assert await provider.read(saved.path) == b"payload"
            assert await provider.get_checksum(saved.path) == hashlib.sha256(b"payload").hexdigest()
            assert seen[0].headers["Authorization"] == "Bearer secret"

    @pytest.mark.asyncio
    async def test_missing_object(self) -> None:
        _, _, transport = _object_store()
        async with httpx.AsyncClient(transport=transport) as client:
            provider = HttpObjectStorageProvider("https://blobs.example.com", http_client=client)

            assert await provider.exists("acme/x/v1/a.txt") is False
            with pytest.raises(StorageError):
                await provider.read("acme/x/v1/a.txt")

    @pytest.mark.asyncio
    async def test_remove_swallows_errors(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("down", request=request)

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            provider = HttpObjectStorageProvider("https://blobs.example.com", http_client=client)
            await provider.remove("acme/x/v1/a.txt")

    @pytest.mark.asyncio
    async def test_transport_errors_become_storage_errors(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("down", request=request)

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            provider = HttpObjectStorageProvider("https://blobs.example.com", http_client=client)
            with pytest.raises(StorageError) as exc_info:
                await provider.save("acme", "d", 1, "a.txt", b"x")

        assert exc_info.value.provider_name == "http"


# ======================================================================
# StorageProviderRegistry
# ======================================================================


class TestStorageProviderRegistry:
    def test_default_and_named_resolution(self) -> None:
        primary = InMemoryStorageProvider("primary")
        secondary = InMemoryStorageProvider("secondary")
        registry = StorageProviderRegistry(default_provider=primary)
        registry.register(secondary)

        assert registry.resolve() is primary
        assert registry.resolve(None) is primary
        assert registry.resolve("secondary") is secondary
        assert registry.get_default() is primary
        assert registry.names == ["primary", "secondary"]

    def test_unknown_name_is_configuration_error(self) -> None:
        registry = StorageProviderRegistry(default_provider=InMemoryStorageProvider())

        with pytest.raises(ConfigurationError):
            registry.resolve("s3")
        assert registry.get("s3") is None
