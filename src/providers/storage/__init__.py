"""Storage provider implementations.

Two implementations of IStorageProvider, registered by name in a
StorageProviderRegistry:
    1. LocalStorageProvider      ("local") — files under STORAGE_ROOT.
       The default for single-host deployments.
    2. HttpObjectStorageProvider ("http")  — remote object store addressed
       as {base_url}/{path}. Enabled when STORAGE_HTTP_BASE_URL is set.

Both lay blobs out as {tenant}/{document}/v{version}/{filename}, so older
versions are never overwritten by a re-upload.
"""

from src.providers.storage.http_storage_provider import HttpObjectStorageProvider
from src.providers.storage.local_storage_provider import LocalStorageProvider
from src.providers.storage.registry import StorageProviderRegistry

__all__ = ["HttpObjectStorageProvider", "LocalStorageProvider", "StorageProviderRegistry"]
