"""Named registry of storage providers with one default."""

from __future__ import annotations

from src.interfaces.storage_provider import IStorageProvider
from src.utils.errors import ConfigurationError


class StorageProviderRegistry:
    """Holds storage backends by name.

    The provider passed to the constructor is registered and becomes the
    default used when an upload does not name a backend.
    """

    def __init__(self, default_provider: IStorageProvider) -> None:
        self._providers: dict[str, IStorageProvider] = {}
        self._default_name = default_provider.name
        self.register(default_provider)

    def register(self, provider: IStorageProvider) -> None:
        self._providers[provider.name] = provider

    def get(self, name: str) -> IStorageProvider | None:
        return self._providers.get(name)

    def get_default(self) -> IStorageProvider:
        provider = self.get(self._default_name)
        if provider is None:
            raise ConfigurationError(
                message=f"Default storage provider {self._default_name} is not registered"
            )
        return provider

    def resolve(self, name: str | None = None) -> IStorageProvider:
        """Return the provider called *name*, or the default when *name* is empty.

        Raises
        ------
        ConfigurationError
            If *name* is not registered.
        """
        if not name:
            return self.get_default()
        provider = self.get(name)
        if provider is None:
            raise ConfigurationError(message=f"Storage provider {name} is not registered")
        return provider

    @property
    def names(self) -> list[str]:
        return sorted(self._providers)
