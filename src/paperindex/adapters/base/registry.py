"""Backend Registry: Manages registration and creation of search backends.

The registry maps backend names to ``SearchBackend`` classes and creates
the configured instance.  Only one backend is active at runtime; which one
is decided by ``SearchSettings.backend``.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from paperindex.adapters.base.adapter import SearchBackend
from paperindex.adapters.base.exceptions import ConfigurationError

if TYPE_CHECKING:
    from paperindex.config.settings import BackendConfig, SearchSettings

logger = logging.getLogger(__name__)


class AdapterNotFoundError(ConfigurationError):
    """Raised when a requested backend is not registered."""


class AdapterRegistry:
    """Registry for search backend classes and instances.

    Example:
        >>> registry = AdapterRegistry.with_builtin_backends()
        >>> backend = registry.create("meilisearch", base_url="http://localhost:7700")
        >>> await backend.initialize()
    """

    def __init__(self) -> None:
        self._classes: dict[str, type[SearchBackend]] = {}
        self._instances: dict[str, SearchBackend] = {}

    @classmethod
    def with_builtin_backends(cls) -> AdapterRegistry:
        """Return a registry with the MeiliSearch and OpenSearch backends registered."""
        from paperindex.adapters.meilisearch.adapter import MeiliSearchAdapter
        from paperindex.adapters.opensearch.adapter import OpenSearchAdapter

        registry = cls()
        registry.register("meilisearch", MeiliSearchAdapter)
        registry.register("opensearch", OpenSearchAdapter)
        return registry

    def register(self, name: str, backend_class: type[SearchBackend]) -> None:
        """Register a backend class under *name*."""
        if name in self._classes:
            logger.warning("Overwriting existing backend registration: %s", name)
        self._classes[name] = backend_class
        logger.debug("Registered backend: %s", name)

    def create(self, name: str, **kwargs: Any) -> SearchBackend:
        """Instantiate a backend without connecting it.

        Raises:
            AdapterNotFoundError: If no backend is registered under this name.
        """
        if name not in self._classes:
            raise AdapterNotFoundError(
                f"No backend registered with name '{name}'. Available backends: {list(self._classes.keys())}"
            )

        backend = self._classes[name](**kwargs)
        self._instances[name] = backend
        return backend

    def create_from_settings(self, settings: SearchSettings) -> SearchBackend:
        """Instantiate the backend selected by ``settings.backend``."""
        name = settings.backend
        config = settings.backends.get(name)
        if config is None:
            raise ConfigurationError(f"No configuration for search backend '{name}'")
        return self.create(name, **backend_kwargs(name, config))

    async def shutdown_all(self) -> None:
        """Gracefully shut down all created backends."""
        for name, backend in self._instances.items():
            try:
                await backend.shutdown()
                logger.info("Shut down backend: %s", name)
            except Exception:
                logger.warning("Error shutting down backend: %s", name, exc_info=True)
        self._instances.clear()


def backend_kwargs(name: str, config: BackendConfig) -> dict[str, Any]:
    """Translate a ``BackendConfig`` into constructor arguments for backend *name*."""
    kwargs: dict[str, Any] = {
        "index": config.index,
        "timeout": config.timeout,
        "enabled": config.enabled,
    }
    if name == "meilisearch":
        if config.hosts:
            kwargs["base_url"] = config.hosts[0]
        kwargs["api_key"] = config.api_key
    elif name == "opensearch":
        if config.hosts:
            kwargs["hosts"] = config.hosts
        kwargs["username"] = config.username
        kwargs["password"] = config.password
        kwargs["verify_certs"] = config.verify_certs
    kwargs.update(config.extra)
    return kwargs
