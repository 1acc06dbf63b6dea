"""paperindex Engine: Wires the store, the search backend and the services.

The engine owns every long-lived resource:
  1. Database: async engine + session factory for the relational store
  2. Search backend: the single active connector, chosen by configuration
  3. Repository: hydrated listings, reindex, status
  4. Service: write path (store commit, then index sync)

A search backend that cannot be reached at startup does not stop the
engine; listings are then served from the database for the lifetime of
the process and index writes are skipped.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from paperindex.adapters.base.exceptions import ConnectionError
from paperindex.adapters.base.registry import AdapterRegistry
from paperindex.core.repository import PaperSearchRepository
from paperindex.core.service import PaperService
from paperindex.store.database import Database
from paperindex.store.sql import SqlPaperStore

if TYPE_CHECKING:
    from paperindex.adapters.base.adapter import SearchBackend
    from paperindex.config.settings import Settings

logger = logging.getLogger(__name__)


class PaperIndexEngine:
    """Application container for paperindex.

    Attributes:
        settings: Application configuration.
        database: Relational store connection.
        backend: The active search backend.
        repository: Read path and index administration.
        service: Write path.
    """

    def __init__(self, settings: Settings, registry: AdapterRegistry | None = None) -> None:
        self.settings = settings
        self.registry = registry or AdapterRegistry.with_builtin_backends()
        self.database = Database.from_settings(settings.database)
        self.store = SqlPaperStore(self.database)
        self.backend: SearchBackend = self.registry.create_from_settings(settings.search)
        self.repository = PaperSearchRepository(self.backend, self.store)
        self.service = PaperService(self.store, self.backend)

    async def initialize(self) -> None:
        """Open the database and connect the search backend."""
        await self.database.startup()

        try:
            await self.backend.initialize()
        except ConnectionError:
            logger.warning(
                "Search backend %s unreachable at startup; listings will use the database",
                self.backend.name,
                exc_info=True,
            )
        else:
            if self.backend.is_enabled and not await self.backend.ensure_index_exists():
                logger.error("Index %s could not be prepared", self.backend.index_name)

        logger.info("paperindex engine initialized (backend: %s)", self.backend.name)

    async def shutdown(self) -> None:
        """Close the search backend and dispose the database engine."""
        await self.registry.shutdown_all()
        await self.database.shutdown()
        logger.info("paperindex engine shut down")

    async def __aenter__(self) -> PaperIndexEngine:
        await self.initialize()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.shutdown()
