"""Base search backend: Abstract interface shared by every index connector.

A backend bundles four responsibilities behind one polymorphic interface:
  1. Connection management (initialize / shutdown / health)
  2. Index schema management (ensure_index_exists / delete_index)
  3. Best-effort document synchronisation (index / update / delete)
  4. Query planning and execution (search)

The public methods implement the policies that are identical for every
backend: when to no-op, when to raise, and which failures are swallowed.
Concrete backends only implement the underscored primitives, which are
expected to raise on any failure.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any

from pydantic import BaseModel, Field

from paperindex.adapters.base.exceptions import (
    BackendDisabledError,
    ConnectionError,
    DocumentNotFoundError,
    IndexSchemaError,
)
from paperindex.models.index import IndexDescriptor, IndexStatus
from paperindex.models.paper import Paper, PaperDocument, PaperUpdate
from paperindex.models.query import PaperQuery, SearchHits

logger = logging.getLogger(__name__)


class AdapterHealth(BaseModel):
    """Health status of a search backend."""

    status: str = Field(description="Health status: healthy, degraded, unhealthy, disabled")
    latency_ms: int = Field(default=0, description="Latency of last health check in ms")
    last_check: str | None = Field(default=None, description="ISO timestamp of last health check")
    message: str | None = Field(default=None, description="Additional health message")


class SearchBackend(ABC):
    """Abstract base class for paper index backends.

    Args:
        descriptor: Schema of the index this backend manages.
        enabled: Configuration switch.  A disabled backend never opens a
            connection; synchronisation calls become no-ops and ``search``
            raises ``BackendDisabledError``.
    """

    def __init__(self, descriptor: IndexDescriptor, *, enabled: bool = True) -> None:
        self._descriptor = descriptor
        self._enabled = enabled
        self._reported_offline = False

    # ── Identity / state ─────────────────────────────────────────────────

    @property
    @abstractmethod
    def name(self) -> str:
        """Unique backend name (e.g., 'meilisearch', 'opensearch')."""

    @property
    @abstractmethod
    def is_connected(self) -> bool:
        """Whether ``initialize()`` produced a usable client."""

    @property
    def descriptor(self) -> IndexDescriptor:
        return self._descriptor

    @property
    def index_name(self) -> str:
        return self._descriptor.name

    @property
    def is_enabled(self) -> bool:
        """Enabled in configuration and connected."""
        return self._enabled and self.is_connected

    def _skip_sync(self) -> bool:
        """Whether document synchronisation should be skipped.

        A backend that is enabled but never connected reports that once.
        """
        if self.is_enabled:
            return False
        if self._enabled and not self._reported_offline:
            logger.warning("%s is configured but not connected; index writes are skipped", self.name)
            self._reported_offline = True
        return True

    def _require_available(self) -> None:
        if not self._enabled:
            raise BackendDisabledError(f"{self.name} is not enabled")
        if not self.is_connected:
            raise ConnectionError(f"{self.name} client not initialized.")

    # ── Lifecycle ────────────────────────────────────────────────────────

    @abstractmethod
    async def initialize(self) -> None:
        """Open the client and verify connectivity.

        Called once during application startup.  Raises ``ConnectionError``
        when the backend cannot be reached.
        """

    @abstractmethod
    async def shutdown(self) -> None:
        """Close connections and release resources."""

    @abstractmethod
    async def health_check(self) -> AdapterHealth:
        """Report backend health.  Must not raise."""

    # ── Schema management ────────────────────────────────────────────────

    async def ensure_index_exists(self) -> bool:
        """Make sure the index exists with the full descriptor applied.

        Creates the index when absent.  When present, the settings are
        re-applied on every call since an out-of-band recreation may have
        reset them.

        Returns:
            ``True`` when the index is ready, ``False`` when the backend is
            disabled, unreachable or refused the configuration.
        """
        if not self.is_enabled:
            return False

        try:
            if await self._index_exists():
                await self._apply_settings()
                logger.debug("Index %s already exists, settings re-applied", self.index_name)
            else:
                await self._create_index()
                logger.info("Created %s index: %s", self.name, self.index_name)
            return True
        except Exception:
            logger.error("Failed to ensure index exists: %s", self.index_name, exc_info=True)
            return False

    async def delete_index(self) -> None:
        """Drop the index.  Errors propagate; a missing index is not an error."""
        self._require_available()
        await self._delete_index()
        logger.info("Deleted %s index: %s", self.name, self.index_name)

    async def optimize_index(self) -> None:
        """Ask the backend to compact the index.  Errors propagate."""
        self._require_available()
        await self._optimize()

    async def index_status(self) -> IndexStatus:
        """Return enabled flag, existence, document count and current settings."""
        if not self.is_enabled:
            return IndexStatus(enabled=False, backend=self.name, index_name=self.index_name)
        return await self._index_status()

    # ── Document synchronisation (best-effort) ───────────────────────────

    async def index_document(self, paper: Paper) -> None:
        """Upsert *paper* into the index.  Never raises."""
        if self._skip_sync():
            return

        try:
            await self.upsert_document(paper)
            logger.debug("Indexed paper: %s", paper.id)
        except Exception:
            logger.error("Failed to index paper: %s", paper.id, exc_info=True)

    async def update_document(self, paper_id: str, changes: PaperUpdate) -> None:
        """Merge the explicitly set fields of *changes* into the indexed document.  Never raises."""
        if self._skip_sync():
            return

        fields = changes.to_document_fields()
        if not fields:
            logger.debug("No indexed fields changed for paper %s", paper_id)
            return

        try:
            await self._partial_update(paper_id, fields)
            logger.debug("Updated paper in %s: %s", self.name, paper_id)
        except Exception:
            logger.error("Failed to update paper in %s: %s", self.name, paper_id, exc_info=True)

    async def delete_document(self, paper_id: str) -> None:
        """Remove a document.  Missing documents count as deleted.  Never raises."""
        if self._skip_sync():
            return

        try:
            await self._delete(paper_id)
            logger.debug("Deleted paper from %s: %s", self.name, paper_id)
        except DocumentNotFoundError:
            logger.debug("Paper %s was not in the index", paper_id)
        except Exception:
            logger.error("Failed to delete paper from %s: %s", self.name, paper_id, exc_info=True)

    async def upsert_document(self, paper: Paper, *, ensure_index: bool = True) -> None:
        """Raising variant of ``index_document`` used by administrative reindexing.

        Args:
            paper: The record to index.
            ensure_index: Check (and configure) the index first.  Bulk callers
                that just recreated the index pass ``False``.
        """
        self._require_available()
        if ensure_index and not await self.ensure_index_exists():
            raise IndexSchemaError(f"Index '{self.index_name}' is not available")
        await self._upsert(PaperDocument.from_paper(paper))

    # ── Query ────────────────────────────────────────────────────────────

    async def search(self, query: PaperQuery) -> SearchHits:
        """Run *query* and return ordered ids plus the backend's total estimate.

        Raises:
            BackendDisabledError: The backend is switched off.
            ConnectionError: The client is not connected.
            IndexSchemaError: The index could not be created or configured.
            QueryError: The backend failed to execute the query.
            MalformedQueryError: The backend rejected the filter or sort.
        """
        self._require_available()
        if not await self.ensure_index_exists():
            raise IndexSchemaError(f"Index '{self.index_name}' is not available")
        hits = await self._execute_search(query)
        logger.debug(
            "%s search returned %d ids (total=%d, page=%d)",
            self.name,
            len(hits.ids),
            hits.total,
            query.page,
        )
        return hits

    # ── Backend primitives ───────────────────────────────────────────────

    @abstractmethod
    async def _index_exists(self) -> bool: ...

    @abstractmethod
    async def _create_index(self) -> None:
        """Create the index with every setting applied, or leave no index behind."""

    @abstractmethod
    async def _apply_settings(self) -> None: ...

    @abstractmethod
    async def _delete_index(self) -> None: ...

    @abstractmethod
    async def _upsert(self, document: PaperDocument) -> None: ...

    @abstractmethod
    async def _partial_update(self, paper_id: str, fields: dict[str, Any]) -> None: ...

    @abstractmethod
    async def _delete(self, paper_id: str) -> None:
        """Delete one document; raise ``DocumentNotFoundError`` when absent."""

    @abstractmethod
    async def _execute_search(self, query: PaperQuery) -> SearchHits: ...

    @abstractmethod
    async def _index_status(self) -> IndexStatus: ...

    async def _optimize(self) -> None:
        logger.info("%s has nothing to optimize", self.name)
