"""Hydrating search repository: Paginated paper listings with graceful degradation.

Read path::

    PaperQuery → [SearchBackend.search] → ordered ids + estimated total
               → [PaperStore.find_many_by_ids] → papers in backend order
               → PaginatedPapers(source="search")

When the backend is disabled, unreachable or fails, the same query is
answered by the relational store with an exact count
(``source="database"``).  A query the backend rejects as malformed is a
programming error and propagates instead.
"""

from __future__ import annotations

import asyncio
import logging
import time

from paperindex.adapters.base.adapter import SearchBackend
from paperindex.adapters.base.exceptions import IndexSchemaError, MalformedQueryError
from paperindex.models.index import IndexStatus, ReindexReport
from paperindex.models.paper import Paper
from paperindex.models.query import PaginatedPapers, PaperQuery
from paperindex.store.base import PaperStore

logger = logging.getLogger(__name__)


class PaperSearchRepository:
    """Serves paper listings from the search index, falling back to the store.

    Args:
        backend: The active search backend.
        store: The authoritative paper store.
    """

    def __init__(self, backend: SearchBackend, store: PaperStore) -> None:
        self.backend = backend
        self.store = store

    async def list(self, query: PaperQuery) -> PaginatedPapers:
        """Return one page of papers matching *query*."""
        try:
            return await self._list_from_index(query)
        except MalformedQueryError:
            raise
        except Exception as e:
            logger.warning("Search backend unavailable, falling back to the database: %s", e)
            return await self._list_from_store(query)

    async def _list_from_index(self, query: PaperQuery) -> PaginatedPapers:
        hits = await self.backend.search(query)
        papers = await self.hydrate(hits.ids)
        return PaginatedPapers(
            papers=papers,
            total=hits.total,
            page=query.page,
            limit=query.limit,
            source="search",
        )

    async def _list_from_store(self, query: PaperQuery) -> PaginatedPapers:
        papers, total = await asyncio.gather(self.store.find_many(query), self.store.count(query))
        return PaginatedPapers(
            papers=papers,
            total=total,
            page=query.page,
            limit=query.limit,
            source="database",
        )

    async def hydrate(self, ids: list[str]) -> list[Paper]:
        """Load *ids* from the store in one batch, keeping their order.

        Ids the store no longer knows are stale index entries and are dropped.
        """
        if not ids:
            return []
        by_id = {paper.id: paper for paper in await self.store.find_many_by_ids(ids)}
        stale = [i for i in ids if i not in by_id]
        if stale:
            logger.debug("Dropping %d stale index ids: %s", len(stale), stale)
        return [by_id[i] for i in ids if i in by_id]

    # ── Administration ───────────────────────────────────────────────────

    async def reindex_all(self, batch_size: int = 100) -> ReindexReport:
        """Drop and rebuild the index from the store.

        Papers are replayed oldest first, *batch_size* at a time, concurrently
        inside a batch.  A paper that fails to index is logged and counted;
        failures of the drop or the re-creation propagate.
        """
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")

        start = time.monotonic()
        await self.backend.delete_index()
        if not await self.backend.ensure_index_exists():
            raise IndexSchemaError(f"Could not recreate index '{self.backend.index_name}'")

        report = ReindexReport()
        async for batch in self.store.iter_batches(batch_size):
            results = await asyncio.gather(
                *(self.backend.upsert_document(paper, ensure_index=False) for paper in batch),
                return_exceptions=True,
            )
            for paper, result in zip(batch, results, strict=True):
                if isinstance(result, BaseException):
                    logger.error("Failed to reindex paper %s: %s", paper.id, result)
                    report.failed += 1
                    report.failed_ids.append(paper.id)
                else:
                    report.indexed += 1
            report.total += len(batch)
            report.batches += 1
            logger.info("Reindexed %d papers so far (%d failed)", report.indexed, report.failed)

        logger.info(
            "Reindex of %s complete: %d/%d papers in %d batches (%.1fs)",
            self.backend.index_name,
            report.indexed,
            report.total,
            report.batches,
            time.monotonic() - start,
        )
        return report

    async def index_status(self) -> IndexStatus:
        return await self.backend.index_status()

    async def optimize_index(self) -> None:
        await self.backend.optimize_index()
