"""Paper write path: Commit to the store, then mirror into the search index.

The index is a derived cache: synchronisation happens after the store has
committed and never changes the outcome of the write.
"""

from __future__ import annotations

import logging

from paperindex.adapters.base.adapter import SearchBackend
from paperindex.models.paper import Paper, PaperCreate, PaperUpdate
from paperindex.store.base import PaperStore

logger = logging.getLogger(__name__)


class PaperService:
    def __init__(self, store: PaperStore, backend: SearchBackend) -> None:
        self.store = store
        self.backend = backend

    async def create_paper(self, data: PaperCreate) -> Paper:
        paper = await self.store.create(data)
        await self.backend.index_document(paper)
        return paper

    async def update_paper(self, paper_id: str, changes: PaperUpdate) -> Paper:
        """Apply *changes* and merge the indexed subset into the search document."""
        paper = await self.store.update(paper_id, changes)
        await self.backend.update_document(paper_id, changes)
        return paper

    async def delete_paper(self, paper_id: str) -> None:
        await self.store.delete(paper_id)
        await self.backend.delete_document(paper_id)

    async def record_view(self, paper_id: str) -> int:
        """Count one view of *paper_id* and return the new total."""
        total = await self.store.increment_view_count(paper_id)
        await self.backend.update_document(paper_id, PaperUpdate(total_view_count=total))
        return total
