"""Abstract paper store: The contract the search layer needs from the primary store."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator

from paperindex.models.paper import Paper, PaperCreate, PaperUpdate
from paperindex.models.query import PaperQuery


class PaperStore(ABC):
    """Authoritative store of papers.

    ``find_many`` and ``count`` must apply exactly the filter semantics of
    the search backends so that the fallback path returns the same set:
    OR within ``categories`` / ``authors``, AND across filters, half-open
    year range, and free text as a case-insensitive substring of the title,
    the summary or any author.
    """

    @abstractmethod
    async def find_many_by_ids(self, ids: list[str]) -> list[Paper]:
        """Fetch papers by id in one round trip.  Order is unspecified; unknown ids are skipped."""

    @abstractmethod
    async def find_many(self, query: PaperQuery) -> list[Paper]:
        """Return one page of papers matching *query* in the requested order."""

    @abstractmethod
    async def count(self, query: PaperQuery) -> int:
        """Return the exact number of papers matching *query* (pagination ignored)."""

    @abstractmethod
    def iter_batches(self, batch_size: int) -> AsyncIterator[list[Paper]]:
        """Yield every paper, oldest ``created_at`` first, *batch_size* at a time."""

    @abstractmethod
    async def get(self, paper_id: str) -> Paper:
        """Return one paper.  Raises ``PaperNotFoundError``."""

    @abstractmethod
    async def create(self, data: PaperCreate) -> Paper: ...

    @abstractmethod
    async def update(self, paper_id: str, changes: PaperUpdate) -> Paper:
        """Apply the explicitly set fields of *changes*.  Raises ``PaperNotFoundError``."""

    @abstractmethod
    async def delete(self, paper_id: str) -> None:
        """Delete one paper.  Raises ``PaperNotFoundError``."""

    @abstractmethod
    async def increment_view_count(self, paper_id: str, by: int = 1) -> int:
        """Atomically add *by* to the view counter and return the new value."""
