"""Domain models shared by the store, the search backends and the repository."""

from paperindex.models.index import IndexDescriptor, IndexStatus, ReindexReport, TypoTolerance
from paperindex.models.paper import Paper, PaperCreate, PaperDocument, PaperUpdate
from paperindex.models.query import PaginatedPapers, PaperQuery, PaperSortBy, SearchHits, SortOrder

__all__ = [
    "IndexDescriptor",
    "IndexStatus",
    "PaginatedPapers",
    "Paper",
    "PaperCreate",
    "PaperDocument",
    "PaperQuery",
    "PaperSortBy",
    "PaperUpdate",
    "ReindexReport",
    "SearchHits",
    "SortOrder",
    "TypoTolerance",
]
