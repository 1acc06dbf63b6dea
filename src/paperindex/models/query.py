"""Query and pagination models for paper listings."""

from __future__ import annotations

import math
from datetime import UTC, datetime
from enum import Enum
from typing import Literal

from pydantic import BaseModel, Field, computed_field, field_validator

from paperindex.models.paper import Paper


class PaperSortBy(str, Enum):
    """Sortable fields.  Values are the index attribute names."""

    CREATED_AT = "createdAt"
    ISSUED_AT = "issuedAt"
    LIKE_COUNT = "likeCount"
    VIEW_COUNT = "totalViewCount"

    @property
    def column(self) -> str:
        """Attribute name on ``Paper`` / the store row."""
        return _SORT_COLUMNS[self]


_SORT_COLUMNS = {
    PaperSortBy.CREATED_AT: "created_at",
    PaperSortBy.ISSUED_AT: "issued_at",
    PaperSortBy.LIKE_COUNT: "like_count",
    PaperSortBy.VIEW_COUNT: "total_view_count",
}


class SortOrder(str, Enum):
    ASC = "asc"
    DESC = "desc"


class PaperQuery(BaseModel):
    """A filtered, sorted, paginated paper listing request.

    Multiple values inside ``categories`` or ``authors`` are OR-combined;
    the different filters are AND-combined.  ``year`` selects the half-open
    range ``[year-01-01, (year+1)-01-01)`` on the publication date.
    """

    search_query: str | None = Field(default=None, max_length=500, description="Free-text search term")
    categories: list[str] = Field(default_factory=list, description="Category filter (any of)")
    authors: list[str] = Field(default_factory=list, description="Author filter (any of)")
    year: int | None = Field(default=None, ge=1, le=9998, description="Publication year filter")
    sort_by: PaperSortBy = Field(default=PaperSortBy.CREATED_AT, description="Sort field")
    sort_order: SortOrder = Field(default=SortOrder.DESC, description="Sort direction")
    page: int = Field(default=1, ge=1, description="1-based page number")
    limit: int = Field(default=20, ge=1, le=1000, description="Page size")

    @field_validator("search_query", mode="after")
    @classmethod
    def _strip_query(cls, v: str | None) -> str | None:
        if v is None:
            return None
        v = v.strip()
        return v or None

    @field_validator("categories", "authors", mode="after")
    @classmethod
    def _strip_values(cls, v: list[str]) -> list[str]:
        return list(dict.fromkeys(s.strip() for s in v if s.strip()))

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit

    @property
    def has_text(self) -> bool:
        return self.search_query is not None

    def year_range(self) -> tuple[datetime, datetime] | None:
        """Return the ``[start, end)`` bounds for the year filter."""
        if self.year is None:
            return None
        return (
            datetime(self.year, 1, 1, tzinfo=UTC),
            datetime(self.year + 1, 1, 1, tzinfo=UTC),
        )


class SearchHits(BaseModel):
    """Ordered identifiers returned by a search backend."""

    ids: list[str] = Field(default_factory=list, description="Paper ids in backend order")
    total: int = Field(default=0, ge=0, description="Backend total-hit estimate")


class PaginatedPapers(BaseModel):
    """One page of hydrated papers.

    ``total`` is exact when ``source == "database"`` and an estimate when the
    page was served by the search backend.
    """

    papers: list[Paper] = Field(default_factory=list)
    total: int = Field(default=0, ge=0)
    page: int = Field(ge=1)
    limit: int = Field(ge=1)
    source: Literal["search", "database"] = Field(default="database", description="Which path served the page")

    @computed_field  # type: ignore[prop-decorator]
    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.limit)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def exact_total(self) -> bool:
        return self.source == "database"
