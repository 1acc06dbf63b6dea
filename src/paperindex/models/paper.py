"""Paper models: Primary-store record, write payloads and the indexed projection.

``Paper`` is the full record owned by the relational store.  ``PaperDocument``
is the subset of fields mirrored into the search index; its field aliases
(``externalId``, ``issuedAt``, ...) are the attribute names used inside the
index itself.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


def _as_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to naive datetimes (SQLite drops tzinfo on the way back)."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def _unique(values: list[str]) -> list[str]:
    """Drop blanks and duplicates while keeping first-seen order."""
    seen: dict[str, None] = {}
    for v in values:
        v = v.strip()
        if v:
            seen.setdefault(v, None)
    return list(seen)


class Paper(BaseModel):
    """A scholarly paper as stored in the relational store."""

    model_config = ConfigDict(from_attributes=True)

    id: str = Field(description="Primary-store identifier")
    external_id: str = Field(description="Upstream identifier (e.g. arXiv id)")
    title: str = Field(description="Paper title")
    summary: str = Field(default="", description="Original abstract")
    translated_summary: str | None = Field(default=None, description="Translated abstract")
    authors: list[str] = Field(default_factory=list, description="Authors in byline order")
    categories: list[str] = Field(default_factory=list, description="Subject categories")
    hashtags: list[str] = Field(default_factory=list, description="Free-form tags")
    doi: str | None = Field(default=None, description="DOI")
    url: str | None = Field(default=None, description="Landing page URL")
    pdf_url: str | None = Field(default=None, description="PDF URL")
    issued_at: datetime | None = Field(default=None, description="Publication date")
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC), description="Record creation time")
    updated_at: datetime = Field(default_factory=lambda: datetime.now(UTC), description="Last modification time")
    like_count: int = Field(default=0, ge=0, description="Number of likes")
    total_view_count: int = Field(default=0, ge=0, description="Number of views")

    @field_validator("issued_at", "created_at", "updated_at", mode="after")
    @classmethod
    def _normalize_datetime(cls, v: datetime | None) -> datetime | None:
        return _as_utc(v)

    @field_validator("categories", "hashtags", mode="after")
    @classmethod
    def _dedupe(cls, v: list[str]) -> list[str]:
        return _unique(v)


class PaperCreate(BaseModel):
    """Payload for creating a new paper."""

    external_id: str = Field(min_length=1)
    title: str = Field(min_length=1)
    summary: str = ""
    translated_summary: str | None = None
    authors: list[str] = Field(default_factory=list)
    categories: list[str] = Field(default_factory=list)
    hashtags: list[str] = Field(default_factory=list)
    doi: str | None = None
    url: str | None = None
    pdf_url: str | None = None
    issued_at: datetime | None = None
    created_at: datetime | None = None
    like_count: int = Field(default=0, ge=0)
    total_view_count: int = Field(default=0, ge=0)

    @field_validator("issued_at", "created_at", mode="after")
    @classmethod
    def _normalize_datetime(cls, v: datetime | None) -> datetime | None:
        return _as_utc(v)

    @field_validator("categories", "hashtags", mode="after")
    @classmethod
    def _dedupe(cls, v: list[str]) -> list[str]:
        return _unique(v)


_REQUIRED_FIELDS = ("title", "summary", "authors", "categories", "hashtags", "like_count", "total_view_count")


class PaperUpdate(BaseModel):
    """Partial update payload.

    Only the fields explicitly set on the instance are applied; a field that
    was never assigned is left untouched in both the store and the index.
    Assigning ``None`` to a nullable field clears it.
    """

    title: str | None = None
    summary: str | None = None
    translated_summary: str | None = None
    authors: list[str] | None = None
    categories: list[str] | None = None
    hashtags: list[str] | None = None
    doi: str | None = None
    url: str | None = None
    pdf_url: str | None = None
    issued_at: datetime | None = None
    like_count: int | None = Field(default=None, ge=0)
    total_view_count: int | None = Field(default=None, ge=0)

    @field_validator("issued_at", mode="after")
    @classmethod
    def _normalize_datetime(cls, v: datetime | None) -> datetime | None:
        return _as_utc(v)

    @field_validator("categories", "hashtags", mode="after")
    @classmethod
    def _dedupe(cls, v: list[str] | None) -> list[str] | None:
        return None if v is None else _unique(v)

    @model_validator(mode="after")
    def _reject_cleared_required(self) -> PaperUpdate:
        for name in _REQUIRED_FIELDS:
            if name in self.model_fields_set and getattr(self, name) is None:
                raise ValueError(f"{name} cannot be cleared")
        return self

    def changes(self) -> dict[str, Any]:
        """Return the explicitly assigned fields."""
        return self.model_dump(exclude_unset=True)

    def to_document_fields(self) -> dict[str, Any]:
        """Return the explicitly assigned fields that live in the index, keyed by index attribute."""
        fields: dict[str, Any] = {}
        for name, value in self.changes().items():
            info = PaperDocument.model_fields.get(name)
            if info is None:
                continue
            fields[info.alias or name] = value
        return fields


class PaperDocument(BaseModel):
    """The searchable projection of a ``Paper``.

    Serialised with ``by_alias=True`` to obtain the index attribute names.
    """

    model_config = ConfigDict(populate_by_name=True)

    id: str
    external_id: str = Field(alias="externalId")
    title: str
    summary: str = ""
    translated_summary: str | None = Field(default=None, alias="translatedSummary")
    authors: list[str] = Field(default_factory=list)
    categories: list[str] = Field(default_factory=list)
    hashtags: list[str] = Field(default_factory=list)
    doi: str | None = None
    issued_at: datetime | None = Field(default=None, alias="issuedAt")
    created_at: datetime = Field(alias="createdAt")
    like_count: int = Field(default=0, ge=0, alias="likeCount")
    total_view_count: int = Field(default=0, ge=0, alias="totalViewCount")

    @classmethod
    def from_paper(cls, paper: Paper) -> PaperDocument:
        return cls(
            id=paper.id,
            external_id=paper.external_id,
            title=paper.title,
            summary=paper.summary,
            translated_summary=paper.translated_summary,
            authors=list(paper.authors),
            categories=list(paper.categories),
            hashtags=list(paper.hashtags),
            doi=paper.doi,
            issued_at=paper.issued_at,
            created_at=paper.created_at,
            like_count=paper.like_count,
            total_view_count=paper.total_view_count,
        )

    def to_index_fields(self) -> dict[str, Any]:
        """Return the document keyed by index attribute names (datetimes left as objects)."""
        return self.model_dump(by_alias=True)
