"""Index models: Schema descriptor, status probe and reindex report."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


class TypoTolerance(BaseModel):
    """Typo tolerance policy applied to searchable attributes."""

    enabled: bool = True
    one_typo_min_word_size: int = Field(default=3, ge=1, description="Shortest word allowed one typo")
    two_typos_min_word_size: int = Field(default=6, ge=1, description="Shortest word allowed two typos")
    disable_on_words: list[str] = Field(default_factory=list)
    disable_on_attributes: list[str] = Field(default_factory=list)


class IndexDescriptor(BaseModel):
    """Complete, backend-neutral description of the paper index.

    ``searchable_attributes`` is in priority order, most important first.
    Each backend translates the descriptor into its own settings payload.
    """

    model_config = {"frozen": True}

    name: str = Field(description="Index name / UID")
    primary_key: str = Field(default="id")
    searchable_attributes: tuple[str, ...]
    displayed_attributes: tuple[str, ...]
    filterable_attributes: frozenset[str]
    sortable_attributes: frozenset[str]
    ranking_rules: tuple[str, ...]
    typo_tolerance: TypoTolerance = Field(default_factory=TypoTolerance)
    stop_words: tuple[str, ...] = ()
    separator_tokens: tuple[str, ...] = ()
    non_separator_tokens: tuple[str, ...] = ()


class IndexStatus(BaseModel):
    """Operational snapshot of the search index."""

    enabled: bool = Field(description="Backend enabled in configuration and connected")
    backend: str = Field(description="Backend name")
    index_name: str
    index_exists: bool = False
    document_count: int = 0
    settings: dict[str, Any] | None = Field(default=None, description="Settings / mappings reported by the backend")


class ReindexReport(BaseModel):
    """Outcome of a full reindex."""

    total: int = 0
    indexed: int = 0
    failed: int = 0
    batches: int = 0
    failed_ids: list[str] = Field(default_factory=list)
