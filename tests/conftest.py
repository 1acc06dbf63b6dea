"""Shared test fixtures and configuration."""

from __future__ import annotations

from collections.abc import AsyncIterator, Awaitable, Callable
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any

import pytest

from paperindex.adapters.base.adapter import AdapterHealth, SearchBackend
from paperindex.adapters.base.exceptions import ConnectionError, DocumentNotFoundError, QueryError
from paperindex.adapters.base.index_config import build_paper_index
from paperindex.config.settings import Settings
from paperindex.models.index import IndexStatus
from paperindex.models.paper import Paper, PaperCreate, PaperDocument
from paperindex.models.query import PaperQuery, SearchHits, SortOrder
from paperindex.store.database import Database
from paperindex.store.sql import SqlPaperStore

BASE_TIME = datetime(2024, 1, 1, tzinfo=UTC)


class InMemoryBackend(SearchBackend):
    """Dict-backed ``SearchBackend`` used to exercise the shared backend policies.

    Searches apply the same filters as the store; text queries match a
    case-insensitive substring of the title, the summary or an author and
    keep insertion order.
    """

    def __init__(self, index: str = "test-papers", enabled: bool = True, fail_connect: bool = False, **kwargs: Any):
        super().__init__(build_paper_index(index), enabled=enabled)
        self.fail_connect = fail_connect
        self.connected = False
        self.exists = False
        self.documents: dict[str, dict[str, Any]] = {}
        self.settings_applied = 0
        self.upsert_calls = 0
        self.fail_on: set[str] = set()
        self.search_error: Exception | None = None
        self.search_result: SearchHits | None = None
        self.last_query: PaperQuery | None = None

    @property
    def name(self) -> str:
        return "memory"

    @property
    def is_connected(self) -> bool:
        return self.connected

    async def initialize(self) -> None:
        if not self._enabled:
            return
        if self.fail_connect:
            raise ConnectionError("memory backend refused connection")
        self.connected = True

    async def shutdown(self) -> None:
        self.connected = False

    async def health_check(self) -> AdapterHealth:
        return AdapterHealth(status="healthy" if self.connected else "unhealthy")

    async def _index_exists(self) -> bool:
        return self.exists

    async def _create_index(self) -> None:
        self.exists = True
        self.settings_applied += 1

    async def _apply_settings(self) -> None:
        self.settings_applied += 1

    async def _delete_index(self) -> None:
        self.exists = False
        self.documents.clear()

    async def _upsert(self, document: PaperDocument) -> None:
        self.upsert_calls += 1
        if document.id in self.fail_on:
            raise QueryError(f"refused {document.id}")
        self.documents[document.id] = document.to_index_fields()

    async def _partial_update(self, paper_id: str, fields: dict[str, Any]) -> None:
        if paper_id not in self.documents:
            raise DocumentNotFoundError(paper_id)
        self.documents[paper_id].update(fields)

    async def _delete(self, paper_id: str) -> None:
        if self.documents.pop(paper_id, None) is None:
            raise DocumentNotFoundError(paper_id)

    def _matches(self, doc: dict[str, Any], query: PaperQuery) -> bool:
        if query.categories and not set(query.categories) & set(doc["categories"]):
            return False
        if query.authors and not set(query.authors) & set(doc["authors"]):
            return False
        year_range = query.year_range()
        if year_range and not (doc["issuedAt"] and year_range[0] <= doc["issuedAt"] < year_range[1]):
            return False
        if query.search_query:
            needle = query.search_query.lower()
            haystack = [doc["title"], doc["summary"], *doc["authors"]]
            return any(needle in value.lower() for value in haystack)
        return True

    async def _execute_search(self, query: PaperQuery) -> SearchHits:
        self.last_query = query
        if self.search_error is not None:
            raise self.search_error
        if self.search_result is not None:
            return self.search_result

        matched = [doc for doc in self.documents.values() if self._matches(doc, query)]
        if not query.has_text:
            field = query.sort_by.value
            present = [d for d in matched if d[field] is not None]
            missing = [d for d in matched if d[field] is None]
            present.sort(key=lambda d: d["id"])
            present.sort(key=lambda d: d[field], reverse=query.sort_order == SortOrder.DESC)
            matched = present + sorted(missing, key=lambda d: d["id"])
        page = matched[query.offset : query.offset + query.limit]
        return SearchHits(ids=[d["id"] for d in page], total=len(matched))

    async def _index_status(self) -> IndexStatus:
        return IndexStatus(
            enabled=True,
            backend=self.name,
            index_name=self.index_name,
            index_exists=self.exists,
            document_count=len(self.documents),
            settings={"rankingRules": list(self.descriptor.ranking_rules)} if self.exists else None,
        )


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    """Create a test Settings instance backed by a throwaway SQLite file."""
    return Settings(
        _env_file=None,  # type: ignore[call-arg]
        database={"url": f"sqlite+aiosqlite:///{tmp_path / 'papers.db'}"},
    )


@pytest.fixture
async def database(settings: Settings) -> AsyncIterator[Database]:
    db = Database.from_settings(settings.database)
    await db.startup()
    yield db
    await db.shutdown()


@pytest.fixture
def store(database: Database) -> SqlPaperStore:
    return SqlPaperStore(database)


@pytest.fixture
async def backend() -> AsyncIterator[InMemoryBackend]:
    b = InMemoryBackend()
    await b.initialize()
    yield b
    await b.shutdown()


def make_paper_create(n: int, **overrides: Any) -> PaperCreate:
    """Build a distinct paper payload; record *n* is created *n* hours after ``BASE_TIME``."""
    values: dict[str, Any] = {
        "external_id": f"arxiv:{n:04d}",
        "title": f"Paper number {n}",
        "summary": f"Abstract of paper {n}.",
        "authors": [f"Author {n}"],
        "categories": ["cs.AI"],
        "issued_at": BASE_TIME + timedelta(days=n),
        "created_at": BASE_TIME + timedelta(hours=n),
    }
    values.update(overrides)
    return PaperCreate(**values)


@pytest.fixture
def create_papers(store: SqlPaperStore) -> Callable[..., Awaitable[list[Paper]]]:
    """Return a coroutine function that persists payloads and returns the stored papers."""

    async def _create(*payloads: PaperCreate) -> list[Paper]:
        return [await store.create(p) for p in payloads]

    return _create


@pytest.fixture
def make_paper() -> Callable[..., PaperCreate]:
    return make_paper_create


@pytest.fixture
def backend_factory() -> type[InMemoryBackend]:
    return InMemoryBackend
