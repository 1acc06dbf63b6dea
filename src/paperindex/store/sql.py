"""SQLAlchemy implementation of the paper store.

Every public method runs in its own session and commits before returning,
so the search index is only ever synchronised with committed data.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import ColumnElement, Select, and_, func, or_, select, update

from paperindex.models.paper import Paper, PaperCreate, PaperUpdate
from paperindex.models.query import PaperQuery, SortOrder
from paperindex.store.base import PaperStore
from paperindex.store.database import Database
from paperindex.store.exceptions import PaperNotFoundError
from paperindex.store.models import PaperAuthorRow, PaperCategoryRow, PaperRow

logger = logging.getLogger(__name__)

_LIST_SETTERS = {
    "authors": PaperRow.set_authors,
    "categories": PaperRow.set_categories,
    "hashtags": PaperRow.set_hashtags,
}


def _like_pattern(text: str) -> str:
    escaped = text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def build_conditions(query: PaperQuery) -> list[ColumnElement[bool]]:
    """Translate the filters of *query* into WHERE clauses."""
    conditions: list[ColumnElement[bool]] = []

    if query.categories:
        conditions.append(
            PaperRow.id.in_(select(PaperCategoryRow.paper_id).where(PaperCategoryRow.name.in_(query.categories)))
        )
    if query.authors:
        conditions.append(
            PaperRow.id.in_(select(PaperAuthorRow.paper_id).where(PaperAuthorRow.name.in_(query.authors)))
        )

    year_range = query.year_range()
    if year_range:
        start, end = year_range
        conditions.append(PaperRow.issued_at >= start)
        conditions.append(PaperRow.issued_at < end)

    if query.search_query:
        pattern = _like_pattern(query.search_query)
        conditions.append(
            or_(
                PaperRow.title.ilike(pattern, escape="\\"),
                PaperRow.summary.ilike(pattern, escape="\\"),
                PaperRow.id.in_(
                    select(PaperAuthorRow.paper_id).where(PaperAuthorRow.name.ilike(pattern, escape="\\"))
                ),
            )
        )
    return conditions


class SqlPaperStore(PaperStore):
    """``PaperStore`` over an async SQLAlchemy engine (PostgreSQL or SQLite)."""

    def __init__(self, database: Database) -> None:
        self._db = database

    # ── Reads ────────────────────────────────────────────────────────────

    async def find_many_by_ids(self, ids: list[str]) -> list[Paper]:
        if not ids:
            return []
        async with self._db.sessionmaker() as session:
            rows = await session.scalars(select(PaperRow).where(PaperRow.id.in_(ids)))
            return [row.to_model() for row in rows]

    def _ordered(self, stmt: Select[Any], query: PaperQuery) -> Select[Any]:
        column = getattr(PaperRow, query.sort_by.column)
        order = column.asc() if query.sort_order == SortOrder.ASC else column.desc()
        return stmt.order_by(order.nulls_last(), PaperRow.id.asc())

    async def find_many(self, query: PaperQuery) -> list[Paper]:
        stmt = select(PaperRow).where(*build_conditions(query))
        stmt = self._ordered(stmt, query).offset(query.offset).limit(query.limit)
        async with self._db.sessionmaker() as session:
            rows = await session.scalars(stmt)
            return [row.to_model() for row in rows]

    async def count(self, query: PaperQuery) -> int:
        stmt = select(func.count()).select_from(PaperRow).where(*build_conditions(query))
        async with self._db.sessionmaker() as session:
            return int(await session.scalar(stmt) or 0)

    async def iter_batches(self, batch_size: int) -> AsyncIterator[list[Paper]]:
        # Keyset pagination on (created_at, id) stays stable under concurrent inserts.
        last: tuple[datetime, str] | None = None
        while True:
            stmt = select(PaperRow).order_by(PaperRow.created_at.asc(), PaperRow.id.asc()).limit(batch_size)
            if last is not None:
                created_at, paper_id = last
                stmt = stmt.where(
                    or_(
                        PaperRow.created_at > created_at,
                        and_(PaperRow.created_at == created_at, PaperRow.id > paper_id),
                    )
                )
            async with self._db.sessionmaker() as session:
                rows = list(await session.scalars(stmt))
            if not rows:
                return
            last = (rows[-1].created_at, rows[-1].id)
            yield [row.to_model() for row in rows]
            if len(rows) < batch_size:
                return

    async def get(self, paper_id: str) -> Paper:
        async with self._db.sessionmaker() as session:
            row = await session.get(PaperRow, paper_id)
            if row is None:
                raise PaperNotFoundError(paper_id)
            return row.to_model()

    # ── Writes ───────────────────────────────────────────────────────────

    async def create(self, data: PaperCreate) -> Paper:
        now = datetime.now(UTC)
        values = data.model_dump(exclude={"authors", "categories", "hashtags"})
        values["created_at"] = values["created_at"] or now
        row = PaperRow(**values, updated_at=now)
        row.set_authors(data.authors)
        row.set_categories(data.categories)
        row.set_hashtags(data.hashtags)

        async with self._db.sessionmaker.begin() as session:
            session.add(row)
        logger.debug("Created paper %s (%s)", row.id, row.external_id)
        return row.to_model()

    async def update(self, paper_id: str, changes: PaperUpdate) -> Paper:
        async with self._db.sessionmaker.begin() as session:
            row = await session.get(PaperRow, paper_id)
            if row is None:
                raise PaperNotFoundError(paper_id)
            for name, value in changes.changes().items():
                setter = _LIST_SETTERS.get(name)
                if setter is not None:
                    setter(row, value)
                else:
                    setattr(row, name, value)
            row.updated_at = datetime.now(UTC)
        return row.to_model()

    async def delete(self, paper_id: str) -> None:
        async with self._db.sessionmaker.begin() as session:
            row = await session.get(PaperRow, paper_id)
            if row is None:
                raise PaperNotFoundError(paper_id)
            await session.delete(row)

    async def increment_view_count(self, paper_id: str, by: int = 1) -> int:
        async with self._db.sessionmaker.begin() as session:
            result = await session.execute(
                update(PaperRow)
                .where(PaperRow.id == paper_id)
                .values(total_view_count=PaperRow.total_view_count + by)
            )
            if result.rowcount == 0:
                raise PaperNotFoundError(paper_id)
            count = await session.scalar(select(PaperRow.total_view_count).where(PaperRow.id == paper_id))
        return int(count or 0)
