"""ORM models for the paper tables.

List-valued attributes (authors, categories, hashtags) live in side tables
keyed by ``paper_id`` and ``position`` so that "any of" filters are plain
sub-selects on every supported database.
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime

from sqlalchemy import DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from paperindex.models.paper import Paper


def generate_id() -> str:
    return uuid.uuid4().hex


def utcnow() -> datetime:
    return datetime.now(UTC)


class Base(DeclarativeBase):
    """Declarative base for the paper store."""


class PaperRow(Base):
    """Paper record. Table: papers."""

    __tablename__ = "papers"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=generate_id)
    external_id: Mapped[str] = mapped_column(String(255), nullable=False, unique=True, index=True)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    summary: Mapped[str] = mapped_column(Text, nullable=False, default="")
    translated_summary: Mapped[str | None] = mapped_column(Text, nullable=True)
    doi: Mapped[str | None] = mapped_column(String(255), nullable=True)
    url: Mapped[str | None] = mapped_column(String(2048), nullable=True)
    pdf_url: Mapped[str | None] = mapped_column(String(2048), nullable=True)
    issued_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow, index=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    like_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_view_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    author_rows: Mapped[list[PaperAuthorRow]] = relationship(
        order_by="PaperAuthorRow.position", cascade="all, delete-orphan", lazy="selectin"
    )
    category_rows: Mapped[list[PaperCategoryRow]] = relationship(
        order_by="PaperCategoryRow.position", cascade="all, delete-orphan", lazy="selectin"
    )
    hashtag_rows: Mapped[list[PaperHashtagRow]] = relationship(
        order_by="PaperHashtagRow.position", cascade="all, delete-orphan", lazy="selectin"
    )

    def set_authors(self, names: list[str]) -> None:
        self.author_rows = [PaperAuthorRow(position=i, name=n) for i, n in enumerate(names)]

    def set_categories(self, names: list[str]) -> None:
        self.category_rows = [PaperCategoryRow(position=i, name=n) for i, n in enumerate(names)]

    def set_hashtags(self, names: list[str]) -> None:
        self.hashtag_rows = [PaperHashtagRow(position=i, name=n) for i, n in enumerate(names)]

    def to_model(self) -> Paper:
        return Paper(
            id=self.id,
            external_id=self.external_id,
            title=self.title,
            summary=self.summary,
            translated_summary=self.translated_summary,
            authors=[a.name for a in self.author_rows],
            categories=[c.name for c in self.category_rows],
            hashtags=[h.name for h in self.hashtag_rows],
            doi=self.doi,
            url=self.url,
            pdf_url=self.pdf_url,
            issued_at=self.issued_at,
            created_at=self.created_at,
            updated_at=self.updated_at,
            like_count=self.like_count,
            total_view_count=self.total_view_count,
        )


class PaperAuthorRow(Base):
    """Author of a paper in byline order. Table: paper_authors."""

    __tablename__ = "paper_authors"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    paper_id: Mapped[str] = mapped_column(ForeignKey("papers.id", ondelete="CASCADE"), nullable=False, index=True)
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    name: Mapped[str] = mapped_column(String(512), nullable=False, index=True)


class PaperCategoryRow(Base):
    """Subject category of a paper. Table: paper_categories."""

    __tablename__ = "paper_categories"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    paper_id: Mapped[str] = mapped_column(ForeignKey("papers.id", ondelete="CASCADE"), nullable=False, index=True)
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)


class PaperHashtagRow(Base):
    """Hashtag of a paper. Table: paper_hashtags."""

    __tablename__ = "paper_hashtags"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    paper_id: Mapped[str] = mapped_column(ForeignKey("papers.id", ondelete="CASCADE"), nullable=False, index=True)
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
