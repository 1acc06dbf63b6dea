"""Relational paper store: The authoritative copy of every paper."""

from paperindex.store.base import PaperStore
from paperindex.store.database import Database
from paperindex.store.exceptions import PaperNotFoundError, StoreError
from paperindex.store.sql import SqlPaperStore

__all__ = ["Database", "PaperNotFoundError", "PaperStore", "SqlPaperStore", "StoreError"]
