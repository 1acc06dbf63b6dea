"""MeiliSearch backend."""

from paperindex.adapters.meilisearch.adapter import MeiliSearchAdapter

__all__ = ["MeiliSearchAdapter"]
