"""OpenSearch backend."""

from paperindex.adapters.opensearch.adapter import OpenSearchAdapter

__all__ = ["OpenSearchAdapter"]
