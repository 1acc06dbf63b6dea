"""Base backend interface: Abstract classes for search engine connectors."""

from paperindex.adapters.base.adapter import AdapterHealth, SearchBackend
from paperindex.adapters.base.registry import AdapterRegistry

__all__ = ["AdapterHealth", "AdapterRegistry", "SearchBackend"]
