"""paperindex: Full-text search indexing and hydrated listing for scholarly papers."""

__version__ = "0.1.0"
