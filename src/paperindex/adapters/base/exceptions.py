"""Adapter-specific exceptions."""


class AdapterError(Exception):
    """Base exception for adapter errors."""


class BackendDisabledError(AdapterError):
    """Raised when the search backend is switched off in configuration."""


class ConnectionError(AdapterError):
    """Raised when the adapter cannot connect to the search backend."""


class DocumentNotFoundError(AdapterError):
    """Raised when a requested document does not exist."""


class QueryError(AdapterError):
    """Raised when a search query fails on the backend side."""


class MalformedQueryError(AdapterError):
    """Raised when the backend rejects a filter or sort expression as invalid.

    Unlike ``QueryError`` this signals a programming error, so callers must
    not fall back silently.
    """


class IndexSchemaError(AdapterError):
    """Raised when the index cannot be created or configured."""


class ConfigurationError(AdapterError):
    """Raised when adapter configuration is invalid."""
