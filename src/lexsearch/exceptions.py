"""Custom exception hierarchy for lexsearch.

These exceptions allow callers to discriminate error categories
and handle them appropriately while preserving the original context.
"""

from __future__ import annotations


class LexSearchError(Exception):
    """Base class for all lexsearch exceptions."""


class ConfigError(LexSearchError):
    """Raised when configuration loading or validation fails."""


class IndexingError(LexSearchError):
    """Raised when a document cannot be indexed."""


class SearchError(LexSearchError):
    """Raised for query parsing and scoring issues."""


class SearchTimeoutError(SearchError):
    """Raised when a bounded search step runs past its deadline."""


class StorageError(LexSearchError):
    """Raised when a storage tier encounters an error (DB, memory quota, etc.)."""


class QuotaExceededError(StorageError):
    """Raised by a durable store when a write would exceed its byte quota."""


class CacheIntegrityError(StorageError):
    """Raised when a cached payload fails its checksum or cannot be decoded."""
