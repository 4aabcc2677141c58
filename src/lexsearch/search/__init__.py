"""Indexing, scoring and the ``SearchEngine`` facade.

Hosts normally only need ``SearchEngine`` and ``SearchOptions``; the builder
and scorer are exported for callers that manage index snapshots themselves.
"""

from .base_search import BaseSearch, ScoredResult, SearchOptions
from .engine import SearchEngine
from .indexer import IndexBuilder, IndexBuildReport, SearchIndex
from .query_cache import QueryCache
from .scorer import RelevanceScorer

__all__ = [
    "BaseSearch",
    "ScoredResult",
    "SearchOptions",
    "SearchEngine",
    "IndexBuilder",
    "IndexBuildReport",
    "SearchIndex",
    "QueryCache",
    "RelevanceScorer",
]
