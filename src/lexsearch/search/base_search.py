"""Abstract search interface for indexing and querying documents.

Defines the result and option types plus the minimal surface a search
backend exposes, so hosts and tests can depend on the contract rather than on
``SearchEngine`` itself.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any, Dict, Iterable, List, Literal, Optional, Tuple, get_args

from lexsearch.config import SearchConfig
from lexsearch.providers.base_provider import Document

SortKey = Literal["relevance", "date", "title"]
SortOrder = Literal["asc", "desc"]


@dataclass(frozen=True, slots=True)
class ScoredResult:
    """Represents a single search hit."""

    document_id: str
    relevance_score: float
    matched_terms: Tuple[str, ...] = ()
    title: str = ""
    category: str = ""
    last_modified: Optional[datetime] = None
    snippet: Optional[str] = None


@dataclass(frozen=True, slots=True)
class SearchOptions:
    """Per-call search options.

    Invalid values raise ``ValueError`` on construction.

    The named constructors mirror the profiles the host UI uses: ``standard``
    for typed queries, ``relaxed`` and ``ultra_relaxed`` when too few results
    come back, and ``auto_search`` for search-as-you-type previews.
    """

    fuzzy_search: bool = True
    max_results: int = 50
    min_relevance: float = 0.1
    fuzzy_threshold: float = 0.7
    categories: Optional[Tuple[str, ...]] = None
    languages: Optional[Tuple[str, ...]] = None
    sort_by: SortKey = "relevance"
    sort_order: SortOrder = "desc"

    def __post_init__(self) -> None:
        # Accept lists from callers but keep the options hashable
        if self.categories is not None:
            object.__setattr__(self, "categories", tuple(self.categories))
        if self.languages is not None:
            object.__setattr__(self, "languages", tuple(self.languages))
        if self.max_results < 0:
            raise ValueError(f"max_results must be >= 0, got {self.max_results}")
        for name in ("min_relevance", "fuzzy_threshold"):
            value = getattr(self, name)
            if not 0.0 <= value <= 1.0:
                raise ValueError(f"{name} must be between 0 and 1, got {value}")
        if self.sort_by not in get_args(SortKey):
            raise ValueError(f"unknown sort_by {self.sort_by!r}")
        if self.sort_order not in get_args(SortOrder):
            raise ValueError(f"unknown sort_order {self.sort_order!r}")

    @classmethod
    def from_config(cls, config: SearchConfig, **overrides: Any) -> "SearchOptions":
        return cls(
            fuzzy_search=config.fuzzy_search,
            max_results=config.max_results,
            min_relevance=config.min_relevance,
            fuzzy_threshold=config.fuzzy_threshold,
            **overrides,
        )

    @classmethod
    def standard(cls, **overrides: Any) -> "SearchOptions":
        return cls(**{"max_results": 25, "min_relevance": 0.0001, "fuzzy_threshold": 0.5, **overrides})

    @classmethod
    def relaxed(cls, **overrides: Any) -> "SearchOptions":
        return cls(**{"max_results": 35, "min_relevance": 0.00001, "fuzzy_threshold": 0.4, **overrides})

    @classmethod
    def ultra_relaxed(cls, **overrides: Any) -> "SearchOptions":
        return cls(**{"max_results": 45, "min_relevance": 0.000001, "fuzzy_threshold": 0.4, **overrides})

    @classmethod
    def auto_search(cls, **overrides: Any) -> "SearchOptions":
        return cls(**{"max_results": 8, "min_relevance": 0.1, "fuzzy_threshold": 0.5, **overrides})

    def loosened(self, profile: "SearchOptions") -> "SearchOptions":
        """Take the thresholds of ``profile`` but keep this call's filters and sort."""
        return replace(
            self,
            fuzzy_search=True,
            max_results=max(self.max_results, profile.max_results),
            min_relevance=min(self.min_relevance, profile.min_relevance),
            fuzzy_threshold=min(self.fuzzy_threshold, profile.fuzzy_threshold),
        )


class BaseSearch(ABC):
    """Abstract interface for search index implementations."""

    @abstractmethod
    def build_index(self, documents: Iterable[Document]) -> Any:
        """Index (or fully reindex) a corpus."""

    @abstractmethod
    def search(self, query: str, options: Optional[SearchOptions] = None) -> List[ScoredResult]:
        """Execute a search query and return ranked results."""
        raise NotImplementedError

    @abstractmethod
    def get_suggestions(self, prefix: str, max_suggestions: int = 5) -> List[str]:
        """Return indexed terms and keywords starting with ``prefix``."""

    @abstractmethod
    def get_stats(self) -> Dict[str, Any]:
        """Return index and query statistics."""
