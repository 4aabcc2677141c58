"""Bounded cache of search results keyed by query and options."""

from __future__ import annotations

import json
import threading
from typing import Dict, List, Optional, Union

import structlog
from cachetools import FIFOCache

from lexsearch.search.base_search import ScoredResult, SearchOptions

log = structlog.get_logger(__name__)


class QueryCache:
    """First-in, first-out result cache.

    When full, inserting evicts the entry that was inserted earliest no matter
    how recently it was read.
    """

    def __init__(self, max_size: int = 100) -> None:
        self.max_size = max_size
        self._cache: FIFOCache[str, List[ScoredResult]] = FIFOCache(maxsize=max_size)
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0
        self.log = log.bind(cache_type="QueryCache", max_size=max_size)

    @staticmethod
    def make_key(query: str, options: SearchOptions, generation: int = 0) -> str:
        """Deterministic key over the query and every option that changes the result.

        ``generation`` identifies the index snapshot the results were computed
        on, so results from a replaced index can never answer a later query.
        """
        return json.dumps(
            {
                "generation": generation,
                "query": query,
                "fuzzy_search": options.fuzzy_search,
                "fuzzy_threshold": options.fuzzy_threshold,
                "max_results": options.max_results,
                "min_relevance": options.min_relevance,
                "categories": sorted(options.categories) if options.categories is not None else None,
                "languages": sorted(options.languages) if options.languages is not None else None,
                "sort_by": options.sort_by,
                "sort_order": options.sort_order,
            },
            sort_keys=True,
            ensure_ascii=False,
        )

    def get(self, key: str) -> Optional[List[ScoredResult]]:
        with self._lock:
            cached = self._cache.get(key)
            if cached is None:
                self.misses += 1
                return None
            self.hits += 1
            return list(cached)

    def set(self, key: str, results: List[ScoredResult]) -> None:
        with self._lock:
            self._cache[key] = list(results)

    def clear(self) -> None:
        with self._lock:
            self._cache.clear()
        self.log.debug("Query cache cleared")

    def keys(self) -> List[str]:
        with self._lock:
            return list(self._cache.keys())

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        return self.hits / total if total else 0.0

    def stats(self) -> Dict[str, Union[int, float]]:
        return {
            "size": len(self),
            "max_size": self.max_size,
            "hits": self.hits,
            "misses": self.misses,
            "hit_rate": self.hit_rate,
        }

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._cache

    def __len__(self) -> int:
        with self._lock:
            return len(self._cache)
