"""In-memory search engine facade.

Owns the current ``SearchIndex`` snapshot, the query cache and the search
metrics. Rebuilds are serialized and swap the snapshot in with a single
assignment; searches read the snapshot reference once, so a search that
overlaps a rebuild sees either the old or the new index in full. Cached
results are keyed by the snapshot generation, so results computed on a
replaced index are never served after the swap.
"""

from __future__ import annotations

import threading
import time
from typing import Any, Dict, Iterable, List, Optional, Tuple

import structlog

from lexsearch.analysis.text_analyzer import TextAnalyzer, normalize
from lexsearch.clock import Clock, SystemClock
from lexsearch.config import SearchConfig
from lexsearch.parsers.query_parser import QueryParser
from lexsearch.providers.base_provider import Document, DocumentProvider
from lexsearch.search.base_search import BaseSearch, ScoredResult, SearchOptions
from lexsearch.search.indexer import IndexBuilder, IndexBuildReport, SearchIndex
from lexsearch.search.query_cache import QueryCache
from lexsearch.search.scorer import RelevanceScorer

log = structlog.get_logger(__name__)

MIN_SUGGESTION_PREFIX = 2


class SearchEngine(BaseSearch):
    """Full-text search over a corpus of ``Document`` objects.

    Usage::

        engine = SearchEngine()
        engine.build_index(documents)
        hits = engine.search('"godišnji odmor" +radnik')
    """

    def __init__(
        self,
        config: Optional[SearchConfig] = None,
        *,
        analyzer: Optional[TextAnalyzer] = None,
        clock: Optional[Clock] = None,
    ) -> None:
        self.config = config or SearchConfig()
        self.analyzer = analyzer or TextAnalyzer()
        self.clock = clock or SystemClock()
        self.parser = QueryParser(self.analyzer)
        self.builder = IndexBuilder(self.analyzer)
        self.scorer = RelevanceScorer(self.analyzer, self.clock, fuzzy_timeout=self.config.fuzzy_timeout)
        self.cache = QueryCache(self.config.query_cache_size)

        # (generation, index) swapped as one reference
        self._snapshot: Tuple[int, SearchIndex] = (0, SearchIndex.empty())
        self._rebuild_lock = threading.Lock()
        self._metrics_lock = threading.Lock()
        self._total_searches = 0
        self._total_search_ms = 0.0

    @property
    def index(self) -> SearchIndex:
        return self._snapshot[1]

    @property
    def generation(self) -> int:
        return self._snapshot[0]

    # ----- Indexing -----

    def build_index(self, documents: Iterable[Document]) -> IndexBuildReport:
        """Replace the whole index with one built from ``documents``.

        Documents that fail to index are logged and left out; the call itself
        only fails if the corpus cannot be iterated.
        """
        with self._rebuild_lock:
            index, report = self.builder.build(documents)
            self._snapshot = (self._snapshot[0] + 1, index)
            self.cache.clear()
        return report

    def rebuild_from(self, provider: DocumentProvider) -> IndexBuildReport:
        log.info("Rebuilding index from provider", provider=type(provider).__name__)
        return self.build_index(provider.fetch_documents())

    # ----- Querying -----

    def search(self, query: str, options: Optional[SearchOptions] = None) -> List[ScoredResult]:
        """Run ``query`` and return results ordered per ``options``.

        Never raises: malformed input and internal failures both yield ``[]``.
        """
        options = options or SearchOptions.from_config(self.config)
        started = time.perf_counter()
        try:
            if not isinstance(query, str) or not query.strip():
                return []

            generation, index = self._snapshot
            key = QueryCache.make_key(query, options, generation)
            cached = self.cache.get(key)
            if cached is not None:
                log.debug("Query cache hit", query=query)
                return cached

            parsed = self.parser.parse(query)
            results = self.scorer.rank(index, parsed, options)
            if self._snapshot[0] == generation:
                self.cache.set(key, results)
            log.debug("Search completed", query=query, results=len(results))
            return results
        except Exception as exc:
            log.error("Search failed", query=query, error=str(exc), exc_info=True)
            return []
        finally:
            self._record_search((time.perf_counter() - started) * 1000)

    def search_with_fallback(
        self,
        query: str,
        options: Optional[SearchOptions] = None,
        *,
        minimum_results: Optional[int] = None,
    ) -> List[ScoredResult]:
        """Search, then retry with looser thresholds while too few results come back."""
        minimum = self.config.minimum_desired_results if minimum_results is None else minimum_results
        options = options or SearchOptions.standard()
        results = self.search(query, options)
        for name, profile in (("relaxed", SearchOptions.relaxed()), ("ultra_relaxed", SearchOptions.ultra_relaxed())):
            if len(results) >= minimum:
                break
            log.debug("Too few results, relaxing search", query=query, profile=name, results=len(results))
            results = self.search(query, options.loosened(profile))
        return results

    def get_suggestions(self, prefix: str, max_suggestions: int = 5) -> List[str]:
        if not isinstance(prefix, str):
            return []
        needle = normalize(prefix.strip())
        if len(needle) < MIN_SUGGESTION_PREFIX or max_suggestions <= 0:
            return []

        index = self.index
        suggestions: Dict[str, None] = {}
        for source in (index.terms, index.keywords):
            for candidate in sorted(source):
                if candidate.startswith(needle):
                    suggestions.setdefault(candidate, None)
                    if len(suggestions) >= max_suggestions:
                        return list(suggestions)
        return list(suggestions)

    # ----- Maintenance -----

    def get_stats(self) -> Dict[str, Any]:
        index = self.index
        with self._metrics_lock:
            total = self._total_searches
            average = self._total_search_ms / total if total else 0.0
        return {
            "document_count": len(index.documents),
            "term_count": len(index.terms),
            "trigram_count": len(index.trigrams),
            "phrase_count": len(index.phrases),
            "cache_hit_rate": self.cache.hit_rate,
            "average_search_time_ms": average,
            "total_searches": total,
        }

    def clear_cache(self) -> None:
        self.cache.clear()

    def _record_search(self, elapsed_ms: float) -> None:
        with self._metrics_lock:
            self._total_searches += 1
            self._total_search_ms += elapsed_ms
