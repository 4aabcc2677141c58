"""Candidate resolution and field-weighted TF-IDF relevance scoring.

``RelevanceScorer.rank`` runs the whole retrieval pipeline against one
``SearchIndex`` snapshot:

1. every plain, required, phrase and wildcard token resolves to a clause
   holding its candidate documents
2. the clauses are unioned, with a trigram fallback for plain terms when
   nothing matched and fuzzy search is on
3. excluded terms, categories and languages narrow the pool
4. each survivor is scored, normalized to 0..1, boosted and filtered
5. results are sorted and truncated
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, List, Optional, Set

import structlog

from lexsearch.analysis.text_analyzer import TextAnalyzer, normalize
from lexsearch.clock import SECONDS_PER_DAY, Clock, Deadline, SystemClock
from lexsearch.exceptions import SearchTimeoutError
from lexsearch.parsers.query_parser import ParsedQuery, wildcard_to_regex
from lexsearch.search.base_search import ScoredResult, SearchOptions
from lexsearch.search.indexer import DocumentInfo, SearchIndex

log = structlog.get_logger(__name__)

REQUIRED_WEIGHT = 2.0
PHRASE_WEIGHT = 1.5
WILDCARD_WEIGHT = 1.3
TERM_WEIGHT = 1.0

TITLE_BONUS = 0.3
KEYWORD_BONUS = 0.2
MAX_FREQUENCY_BONUS = 0.2

SNIPPET_LENGTH = 200
SNIPPET_CONTEXT = 50

# Check the fuzzy deadline every this many vocabulary terms
_DEADLINE_STRIDE = 256


@dataclass(slots=True)
class Clause:
    """One query token resolved against the index.

    ``term_factors`` maps the indexed terms that stand in for the token to a
    multiplier. Phrases average over their words (``mode="mean"``); wildcard
    and fuzzy clauses take the best-scoring term the document contains
    (``mode="max"``).
    """

    token: str
    kind: str
    weight: float
    doc_ids: FrozenSet[str]
    term_factors: Dict[str, float] = field(default_factory=dict)
    mode: str = "mean"


class RelevanceScorer:
    """Scores and orders documents of a ``SearchIndex`` for a parsed query."""

    def __init__(
        self,
        analyzer: Optional[TextAnalyzer] = None,
        clock: Optional[Clock] = None,
        *,
        fuzzy_timeout: Optional[float] = 2.0,
    ) -> None:
        self.analyzer = analyzer or TextAnalyzer()
        self.clock = clock or SystemClock()
        self.fuzzy_timeout = fuzzy_timeout

    def rank(self, index: SearchIndex, parsed: ParsedQuery, options: SearchOptions) -> List[ScoredResult]:
        if parsed.is_empty or not index.documents:
            return []

        clauses = self._resolve_clauses(index, parsed)
        if clauses is None:
            # A required token matched nothing
            return []

        pool: Set[str] = set()
        for clause in clauses:
            pool |= clause.doc_ids

        if not pool and options.fuzzy_search and parsed.terms:
            clauses = [c for c in clauses if c.kind != "term"]
            clauses.extend(self._fuzzy_clauses(index, parsed.terms, options.fuzzy_threshold))
            for clause in clauses:
                pool |= clause.doc_ids

        for token in parsed.excluded:
            pool -= self._term_documents(index, token)

        categories = self._requested_categories(parsed, options)
        if categories:
            allowed: Set[str] = set()
            for category in categories:
                allowed |= index.lookup(index.categories, category)
            pool &= allowed

        languages = self._requested_languages(parsed, options)
        if languages:
            pool = {doc_id for doc_id in pool if doc_id in index.documents and index.documents[doc_id].languages & languages}

        if not pool:
            return []

        max_possible = sum(c.weight for c in clauses)
        now = self.clock.now()
        results: List[ScoredResult] = []
        for doc_id in sorted(pool):
            info = index.documents.get(doc_id)
            if info is None:
                log.warning("Candidate has no document metadata, skipping", document_id=doc_id)
                continue
            total = 0.0
            matched: List[str] = []
            for clause in clauses:
                if doc_id not in clause.doc_ids:
                    continue
                total += self._clause_score(index, info, clause) * clause.weight
                matched.append(clause.token)

            normalized = total / max_possible if max_possible > 0 else 0.0
            score = normalized * self._document_bonus(index, info, categories) * self._recency_bonus(info, now)
            score = max(0.0, min(1.0, score))
            if score < options.min_relevance:
                continue
            results.append(
                ScoredResult(
                    document_id=doc_id,
                    relevance_score=score,
                    matched_terms=tuple(matched),
                    title=info.title,
                    category=info.category,
                    last_modified=info.last_modified,
                    snippet=make_snippet(info.body, matched),
                )
            )

        return sort_results(results, options)[: options.max_results]

    # ----- Candidate resolution -----

    def _resolve_clauses(self, index: SearchIndex, parsed: ParsedQuery) -> Optional[List[Clause]]:
        clauses: List[Clause] = []
        for token in parsed.terms:
            clauses.append(Clause(token, "term", TERM_WEIGHT, self._term_documents(index, token), {token: 1.0}))

        for phrase in parsed.phrases:
            words = self.analyzer.tokenize(phrase)
            clauses.append(
                Clause(phrase, "phrase", PHRASE_WEIGHT, index.lookup(index.phrases, phrase), {w: 1.0 for w in words})
            )

        for token in parsed.required:
            doc_ids = self._term_documents(index, token)
            if not doc_ids:
                log.debug("Required term has no matches", term=token)
                return None
            clauses.append(Clause(token, "required", REQUIRED_WEIGHT, doc_ids, {token: 1.0}))

        for pattern in parsed.wildcards:
            regex = wildcard_to_regex(pattern)
            matching = [term for term in index.terms if regex.match(term)]
            found: Set[str] = set()
            for term in matching:
                found |= index.terms[term]
            clauses.append(
                Clause(pattern, "wildcard", WILDCARD_WEIGHT, frozenset(found), dict.fromkeys(matching, 1.0), "max")
            )
        return clauses

    @staticmethod
    def _term_documents(index: SearchIndex, token: str) -> FrozenSet[str]:
        return (
            index.lookup(index.terms, token)
            | index.lookup(index.keywords, token)
            | index.lookup(index.titles, token)
        )

    def _fuzzy_clauses(self, index: SearchIndex, terms: List[str], threshold: float) -> List[Clause]:
        deadline = Deadline(self.clock, self.fuzzy_timeout)
        clauses: List[Clause] = []
        for token in terms:
            query_trigrams = self.analyzer.trigrams(token)
            doc_ids: Set[str] = set()
            for trigram in query_trigrams:
                doc_ids |= index.lookup(index.trigrams, trigram)

            similar: Dict[str, float] = {}
            try:
                for position, term in enumerate(index.terms):
                    if position % _DEADLINE_STRIDE == 0:
                        deadline.check("fuzzy term scan")
                    term_trigrams = self.analyzer.trigrams(term)
                    union = query_trigrams | term_trigrams
                    sim = len(query_trigrams & term_trigrams) / len(union) if union else 0.0
                    if sim > 0:
                        similar[term] = sim
            except SearchTimeoutError:
                log.warning("Fuzzy search timed out, using partial matches", term=token, scanned=len(similar))

            for term, sim in similar.items():
                if sim >= threshold:
                    doc_ids |= index.terms[term]
            log.debug("Fuzzy fallback", term=token, candidates=len(doc_ids), similar_terms=len(similar))
            clauses.append(Clause(token, "fuzzy", TERM_WEIGHT, frozenset(doc_ids), similar, "max"))
        return clauses

    @staticmethod
    def _requested_categories(parsed: ParsedQuery, options: SearchOptions) -> Set[str]:
        categories = set(options.categories or ())
        if "category" in parsed.filters:
            categories.add(parsed.filters["category"])
        return categories

    @staticmethod
    def _requested_languages(parsed: ParsedQuery, options: SearchOptions) -> FrozenSet[str]:
        languages = set(options.languages or ())
        for name in ("lang", "language"):
            if name in parsed.filters:
                languages.add(parsed.filters[name].lower())
        return frozenset(languages)

    # ----- Scoring -----

    def _clause_score(self, index: SearchIndex, info: DocumentInfo, clause: Clause) -> float:
        values = [
            self._term_score(index, info, term) * factor
            for term, factor in clause.term_factors.items()
            if term in info.term_weights
        ]
        if not values:
            return 0.0
        if clause.mode == "max":
            return max(values)
        return sum(values) / len(clause.term_factors)

    @staticmethod
    def _term_score(index: SearchIndex, info: DocumentInfo, term: str) -> float:
        stats = index.stats
        tf = info.term_weights.get(term, 0.0)
        df = stats.document_frequency.get(term, 0)

        tfidf = 0.0
        if info.body_length > 0 and df > 0 and stats.total_documents > 0:
            tfidf = (tf / info.body_length) * math.log(stats.total_documents / df)

        position_bonus = 0.0
        if info.id in index.lookup(index.titles, term):
            position_bonus += TITLE_BONUS
        if info.id in index.lookup(index.keywords, term):
            position_bonus += KEYWORD_BONUS

        frequency_bonus = 0.0
        if stats.average_term_frequency > 0:
            corpus_tf = stats.term_frequency.get(term, 0.0)
            frequency_bonus = min(MAX_FREQUENCY_BONUS, corpus_tf / stats.average_term_frequency * 0.1)

        return tfidf + position_bonus + frequency_bonus

    @staticmethod
    def _document_bonus(index: SearchIndex, info: DocumentInfo, categories: Set[str]) -> float:
        bonus = 1.0
        average = index.stats.average_document_length
        if average > 0 and 0.5 * average <= info.body_length <= 2.0 * average:
            bonus += 0.1
        if categories and info.category in categories:
            bonus += 0.2
        return bonus

    @staticmethod
    def _recency_bonus(info: DocumentInfo, now: float) -> float:
        if info.last_modified is None:
            return 1.0
        age_days = (now - info.last_modified.timestamp()) / SECONDS_PER_DAY
        if age_days < 30:
            return 1.1
        if age_days < 90:
            return 1.05
        return 1.0


def sort_results(results: List[ScoredResult], options: SearchOptions) -> List[ScoredResult]:
    """Order results by ``options.sort_by``; ties keep document id order."""
    ordered = sorted(results, key=lambda r: r.document_id)
    reverse = options.sort_order == "desc"
    if options.sort_by == "date":
        ordered.sort(key=_date_key, reverse=reverse)
    elif options.sort_by == "title":
        ordered.sort(key=lambda r: r.title.casefold(), reverse=reverse)
    else:
        ordered.sort(key=lambda r: r.relevance_score, reverse=reverse)
    return ordered


def _date_key(result: ScoredResult) -> float:
    if result.last_modified is None:
        return float("-inf")
    return result.last_modified.timestamp()


def make_snippet(body: str, matched_terms: List[str]) -> Optional[str]:
    """Cut up to 200 characters of ``body`` around the first matched term."""
    if not body:
        return None
    folded = normalize(body)
    position = 0
    # Folding can change the length of exotic characters; only trust offsets when it did not
    if len(folded) == len(body):
        for term in matched_terms:
            needle = term.split("*")[0]
            found = folded.find(needle) if needle else -1
            if found >= 0:
                position = found
                break
    start = max(0, position - SNIPPET_CONTEXT)
    end = min(len(body), start + SNIPPET_LENGTH)
    snippet = body[start:end].strip()
    if start > 0:
        snippet = "..." + snippet
    if end < len(body):
        snippet = snippet + "..."
    return snippet

