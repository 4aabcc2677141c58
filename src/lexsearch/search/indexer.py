"""Inverted index construction.

``IndexBuilder.build`` always produces a brand-new ``SearchIndex``; nothing
here mutates an index that a reader may already hold. The engine swaps the
new snapshot in with a single assignment once the build has finished.
"""

from __future__ import annotations

import time
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, FrozenSet, Iterable, Iterator, List, Mapping, Optional, Set, Tuple

import structlog

from lexsearch.analysis.text_analyzer import TextAnalyzer, normalize_phrase
from lexsearch.exceptions import IndexingError
from lexsearch.providers.base_provider import Document

log = structlog.get_logger(__name__)

PostingList = Mapping[str, FrozenSet[str]]

# Field name -> weight applied to every token found in that field
TITLE_WEIGHT = 3.0
KEYWORD_WEIGHT = 2.0
TRANSLATED_TITLE_WEIGHT = 2.5
TRANSLATED_KEYWORD_WEIGHT = 1.8
BODY_WEIGHT = 1.0
TRANSLATED_BODY_WEIGHT = 0.8
FAQ_QUESTION_WEIGHT = 1.5
FAQ_ANSWER_WEIGHT = 1.2
EXAMPLE_WEIGHT = 1.3


@dataclass(frozen=True, slots=True)
class DocumentInfo:
    """What the scorer needs to know about one indexed document."""

    id: str
    title: str
    category: str
    keywords: Tuple[str, ...]
    languages: FrozenSet[str]
    last_modified: Optional[datetime]
    body: str
    body_length: int
    term_weights: Mapping[str, float]


@dataclass(frozen=True, slots=True)
class CorpusStats:
    total_documents: int = 0
    average_document_length: float = 0.0
    document_frequency: Mapping[str, int] = field(default_factory=dict)
    term_frequency: Mapping[str, float] = field(default_factory=dict)
    average_term_frequency: float = 0.0


@dataclass(frozen=True, slots=True)
class SearchIndex:
    """An immutable snapshot of every posting list plus corpus statistics."""

    terms: PostingList = field(default_factory=dict)
    titles: PostingList = field(default_factory=dict)
    bodies: PostingList = field(default_factory=dict)
    keywords: PostingList = field(default_factory=dict)
    trigrams: PostingList = field(default_factory=dict)
    phrases: PostingList = field(default_factory=dict)
    categories: PostingList = field(default_factory=dict)
    documents: Mapping[str, DocumentInfo] = field(default_factory=dict)
    stats: CorpusStats = field(default_factory=CorpusStats)

    @classmethod
    def empty(cls) -> "SearchIndex":
        return cls()

    def lookup(self, posting: PostingList, key: str) -> FrozenSet[str]:
        return posting.get(key, frozenset())


@dataclass(slots=True)
class IndexBuildReport:
    """Summary of one ``IndexBuilder.build`` run."""

    indexed: int = 0
    skipped: List[str] = field(default_factory=list)
    duration_ms: float = 0.0


@dataclass(slots=True)
class _DocumentPostings:
    """Postings contributed by a single document, merged only if indexing succeeded."""

    info: DocumentInfo
    terms: Set[str] = field(default_factory=set)
    titles: Set[str] = field(default_factory=set)
    bodies: Set[str] = field(default_factory=set)
    keywords: Set[str] = field(default_factory=set)
    trigrams: Set[str] = field(default_factory=set)
    phrases: Set[str] = field(default_factory=set)


def weighted_fields(doc: Document) -> Iterator[Tuple[str, str, float]]:
    """Yield ``(field, text, weight)`` for every searchable piece of a document."""
    yield "title", doc.title, TITLE_WEIGHT
    yield "body", doc.body, BODY_WEIGHT
    for keyword in doc.keywords:
        yield "keyword", keyword, KEYWORD_WEIGHT
    for lang, translation in doc.translations.items():
        yield f"title_{lang}", translation.title, TRANSLATED_TITLE_WEIGHT
        yield f"body_{lang}", translation.body, TRANSLATED_BODY_WEIGHT
        for keyword in translation.keywords:
            yield f"keyword_{lang}", keyword, TRANSLATED_KEYWORD_WEIGHT
    for faq in doc.faqs:
        yield "faq_question", faq.question, FAQ_QUESTION_WEIGHT
        yield "faq_answer", faq.answer, FAQ_ANSWER_WEIGHT
    for example in doc.examples:
        yield "example", example.scenario, EXAMPLE_WEIGHT
        yield "example", example.outcome, EXAMPLE_WEIGHT


class IndexBuilder:
    """Builds ``SearchIndex`` snapshots from documents."""

    def __init__(self, analyzer: Optional[TextAnalyzer] = None, *, base_language: str = "hr") -> None:
        self.analyzer = analyzer or TextAnalyzer()
        self.base_language = base_language

    def build(self, documents: Iterable[Document]) -> Tuple[SearchIndex, IndexBuildReport]:
        started = time.perf_counter()
        report = IndexBuildReport()

        postings: Dict[str, Dict[str, Set[str]]] = {
            name: defaultdict(set)
            for name in ("terms", "titles", "bodies", "keywords", "trigrams", "phrases", "categories")
        }
        infos: Dict[str, DocumentInfo] = {}
        term_frequency: Dict[str, float] = defaultdict(float)
        document_sets: Dict[str, Set[str]] = defaultdict(set)

        for doc in documents:
            doc_id = getattr(doc, "id", None)
            try:
                contributed = self._index_document(doc)
                if contributed.info.id in infos:
                    raise IndexingError(f"duplicate document id {contributed.info.id!r}")
            except Exception as exc:  # one bad document must not sink the corpus
                log.warning("Skipping document that failed to index", document_id=doc_id, error=str(exc), exc_info=True)
                report.skipped.append(str(doc_id))
                continue

            info = contributed.info
            infos[info.id] = info
            for name in ("terms", "titles", "bodies", "keywords", "trigrams", "phrases"):
                for key in getattr(contributed, name):
                    postings[name][key].add(info.id)
            postings["categories"][info.category].add(info.id)
            for term, weight in info.term_weights.items():
                term_frequency[term] += weight
                document_sets[term].add(info.id)
            report.indexed += 1

        stats = self._corpus_stats(infos, term_frequency, document_sets)
        index = SearchIndex(
            **{name: {key: frozenset(ids) for key, ids in posting.items()} for name, posting in postings.items()},
            documents=infos,
            stats=stats,
        )
        report.duration_ms = (time.perf_counter() - started) * 1000
        log.info(
            "Search index built",
            documents=report.indexed,
            skipped=len(report.skipped),
            terms=len(index.terms),
            trigrams=len(index.trigrams),
            duration_ms=round(report.duration_ms, 2),
        )
        return index, report

    def _index_document(self, doc: Document) -> _DocumentPostings:
        if not isinstance(doc.id, str) or not doc.id:
            raise IndexingError("document id must be a non-empty string")
        if not isinstance(doc.title, str) or not isinstance(doc.body, str):
            raise IndexingError(f"document {doc.id!r} has a non-text title or body")

        term_weights: Dict[str, float] = defaultdict(float)
        terms: Set[str] = set()
        titles: Set[str] = set()
        bodies: Set[str] = set()
        keywords: Set[str] = set()
        trigrams: Set[str] = set()
        phrases: Set[str] = set()

        for field_name, text, weight in weighted_fields(doc):
            if not text:
                continue
            tokens = self.analyzer.tokenize(text)
            for token in tokens:
                terms.add(token)
                term_weights[token] += weight
            if field_name == "title":
                titles.update(tokens)
            elif field_name == "body":
                bodies.update(tokens)
            elif field_name.startswith("keyword"):
                keywords.add(normalize_phrase(text))
                keywords.update(tokens)
            trigrams.update(self.analyzer.trigrams(text))
            phrases.update(self.analyzer.extract_phrases(text))

        info = DocumentInfo(
            id=doc.id,
            title=doc.title,
            category=doc.category or "",
            keywords=tuple(doc.keywords),
            languages=frozenset({self.base_language, *doc.translations}),
            last_modified=doc.last_modified,
            body=doc.body,
            body_length=len(doc.body),
            term_weights=dict(term_weights),
        )
        return _DocumentPostings(
            info=info,
            terms=terms,
            titles=titles,
            bodies=bodies,
            keywords=keywords,
            trigrams=trigrams,
            phrases=phrases,
        )

    @staticmethod
    def _corpus_stats(
        infos: Mapping[str, DocumentInfo],
        term_frequency: Mapping[str, float],
        document_sets: Mapping[str, Set[str]],
    ) -> CorpusStats:
        total = len(infos)
        average_length = sum(i.body_length for i in infos.values()) / total if total else 0.0
        average_tf = sum(term_frequency.values()) / len(term_frequency) if term_frequency else 0.0
        return CorpusStats(
            total_documents=total,
            average_document_length=average_length,
            document_frequency={term: len(ids) for term, ids in document_sets.items()},
            term_frequency=dict(term_frequency),
            average_term_frequency=average_tf,
        )
