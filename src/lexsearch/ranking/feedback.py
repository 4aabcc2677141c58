"""Re-ranking of search results from accumulated user feedback.

Each positive signal ("this document answered my query for keyword K") raises
a per-(keyword, document) score and a per-document aggregate, both capped.
Scores decay geometrically with age, applied lazily when state is loaded.
State is persisted through a ``DurableStore`` with every call bounded by
``durable_timeout``; the store is written outside the ranker lock, so a slow
store delays only the writing call.
"""

from __future__ import annotations

import functools
import re
import threading
from concurrent.futures import Future
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

import structlog
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from lexsearch.cache.codec import checksum
from lexsearch.clock import SECONDS_PER_DAY, Clock, SystemClock
from lexsearch.config import FeedbackConfig
from lexsearch.exceptions import StorageError
from lexsearch.search.base_search import ScoredResult
from lexsearch.storage.durable import DurableExecutor, DurableRecord, DurableStore

log = structlog.get_logger(__name__)

STATE_KEY = "lexsearch:feedback"
DECAY_PERIOD_DAYS = 7
TIE_TOLERANCE = 5.0
MULTI_MATCH_BONUS = 5.0
AGGREGATE_WEIGHT = 0.1
MAX_KEYWORD_LENGTH = 50

# Query words that carry no ranking signal (English, Croatian, Spanish)
FEEDBACK_STOPWORDS = frozenset(
    [
        "the", "and", "or", "but", "in", "on", "at", "to", "for", "of", "with", "by",
        "od", "do", "za", "na", "je", "se", "da", "su", "ili", "ako", "kad",
        "el", "la", "de", "en", "es", "un", "una", "con", "por", "para", "que",
    ]
)

_NON_WORD = re.compile(r"\W")
_DIGITS = re.compile(r"\d+")


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class FeedbackRecord(_CamelModel):
    """Feedback for one (keyword, document) pair."""

    score: float = 0.0
    count: int = 0
    last_updated: float = Field(default=0.0, alias="lastUpdated")


class DocumentFeedback(_CamelModel):
    total_score: float = Field(default=0.0, alias="totalScore")
    keyword_hits: Dict[str, int] = Field(default_factory=dict, alias="keywordHits")


class FeedbackState(_CamelModel):
    """Persisted ranking state; serialized with camelCase keys."""

    keywords: Dict[str, Dict[str, FeedbackRecord]] = Field(default_factory=dict)
    documents: Dict[str, DocumentFeedback] = Field(default_factory=dict)
    last_cleanup: float = Field(default=0.0, alias="lastCleanup")


@dataclass(frozen=True, slots=True)
class RankedResult:
    result: ScoredResult
    feedback_score: float
    is_recommended: bool

    @property
    def document_id(self) -> str:
        return self.result.document_id


def normalize_keyword(keyword: str) -> str:
    return _NON_WORD.sub("", keyword.lower().strip())[:MAX_KEYWORD_LENGTH]


def extract_keywords(query: str) -> List[str]:
    """Words of ``query`` worth looking up: longer than two characters and not stopwords."""
    if not query:
        return []
    words = [w for w in query.lower().split() if len(w) > 2 and w not in FEEDBACK_STOPWORDS]
    return [cleaned for cleaned in (_NON_WORD.sub("", w) for w in words) if cleaned]


def _document_number(document_id: str) -> int:
    match = _DIGITS.search(document_id)
    return int(match.group()) if match else 0


class FeedbackRanker:
    """Tracks which documents users found helpful for which keywords."""

    def __init__(
        self,
        config: Optional[FeedbackConfig] = None,
        *,
        store: Optional[DurableStore] = None,
        clock: Optional[Clock] = None,
    ) -> None:
        self.config = config or FeedbackConfig()
        self.store = store
        self.clock = clock or SystemClock()
        self._lock = threading.Lock()
        self._executor: Optional[DurableExecutor] = None
        if store is not None:
            self._executor = DurableExecutor(self.config.durable_timeout, name="lexsearch-feedback")
        self.state = self._load()

    # ----- Recording -----

    def record_positive_feedback(self, keyword: str, document_id: str, boost: Optional[float] = None) -> None:
        boost = self.config.default_boost if boost is None else boost
        normalized = normalize_keyword(keyword)
        if not normalized or not document_id:
            log.debug("Ignoring feedback without keyword or document", keyword=keyword, document_id=document_id)
            return

        now = self.clock.now()
        cap = self.config.max_score
        with self._lock:
            record = self.state.keywords.setdefault(normalized, {}).setdefault(
                document_id, FeedbackRecord(last_updated=now)
            )
            record.score = min(cap, record.score + boost)
            record.count += 1
            record.last_updated = now

            document = self.state.documents.setdefault(document_id, DocumentFeedback())
            document.total_score = min(cap, document.total_score + boost)
            document.keyword_hits[normalized] = document.keyword_hits.get(normalized, 0) + 1
            score = record.score
            pending = self._submit_save()
        self._wait_for_save(pending)

        log.info("Positive feedback recorded", keyword=normalized, document_id=document_id, score=score)

    # ----- Ranking -----

    def get_ranking_score(self, document_id: str, query: str) -> float:
        """Feedback score of ``document_id`` for ``query``, between 0 and ``max_score``.

        Averages the document's score over the query keywords it has feedback
        for, with 10% of its aggregate score folded into that average, plus a
        flat bonus when more than one keyword matched.
        """
        with self._lock:
            total = 0.0
            matches = 0
            for keyword in extract_keywords(query):
                record = self.state.keywords.get(normalize_keyword(keyword), {}).get(document_id)
                if record is not None:
                    total += record.score
                    matches += 1
            document = self.state.documents.get(document_id)
            if document is not None:
                total += document.total_score * AGGREGATE_WEIGHT

        average = total / matches if matches else 0.0
        bonus = matches * MULTI_MATCH_BONUS if matches > 1 else 0.0
        return min(self.config.max_score, average + bonus)

    def rank_results(self, results: Sequence[ScoredResult], query: str) -> List[RankedResult]:
        ranked = [
            RankedResult(
                result=result,
                feedback_score=score,
                is_recommended=score > self.config.recommend_threshold,
            )
            for result, score in ((r, self.get_ranking_score(r.document_id, query)) for r in results)
        ]
        return sorted(ranked, key=functools.cmp_to_key(_compare))

    # ----- Maintenance -----

    def get_statistics(self) -> Dict[str, Any]:
        with self._lock:
            keyword_count = len(self.state.keywords)
            document_count = len(self.state.documents)
            total_feedback = sum(r.count for docs in self.state.keywords.values() for r in docs.values())
        return {
            "keyword_count": keyword_count,
            "document_count": document_count,
            "total_feedback": total_feedback,
            "avg_feedback_per_document": total_feedback / document_count if document_count else 0.0,
        }

    def clear(self) -> None:
        with self._lock:
            self.state = FeedbackState(last_cleanup=self.clock.now())
            pending = self._submit_save()
        self._wait_for_save(pending)

    def close(self) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=False)

    def apply_time_decay(self, state: FeedbackState) -> bool:
        """Decay every score if more than a week passed since the last cleanup.

        Returns True when scores were decayed.
        """
        now = self.clock.now()
        days = (now - state.last_cleanup) / SECONDS_PER_DAY
        if days <= DECAY_PERIOD_DAYS:
            return False
        multiplier = self.config.decay_factor ** (days / DECAY_PERIOD_DAYS)
        for documents in state.keywords.values():
            for record in documents.values():
                record.score *= multiplier
        for document in state.documents.values():
            document.total_score *= multiplier
        state.last_cleanup = now
        log.info("Applied feedback time decay", days=round(days, 1), multiplier=round(multiplier, 4))
        return True

    # ----- Persistence -----

    def _load(self) -> FeedbackState:
        fresh = FeedbackState(last_cleanup=self.clock.now())
        if self.store is None or self._executor is None:
            return fresh
        try:
            record = self._executor.call(self.store.get, STATE_KEY)
            if record is None:
                return fresh
            state = FeedbackState.model_validate_json(record.payload)
        except (StorageError, ValidationError) as exc:
            log.warning("Could not load feedback rankings, starting empty", error=str(exc))
            return fresh
        if self.apply_time_decay(state):
            self.state = state
            self._wait_for_save(self._submit_save())
        return state

    def _submit_save(self) -> Optional["Future[None]"]:
        """Queue a write of the current state; call with ``_lock`` held."""
        if self.store is None or self._executor is None:
            return None
        now = self.clock.now()
        payload = self.state.model_dump_json(by_alias=True)
        record = DurableRecord(
            key=STATE_KEY,
            payload=payload,
            created_at=now,
            last_accessed=now,
            checksum=checksum(payload),
        )
        try:
            return self._executor.submit(self.store.set, record)
        except StorageError as exc:
            log.warning("Could not save feedback rankings", error=str(exc))
            return None

    def _wait_for_save(self, pending: Optional["Future[None]"]) -> None:
        if pending is None or self._executor is None:
            return
        try:
            self._executor.result(pending)
        except StorageError as exc:
            log.warning("Could not save feedback rankings", error=str(exc))


def _compare(a: RankedResult, b: RankedResult) -> int:
    difference = b.feedback_score - a.feedback_score
    if abs(difference) > TIE_TOLERANCE:
        return 1 if difference > 0 else -1
    if a.result.relevance_score != b.result.relevance_score:
        return 1 if b.result.relevance_score > a.result.relevance_score else -1
    a_number = _document_number(a.document_id)
    b_number = _document_number(b.document_id)
    if a_number != b_number:
        return -1 if a_number < b_number else 1
    return (a.document_id > b.document_id) - (a.document_id < b.document_id)
