import json
import time
from typing import Optional

import pytest

from lexsearch.cache.tiered_cache import TieredCache
from lexsearch.clock import SECONDS_PER_DAY, ManualClock
from lexsearch.config import CacheConfig, FeedbackConfig
from lexsearch.ranking.feedback import (
    STATE_KEY,
    FeedbackRanker,
    extract_keywords,
    normalize_keyword,
)
from lexsearch.search.base_search import ScoredResult
from lexsearch.storage.durable import DurableRecord, InMemoryDurableStore

# ---------- Helpers ----------


class SlowStore(InMemoryDurableStore):
    def __init__(self, delay: float) -> None:
        super().__init__()
        self.delay = delay

    def get(self, key: str) -> Optional[DurableRecord]:
        time.sleep(self.delay)
        return super().get(key)

    def set(self, record: DurableRecord) -> None:
        time.sleep(self.delay)
        super().set(record)


def make_ranker(clock: ManualClock, store: Optional[InMemoryDurableStore] = None) -> FeedbackRanker:
    return FeedbackRanker(FeedbackConfig(), store=store, clock=clock)


def result(doc_id: str, relevance: float) -> ScoredResult:
    return ScoredResult(document_id=doc_id, relevance_score=relevance)


# ---------- Recording ----------


def test_feedback_accumulates_per_keyword_and_document() -> None:
    ranker = make_ranker(ManualClock(0.0))
    ranker.record_positive_feedback("odmor", "a1", 10)
    ranker.record_positive_feedback("odmor", "a1", 10)

    record = ranker.state.keywords["odmor"]["a1"]
    assert record.score == 20
    assert record.count == 2
    assert ranker.state.documents["a1"].total_score == 20
    assert ranker.state.documents["a1"].keyword_hits == {"odmor": 2}


def test_scores_are_capped() -> None:
    ranker = make_ranker(ManualClock(0.0))
    for _ in range(150):
        ranker.record_positive_feedback("odmor", "a1", 10)

    assert ranker.state.keywords["odmor"]["a1"].score == 1000
    assert ranker.state.documents["a1"].total_score == 1000
    assert ranker.get_ranking_score("a1", "odmor") == 1000


def test_default_boost_and_keyword_normalization() -> None:
    ranker = make_ranker(ManualClock(0.0))
    ranker.record_positive_feedback("  Odmor!! ", "a1")
    ranker.record_positive_feedback("!!!", "a1")

    assert list(ranker.state.keywords) == ["odmor"]
    assert ranker.state.keywords["odmor"]["a1"].score == 10


def test_normalize_keyword_caps_length() -> None:
    assert normalize_keyword("a" * 80) == "a" * 50
    assert normalize_keyword(" Plaća? ") == "plaća"


def test_extract_keywords_drops_short_words_and_stopwords() -> None:
    assert extract_keywords("The pravo na Godišnji odmor, za radnika") == ["pravo", "godišnji", "odmor", "radnika"]
    assert extract_keywords("") == []


# ---------- Scoring and ranking ----------


def test_ranking_score_single_and_multiple_matches() -> None:
    ranker = make_ranker(ManualClock(0.0))
    ranker.record_positive_feedback("odmor", "a1", 10)
    ranker.record_positive_feedback("odmor", "a1", 10)

    # keyword score 20 plus 10% of the aggregate 20
    assert ranker.get_ranking_score("a1", "godišnji odmor") == pytest.approx(22)

    ranker.record_positive_feedback("otkaz", "a1", 10)
    # (20 + 10 + 10% of 30) / 2 matches, plus 5 per match
    assert ranker.get_ranking_score("a1", "odmor otkaz") == pytest.approx(26.5)

    assert ranker.get_ranking_score("a1", "plaća") == 0
    assert ranker.get_ranking_score("unknown", "odmor") == 0


def test_rank_results_orders_by_feedback_then_relevance_then_number() -> None:
    ranker = make_ranker(ManualClock(0.0))
    for _ in range(6):
        ranker.record_positive_feedback("odmor", "a1", 10)
    ranker.record_positive_feedback("odmor", "a2", 3)

    ranked = ranker.rank_results(
        [result("a10", 0.5), result("a1", 0.2), result("a2", 0.9), result("a3", 0.5)],
        "odmor",
    )

    assert [r.document_id for r in ranked] == ["a1", "a2", "a3", "a10"]
    assert ranked[0].is_recommended
    assert ranked[0].feedback_score == pytest.approx(66)
    assert not any(r.is_recommended for r in ranked[1:])
    assert ranked[0].result.relevance_score == 0.2


def test_rank_results_without_feedback_keeps_relevance_order() -> None:
    ranker = make_ranker(ManualClock(0.0))
    ranked = ranker.rank_results([result("a2", 0.1), result("a1", 0.8)], "odmor")
    assert [r.document_id for r in ranked] == ["a1", "a2"]


# ---------- Persistence and decay ----------


def test_state_is_persisted_in_camel_case() -> None:
    store = InMemoryDurableStore()
    ranker = make_ranker(ManualClock(0.0), store)
    ranker.record_positive_feedback("odmor", "a1", 10)

    record = store.get(STATE_KEY)
    assert record is not None
    data = json.loads(record.payload)
    assert set(data) == {"keywords", "documents", "lastCleanup"}
    assert data["keywords"]["odmor"]["a1"] == {"score": 10.0, "count": 1, "lastUpdated": 0.0}
    assert data["documents"]["a1"] == {"totalScore": 10.0, "keywordHits": {"odmor": 1}}

    reloaded = make_ranker(ManualClock(0.0), store)
    assert reloaded.get_ranking_score("a1", "odmor") == ranker.get_ranking_score("a1", "odmor")


def test_decay_is_applied_lazily_on_load() -> None:
    store = InMemoryDurableStore()
    clock = ManualClock(0.0)
    ranker = make_ranker(clock, store)
    for _ in range(10):
        ranker.record_positive_feedback("odmor", "a1", 10)

    clock.advance(5 * SECONDS_PER_DAY)
    assert make_ranker(clock, store).state.keywords["odmor"]["a1"].score == 100

    clock.set(14 * SECONDS_PER_DAY)
    decayed = make_ranker(clock, store)
    assert decayed.state.keywords["odmor"]["a1"].score == 100 * 0.95**2
    assert decayed.state.documents["a1"].total_score == 100 * 0.95**2
    assert decayed.state.last_cleanup == clock.now()

    # The decayed state was saved, so loading again at the same time changes nothing
    again = make_ranker(clock, store)
    assert again.state.keywords["odmor"]["a1"].score == 100 * 0.95**2


def test_corrupt_state_starts_empty() -> None:
    store = InMemoryDurableStore()
    store.set(DurableRecord(key=STATE_KEY, payload="not json", created_at=0.0, last_accessed=0.0))

    ranker = make_ranker(ManualClock(0.0), store)
    assert ranker.state.keywords == {}
    ranker.record_positive_feedback("odmor", "a1")
    assert json.loads(store.get(STATE_KEY).payload)["keywords"]["odmor"]["a1"]["score"] == 10


def test_statistics_and_clear() -> None:
    store = InMemoryDurableStore()
    ranker = make_ranker(ManualClock(0.0), store)
    ranker.record_positive_feedback("odmor", "a1")
    ranker.record_positive_feedback("odmor", "a2")
    ranker.record_positive_feedback("otkaz", "a2")

    assert ranker.get_statistics() == {
        "keyword_count": 2,
        "document_count": 2,
        "total_feedback": 3,
        "avg_feedback_per_document": 1.5,
    }

    ranker.clear()
    assert ranker.get_statistics()["total_feedback"] == 0
    assert json.loads(store.get(STATE_KEY).payload)["keywords"] == {}


def test_slow_store_does_not_block_feedback() -> None:
    store = SlowStore(delay=0.5)
    config = FeedbackConfig(durable_timeout=0.05)

    started = time.perf_counter()
    ranker = FeedbackRanker(config, store=store, clock=ManualClock(0.0))
    ranker.record_positive_feedback("odmor", "a1")
    score = ranker.get_ranking_score("a1", "odmor")
    elapsed = time.perf_counter() - started

    assert elapsed < 0.4
    assert score == pytest.approx(11)
    ranker.close()


def test_feedback_survives_cache_clear_on_its_own_store() -> None:
    clock = ManualClock(0.0)
    feedback_store = InMemoryDurableStore()
    cache_store = InMemoryDurableStore(max_bytes=120)
    ranker = make_ranker(clock, feedback_store)
    ranker.record_positive_feedback("odmor", "a1")
    cache = TieredCache(CacheConfig(), durable=cache_store, clock=clock)

    cache.set("k1", "x" * 100, persistent=True)
    cache.set("k2", "y" * 100, persistent=True)
    cache.clear()
    cache.close()

    assert make_ranker(clock, feedback_store).get_ranking_score("a1", "odmor") == pytest.approx(11)
