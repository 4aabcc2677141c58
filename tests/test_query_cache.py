from lexsearch.search.base_search import ScoredResult, SearchOptions
from lexsearch.search.query_cache import QueryCache


def make_result(doc_id: str) -> ScoredResult:
    return ScoredResult(document_id=doc_id, relevance_score=0.5)


def test_fifo_eviction_ignores_reads() -> None:
    cache = QueryCache(max_size=2)
    cache.set("A", [make_result("a")])
    cache.set("B", [make_result("b")])
    # Reading A does not protect it: eviction is by insertion order
    assert cache.get("A") is not None
    cache.set("C", [make_result("c")])

    assert set(cache.keys()) == {"B", "C"}
    assert len(cache) == 2
    assert "A" not in cache


def test_never_exceeds_max_size() -> None:
    cache = QueryCache(max_size=3)
    for i in range(10):
        cache.set(f"q{i}", [])
        assert len(cache) <= 3
    assert cache.keys() == ["q7", "q8", "q9"]


def test_hit_and_miss_counters() -> None:
    cache = QueryCache(max_size=5)
    assert cache.get("missing") is None
    cache.set("q", [make_result("a1")])
    assert cache.get("q") == [make_result("a1")]

    stats = cache.stats()
    assert stats["hits"] == 1
    assert stats["misses"] == 1
    assert stats["hit_rate"] == 0.5

    cache.clear()
    assert len(cache) == 0


def test_cached_lists_are_copies() -> None:
    cache = QueryCache()
    results = [make_result("a1")]
    cache.set("q", results)
    results.append(make_result("a2"))

    fetched = cache.get("q")
    assert fetched == [make_result("a1")]
    fetched.clear()
    assert cache.get("q") == [make_result("a1")]


def test_key_covers_result_affecting_options() -> None:
    base = QueryCache.make_key("odmor", SearchOptions())

    assert base == QueryCache.make_key("odmor", SearchOptions())
    assert base != QueryCache.make_key("odmor", SearchOptions(fuzzy_search=False))
    assert base != QueryCache.make_key("odmor", SearchOptions(max_results=5))
    assert base != QueryCache.make_key("odmor", SearchOptions(min_relevance=0.5))
    assert base != QueryCache.make_key("odmor", SearchOptions(categories=["leave"]))
    assert base != QueryCache.make_key("odmor", SearchOptions(languages=["en"]))
    assert base != QueryCache.make_key("odmor", SearchOptions(sort_by="date"))
    assert base != QueryCache.make_key("odmor", SearchOptions(sort_order="asc"))
    assert base != QueryCache.make_key("Odmor", SearchOptions())
    assert base != QueryCache.make_key("odmor", SearchOptions(), generation=2)
    # Category order does not matter
    assert QueryCache.make_key("q", SearchOptions(categories=["a", "b"])) == QueryCache.make_key(
        "q", SearchOptions(categories=["b", "a"])
    )
