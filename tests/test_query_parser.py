import pytest

from lexsearch.parsers.query_parser import QueryParser, wildcard_to_regex


def test_parse_extracts_every_token_kind_once() -> None:
    parsed = QueryParser().parse('"Godišnji odmor" +radnik -otkaz plać* category:leave AND ugovor')

    assert parsed.phrases == ["godisnji odmor"]
    assert parsed.required == ["radnik"]
    assert parsed.excluded == ["otkaz"]
    assert parsed.operators == ["AND"]
    assert parsed.wildcards == ["plac*"]
    assert parsed.filters == {"category": "leave"}
    assert parsed.terms == ["ugovor"]
    assert parsed.scoring_tokens() == ["ugovor", "godisnji odmor", "radnik", "plac*"]


def test_hyphenated_words_are_not_exclusions() -> None:
    parsed = QueryParser().parse("full-time rad")
    assert parsed.excluded == []
    assert parsed.terms == ["full", "time", "rad"]


def test_operators_are_recognized_case_insensitively_and_removed() -> None:
    parsed = QueryParser().parse("odmor or ugovor NOT otkaz")
    assert parsed.operators == ["OR", "NOT"]
    assert parsed.terms == ["odmor", "ugovor", "otkaz"]


@pytest.mark.parametrize("query", ["", "   ", None])
def test_empty_queries_parse_to_empty(query: object) -> None:
    parsed = QueryParser().parse(query)  # type: ignore[arg-type]
    assert parsed.is_empty
    assert parsed.scoring_tokens() == []


def test_lone_star_is_not_a_wildcard() -> None:
    parsed = QueryParser().parse("* odmor")
    assert parsed.wildcards == []
    assert parsed.terms == ["odmor"]


def test_duplicates_are_collapsed() -> None:
    parsed = QueryParser().parse("+odmor +Odmor -otkaz -otkaz")
    assert parsed.required == ["odmor"]
    assert parsed.excluded == ["otkaz"]


def test_wildcard_regex_is_anchored_and_normalized() -> None:
    regex = wildcard_to_regex("Odm*")
    assert regex.match("odmor")
    assert regex.match("odmorr")
    assert not regex.match("godmor")

    inner = wildcard_to_regex("pla*a")
    assert inner.match("placa")
    assert not inner.match("placanje")
