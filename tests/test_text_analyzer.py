import pytest

from lexsearch.analysis.text_analyzer import (
    TextAnalyzer,
    fold_diacritics,
    normalize,
    normalize_phrase,
    stem,
)

# ---------- Normalization ----------


def test_fold_diacritics_maps_croatian_letters() -> None:
    assert fold_diacritics("čćđšž ČĆĐŠŽ") == "ccdsz CCDSZ"


def test_normalize_lowercases_and_folds() -> None:
    assert normalize("Godišnji ODMOR") == "godisnji odmor"


def test_normalize_phrase_strips_edge_punctuation() -> None:
    assert normalize_phrase('  "Godišnji   odmor," ') == "godisnji odmor"


# ---------- Tokenize ----------


def test_tokenize_drops_stopwords_short_tokens_and_duplicates() -> None:
    analyzer = TextAnalyzer()
    tokens = analyzer.tokenize("Radnik ima pravo na godišnji odmor, a radnik i poslodavac x")
    assert tokens == ["radnik", "pravo", "godisnji", "odmor", "poslodavac"]


@pytest.mark.parametrize("value", ["", None, 42, "   "])
def test_tokenize_non_text_yields_empty(value: object) -> None:
    assert TextAnalyzer().tokenize(value) == []  # type: ignore[arg-type]


def test_custom_stopwords_are_normalized() -> None:
    analyzer = TextAnalyzer(stopwords=["Članak"])
    assert analyzer.tokenize("članak 12 zakona") == ["12", "zakona"]


# ---------- Stemming ----------


def test_stem_removes_longest_suffix() -> None:
    assert stem("plaćanja") == "plać"
    assert stem("radnikom") == "radnik"


def test_stem_keeps_minimum_length() -> None:
    assert stem("radom") == "rad"
    assert stem("ovom") == "ovom"
    assert stem("") == ""


# ---------- Trigrams and similarity ----------


def test_trigrams_are_padded() -> None:
    assert TextAnalyzer().trigrams("Odmor") == {"__o", "_od", "odm", "dmo", "mor", "or_", "r__"}


def test_similarity_properties() -> None:
    analyzer = TextAnalyzer()
    assert analyzer.similarity("odmor", "odmor") == 1.0
    assert analyzer.similarity("odmor", "") == 0.0
    assert analyzer.similarity("", "") == 0.0
    assert analyzer.similarity("odmor", "odmorr") == analyzer.similarity("odmorr", "odmor")


def test_similarity_of_typo_is_high_but_not_exact() -> None:
    sim = TextAnalyzer().similarity("odmor", "odmorr")
    assert sim == pytest.approx(6 / 9)


# ---------- Keywords and phrases ----------


def test_extract_keywords_prefers_frequent_early_long_tokens() -> None:
    analyzer = TextAnalyzer()
    tokens = ["otkaz", "ugovor", "otkaz", "rok", "ab", "otkaz"]
    keywords = analyzer.extract_keywords(tokens)
    assert keywords[0] == "otkaz"
    assert "ab" not in keywords
    assert len(keywords) <= 10


def test_extract_keywords_caps_at_ten() -> None:
    tokens = [f"rijec{i:02d}" for i in range(30)]
    assert len(TextAnalyzer().extract_keywords(tokens)) == 10


def test_extract_phrases_windows_skip_short_words() -> None:
    phrases = TextAnalyzer().extract_phrases("Pravo na godišnji odmor traje.")
    assert "godisnji odmor" in phrases
    assert "godisnji odmor traje" in phrases
    assert "odmor traje" in phrases
    assert all("na" not in p.split() for p in phrases)


# ---------- Analysis ----------


def test_analyze_reports_legal_terms_language_and_metrics() -> None:
    text = "Članak 12 stavak 3. Zakon o radu propisuje godišnji odmor. Radnik ima pravo na odmor."
    analysis = TextAnalyzer().analyze(text)

    assert "odmor" in analysis.tokens
    assert analysis.stems
    assert analysis.trigrams
    assert 0.0 <= analysis.readability <= 100.0
    assert analysis.metadata["language"] == "hr"
    assert analysis.metadata["sentence_count"] == 3
    assert "Članak 12" in analysis.metadata["legal_terms"]
    assert 0.0 < analysis.metadata["complexity"] <= 10.0


def test_detect_language() -> None:
    analyzer = TextAnalyzer()
    assert analyzer.detect_language("This article of the law regulates leave") == "en"
    assert analyzer.detect_language("Radnik ima pravo") == "hr"
    assert analyzer.detect_language("") == "unknown"


def test_count_syllables() -> None:
    analyzer = TextAnalyzer()
    assert analyzer.count_syllables("odmor") == 2
    assert analyzer.count_syllables("xyz") == 1
    assert analyzer.count_syllables("") == 0
