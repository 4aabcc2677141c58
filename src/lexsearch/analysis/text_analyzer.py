"""Text analysis for Croatian legal texts.

Tokenization, diacritic folding, suffix stemming, trigram generation and
similarity, keyword and phrase extraction, plus a few readability and
complexity heuristics used when profiling documents.
"""

from __future__ import annotations

import math
import re
import unicodedata
from collections import Counter
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Any, Dict, Iterable, List, Set

STOPWORDS = frozenset(
    [
        "i", "u", "na", "za", "od", "do", "je", "se", "da", "su", "to", "ili",
        "kao", "ima", "ali", "ako", "kod", "pod", "nad", "pred", "kroz", "bez",
        "biti", "bio", "bila", "bilo", "bili", "bile",
        "ovaj", "ova", "ovo", "ovog", "ove", "ovom", "taj", "ta", "tog",
        "te", "tom", "neki", "neka", "neko", "nekog", "neke", "nekom",
        "jedan", "jedna", "jedno", "jednog", "jedne", "jednom",
    ]
)

# Longest first, so "anja" wins over "an"
SUFFIXES = tuple(
    sorted(
        [
            "anja", "enje", "inja", "unja", "ava", "eva", "iva", "ova",
            "an", "en", "in", "un", "ar", "er", "ir", "or", "ur",
            "ak", "ek", "ik", "ok", "uk", "al", "el", "il", "ol", "ul",
            "am", "em", "im", "om", "um", "at", "et", "it", "ot", "ut",
            "av", "ev", "iv", "ov", "uv",
        ],
        key=len,
        reverse=True,
    )
)
MIN_STEM_LENGTH = 3

_FOLD = str.maketrans({"č": "c", "ć": "c", "đ": "d", "š": "s", "ž": "z",
                       "Č": "C", "Ć": "C", "Đ": "D", "Š": "S", "Ž": "Z"})

_WORD = re.compile(r"\w+")
_SENTENCE_BOUNDARY = re.compile(r"[.!?]+\s+")
_LEGAL_PATTERNS = [
    re.compile(r"članak\s+\d+", re.IGNORECASE),
    re.compile(r"stavak\s+\d+", re.IGNORECASE),
    re.compile(r"točka\s+\d+", re.IGNORECASE),
    re.compile(r"zakon\s+o\s+[\w\s]+", re.IGNORECASE),
    re.compile(r"pravilnik\s+o\s+[\w\s]+", re.IGNORECASE),
    re.compile(r"uredba\s+o\s+[\w\s]+", re.IGNORECASE),
]
_CROATIAN_CHARS = re.compile(r"[čćđšžČĆĐŠŽ]")
_CROATIAN_WORDS = ("članak", "stavak", "zakon", "pravilnik", "uredba", "propis")
_ENGLISH_WORDS = ("article", "section", "law", "regulation", "provision")
_VOWELS = set("aeiouAEIOU")
_EDGE_PUNCTUATION = ".,;:!?\"'()[]{}«»„“”"

PAD = "__"
MAX_KEYWORDS = 10


def fold_diacritics(text: str) -> str:
    """Map accented letters to their unaccented base form."""
    text = text.translate(_FOLD)
    if text.isascii():
        return text
    decomposed = unicodedata.normalize("NFKD", text)
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def normalize(text: str) -> str:
    """Lowercase and fold diacritics."""
    return fold_diacritics(text.lower())


def normalize_phrase(text: str) -> str:
    """Normalize a multi-word phrase the same way indexed phrases are normalized."""
    words = (w.strip(_EDGE_PUNCTUATION) for w in normalize(text).split())
    return " ".join(w for w in words if w)


@lru_cache(maxsize=4096)
def stem(word: str) -> str:
    """Strip the longest known suffix, keeping at least three characters."""
    if not word:
        return ""
    lowered = word.lower()
    for suffix in SUFFIXES:
        if lowered.endswith(suffix) and len(lowered) - len(suffix) >= MIN_STEM_LENGTH:
            return lowered[: -len(suffix)]
    return lowered


@dataclass(slots=True)
class TextAnalysis:
    """Result of ``TextAnalyzer.analyze``."""

    tokens: List[str] = field(default_factory=list)
    stems: List[str] = field(default_factory=list)
    trigrams: Set[str] = field(default_factory=set)
    keywords: List[str] = field(default_factory=list)
    readability: float = 0.0
    metadata: Dict[str, Any] = field(default_factory=dict)


class TextAnalyzer:
    """Stateless text utilities shared by the indexer, parser and scorer."""

    def __init__(self, stopwords: Iterable[str] = STOPWORDS) -> None:
        self.stopwords = frozenset(normalize(w) for w in stopwords)

    # ----- Tokens -----

    def tokenize(self, text: str) -> List[str]:
        """Return unique normalized tokens in order of first occurrence."""
        if not text or not isinstance(text, str):
            return []
        seen: Dict[str, None] = {}
        for match in _WORD.findall(text):
            token = normalize(match)
            if len(token) > 1 and token not in self.stopwords:
                seen.setdefault(token, None)
        return list(seen)

    def words(self, text: str) -> List[str]:
        """All normalized word tokens, duplicates and stopwords included."""
        if not text or not isinstance(text, str):
            return []
        return [normalize(w) for w in _WORD.findall(text)]

    def stem(self, word: str) -> str:
        return stem(word)

    # ----- Trigrams -----

    def trigrams(self, text: str) -> Set[str]:
        if not text or not isinstance(text, str):
            return set()
        padded = f"{PAD}{normalize(text)}{PAD}"
        return {padded[i : i + 3] for i in range(len(padded) - 2)}

    def similarity(self, a: str, b: str) -> float:
        """Jaccard similarity of the two trigram sets."""
        first = self.trigrams(a)
        second = self.trigrams(b)
        union = first | second
        if not union:
            return 0.0
        return len(first & second) / len(union)

    # ----- Keywords and phrases -----

    def extract_keywords(self, tokens: List[str]) -> List[str]:
        """Rank tokens by frequency, early position and length."""
        if not tokens:
            return []
        total = len(tokens)
        frequencies = Counter(tokens)
        first_index: Dict[str, int] = {}
        for index, token in enumerate(tokens):
            first_index.setdefault(token, index)

        scores = {
            token: count * (1 - first_index[token] / total) * math.log(len(token) + 1)
            for token, count in frequencies.items()
            if len(token) > 2
        }
        ranked = sorted(scores, key=lambda t: scores[t], reverse=True)
        return ranked[:MAX_KEYWORDS]

    def extract_phrases(self, text: str) -> List[str]:
        """Adjacent 2- and 3-word windows where every word is longer than two characters.

        Words are normalized and stripped of edge punctuation so that indexed
        phrases line up with normalized query phrases.
        """
        if not text or not isinstance(text, str):
            return []
        words = [w.strip(_EDGE_PUNCTUATION) for w in normalize(text).split()]
        phrases: List[str] = []
        for i in range(len(words) - 1):
            if len(words[i]) > 2 and len(words[i + 1]) > 2:
                phrases.append(f"{words[i]} {words[i + 1]}")
                if i < len(words) - 2 and len(words[i + 2]) > 2:
                    phrases.append(f"{words[i]} {words[i + 1]} {words[i + 2]}")
        return phrases

    # ----- Profiling heuristics -----

    def analyze(self, text: str) -> TextAnalysis:
        """Full profile of a text: tokens, stems, trigrams, keywords and metrics."""
        tokens = self.tokenize(text)
        sentences = self.count_sentences(text)
        return TextAnalysis(
            tokens=tokens,
            stems=[stem(t) for t in tokens],
            trigrams=self.trigrams(text),
            keywords=self.extract_keywords(tokens),
            readability=self.readability(text, tokens),
            metadata={
                "word_count": len(tokens),
                "sentence_count": sentences,
                "avg_words_per_sentence": len(tokens) / max(1, sentences),
                "legal_terms": self.extract_legal_terms(text),
                "language": self.detect_language(text),
                "complexity": self.complexity(text, tokens),
            },
        )

    def count_sentences(self, text: str) -> int:
        if not text:
            return 0
        return len(_SENTENCE_BOUNDARY.findall(text)) + 1

    def count_syllables(self, word: str) -> int:
        if not word:
            return 0
        count = 0
        previous_vowel = False
        for ch in word:
            is_vowel = ch in _VOWELS
            if is_vowel and not previous_vowel:
                count += 1
            previous_vowel = is_vowel
        return max(1, count)

    def readability(self, text: str, tokens: List[str]) -> float:
        """Flesch reading ease approximation, clamped to 0..100."""
        if not text or not tokens:
            return 0.0
        words_per_sentence = len(tokens) / max(1, self.count_sentences(text))
        syllables_per_word = sum(self.count_syllables(t) for t in tokens) / len(tokens)
        score = 206.835 - 1.015 * words_per_sentence - 84.6 * syllables_per_word
        return max(0.0, min(100.0, score))

    def extract_legal_terms(self, text: str) -> List[str]:
        """References such as "članak 12" or "zakon o radu", deduplicated in order."""
        if not text:
            return []
        found: Dict[str, None] = {}
        for pattern in _LEGAL_PATTERNS:
            for match in pattern.findall(text):
                found.setdefault(match.strip(), None)
        return list(found)

    def detect_language(self, text: str) -> str:
        if not text:
            return "unknown"
        lowered = text.lower()
        croatian_words = sum(1 for w in _CROATIAN_WORDS if w in lowered)
        if _CROATIAN_CHARS.search(text) or croatian_words:
            return "hr"
        english_words = sum(1 for w in _ENGLISH_WORDS if w in lowered)
        if english_words > croatian_words:
            return "en"
        return "hr"

    def complexity(self, text: str, tokens: List[str]) -> float:
        """Score 0..10 from word length, sentence length, legal references and diversity."""
        if not text or not tokens:
            return 0.0
        score = 0.0
        score += min(sum(len(t) for t in tokens) / len(tokens) / 2, 3)
        score += min(len(tokens) / max(1, self.count_sentences(text)) / 10, 3)
        score += min(len(self.extract_legal_terms(text)) / 2, 2)
        score += min(len(set(tokens)) / len(tokens) * 2, 2)
        return min(score, 10.0)
