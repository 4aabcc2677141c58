"""Query string parsing.

Turns a raw query such as ``"godišnji odmor" +radnik -otkaz plać* category:leave``
into a ``ParsedQuery``. Extraction happens in a fixed order and every extracted
token is cut out of the working string before the next step runs, so a token
is never classified twice:

1. quoted phrases
2. ``+required`` terms
3. ``-excluded`` terms
4. AND / OR / NOT operators (recorded, not evaluated)
5. wildcard tokens containing ``*``
6. ``field:value`` filters
7. everything left is tokenized into plain terms
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Pattern

from lexsearch.analysis.text_analyzer import TextAnalyzer, normalize, normalize_phrase

_PHRASE = re.compile(r'"([^"]+)"')
# Markers only count at the start of a token so "full-time" stays one word
_REQUIRED = re.compile(r"(?<!\S)\+(\S+)")
_EXCLUDED = re.compile(r"(?<!\S)-(\S+)")
_OPERATOR = re.compile(r"\b(AND|OR|NOT)\b", re.IGNORECASE)
_WILDCARD = re.compile(r"(?<!\S)\S*\*\S*")
_FILTER = re.compile(r"(?<!\S)(\w+):(\S+)")
_EDGE = re.compile(r"^\W+|\W+$")


def _clean(token: str) -> str:
    return _EDGE.sub("", normalize(token))


def _unique(items: Iterable[str]) -> List[str]:
    return list(dict.fromkeys(i for i in items if i))


def wildcard_to_regex(pattern: str) -> Pattern[str]:
    """Compile ``odmor*`` style patterns to an anchored regex over normalized terms."""
    parts = normalize(pattern).split("*")
    return re.compile("^" + ".*".join(re.escape(p) for p in parts) + "$")


@dataclass(slots=True)
class ParsedQuery:
    """Structured form of a query string."""

    original: str = ""
    terms: List[str] = field(default_factory=list)
    phrases: List[str] = field(default_factory=list)
    required: List[str] = field(default_factory=list)
    excluded: List[str] = field(default_factory=list)
    wildcards: List[str] = field(default_factory=list)
    operators: List[str] = field(default_factory=list)
    filters: Dict[str, str] = field(default_factory=dict)

    @property
    def is_empty(self) -> bool:
        return not (self.terms or self.phrases or self.required or self.wildcards)

    def scoring_tokens(self) -> List[str]:
        """Tokens that contribute to relevance, in scoring order."""
        return [*self.terms, *self.phrases, *self.required, *self.wildcards]


class QueryParser:
    """Stateless query parser; see the module docstring for the grammar."""

    def __init__(self, analyzer: Optional[TextAnalyzer] = None) -> None:
        self.analyzer = analyzer or TextAnalyzer()

    def parse(self, query: str) -> ParsedQuery:
        if not query or not isinstance(query, str) or not query.strip():
            return ParsedQuery(original=query if isinstance(query, str) else "")

        parsed = ParsedQuery(original=query)
        working = query.strip()

        parsed.phrases = _unique(normalize_phrase(m) for m in _PHRASE.findall(working))
        working = _PHRASE.sub(" ", working)

        parsed.required = _unique(_clean(m) for m in _REQUIRED.findall(working))
        working = _REQUIRED.sub(" ", working)

        parsed.excluded = _unique(_clean(m) for m in _EXCLUDED.findall(working))
        working = _EXCLUDED.sub(" ", working)

        parsed.operators = [op.upper() for op in _OPERATOR.findall(working)]
        working = _OPERATOR.sub(" ", working)

        parsed.wildcards = _unique(_clean_wildcard(m) for m in _WILDCARD.findall(working))
        working = _WILDCARD.sub(" ", working)

        for name, value in _FILTER.findall(working):
            parsed.filters[name.lower()] = value
        working = _FILTER.sub(" ", working)

        parsed.terms = self.analyzer.tokenize(working)
        return parsed


def _clean_wildcard(token: str) -> str:
    # Keep the stars, drop surrounding punctuation; a bare "*" matches nothing useful
    cleaned = re.sub(r"^[^\w*]+|[^\w*]+$", "", normalize(token))
    return cleaned if cleaned.strip("*") else ""
