"""Document model and the provider interface that supplies it.

The engine never discovers documents on its own: the host application wraps
its document store in a ``DocumentProvider`` and hands it to
``SearchEngine.rebuild_from``.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Sequence, Tuple


@dataclass(slots=True)
class Translation:
    """A document's title, body and keywords in another language."""

    title: str = ""
    body: str = ""
    keywords: Tuple[str, ...] = ()


@dataclass(slots=True)
class FaqEntry:
    question: str
    answer: str


@dataclass(slots=True)
class ExampleEntry:
    """A worked scenario and how the article applies to it."""

    scenario: str
    outcome: str


@dataclass(slots=True)
class Document:
    """A searchable legal article.

    Attributes
    ----------
    id: str
        Unique identifier within the corpus.
    keywords: tuple[str, ...]
        Ordered, duplicate-free keywords; duplicates passed in are dropped.
    translations: dict[str, Translation]
        Language code to translated content.
    last_modified: datetime | None
        Drives the recency bonus and date sorting when present.
    """

    id: str
    title: str
    body: str
    category: str = ""
    keywords: Tuple[str, ...] = ()
    translations: Dict[str, Translation] = field(default_factory=dict)
    faqs: List[FaqEntry] = field(default_factory=list)
    examples: List[ExampleEntry] = field(default_factory=list)
    last_modified: Optional[datetime] = None

    def __post_init__(self) -> None:
        self.keywords = tuple(dict.fromkeys(k for k in self.keywords if k))


class DocumentProvider(ABC):
    """Source of the corpus to index.

    Implementations should be safe to construct without side effects and
    should not touch their backing store until ``fetch_documents`` is called.
    """

    @abstractmethod
    def fetch_documents(self) -> Iterable[Document]:
        """Return every document that should be searchable."""
        raise NotImplementedError


class StaticDocumentProvider(DocumentProvider):
    """Serves a fixed, in-memory list of documents."""

    def __init__(self, documents: Sequence[Document]) -> None:
        self._documents = list(documents)

    def fetch_documents(self) -> List[Document]:
        return list(self._documents)
