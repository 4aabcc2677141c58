"""Durable key/value storage behind the tiered cache and feedback ranker.

``DurableStore`` is the single capability the rest of the package depends on.
Two implementations ship: ``InMemoryDurableStore`` for tests and embedded use,
and ``SqlDurableStore`` for any database SQLAlchemy can reach. Both can enforce
a byte quota and raise ``QuotaExceededError`` when a write would exceed it.

Give each consumer its own store. ``TieredCache.clear()`` and its quota
eviction act on every record a store holds, so a store shared with
``FeedbackRanker`` would lose the feedback state along with cache entries.
"""

from __future__ import annotations

import math
import threading
from abc import ABC, abstractmethod
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import dataclass, replace
from typing import Any, Callable, Dict, List, Optional, TypeVar

import structlog
from sqlalchemy import delete, func, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from lexsearch.exceptions import QuotaExceededError, StorageError
from lexsearch.storage.database import get_engine, init_db, make_session_factory, session_scope
from lexsearch.storage.models import CacheRecord

log = structlog.get_logger(__name__)

T = TypeVar("T")


@dataclass(slots=True)
class DurableRecord:
    """A serialized cache entry as stored by a ``DurableStore``."""

    key: str
    payload: str
    created_at: float
    last_accessed: float
    expires_at: Optional[float] = None
    access_count: int = 0
    checksum: Optional[str] = None
    compressed: bool = False

    @property
    def size(self) -> int:
        return len(self.key.encode("utf-8")) + len(self.payload.encode("utf-8"))


class DurableStore(ABC):
    """Abstract key/value store for serialized records."""

    @abstractmethod
    def get(self, key: str) -> Optional[DurableRecord]:
        """Return the stored record or None."""

    @abstractmethod
    def set(self, record: DurableRecord) -> None:
        """Insert or replace ``record``; raise ``QuotaExceededError`` when full."""

    @abstractmethod
    def delete(self, key: str) -> bool:
        """Remove ``key``; return whether it existed."""

    @abstractmethod
    def keys(self) -> List[str]:
        """Return every stored key."""

    @abstractmethod
    def expired(self, now: float) -> List[str]:
        """Return keys whose expiry is at or before ``now``."""

    @abstractmethod
    def evict_oldest(self, fraction: float) -> int:
        """Remove the least recently accessed ``fraction`` of records; return how many."""

    @abstractmethod
    def clear(self) -> None:
        """Remove every record."""


def _eviction_count(total: int, fraction: float) -> int:
    if total <= 0 or fraction <= 0:
        return 0
    return min(total, max(1, math.ceil(total * fraction)))


class DurableExecutor:
    """Runs store calls on one worker thread, each bounded by ``timeout`` seconds.

    Calls execute in submission order. A call that does not finish in time
    raises ``StorageError``; the worker keeps running it, and later calls queue
    behind it.
    """

    def __init__(self, timeout: float, *, name: str = "lexsearch-durable") -> None:
        self.timeout = timeout
        self._executor: Optional[ThreadPoolExecutor] = ThreadPoolExecutor(max_workers=1, thread_name_prefix=name)

    def submit(self, fn: Callable[..., T], *args: Any) -> "Future[T]":
        executor = self._executor
        if executor is None:
            raise StorageError("durable tier is closed")
        return executor.submit(fn, *args)

    def result(self, future: "Future[T]") -> T:
        try:
            return future.result(timeout=self.timeout)
        except FutureTimeoutError as exc:
            future.cancel()
            raise StorageError(f"durable tier did not answer within {self.timeout}s") from exc

    def call(self, fn: Callable[..., T], *args: Any) -> T:
        return self.result(self.submit(fn, *args))

    def shutdown(self, wait: bool = True) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=wait)
            self._executor = None


class InMemoryDurableStore(DurableStore):
    """Dictionary-backed store with an optional byte quota."""

    def __init__(self, max_bytes: Optional[int] = None) -> None:
        self.max_bytes = max_bytes
        self._records: Dict[str, DurableRecord] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[DurableRecord]:
        with self._lock:
            record = self._records.get(key)
            return replace(record) if record is not None else None

    def set(self, record: DurableRecord) -> None:
        with self._lock:
            if self.max_bytes is not None:
                used = sum(r.size for k, r in self._records.items() if k != record.key)
                if used + record.size > self.max_bytes:
                    raise QuotaExceededError(
                        f"writing {record.key!r} needs {record.size} bytes, {self.max_bytes - used} left"
                    )
            self._records[record.key] = replace(record)

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._records.pop(key, None) is not None

    def keys(self) -> List[str]:
        with self._lock:
            return list(self._records)

    def expired(self, now: float) -> List[str]:
        with self._lock:
            return [k for k, r in self._records.items() if r.expires_at is not None and r.expires_at <= now]

    def evict_oldest(self, fraction: float) -> int:
        with self._lock:
            count = _eviction_count(len(self._records), fraction)
            oldest = sorted(self._records.values(), key=lambda r: (r.last_accessed, r.key))[:count]
            for record in oldest:
                del self._records[record.key]
            return len(oldest)

    def clear(self) -> None:
        with self._lock:
            self._records.clear()

    @property
    def used_bytes(self) -> int:
        with self._lock:
            return sum(r.size for r in self._records.values())


class SqlDurableStore(DurableStore):
    """SQLAlchemy-backed store; tables are created on first use.

    Database errors surface as ``StorageError`` so callers only deal with this
    package's exception hierarchy.
    """

    def __init__(self, url_or_engine: str | Engine, *, max_bytes: Optional[int] = None) -> None:
        self.engine = get_engine(url_or_engine) if isinstance(url_or_engine, str) else url_or_engine
        self.max_bytes = max_bytes
        self._factory = make_session_factory(self.engine)
        init_db(self.engine)

    def get(self, key: str) -> Optional[DurableRecord]:
        try:
            with session_scope(self._factory) as session:
                row = session.get(CacheRecord, key)
                return _to_record(row) if row is not None else None
        except SQLAlchemyError as exc:
            raise StorageError(f"failed to read {key!r}: {exc}") from exc

    def set(self, record: DurableRecord) -> None:
        try:
            with session_scope(self._factory) as session:
                if self.max_bytes is not None:
                    used = session.scalar(
                        select(func.coalesce(func.sum(func.length(CacheRecord.key) + func.length(CacheRecord.payload)), 0))
                        .where(CacheRecord.key != record.key)
                    )
                    if int(used or 0) + record.size > self.max_bytes:
                        raise QuotaExceededError(
                            f"writing {record.key!r} needs {record.size} bytes, {self.max_bytes - int(used or 0)} left"
                        )
                session.merge(
                    CacheRecord(
                        key=record.key,
                        payload=record.payload,
                        compressed=record.compressed,
                        checksum=record.checksum,
                        created_at=record.created_at,
                        expires_at=record.expires_at,
                        last_accessed=record.last_accessed,
                        access_count=record.access_count,
                    )
                )
        except SQLAlchemyError as exc:
            raise StorageError(f"failed to write {record.key!r}: {exc}") from exc

    def delete(self, key: str) -> bool:
        try:
            with session_scope(self._factory) as session:
                result = session.execute(delete(CacheRecord).where(CacheRecord.key == key))
                return bool(result.rowcount)
        except SQLAlchemyError as exc:
            raise StorageError(f"failed to delete {key!r}: {exc}") from exc

    def keys(self) -> List[str]:
        try:
            with session_scope(self._factory) as session:
                return list(session.scalars(select(CacheRecord.key).order_by(CacheRecord.key)))
        except SQLAlchemyError as exc:
            raise StorageError(f"failed to list keys: {exc}") from exc

    def expired(self, now: float) -> List[str]:
        try:
            with session_scope(self._factory) as session:
                stmt = select(CacheRecord.key).where(
                    CacheRecord.expires_at.is_not(None), CacheRecord.expires_at <= now
                )
                return list(session.scalars(stmt))
        except SQLAlchemyError as exc:
            raise StorageError(f"failed to list expired keys: {exc}") from exc

    def evict_oldest(self, fraction: float) -> int:
        try:
            with session_scope(self._factory) as session:
                total = session.scalar(select(func.count()).select_from(CacheRecord)) or 0
                count = _eviction_count(int(total), fraction)
                if not count:
                    return 0
                oldest = list(
                    session.scalars(
                        select(CacheRecord.key).order_by(CacheRecord.last_accessed, CacheRecord.key).limit(count)
                    )
                )
                session.execute(delete(CacheRecord).where(CacheRecord.key.in_(oldest)))
                log.info("Evicted oldest durable cache records", count=len(oldest))
                return len(oldest)
        except SQLAlchemyError as exc:
            raise StorageError(f"failed to evict records: {exc}") from exc

    def clear(self) -> None:
        try:
            with session_scope(self._factory) as session:
                session.execute(delete(CacheRecord))
        except SQLAlchemyError as exc:
            raise StorageError(f"failed to clear store: {exc}") from exc


def _to_record(row: CacheRecord) -> DurableRecord:
    return DurableRecord(
        key=row.key,
        payload=row.payload,
        created_at=row.created_at,
        last_accessed=row.last_accessed,
        expires_at=row.expires_at,
        access_count=row.access_count,
        checksum=row.checksum,
        compressed=row.compressed,
    )
