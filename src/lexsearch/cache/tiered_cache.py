"""Two-tier key/value cache.

The memory tier is a bounded LRU map of ``CacheEntry`` objects. JSON-serializable
values are held in their serialized form and decoded on every ``get``, so each
read returns a fresh copy checked against its checksum; other values are held
by reference and never reach the durable tier. The durable
tier is an optional ``DurableStore`` that only receives entries written with
``persistent=True``; a durable hit is copied back into memory. Durable I/O runs
on a single worker thread so every call can be bounded by ``durable_timeout``.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Set, TypeVar

import structlog
from cachetools import Cache, LRUCache

from lexsearch.cache.codec import PayloadCodec
from lexsearch.clock import Clock, SystemClock
from lexsearch.config import CacheConfig
from lexsearch.exceptions import CacheIntegrityError, QuotaExceededError, StorageError
from lexsearch.storage.durable import DurableExecutor, DurableRecord, DurableStore

log = structlog.get_logger(__name__)

T = TypeVar("T")

QUOTA_EVICTION_FRACTION = 0.25
TOP_ENTRIES = 5

_MISSING = object()


@dataclass(slots=True)
class CacheEntry:
    """A cached value plus its bookkeeping.

    When ``serialized`` is set, ``value`` holds the JSON payload (gzip and
    base64 encoded when ``compressed`` is also set) rather than the value itself.
    """

    key: str
    value: Any
    created_at: float
    last_accessed: float
    expires_at: Optional[float] = None
    access_count: int = 0
    checksum: Optional[str] = None
    compressed: bool = False
    serialized: bool = False

    def is_expired(self, now: float) -> bool:
        return self.expires_at is not None and now >= self.expires_at


class _MemoryTier(LRUCache):
    """LRU cache that counts evictions and can be inspected without touching recency."""

    def __init__(self, maxsize: int) -> None:
        super().__init__(maxsize=maxsize)
        self.evictions = 0

    def popitem(self):
        key, value = super().popitem()
        self.evictions += 1
        log.debug("Evicted least recently used cache entry", key=key)
        return key, value

    def peek(self, key: str) -> Optional[CacheEntry]:
        if key not in self:
            return None
        return Cache.__getitem__(self, key)


class TieredCache:
    """Memory cache with an optional durable tier.

    Usage::

        cache = TieredCache(CacheConfig(), durable=SqlDurableStore("sqlite:///cache.db"))
        cache.set("settings", {"theme": "dark"}, ttl=600, persistent=True)
        cache.get("settings")
    """

    def __init__(
        self,
        config: Optional[CacheConfig] = None,
        *,
        durable: Optional[DurableStore] = None,
        clock: Optional[Clock] = None,
    ) -> None:
        self.config = config or CacheConfig()
        self.durable = durable
        self.clock = clock or SystemClock()
        self.codec = PayloadCodec(
            use_compression=self.config.use_compression,
            threshold=self.config.compression_threshold,
        )
        self._memory = _MemoryTier(self.config.max_entries)
        self._lock = threading.RLock()
        self._executor: Optional[DurableExecutor] = None
        if durable is not None:
            self._executor = DurableExecutor(self.config.durable_timeout, name="lexsearch-cache")

        self.hits = 0
        self.misses = 0
        self.sets = 0
        self.deletes = 0

    # ----- Public API -----

    def get(self, key: str, default: Any = None) -> Any:
        now = self.clock.now()
        with self._lock:
            entry = self._memory.get(key)
            if entry is not None:
                if entry.is_expired(now):
                    del self._memory[key]
                else:
                    entry.access_count += 1
                    entry.last_accessed = now
                    self.hits += 1
                    return self._materialize(entry)

        value = self._get_durable(key, now)
        with self._lock:
            if value is _MISSING:
                self.misses += 1
                return default
            self.hits += 1
        return value

    def set(
        self,
        key: str,
        value: Any,
        ttl: Optional[float] = None,
        *,
        persistent: bool = False,
        compress: Optional[bool] = None,
    ) -> bool:
        """Store ``value`` for ``ttl`` seconds (``default_ttl`` when None).

        Returns False only when a persistent write could not be stored durably;
        the memory tier is written in every case.
        """
        now = self.clock.now()
        ttl = self.config.default_ttl if ttl is None else ttl
        expires_at = now + ttl

        try:
            encoded = self.codec.encode(value, compress)
        except CacheIntegrityError as exc:
            encoded = None
            log.debug("Caching value without checksum", key=key, error=str(exc))

        entry = CacheEntry(
            key=key,
            value=encoded.payload if encoded is not None else value,
            created_at=now,
            last_accessed=now,
            expires_at=expires_at,
            checksum=encoded.checksum if encoded is not None else None,
            compressed=encoded.compressed if encoded is not None else False,
            serialized=encoded is not None,
        )
        with self._lock:
            self._memory[key] = entry
            self.sets += 1

        if not persistent:
            return True
        if self.durable is None:
            log.warning("Persistent write requested without a durable tier", key=key)
            return False
        if encoded is None:
            log.warning("Value cannot be serialized for the durable tier", key=key)
            return False

        record = DurableRecord(
            key=key,
            payload=encoded.payload,
            created_at=now,
            last_accessed=now,
            expires_at=expires_at,
            checksum=encoded.checksum,
            compressed=encoded.compressed,
        )
        return self._write_durable(record)

    def remove(self, key: str) -> bool:
        with self._lock:
            removed = self._memory.pop(key, None) is not None
        if self.durable is not None:
            try:
                removed = self._durable_call(self.durable.delete, key) or removed
            except StorageError as exc:
                log.warning("Durable cache delete failed", key=key, error=str(exc))
        if removed:
            with self._lock:
                self.deletes += 1
        return removed

    def clear(self, memory_only: bool = False) -> None:
        with self._lock:
            self._memory.clear()
        if memory_only or self.durable is None:
            return
        try:
            self._durable_call(self.durable.clear)
        except StorageError as exc:
            log.warning("Durable cache clear failed", error=str(exc))

    def cleanup(self) -> int:
        """Remove expired entries from every tier; return how many keys were dropped."""
        now = self.clock.now()
        removed: Set[str] = set()
        with self._lock:
            for key in list(self._memory):
                entry = self._memory.peek(key)
                if entry is not None and entry.is_expired(now):
                    del self._memory[key]
                    removed.add(key)

        if self.durable is not None:
            try:
                for key in self._durable_call(self.durable.expired, now):
                    self._durable_call(self.durable.delete, key)
                    removed.add(key)
            except StorageError as exc:
                log.warning("Durable cache cleanup failed", error=str(exc))

        if removed:
            log.info("Removed expired cache entries", count=len(removed))
        return len(removed)

    def get_stats(self) -> Dict[str, Any]:
        with self._lock:
            entries = [e for e in (self._memory.peek(k) for k in list(self._memory)) if e is not None]
            lookups = self.hits + self.misses
            stats: Dict[str, Any] = {
                "entries": len(entries),
                "max_entries": self._memory.maxsize,
                "hits": self.hits,
                "misses": self.misses,
                "hit_rate": self.hits / lookups if lookups else 0.0,
                "sets": self.sets,
                "deletes": self.deletes,
                "evictions": self._memory.evictions,
                "compressed_entries": sum(1 for e in entries if e.compressed),
                "top_entries": [
                    {"key": e.key, "access_count": e.access_count}
                    for e in sorted(entries, key=lambda e: (-e.access_count, e.key))[:TOP_ENTRIES]
                ],
            }
        if self.durable is not None:
            try:
                stats["durable_entries"] = len(self._durable_call(self.durable.keys))
            except StorageError as exc:
                log.warning("Durable cache stats unavailable", error=str(exc))
                stats["durable_entries"] = None
        return stats

    def close(self) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=True)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            entry = self._memory.peek(key) if isinstance(key, str) else None
            return entry is not None and not entry.is_expired(self.clock.now())

    def __len__(self) -> int:
        with self._lock:
            return len(self._memory)

    # ----- Internals -----

    def _materialize(self, entry: CacheEntry) -> Any:
        if not entry.serialized:
            return entry.value
        return self.codec.decode(entry.value, entry.checksum, entry.compressed, key=entry.key)

    def _get_durable(self, key: str, now: float) -> Any:
        if self.durable is None:
            return _MISSING
        try:
            record = self._durable_call(self.durable.get, key)
            if record is None:
                return _MISSING
            if record.expires_at is not None and now >= record.expires_at:
                self._durable_call(self.durable.delete, key)
                return _MISSING
        except StorageError as exc:
            log.warning("Durable cache read failed, treating as miss", key=key, error=str(exc))
            return _MISSING

        value = self.codec.decode(record.payload, record.checksum, record.compressed, key=key)
        entry = CacheEntry(
            key=key,
            value=record.payload,
            created_at=record.created_at,
            last_accessed=now,
            expires_at=record.expires_at,
            access_count=record.access_count + 1,
            checksum=record.checksum,
            compressed=record.compressed,
            serialized=True,
        )
        with self._lock:
            self._memory[key] = entry
        return value

    def _write_durable(self, record: DurableRecord) -> bool:
        assert self.durable is not None
        try:
            self._durable_call(self.durable.set, record)
            return True
        except QuotaExceededError as exc:
            log.warning("Durable cache quota exceeded, evicting oldest entries", key=record.key, error=str(exc))
        except StorageError as exc:
            log.warning("Durable cache write failed", key=record.key, error=str(exc))
            return False

        try:
            evicted = self._durable_call(self.durable.evict_oldest, QUOTA_EVICTION_FRACTION)
            log.info("Durable cache entries evicted", count=evicted)
            self._durable_call(self.durable.set, record)
            return True
        except StorageError as exc:
            log.warning("Durable cache write failed after eviction", key=record.key, error=str(exc))
            return False

    def _durable_call(self, fn: Callable[..., T], *args: Any) -> T:
        if self._executor is None:
            raise StorageError("durable tier is closed")
        return self._executor.call(fn, *args)
