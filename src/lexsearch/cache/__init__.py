"""Tiered key/value caching with compression, checksums and periodic expiry."""

from .codec import PayloadCodec
from .scheduler import CacheSweeper
from .tiered_cache import CacheEntry, TieredCache

__all__ = ["CacheEntry", "CacheSweeper", "PayloadCodec", "TieredCache"]
