"""In-memory TTL cache for read-heavy lookups.

Used by the business layer to memoize skill catalogs, badge lists and
leaderboards. Thread-safe, with lazy expiry on read, a periodic sweep
(``purge_expired``) and an optional LRU capacity bound.
"""

from __future__ import annotations

import logging
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Callable, TypeVar

from pydantic import TypeAdapter
from pydantic_core import to_json

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CacheKeys:
    """Well-known keys shared by the services that read through the cache."""

    SKILLS = "skills:all"
    BADGES = "badges:all"
    LEADERBOARD_BADGES = "leaderboard:badges"
    LEADERBOARD_RARITY = "leaderboard:rarity"
    LEADERBOARD_SESSIONS = "leaderboard:sessions"
    LEADERBOARD_RATING = "leaderboard:rating"
    LEADERBOARD_CREDITS = "leaderboard:credits"


@dataclass
class CacheItem:
    """Container for cached values with expiration metadata."""

    value: Any
    expires_at: float


class SimpleTTLCache:
    """Thread-safe, in-memory TTL cache with optional LRU eviction.

    Attributes:
        default_ttl_seconds: TTL used when ``set`` is called without one.
        max_entries: Maximum number of cached items (None for unlimited).
    """

    def __init__(
        self,
        default_ttl_seconds: float = 300.0,
        max_entries: int | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if default_ttl_seconds <= 0:
            raise ValueError("default_ttl_seconds must be > 0")
        if max_entries is not None and max_entries < 1:
            raise ValueError("max_entries must be >= 1 or None")

        self._default_ttl = default_ttl_seconds
        self._max_entries = max_entries
        self._clock = clock
        self._store: OrderedDict[str, CacheItem] = OrderedDict()
        self._lock = threading.RLock()
        self._hits = 0
        self._misses = 0
        self._evictions = 0

    def __repr__(self) -> str:  # pragma: no cover - representation only
        return (
            f"SimpleTTLCache(default_ttl_seconds={self._default_ttl}, "
            f"max_entries={self._max_entries}, size={len(self._store)}, "
            f"hits={self._hits}, misses={self._misses}, evictions={self._evictions})"
        )

    def get(self, key: str) -> tuple[Any, bool]:
        """Retrieve a cached value if it exists and is not expired.

        Args:
            key: Cache key.

        Returns:
            ``(value, True)`` on a hit, ``(None, False)`` when the key is
            missing or its TTL has passed.
        """

        with self._lock:
            item = self._store.get(key)
            if item is None:
                reason = "not_found"
            elif self._clock() > item.expires_at:
                self._evict_single(key)
                reason = "expired"
            else:
                reason = None

            if reason is None:
                self._hits += 1
                self._store.move_to_end(key)
            else:
                self._misses += 1

        if reason is not None:
            logger.debug("cache.miss", extra={"cache_key": key, "reason": reason})
            return None, False

        logger.debug("cache.hit", extra={"cache_key": key})
        return item.value, True

    def get_as(self, key: str, shape: type[T] | Any) -> tuple[T | None, bool]:
        """Retrieve a value re-shaped into ``shape`` through a JSON round-trip.

        ``shape`` can be anything pydantic's ``TypeAdapter`` understands: a
        model, a dataclass, ``list[SkillOut]``, ``dict[str, int]`` and so on.

        Returns:
            ``(instance, True)`` on success; ``(None, False)`` when the key is
            absent or the stored value cannot be converted.
        """

        value, found = self.get(key)
        if not found:
            return None, False

        try:
            return TypeAdapter(shape).validate_json(to_json(value)), True
        except (ValueError, TypeError) as exc:
            # pydantic's ValidationError and PydanticSerializationError are ValueErrors
            logger.debug(
                "cache.decode_failed",
                extra={"cache_key": key, "error_type": type(exc).__name__},
            )
            return None, False

    def set(self, key: str, value: Any, ttl_seconds: float | None = None) -> None:
        """Store a value, evicting the least recently used entry when full.

        Args:
            key: Cache key.
            value: Any value; stored as-is.
            ttl_seconds: Time-to-live; falls back to the default TTL.
        """

        ttl = self._default_ttl if ttl_seconds is None else ttl_seconds
        with self._lock:
            self._store[key] = CacheItem(value=value, expires_at=self._clock() + ttl)
            self._store.move_to_end(key)
            self._evict_if_over_capacity_locked()
            size = len(self._store)

        logger.debug("cache.set", extra={"cache_key": key, "size": size, "ttl_s": ttl})

    def get_or_set(
        self,
        key: str,
        loader: Callable[[], T],
        ttl_seconds: float | None = None,
    ) -> T:
        """Return the cached value for ``key``, loading and storing it on a miss.

        ``loader`` runs outside the lock, so two concurrent misses may both
        load; the last one stored wins.
        """

        value, found = self.get(key)
        if found:
            return value

        value = loader()
        self.set(key, value, ttl_seconds)
        return value

    def delete(self, key: str) -> None:
        with self._lock:
            self._store.pop(key, None)

    def clear(self) -> None:
        """Remove all cached entries and reset counters."""

        with self._lock:
            self._store.clear()
            self._hits = 0
            self._misses = 0
            self._evictions = 0

    def size(self) -> int:
        """Number of stored entries, including expired ones not yet swept."""

        with self._lock:
            return len(self._store)

    def purge_expired(self) -> int:
        """Physically remove every expired entry. Returns how many were removed."""

        with self._lock:
            now = self._clock()
            expired_keys = [k for k, item in self._store.items() if now > item.expires_at]
            for key in expired_keys:
                self._evict_single(key)
            size = len(self._store)

        if expired_keys:
            logger.debug("cache.purged", extra={"evicted": len(expired_keys), "size": size})
        return len(expired_keys)

    def stats(self) -> dict[str, int | float | None]:
        """Return lightweight cache metrics without exposing values."""

        with self._lock:
            return {
                "default_ttl_seconds": self._default_ttl,
                "max_entries": self._max_entries,
                "entries": len(self._store),
                "hits": self._hits,
                "misses": self._misses,
                "evictions": self._evictions,
            }

    def _evict_single(self, key: str) -> None:
        if self._store.pop(key, None) is not None:
            self._evictions += 1

    def _evict_if_over_capacity_locked(self) -> None:
        if self._max_entries is None:
            return

        while len(self._store) > self._max_entries:
            # popitem(last=False) removes the least recently used entry
            self._store.popitem(last=False)
            self._evictions += 1
