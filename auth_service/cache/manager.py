"""
Cache orchestration: TTL entries plus request coalescing.
"""
import logging
import time
from typing import Any, Awaitable, Callable, Dict, Hashable, Optional, Tuple

from config.settings import settings

from .coalescer import RequestCoalescer
from .core import CacheEntry, CacheSource

logger = logging.getLogger("cache.manager")

FetchFn = Callable[[], Awaitable[Any]]
EmptyPredicate = Callable[[Any], bool]


def _is_none(value: Any) -> bool:
    return value is None


class CachedFetchCoordinator:
    """
    Serves expensive reads from a TTL cache, coalescing concurrent misses.

    - A fresh entry is returned without suspending and without calling fetch_fn
    - Concurrent callers for a key with a fetch in flight share that fetch
    - Failed fetches and "no value" results are never cached
    - Expiry is lazy; there is no background refresh

    All state lives on the instance, so tests build their own coordinators.
    """

    def __init__(
        self,
        default_ttl: Optional[float] = None,
        is_empty: Optional[EmptyPredicate] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize the coordinator.

        Args:
            default_ttl: TTL in seconds used when get_or_fetch gets none
                         (default: settings.cache_default_ttl_seconds)
            is_empty: Predicate for the "no value" sentinel (default: value is None)
            clock: Monotonic time source in seconds
        """
        self._cache: Dict[Hashable, CacheEntry] = {}
        self._coalescer = RequestCoalescer()
        self._default_ttl = (
            default_ttl if default_ttl is not None else settings.cache_default_ttl_seconds
        )
        self._is_empty = is_empty or _is_none
        self._clock = clock

        # Bumped by invalidate/clear; a fetch started under an older generation is not stored
        self._generations: Dict[Hashable, int] = {}
        self._epoch = 0

        # Stats tracking
        self._stats = {
            "hits": 0,
            "misses": 0,
            "coalesced": 0,
            "failures": 0,
            "empty_results": 0,
        }

    async def get_or_fetch(
        self,
        key: Hashable,
        fetch_fn: FetchFn,
        ttl: Optional[float] = None,
        is_empty: Optional[EmptyPredicate] = None,
    ) -> Any:
        """
        Return the cached value for key, or fetch it.

        Args:
            key: Cache key
            fetch_fn: Coroutine function producing the value; ignored when
                      joining a fetch already in flight for this key
            ttl: Freshness window in seconds (default: the coordinator's)
            is_empty: Per-call override of the "no value" predicate

        Returns:
            The cached or fetched value

        Raises:
            Exception: Whatever fetch_fn raised, unwrapped
        """
        ttl = self._default_ttl if ttl is None else ttl

        entry = self._cache.get(key)
        if entry is not None and entry.is_fresh(self._clock(), ttl):
            logger.debug(f"CACHE HIT ({CacheSource.FRESH.value}): {key}")
            self._stats["hits"] += 1
            return entry.value

        if self._coalescer.is_in_flight(key):
            logger.debug(f"CACHE MISS ({CacheSource.COALESCED.value}): {key}")
            self._stats["coalesced"] += 1
        else:
            reason = "expired" if entry is not None else "miss"
            logger.info(f"CACHE MISS ({CacheSource.UPSTREAM.value}, {reason}): {key}")
            self._stats["misses"] += 1

        generation = self._generation(key)
        return await self._coalescer.get_or_fetch(
            key,
            lambda: self._fetch_and_store(
                key, fetch_fn, is_empty or self._is_empty, generation
            ),
        )

    async def _fetch_and_store(
        self,
        key: Hashable,
        fetch_fn: FetchFn,
        is_empty: EmptyPredicate,
        generation: Tuple[int, int],
    ) -> Any:
        """Run the upstream fetch once and cache a real result."""
        try:
            value = await fetch_fn()
        except Exception:
            self._stats["failures"] += 1
            raise

        if is_empty(value):
            logger.info(f"Not caching empty result for {key}")
            self._stats["empty_results"] += 1
            return value

        if self._generation(key) != generation:
            logger.info(f"Not caching result for {key}: invalidated while fetching")
            return value

        self._cache[key] = CacheEntry(value=value, fetched_at=self._clock())
        return value

    def _generation(self, key: Hashable) -> Tuple[int, int]:
        return self._epoch, self._generations.get(key, 0)

    def peek(self, key: Hashable) -> Optional[CacheEntry]:
        """Return the stored entry for key (fresh or not) without fetching."""
        return self._cache.get(key)

    def invalidate(self, key: Hashable) -> bool:
        """
        Invalidate a specific cache entry.

        A fetch for this key already in flight still answers its waiters,
        but its result is not stored.

        Returns:
            True if entry was found and removed
        """
        self._generations[key] = self._generations.get(key, 0) + 1
        if key in self._cache:
            del self._cache[key]
            logger.info(f"Invalidated cache: {key}")
            return True
        return False

    def clear(self) -> int:
        """
        Clear all cache entries. In-flight fetches are left to finish,
        but their results are not stored.

        Returns:
            Number of entries cleared
        """
        count = len(self._cache)
        self._cache.clear()
        self._generations.clear()
        self._epoch += 1
        logger.info(f"Cleared {count} cache entries")
        return count

    def get_stats(self) -> Dict[str, Any]:
        """Get cache statistics."""
        total_requests = self._stats["hits"] + self._stats["misses"] + self._stats["coalesced"]
        hit_rate = (self._stats["hits"] / total_requests * 100) if total_requests > 0 else 0

        return {
            "entries": len(self._cache),
            **self._stats,
            "hit_rate_percent": round(hit_rate, 1),
            "coalescer": self._coalescer.get_stats(),
        }


# Global coordinator instance, owned by the composition root
_fetch_coordinator: Optional[CachedFetchCoordinator] = None


def get_fetch_coordinator() -> CachedFetchCoordinator:
    """Get or create the process-wide fetch coordinator."""
    global _fetch_coordinator
    if _fetch_coordinator is None:
        _fetch_coordinator = CachedFetchCoordinator()
    return _fetch_coordinator
