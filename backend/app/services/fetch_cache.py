"""
fetch_cache.py

In-process origin cache in front of the catalog source.

- One entry per resource key, replaced wholesale on every successful fetch.
- Entries are indexed by invalidation tag (TagRegistry); invalidating a tag
  drops every entry under it regardless of remaining TTL.
- Concurrent misses on the same key share a single upstream call.
- Upstream calls are bounded by a fixed deadline; on failure a stale entry
  inside its stale-while-revalidate window is served instead.
- Entries past their stale window are swept periodically on store, so keys
  that are never asked for again do not accumulate.

Nothing here is durable: the cache can be dropped at any time.
"""
import asyncio
import logging
import time
from collections import Counter
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, FrozenSet, Iterable, NamedTuple, Optional

from app.core.errors import UpstreamUnavailable
from app.services.cache_policy import ResourceClass
from app.services.tag_registry import TagRegistry

logger = logging.getLogger(__name__)

Fetcher = Callable[[], Awaitable[Any]]

SWEEP_INTERVAL = 60.0  # seconds between sweeps of dead entries


@dataclass
class CacheEntry:
    key: str
    payload: Any
    stored_at: float
    expires_at: float
    stale_until: float
    tags: FrozenSet[str]

    def is_fresh(self, now: float) -> bool:
        return now < self.expires_at

    def within_stale_window(self, now: float) -> bool:
        return now < self.stale_until


class FetchResult(NamedTuple):
    payload: Any
    from_cache: bool
    stale: bool = False


class OriginFetchCache:
    def __init__(
        self,
        timeout: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
        registry: Optional[TagRegistry] = None,
        sweep_interval: float = SWEEP_INTERVAL,
    ):
        self._timeout = timeout
        self._sweep_interval = sweep_interval
        self._next_sweep = float("-inf")
        self._clock = clock
        self._registry = registry or TagRegistry()
        self._entries: Dict[str, CacheEntry] = {}
        self._inflight: Dict[str, "asyncio.Future"] = {}
        self._inflight_tags: Dict[str, FrozenSet[str]] = {}
        self._lock = asyncio.Lock()
        self._stats: Counter = Counter()

    async def fetch_cached(self, key: str, resource_class: ResourceClass, tags: Iterable[str], fetcher: Fetcher) -> FetchResult:
        """Return the payload for ``key``, fetching upstream only on miss or expiry."""
        tags = frozenset(tags)
        async with self._lock:
            now = self._clock()
            entry = self._entries.get(key)
            if entry is not None and entry.is_fresh(now):
                self._stats["hits"] += 1
                logger.debug(f"Cache hit for {key}")
                return FetchResult(entry.payload, from_cache=True)
            if entry is not None and not entry.within_stale_window(now):
                self._drop(key)

            task = self._inflight.get(key)
            if task is None:
                self._stats["misses"] += 1
                snapshot = self._registry.snapshot(tags)
                task = asyncio.ensure_future(self._refresh(key, resource_class, tags, fetcher, snapshot))
                self._inflight[key] = task
                self._inflight_tags[key] = tags
                task.add_done_callback(lambda t, k=key: self._finish(k, t))
            else:
                self._stats["coalesced"] += 1
                logger.debug(f"Joining in-flight fetch for {key}")
        # shield: a cancelled caller must not cancel the fetch other callers wait on
        return await asyncio.shield(task)

    async def _refresh(self, key: str, resource_class: ResourceClass, tags: FrozenSet[str], fetcher: Fetcher, snapshot) -> FetchResult:
        try:
            return await self._fetch_and_store(key, resource_class, tags, fetcher, snapshot)
        finally:
            self._registry.release(snapshot)

    async def _fetch_and_store(self, key: str, resource_class: ResourceClass, tags: FrozenSet[str], fetcher: Fetcher, snapshot) -> FetchResult:
        self._stats["upstream_calls"] += 1
        try:
            if self._timeout:
                payload = await asyncio.wait_for(fetcher(), timeout=self._timeout)
            else:
                payload = await fetcher()
        except asyncio.TimeoutError:
            error = UpstreamUnavailable(f"Upstream fetch for {key} timed out after {self._timeout}s")
            return await self._fallback(key, resource_class, error)
        except UpstreamUnavailable as e:
            return await self._fallback(key, resource_class, e)

        async with self._lock:
            if self._registry.changed_since(snapshot):
                # Invalidated while in flight: hand the result to the waiting callers, do not keep it
                logger.info(f"Tag invalidated during fetch of {key}; result not cached")
                self._stats["discarded"] += 1
                return FetchResult(payload, from_cache=False)
            now = self._clock()
            self._registry.discard_key(key)
            self._entries[key] = CacheEntry(
                key=key,
                payload=payload,
                stored_at=now,
                expires_at=now + resource_class.ttl,
                stale_until=now + resource_class.ttl + resource_class.stale_while_revalidate,
                tags=tags,
            )
            self._registry.register_all(tags, key)
            if now >= self._next_sweep:
                self._sweep(now)
                self._next_sweep = now + self._sweep_interval
        logger.debug(f"Cached {key} for {resource_class.ttl}s under tags {sorted(tags)}")
        return FetchResult(payload, from_cache=False)

    async def _fallback(self, key: str, resource_class: ResourceClass, error: UpstreamUnavailable) -> FetchResult:
        async with self._lock:
            entry = self._entries.get(key)
            if entry is not None and resource_class.serve_stale and entry.within_stale_window(self._clock()):
                self._stats["stale_served"] += 1
                logger.warning(f"Upstream unavailable for {key} ({error.message}); serving stale entry")
                return FetchResult(entry.payload, from_cache=True, stale=True)
        self._stats["upstream_failures"] += 1
        logger.warning(f"Upstream unavailable for {key} and no stale entry: {error.message}")
        raise error

    def _finish(self, key: str, task: "asyncio.Future") -> None:
        if self._inflight.get(key) is task:
            del self._inflight[key]
            self._inflight_tags.pop(key, None)
        if not task.cancelled():
            # Mark the exception retrieved even if every waiter went away
            task.exception()

    def _drop(self, key: str) -> None:
        self._entries.pop(key, None)
        self._registry.discard_key(key)

    def _sweep(self, now: float) -> int:
        dead = [k for k, e in self._entries.items() if not e.within_stale_window(now)]
        for key in dead:
            self._drop(key)
        if dead:
            self._stats["swept"] += len(dead)
            logger.debug(f"Swept {len(dead)} entries past their stale window")
        return len(dead)

    async def invalidate_tag(self, tag: str) -> int:
        """Drop every entry registered under ``tag``. Returns how many were dropped."""
        async with self._lock:
            keys = self._registry.pop(tag)
            for key in keys:
                self._entries.pop(key, None)
            # Later callers must not join a fetch that started before this point
            for key, key_tags in list(self._inflight_tags.items()):
                if tag in key_tags:
                    self._inflight.pop(key, None)
                    del self._inflight_tags[key]
            self._stats["invalidations"] += 1
        logger.info(f"Invalidated tag {tag} ({len(keys)} entries)")
        return len(keys)

    async def clear(self) -> None:
        async with self._lock:
            self._entries.clear()
            self._registry.clear()
            self._inflight.clear()
            self._inflight_tags.clear()
        logger.info("Origin cache cleared")

    def peek(self, key: str) -> Optional[CacheEntry]:
        return self._entries.get(key)

    def keys_for_tag(self, tag: str):
        return self._registry.keys_for(tag)

    def stats(self) -> Dict[str, Any]:
        out = {name: self._stats.get(name, 0) for name in (
            "hits", "misses", "coalesced", "upstream_calls", "upstream_failures",
            "stale_served", "discarded", "invalidations", "swept",
        )}
        out["entries"] = len(self._entries)
        out["tags"] = len(self._registry)
        out["generations"] = self._registry.tracked_generations()
        out["in_flight"] = len(self._inflight)
        return out

    def __len__(self) -> int:
        return len(self._entries)
