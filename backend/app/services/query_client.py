"""
query_client.py

Consumer-side half of the two-tier cache: an async client for this API that
keeps its own query cache, independent of the origin cache on the server.

QueryCache semantics:
- an entry is fresh for ``stale_time`` seconds after it was fetched;
- an entry not read for ``gc_time`` seconds is evicted, fresh or not;
- concurrent reads of one key while it is being fetched share one request;
- ``invalidate(prefix)`` marks every key starting with ``prefix`` stale.
"""
import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple

import httpx

from app.core.errors import NotFound, Unauthorized, UpstreamUnavailable, ValidationFailed
from app.services.cache_policy import MINUTE, HOUR, ResourceClass

logger = logging.getLogger(__name__)

QueryKey = Tuple[Any, ...]


@dataclass(frozen=True)
class ClientPolicy:
    stale_time: float
    gc_time: float


# Freshness never shorter than the origin TTL, so the client does not
# re-ask for data the origin would answer from cache anyway.
CLIENT_POLICIES: Dict[Any, ClientPolicy] = {
    rc: ClientPolicy(stale_time=rc.ttl, gc_time=rc.ttl + rc.stale_while_revalidate) for rc in ResourceClass
}
CLIENT_POLICIES["recommendations"] = ClientPolicy(stale_time=1 * HOUR, gc_time=2 * HOUR)
CLIENT_POLICIES["library"] = ClientPolicy(stale_time=5 * MINUTE, gc_time=30 * MINUTE)


@dataclass
class QueryEntry:
    data: Any
    updated_at: float
    last_accessed: float
    stale_time: float
    gc_time: float


class QueryCache:
    def __init__(self, stale_time: float = 5 * MINUTE, gc_time: float = 30 * MINUTE, clock: Callable[[], float] = time.monotonic):
        if gc_time < stale_time:
            raise ValueError("gc_time must not be shorter than stale_time")
        self.stale_time = stale_time
        self.gc_time = gc_time
        self._clock = clock
        self._entries: Dict[QueryKey, QueryEntry] = {}
        self._inflight: Dict[QueryKey, "asyncio.Future"] = {}
        self.fetch_count = 0

    def is_fresh(self, key: QueryKey) -> bool:
        entry = self._entries.get(key)
        return entry is not None and self._clock() - entry.updated_at < entry.stale_time

    def get(self, key: QueryKey) -> Optional[Any]:
        entry = self._entries.get(key)
        return entry.data if entry is not None else None

    async def fetch(self, key: QueryKey, fn: Callable[[], Awaitable[Any]], stale_time: Optional[float] = None, gc_time: Optional[float] = None) -> Any:
        self.collect()
        now = self._clock()
        entry = self._entries.get(key)
        if entry is not None:
            entry.last_accessed = now
            if now - entry.updated_at < entry.stale_time:
                return entry.data

        task = self._inflight.get(key)
        if task is None:
            task = asyncio.ensure_future(self._run(key, fn, stale_time, gc_time))
            self._inflight[key] = task
            task.add_done_callback(lambda t, k=key: self._finish(k, t))
        return await asyncio.shield(task)

    async def _run(self, key: QueryKey, fn, stale_time, gc_time) -> Any:
        self.fetch_count += 1
        data = await fn()
        if self._inflight.get(key) is not asyncio.current_task():
            # Detached by invalidate() while in flight: answer the waiters, keep nothing
            return data
        now = self._clock()
        self._entries[key] = QueryEntry(
            data=data,
            updated_at=now,
            last_accessed=now,
            stale_time=self.stale_time if stale_time is None else stale_time,
            gc_time=self.gc_time if gc_time is None else gc_time,
        )
        return data

    def _finish(self, key: QueryKey, task: "asyncio.Future") -> None:
        if self._inflight.get(key) is task:
            del self._inflight[key]
        if not task.cancelled():
            task.exception()

    def invalidate(self, prefix: QueryKey = ()) -> int:
        """Mark every entry whose key starts with ``prefix`` stale."""
        count = 0
        for key, entry in self._entries.items():
            if key[:len(prefix)] == prefix:
                entry.updated_at = float("-inf")
                count += 1
        for key in list(self._inflight):
            if key[:len(prefix)] == prefix:
                del self._inflight[key]
        return count

    def collect(self) -> int:
        """Evict entries unused for longer than their gc window."""
        now = self._clock()
        expired = [k for k, e in self._entries.items() if now - e.last_accessed >= e.gc_time]
        for key in expired:
            del self._entries[key]
        if expired:
            logger.debug(f"Query cache evicted {len(expired)} unused entries")
        return len(expired)

    def clear(self) -> None:
        self._entries.clear()
        self._inflight.clear()

    def __len__(self) -> int:
        return len(self._entries)


class CatalogAPIClient:
    """Async client for the catalog/recommendation API with a query cache in front."""

    def __init__(
        self,
        base_url: str,
        user_email: Optional[str] = None,
        cache: Optional[QueryCache] = None,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        headers = {"X-User-Email": user_email} if user_email else {}
        self._http = httpx.AsyncClient(base_url=base_url.rstrip("/"), headers=headers, timeout=timeout, transport=transport)
        self.cache = cache or QueryCache()

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    async def _request(self, method: str, path: str, **kwargs) -> Any:
        try:
            resp = await self._http.request(method, path, **kwargs)
        except httpx.TimeoutException:
            raise UpstreamUnavailable(f"{method} {path} timed out")
        except httpx.HTTPError as e:
            raise UpstreamUnavailable(f"{method} {path} failed: {e}")

        if resp.status_code == 401:
            raise Unauthorized("Authentication required")
        if resp.status_code == 404:
            raise NotFound(self._detail(resp))
        if resp.status_code in (400, 422):
            raise ValidationFailed(self._detail(resp))
        if resp.status_code >= 400:
            raise UpstreamUnavailable(self._detail(resp), status=resp.status_code)
        return resp.json()

    @staticmethod
    def _detail(resp: httpx.Response) -> str:
        try:
            body = resp.json()
        except ValueError:
            return resp.text
        return str(body.get("detail") or body.get("error") or body) if isinstance(body, dict) else str(body)

    async def _query(self, key: QueryKey, policy_name, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        policy = CLIENT_POLICIES[policy_name]
        return await self.cache.fetch(
            key,
            lambda: self._request("GET", path, params=params),
            stale_time=policy.stale_time,
            gc_time=policy.gc_time,
        )

    # --- catalog ---

    async def popular_movies(self, page: int = 1) -> Dict[str, Any]:
        return await self._query(("movies", "popular", page), ResourceClass.POPULAR_LIST, "/api/movies", {"page": page})

    async def movie(self, movie_id: int) -> Dict[str, Any]:
        return await self._query(("movies", "detail", movie_id), ResourceClass.MOVIE_DETAIL, f"/api/movies/{movie_id}")

    async def search(self, query: str, page: int = 1) -> Dict[str, Any]:
        return await self._query(("movies", "search", query, page), ResourceClass.SEARCH_RESULT, "/api/movies/search", {"query": query, "page": page})

    async def genres(self) -> Dict[str, Any]:
        return await self._query(("genres",), ResourceClass.GENRE_LIST, "/api/genres")

    async def genre_movies(self, genre_id: int, page: int = 1) -> Dict[str, Any]:
        return await self._query(("genres", genre_id, page), ResourceClass.GENRE_MOVIES, f"/api/genres/{genre_id}", {"page": page})

    # --- user library ---

    async def ratings(self) -> Any:
        return await self._query(("ratings",), "library", "/api/user-ratings")

    async def rate(self, movie_id: int, rating: int, **extra) -> Any:
        body = {"movie_id": movie_id, "rating": rating, **extra}
        result = await self._request("POST", "/api/user-ratings", json=body)
        # Rating also removes the movie from want-to-watch
        self.cache.invalidate(("ratings",))
        self.cache.invalidate(("want-to-watch",))
        return result

    async def unrate(self, movie_id: int) -> Any:
        result = await self._request("DELETE", f"/api/user-ratings/{movie_id}")
        self.cache.invalidate(("ratings",))
        return result

    async def want_to_watch(self) -> Any:
        return await self._query(("want-to-watch",), "library", "/api/want-to-watch")

    async def add_want_to_watch(self, movie_id: int, priority: int = 1, **extra) -> Any:
        body = {"movie_id": movie_id, "priority": priority, **extra}
        result = await self._request("POST", "/api/want-to-watch", json=body)
        self.cache.invalidate(("want-to-watch",))
        return result

    # --- recommendations ---

    async def recommendations(self) -> Any:
        return await self._query(("recommendations", "all"), "recommendations", "/api/recommendations")

    async def recent_recommendations(self, limit: int = 5) -> Any:
        return await self._query(("recommendations", "recent", limit), "recommendations", "/api/recommendations/recent", {"limit": limit})

    async def generate_recommendations(self) -> Any:
        result = await self._request("POST", "/api/recommend")
        self.cache.invalidate(("recommendations",))
        return result
