import asyncio
import unittest

import httpx

from app.core.errors import NotFound, Unauthorized, UpstreamUnavailable, ValidationFailed
from app.services.cache_policy import ResourceClass
from app.services.query_client import CLIENT_POLICIES, CatalogAPIClient, QueryCache


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


class Counter:
    def __init__(self, delay=0.0):
        self.calls = 0
        self.delay = delay

    async def __call__(self):
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        return self.calls


class TestQueryCache(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.clock = FakeClock()
        self.cache = QueryCache(stale_time=60, gc_time=300, clock=self.clock)

    async def test_fresh_data_does_not_refetch(self):
        fn = Counter()
        self.assertEqual(await self.cache.fetch(("movies", 1), fn), 1)
        self.clock.now = 59
        self.assertEqual(await self.cache.fetch(("movies", 1), fn), 1)
        self.assertEqual(fn.calls, 1)

    async def test_stale_data_refetches(self):
        fn = Counter()
        await self.cache.fetch(("movies", 1), fn)
        self.clock.now = 61
        self.assertFalse(self.cache.is_fresh(("movies", 1)))
        self.assertEqual(await self.cache.fetch(("movies", 1), fn), 2)

    async def test_unused_entries_are_collected(self):
        await self.cache.fetch(("a",), Counter())
        await self.cache.fetch(("b",), Counter())
        self.clock.now = 200
        await self.cache.fetch(("b",), Counter())
        self.clock.now = 301
        self.assertEqual(self.cache.collect(), 1)
        self.assertIsNone(self.cache.get(("a",)))
        self.assertIsNotNone(self.cache.get(("b",)))

    async def test_concurrent_fetches_coalesce(self):
        fn = Counter(delay=0.02)
        results = await asyncio.gather(*[self.cache.fetch(("genres",), fn) for _ in range(5)])
        self.assertEqual(results, [1] * 5)
        self.assertEqual(fn.calls, 1)

    async def test_invalidate_by_prefix(self):
        fn = Counter()
        await self.cache.fetch(("recommendations", "all"), fn)
        await self.cache.fetch(("recommendations", "recent", 5), fn)
        await self.cache.fetch(("ratings",), fn)
        self.assertEqual(self.cache.invalidate(("recommendations",)), 2)
        self.assertFalse(self.cache.is_fresh(("recommendations", "all")))
        self.assertTrue(self.cache.is_fresh(("ratings",)))

    async def test_errors_propagate(self):
        async def boom():
            raise UpstreamUnavailable("down")

        await self.cache.fetch(("x",), Counter())
        self.clock.now = 100
        with self.assertRaises(UpstreamUnavailable):
            await self.cache.fetch(("x",), boom)

    def test_gc_shorter_than_stale_rejected(self):
        with self.assertRaises(ValueError):
            QueryCache(stale_time=10, gc_time=5)

    def test_client_freshness_not_shorter_than_origin(self):
        for rc in ResourceClass:
            self.assertGreaterEqual(CLIENT_POLICIES[rc].stale_time, rc.ttl)
            self.assertGreaterEqual(CLIENT_POLICIES[rc].gc_time, CLIENT_POLICIES[rc].stale_time)


class TestCatalogAPIClient(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.requests = []
        self.ratings = []

    def handler(self, request):
        self.requests.append((request.method, request.url.path))
        path = request.url.path
        if request.headers.get("X-User-Email") is None and path.startswith("/api/user-ratings"):
            return httpx.Response(401, json={"error": "Unauthorized", "detail": "Authentication required"})
        if path == "/api/movies/550":
            return httpx.Response(200, json={"id": 550, "title": "Fight Club"})
        if path == "/api/movies/1":
            return httpx.Response(404, json={"error": "NotFound", "detail": "movie missing"})
        if path == "/api/movies/search":
            return httpx.Response(400, json={"error": "ValidationFailed", "detail": "Search query is required"})
        if path == "/api/genres":
            return httpx.Response(503, json={"error": "UpstreamUnavailable", "detail": "TMDB down"})
        if path == "/api/user-ratings" and request.method == "POST":
            self.ratings.append(1)
            return httpx.Response(200, json={"success": True})
        if path == "/api/user-ratings":
            return httpx.Response(200, json=[{"movie_id": 550, "rating": 9}] * len(self.ratings))
        return httpx.Response(200, json={})

    def client(self, email="viewer@example.com"):
        return CatalogAPIClient("http://api.test", user_email=email, transport=httpx.MockTransport(self.handler))

    async def test_repeated_reads_hit_client_cache(self):
        async with self.client() as api:
            first = await api.movie(550)
            second = await api.movie(550)
        self.assertEqual(first, second)
        self.assertEqual(self.requests, [("GET", "/api/movies/550")])

    async def test_rate_invalidates_ratings(self):
        async with self.client() as api:
            self.assertEqual(await api.ratings(), [])
            await api.rate(550, 9)
            self.assertEqual(len(await api.ratings()), 1)
        self.assertEqual(self.requests.count(("GET", "/api/user-ratings")), 2)

    async def test_error_mapping(self):
        async with self.client() as api:
            with self.assertRaises(NotFound):
                await api.movie(1)
            with self.assertRaises(ValidationFailed):
                await api.search("")
            with self.assertRaises(UpstreamUnavailable) as ctx:
                await api.genres()
            self.assertEqual(ctx.exception.status, 503)
        async with self.client(email=None) as api:
            with self.assertRaises(Unauthorized):
                await api.ratings()


if __name__ == "__main__":
    unittest.main()
