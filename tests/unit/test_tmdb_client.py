import unittest
from unittest.mock import patch

import fakeredis
import httpx

from app.core.config import settings
from app.core.errors import NotConfigured, RateLimitExceeded, UpstreamUnavailable
from app.core.redis_client import set_redis
from app.services.tmdb_client import TMDBClient, get_tmdb_api_key


def make_client(handler, **kwargs):
    kwargs.setdefault("api_key", "k")
    kwargs.setdefault("rate_limit", False)
    return TMDBClient(base_url="https://tmdb.test/3", transport=httpx.MockTransport(handler), **kwargs)


class TestTMDBClient(unittest.IsolatedAsyncioTestCase):
    async def test_popular_passes_key_language_and_page(self):
        seen = {}

        def handler(request):
            seen["path"] = request.url.path
            seen["params"] = dict(request.url.params)
            return httpx.Response(200, json={"page": 2, "results": []})

        data = await make_client(handler).popular_movies(2)
        self.assertEqual(data["page"], 2)
        self.assertEqual(seen["path"], "/3/movie/popular")
        self.assertEqual(seen["params"]["api_key"], "k")
        self.assertEqual(seen["params"]["page"], "2")
        self.assertIn("language", seen["params"])

    async def test_discover_by_genre(self):
        def handler(request):
            self.assertEqual(request.url.path, "/3/discover/movie")
            self.assertEqual(request.url.params["with_genres"], "28")
            return httpx.Response(200, json={"results": [{"id": 1}]})

        data = await make_client(handler).discover_by_genre(28)
        self.assertEqual(data["results"][0]["id"], 1)

    async def test_non_2xx_is_upstream_unavailable(self):
        for code in (401, 404, 429, 500, 503):
            client = make_client(lambda request, code=code: httpx.Response(code, json={}))
            with self.assertRaises(UpstreamUnavailable) as ctx:
                await client.movie_details(550)
            self.assertEqual(ctx.exception.status, code)

    async def test_transport_error_is_upstream_unavailable(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        with self.assertRaises(UpstreamUnavailable):
            await make_client(handler).genres()

    async def test_invalid_body_is_upstream_unavailable(self):
        with self.assertRaises(UpstreamUnavailable):
            await make_client(lambda request: httpx.Response(200, text="<html>")).genres()

    async def test_missing_key_is_not_configured(self):
        set_redis(fakeredis.FakeAsyncRedis(decode_responses=True))
        with patch.object(settings, "tmdb_api_key", ""):
            client = make_client(lambda request: httpx.Response(200, json={}), api_key=None)
            with self.assertRaises(NotConfigured):
                await client.genres()

    async def test_key_falls_back_to_redis_setting(self):
        redis = fakeredis.FakeAsyncRedis(decode_responses=True)
        await redis.set("settings:global:tmdb_api_key", "from-redis")
        set_redis(redis)
        with patch.object(settings, "tmdb_api_key", ""):
            self.assertEqual(await get_tmdb_api_key(), "from-redis")

    async def test_rate_limit_exceeded_fails_fast(self):
        set_redis(fakeredis.FakeAsyncRedis(decode_responses=True))
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(200, json={"genres": []})

        client = make_client(handler, rate_limit=True)
        with patch.dict("app.services.rate_limit.RATE_LIMITS", {"tmdb_api": {"limit": 2, "window": 10}}):
            await client.genres()
            await client.genres()
            with self.assertRaises(RateLimitExceeded):
                await client.genres()
        self.assertEqual(len(calls), 2)


if __name__ == "__main__":
    unittest.main()
