"""
TMDB client.
- Async httpx client; the API key never leaves the server.
- Key comes from settings (TMDB_API_KEY), falling back to the Redis-backed
  global setting.
- Any transport error, timeout or non-2xx answer is an UpstreamUnavailable;
  a missing key is NotConfigured.
- No in-module caching and no retries; results are cached by the caller
  (OriginFetchCache).
"""
import logging
from typing import Any, Dict, Optional
import httpx
from redis.exceptions import RedisError

from app.core.config import settings
from app.core.errors import NotConfigured, UpstreamUnavailable
from app.core.redis_client import get_redis
from app.services.rate_limit import check_rate_limit

logger = logging.getLogger(__name__)


async def get_tmdb_api_key() -> Optional[str]:
    """Read TMDB API key from settings, then from Redis-backed settings."""
    if settings.tmdb_api_key:
        return settings.tmdb_api_key
    try:
        r = get_redis()
        return await r.get("settings:global:tmdb_api_key")
    except RedisError as e:
        logger.warning(f"Could not read TMDB API key from Redis: {e}")
        return None


class TMDBClient:
    """Thin async wrapper over the TMDB v3 endpoints the catalog needs."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        language: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        rate_limit: Optional[bool] = None,
    ):
        self._api_key = api_key
        self.base_url = (base_url or settings.tmdb_base_url).rstrip("/")
        self.language = language or settings.tmdb_language
        self.timeout = timeout or settings.upstream_timeout_seconds
        self._transport = transport
        self.rate_limit = settings.tmdb_rate_limit_enabled if rate_limit is None else rate_limit

    async def _resolve_key(self) -> str:
        api_key = self._api_key or await get_tmdb_api_key()
        if not api_key:
            logger.warning("TMDB API key not configured")
            raise NotConfigured("TMDB API key not configured")
        return api_key

    async def _get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        api_key = await self._resolve_key()
        if self.rate_limit:
            try:
                await check_rate_limit("global", "tmdb_api")
            except RedisError as e:
                # Quota bookkeeping is best-effort; the upstream still enforces its own
                logger.warning(f"Rate limiter unavailable, continuing without it: {e}")

        query = {"api_key": api_key, "language": self.language}
        query.update(params or {})
        url = f"{self.base_url}{path}"
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                resp = await client.get(url, params=query)
                resp.raise_for_status()
                return resp.json()
        except httpx.TimeoutException as e:
            logger.warning(f"TMDB request timeout for {path}: {e}")
            raise UpstreamUnavailable(f"TMDB request timed out: {path}")
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            logger.warning(f"TMDB API error for {path}: {status}")
            raise UpstreamUnavailable(f"TMDB API error: {status} {e.response.reason_phrase}", status=status)
        except httpx.HTTPError as e:
            logger.warning(f"TMDB request failed for {path}: {e}")
            raise UpstreamUnavailable(f"TMDB request failed: {e}")
        except ValueError as e:
            # Body was not JSON
            raise UpstreamUnavailable(f"TMDB returned an unreadable body for {path}: {e}")

    async def popular_movies(self, page: int = 1) -> Dict[str, Any]:
        return await self._get("/movie/popular", {"page": page})

    async def movie_details(self, movie_id: int) -> Dict[str, Any]:
        return await self._get(f"/movie/{movie_id}")

    async def genres(self) -> Dict[str, Any]:
        return await self._get("/genre/movie/list")

    async def search_movies(self, query: str, page: int = 1) -> Dict[str, Any]:
        return await self._get("/search/movie", {"query": query, "page": page, "include_adult": "false"})

    async def discover_by_genre(self, genre_id: int, page: int = 1) -> Dict[str, Any]:
        return await self._get(
            "/discover/movie",
            {"with_genres": genre_id, "page": page, "sort_by": "popularity.desc", "include_adult": "false"},
        )
