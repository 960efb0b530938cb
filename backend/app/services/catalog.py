"""
catalog.py

Catalog reads through the origin cache. Each read names its resource key,
resource class and invalidation tags; the cache decides whether TMDB is hit.
"""
import logging
from typing import Optional

from app.core.config import settings
from app.core.errors import ValidationFailed
from app.services import cache_policy
from app.services.cache_policy import ResourceClass
from app.services.fetch_cache import FetchResult, OriginFetchCache
from app.services.tmdb_client import TMDBClient

logger = logging.getLogger(__name__)

MAX_PAGE = 500  # TMDB refuses pages above this


def _check_page(page: int) -> int:
    if page < 1 or page > MAX_PAGE:
        raise ValidationFailed(f"page must be between 1 and {MAX_PAGE}")
    return page


class CatalogService:
    def __init__(self, client: Optional[TMDBClient] = None, cache: Optional[OriginFetchCache] = None):
        self.client = client or TMDBClient()
        self.cache = cache or OriginFetchCache(timeout=settings.upstream_timeout_seconds)

    async def popular(self, page: int = 1) -> FetchResult:
        _check_page(page)
        return await self.cache.fetch_cached(
            f"popular:{page}",
            ResourceClass.POPULAR_LIST,
            cache_policy.popular_tags(page),
            lambda: self.client.popular_movies(page),
        )

    async def movie(self, movie_id: int) -> FetchResult:
        if movie_id < 1:
            raise ValidationFailed("Invalid movie ID")
        return await self.cache.fetch_cached(
            f"movie:{movie_id}",
            ResourceClass.MOVIE_DETAIL,
            [cache_policy.movie_tag(movie_id)],
            lambda: self.client.movie_details(movie_id),
        )

    async def genres(self) -> FetchResult:
        return await self.cache.fetch_cached(
            "genres",
            ResourceClass.GENRE_LIST,
            [cache_policy.GENRES_TAG],
            self.client.genres,
        )

    async def search(self, query: str, page: int = 1) -> FetchResult:
        query = (query or "").strip()
        if not query:
            raise ValidationFailed("Search query is required")
        _check_page(page)
        return await self.cache.fetch_cached(
            f"search:{query.lower()}:{page}",
            ResourceClass.SEARCH_RESULT,
            cache_policy.search_tags(query, page),
            lambda: self.client.search_movies(query, page),
        )

    async def genre_movies(self, genre_id: int, page: int = 1) -> FetchResult:
        if genre_id < 1:
            raise ValidationFailed("Invalid genre ID")
        _check_page(page)
        return await self.cache.fetch_cached(
            f"genre:{genre_id}:{page}",
            ResourceClass.GENRE_MOVIES,
            cache_policy.genre_movies_tags(genre_id, page),
            lambda: self.client.discover_by_genre(genre_id, page),
        )

    async def invalidate(self, tag: str) -> int:
        tag = (tag or "").strip()
        if not tag:
            raise ValidationFailed("Tag parameter is required")
        return await self.cache.invalidate_tag(tag)
