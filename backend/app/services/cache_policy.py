"""
cache_policy.py

Freshness policy per resource class, the Cache-Control header derived from it,
and the invalidation tag names each catalog resource is stored under.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List
from urllib.parse import quote

MINUTE = 60
HOUR = 60 * MINUTE
DAY = 24 * HOUR


@dataclass(frozen=True)
class CacheHeaders:
    max_age: int
    stale_while_revalidate: int


class ResourceClass(Enum):
    """(ttl, stale_while_revalidate, serve_stale) per class of catalog data."""

    GENRE_LIST = ("genre-list", 7 * DAY, 30 * DAY, True)
    MOVIE_DETAIL = ("movie-detail", 24 * HOUR, 7 * DAY, True)
    POPULAR_LIST = ("popular-list", 1 * HOUR, 24 * HOUR, True)
    SEARCH_RESULT = ("search-result", 30 * MINUTE, 1 * HOUR, True)
    GENRE_MOVIES = ("genre-movies", 1 * HOUR, 6 * HOUR, True)

    def __init__(self, label: str, ttl: int, stale_while_revalidate: int, serve_stale: bool):
        self.label = label
        self.ttl = ttl
        self.stale_while_revalidate = stale_while_revalidate
        self.serve_stale = serve_stale


def headers_for(resource_class: ResourceClass) -> CacheHeaders:
    return CacheHeaders(max_age=resource_class.ttl, stale_while_revalidate=resource_class.stale_while_revalidate)


def cache_control_value(resource_class: ResourceClass) -> str:
    h = headers_for(resource_class)
    return f"public, max-age={h.max_age}, s-maxage={h.max_age}, stale-while-revalidate={h.stale_while_revalidate}"


def response_headers(resource_class: ResourceClass, from_cache: bool, stale: bool = False) -> Dict[str, str]:
    """Headers attached to every cacheable catalog response."""
    if stale:
        state = "STALE"
    elif from_cache:
        state = "HIT"
    else:
        state = "MISS"
    return {"Cache-Control": cache_control_value(resource_class), "X-Cache": state}


# --- invalidation tags ---

GENRES_TAG = "genres-list"
POPULAR_TAG = "popular-movies"


def movie_tag(movie_id: int) -> str:
    return f"movie-{movie_id}"


def popular_page_tag(page: int) -> str:
    return f"popular-movies-page-{page}"


def _query_slug(query: str) -> str:
    return quote(query.strip().lower(), safe="")


def search_tag(query: str) -> str:
    return f"search-{_query_slug(query)}"


def search_page_tag(query: str, page: int) -> str:
    return f"search-{_query_slug(query)}-page-{page}"


def genre_tag(genre_id: int) -> str:
    return f"genre-{genre_id}"


def genre_page_tag(genre_id: int, page: int) -> str:
    return f"genre-{genre_id}-page-{page}"


def popular_tags(page: int) -> List[str]:
    return [popular_page_tag(page), POPULAR_TAG]


def search_tags(query: str, page: int) -> List[str]:
    return [search_page_tag(query, page), search_tag(query)]


def genre_movies_tags(genre_id: int, page: int) -> List[str]:
    return [genre_page_tag(genre_id, page), genre_tag(genre_id)]
