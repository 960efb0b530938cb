"""
genres.py

Genre list and per-genre movie pages, served through the origin cache.
"""
from fastapi import APIRouter, Depends, Query, Response

from app.services.cache_policy import ResourceClass, response_headers
from app.services.catalog import CatalogService
from .deps import get_catalog

router = APIRouter()


@router.get("")
async def list_genres(response: Response, catalog: CatalogService = Depends(get_catalog)):
    result = await catalog.genres()
    response.headers.update(response_headers(ResourceClass.GENRE_LIST, result.from_cache, result.stale))
    return result.payload


@router.get("/{genre_id}")
async def genre_movies(
    genre_id: int,
    response: Response,
    page: int = Query(1),
    catalog: CatalogService = Depends(get_catalog),
):
    """Movies of one genre, most popular first."""
    result = await catalog.genre_movies(genre_id, page)
    response.headers.update(response_headers(ResourceClass.GENRE_MOVIES, result.from_cache, result.stale))
    return result.payload
