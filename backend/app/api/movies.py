"""
movies.py

Catalog endpoints for movies. Reads go through the origin cache and answer
with the Cache-Control / X-Cache headers of their resource class.
"""
from fastapi import APIRouter, Depends, Query, Response
import logging

from app.services.cache_policy import ResourceClass, response_headers
from app.services.catalog import CatalogService
from app.services.fetch_cache import FetchResult
from .deps import get_catalog

router = APIRouter()
logger = logging.getLogger(__name__)


def _respond(response: Response, resource_class: ResourceClass, result: FetchResult):
    response.headers.update(response_headers(resource_class, result.from_cache, result.stale))
    return result.payload


@router.get("")
async def popular_movies(
    response: Response,
    page: int = Query(1),
    catalog: CatalogService = Depends(get_catalog),
):
    """Popular movies, one TMDB page at a time."""
    result = await catalog.popular(page)
    return _respond(response, ResourceClass.POPULAR_LIST, result)


# Declared before /{movie_id} so "search" is not read as an id
@router.get("/search")
async def search_movies(
    response: Response,
    query: str = Query(""),
    page: int = Query(1),
    catalog: CatalogService = Depends(get_catalog),
):
    result = await catalog.search(query, page)
    return _respond(response, ResourceClass.SEARCH_RESULT, result)


@router.get("/{movie_id}")
async def movie_details(
    movie_id: int,
    response: Response,
    catalog: CatalogService = Depends(get_catalog),
):
    result = await catalog.movie(movie_id)
    return _respond(response, ResourceClass.MOVIE_DETAIL, result)
