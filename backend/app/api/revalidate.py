"""
revalidate.py

On-demand invalidation of origin cache entries by tag.
"""
from typing import Optional
from fastapi import APIRouter, Depends, Query
import logging

from app.schemas import RevalidateResponse
from app.services.catalog import CatalogService
from app.utils.timezone import format_iso_utc, utc_now
from .deps import get_catalog

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("", response_model=RevalidateResponse)
async def revalidate(
    tag: Optional[str] = Query(None),
    catalog: CatalogService = Depends(get_catalog),
):
    """Invalidate every cached entry carrying ``tag``. Unknown tags are a no-op."""
    invalidated = await catalog.invalidate(tag)
    tag = tag.strip()
    logger.info(f"Revalidated tag {tag} ({invalidated} entries)")
    return RevalidateResponse(
        success=True,
        message=f"Revalidated tag: {tag}",
        tag=tag,
        invalidated=invalidated,
        timestamp=format_iso_utc(utc_now()),
    )


@router.get("")
async def revalidate_usage():
    return {
        "message": "Cache revalidation API",
        "usage": "POST /api/revalidate?tag=<tag-name>",
        "examples": [
            "genres-list",
            "popular-movies",
            "popular-movies-page-1",
            "movie-550",
            "search-batman",
            "genre-28",
        ],
    }
