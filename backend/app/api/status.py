"""
status.py

Origin cache statistics for operators.
"""
from fastapi import APIRouter, Depends

from app.services.catalog import CatalogService
from app.utils.timezone import format_iso_utc, utc_now
from .deps import get_catalog

router = APIRouter()


@router.get("/cache")
async def cache_status(catalog: CatalogService = Depends(get_catalog)):
    """Origin cache counters and sizes."""
    return {"cache": catalog.cache.stats(), "timestamp": format_iso_utc(utc_now())}
