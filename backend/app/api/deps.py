"""
deps.py

Shared FastAPI dependencies: the current user, the catalog service and the
recommendation service. Services are process-wide singletons so every request
sees the same origin cache.
"""
from typing import Optional

from fastapi import Depends, Header
from sqlalchemy.orm import Session

from app import crud
from app.core.database import get_db
from app.core.errors import Unauthorized
from app.models import User
from app.services.catalog import CatalogService
from app.services.recommender import RecommendationService

_catalog: Optional[CatalogService] = None
_recommendations: Optional[RecommendationService] = None


def get_catalog() -> CatalogService:
    global _catalog
    if _catalog is None:
        _catalog = CatalogService()
    return _catalog


def get_recommendation_service(catalog: CatalogService = Depends(get_catalog)) -> RecommendationService:
    global _recommendations
    if _recommendations is None or _recommendations.catalog is not catalog:
        _recommendations = RecommendationService(catalog)
    return _recommendations


def get_current_user(
    x_user_email: Optional[str] = Header(None),
    x_user_name: Optional[str] = Header(None),
    db: Session = Depends(get_db),
) -> User:
    """Resolve the identity set by the fronting auth layer; rows are created on first use."""
    email = (x_user_email or "").strip().lower()
    if not email:
        raise Unauthorized("Authentication required")
    return crud.get_or_create_user(db, email, x_user_name)
