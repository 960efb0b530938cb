"""
recommendations.py

Stored AI recommendations for the current user, plus the endpoint that
generates and saves a fresh batch.
"""
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
import logging

from app.core.database import get_db
from app.models import User
from app.schemas import (
    GenerationResponse,
    RecentRecommendationSchema,
    RecommendationMark,
    RecommendationSchema,
)
from app.services.recommendation_store import DEFAULT_RECENT_LIMIT, RecommendationStore
from app.services.recommender import RecommendationService
from .deps import get_current_user, get_recommendation_service

router = APIRouter()
generate_router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("", response_model=List[RecommendationSchema])
def list_recommendations(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return RecommendationStore(db).all(user.id)


@router.get("/recent", response_model=List[RecentRecommendationSchema])
def recent_recommendations(
    limit: Optional[int] = Query(DEFAULT_RECENT_LIMIT),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """The latest recommendations with the movie fields needed to show them."""
    return RecommendationStore(db).most_recent_with_movies(user.id, limit)


@router.patch("/{movie_id}", response_model=RecommendationSchema)
def mark_recommendation(
    movie_id: int,
    body: RecommendationMark,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return RecommendationStore(db).mark(user.id, movie_id, seen=body.seen, acted_on=body.acted_on)


@generate_router.post("", response_model=GenerationResponse)
async def generate_recommendations(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    service: RecommendationService = Depends(get_recommendation_service),
):
    result = await service.generate(db, user)
    if not result.saved:
        logger.warning(f"Returning {len(result.recommendations)} unsaved recommendations to user {user.id}")
    return GenerationResponse(
        recommendations=result.recommendations,
        saved=result.saved,
        error=result.error,
    )
