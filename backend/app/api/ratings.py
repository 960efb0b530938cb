"""
ratings.py

API endpoints for the current user's movie ratings (1-10).
Rating a movie also takes it off the user's want-to-watch list.
"""
from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
import logging

from app.core.database import get_db
from app.models import User
from app.schemas import RatingCreate, RatingSchema
from app.services.library_store import LibraryStore
from .deps import get_current_user

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("", response_model=List[RatingSchema])
def list_ratings(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    """All ratings of the current user, most recently rated first."""
    return LibraryStore(db).list_ratings(user.id)


@router.post("")
def rate_movie(body: RatingCreate, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    rating = LibraryStore(db).rate(
        user.id,
        body.movie_id,
        body.rating,
        notes=body.notes,
        movie_title=body.movie_title,
        poster_path=body.poster_path,
        release_date=body.release_date,
    )
    return {
        "success": True,
        "message": "Rating saved successfully",
        "rating": RatingSchema.model_validate(rating),
    }


@router.get("/{movie_id}")
def get_rating(movie_id: int, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    rating = LibraryStore(db).get_rating(user.id, movie_id)
    return {"rating": RatingSchema.model_validate(rating) if rating else None}


@router.delete("/{movie_id}")
def remove_rating(movie_id: int, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    LibraryStore(db).unrate(user.id, movie_id)
    logger.info(f"User {user.id} removed rating for movie {movie_id}")
    return {"success": True, "message": "Rating removed successfully"}
