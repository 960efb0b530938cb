from . import models
from .core.errors import NotFound, PersistenceFailed
from .utils.timezone import utc_now
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session
from typing import Any, Dict, Optional
import logging

logger = logging.getLogger(__name__)

# Recommendation payload fields copied onto the movie row when present
MOVIE_FIELDS = (
    "overview", "poster_path", "backdrop_path", "release_date", "vote_average",
    "vote_count", "popularity", "runtime", "status", "tagline", "budget",
    "revenue", "genres", "production_companies",
)


def get_user_by_email(db: Session, email: str) -> Optional[models.User]:
    return db.query(models.User).filter(models.User.email == email).first()


def get_or_create_user(db: Session, email: str, name: Optional[str] = None) -> models.User:
    user = get_user_by_email(db, email)
    if user:
        return user
    try:
        logger.info(f"Creating user record for {email}")
        user = models.User(email=email, name=name)
        db.add(user)
        db.commit()
        db.refresh(user)
        return user
    except IntegrityError:
        # Created by a concurrent request between the lookup and the insert
        db.rollback()
        user = get_user_by_email(db, email)
        if user is None:
            raise PersistenceFailed(f"Failed to create user {email}")
        return user
    except SQLAlchemyError as e:
        logger.error(f"Failed to create user {email}: {e}")
        db.rollback()
        raise PersistenceFailed(f"Failed to create user: {e}")


def ensure_movie(db: Session, movie_id: int, title: Optional[str] = None, details: Optional[Dict[str, Any]] = None, refresh: bool = False) -> models.Movie:
    """Create a placeholder movie row if missing.

    With ``refresh`` an existing row is updated from ``details`` as well.
    Flushes but never commits; the caller owns the transaction.
    """
    details = {k: v for k, v in (details or {}).items() if k in MOVIE_FIELDS and v is not None}
    movie = db.get(models.Movie, movie_id)
    if movie is None:
        movie = models.Movie(id=movie_id, title=title or f"Movie {movie_id}", **details)
        db.add(movie)
        db.flush()
        return movie
    if refresh:
        if title:
            movie.title = title
        for field, value in details.items():
            setattr(movie, field, value)
        movie.last_updated = utc_now()
    return movie


def delete_user(db: Session, user_id: int) -> bool:
    user = db.get(models.User, user_id)
    if not user:
        raise NotFound(f"User {user_id} not found")
    try:
        db.delete(user)
        db.commit()
        return True
    except SQLAlchemyError as e:
        db.rollback()
        raise PersistenceFailed(f"Failed to delete user {user_id}: {e}")


def delete_movie(db: Session, movie_id: int) -> bool:
    movie = db.get(models.Movie, movie_id)
    if not movie:
        raise NotFound(f"Movie {movie_id} not found")
    try:
        db.delete(movie)
        db.commit()
        return True
    except SQLAlchemyError as e:
        db.rollback()
        raise PersistenceFailed(f"Failed to delete movie {movie_id}: {e}")
