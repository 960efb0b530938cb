"""
library_store.py

Per-user ratings and want-to-watch entries.

Rating a movie removes it from the user's want-to-watch list in the same
transaction, so no reader ever sees both for one (user, movie) pair.
Removing a rating does not bring the entry back.
"""
import logging
from typing import List, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app import crud
from app.core.errors import NotFound, PersistenceFailed, ValidationFailed
from app.models import UserRating, WantToWatch
from app.utils.timezone import utc_now

logger = logging.getLogger(__name__)

RATING_MIN, RATING_MAX = 1, 10
PRIORITY_MIN, PRIORITY_MAX = 1, 5


def validate_rating(value) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or not RATING_MIN <= value <= RATING_MAX:
        raise ValidationFailed(f"Rating must be an integer between {RATING_MIN} and {RATING_MAX}")
    return value


def validate_priority(value) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or not PRIORITY_MIN <= value <= PRIORITY_MAX:
        raise ValidationFailed(f"Priority must be an integer between {PRIORITY_MIN} and {PRIORITY_MAX}")
    return value


class LibraryStore:
    def __init__(self, db: Session):
        self.db = db

    # --- ratings ---

    def get_rating(self, user_id: int, movie_id: int) -> Optional[UserRating]:
        return self.db.query(UserRating).filter(
            UserRating.user_id == user_id,
            UserRating.movie_id == movie_id,
        ).first()

    def rate(
        self,
        user_id: int,
        movie_id: int,
        value: int,
        notes: Optional[str] = None,
        movie_title: Optional[str] = None,
        poster_path: Optional[str] = None,
        release_date: Optional[str] = None,
    ) -> UserRating:
        """Insert or overwrite the user's rating and drop the movie from want-to-watch."""
        validate_rating(value)
        try:
            try:
                rating, removed = self._write_rating(user_id, movie_id, value, notes, movie_title, poster_path, release_date)
            except IntegrityError:
                # A concurrent request inserted the same pair first; overwrite it instead
                self.db.rollback()
                logger.info(f"Rating for movie {movie_id} by user {user_id} raced another insert; retrying as update")
                rating, removed = self._write_rating(user_id, movie_id, value, notes, movie_title, poster_path, release_date)
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Error rating movie {movie_id} for user {user_id}: {e}")
            raise PersistenceFailed(f"Failed to save rating: {e}")

        if removed:
            logger.info(f"Rated movie {movie_id}; removed it from user {user_id}'s want-to-watch list")
        return rating

    def _write_rating(self, user_id, movie_id, value, notes, movie_title, poster_path, release_date):
        crud.ensure_movie(self.db, movie_id, movie_title, {"poster_path": poster_path, "release_date": release_date})
        rating = self.get_rating(user_id, movie_id)
        now = utc_now()
        if rating:
            rating.rating = value
            rating.notes = notes
            rating.rated_at = now
            rating.updated_at = now
        else:
            rating = UserRating(user_id=user_id, movie_id=movie_id, rating=value, notes=notes, rated_at=now)
            self.db.add(rating)

        removed = self.db.query(WantToWatch).filter(
            WantToWatch.user_id == user_id,
            WantToWatch.movie_id == movie_id,
        ).delete(synchronize_session="fetch")
        self.db.commit()
        self.db.refresh(rating)
        return rating, removed

    def unrate(self, user_id: int, movie_id: int) -> UserRating:
        rating = self.get_rating(user_id, movie_id)
        if not rating:
            raise NotFound(f"No rating for movie {movie_id}")
        try:
            self.db.delete(rating)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Error removing rating for movie {movie_id}: {e}")
            raise PersistenceFailed(f"Failed to remove rating: {e}")
        return rating

    def list_ratings(self, user_id: int) -> List[UserRating]:
        return (
            self.db.query(UserRating)
            .filter(UserRating.user_id == user_id)
            .order_by(UserRating.rated_at.desc(), UserRating.id.desc())
            .all()
        )

    # --- want to watch ---

    def get_want_to_watch(self, user_id: int, movie_id: int) -> Optional[WantToWatch]:
        return self.db.query(WantToWatch).filter(
            WantToWatch.user_id == user_id,
            WantToWatch.movie_id == movie_id,
        ).first()

    def is_in_want_to_watch(self, user_id: int, movie_id: int) -> bool:
        return self.get_want_to_watch(user_id, movie_id) is not None

    def add_want_to_watch(
        self,
        user_id: int,
        movie_id: int,
        priority: int = 1,
        notes: Optional[str] = None,
        movie_title: Optional[str] = None,
        poster_path: Optional[str] = None,
        release_date: Optional[str] = None,
    ) -> WantToWatch:
        """Add a movie to the list. An existing entry is returned unchanged.

        A movie the user has already rated cannot be added.
        """
        if priority is None:
            priority = 1
        validate_priority(priority)
        if self.get_rating(user_id, movie_id) is not None:
            raise ValidationFailed(f"Movie {movie_id} is already rated")

        existing = self.get_want_to_watch(user_id, movie_id)
        if existing:
            return existing
        try:
            crud.ensure_movie(self.db, movie_id, movie_title, {"poster_path": poster_path, "release_date": release_date})
            entry = WantToWatch(
                user_id=user_id,
                movie_id=movie_id,
                priority=priority,
                notes=notes,
                movie_title=movie_title or f"Movie {movie_id}",
                poster_path=poster_path,
                release_date=release_date,
                added_at=utc_now(),
            )
            self.db.add(entry)
            self.db.commit()
            self.db.refresh(entry)
            return entry
        except IntegrityError:
            # Added concurrently by another request: same outcome as an existing entry
            self.db.rollback()
            existing = self.get_want_to_watch(user_id, movie_id)
            if existing is None:
                raise PersistenceFailed(f"Failed to add movie {movie_id} to want-to-watch")
            return existing
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Error adding movie {movie_id} to want-to-watch: {e}")
            raise PersistenceFailed(f"Failed to add to want-to-watch: {e}")

    def remove_want_to_watch(self, user_id: int, movie_id: int) -> WantToWatch:
        entry = self.get_want_to_watch(user_id, movie_id)
        if not entry:
            raise NotFound(f"Movie {movie_id} is not in the want-to-watch list")
        try:
            self.db.delete(entry)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise PersistenceFailed(f"Failed to remove from want-to-watch: {e}")
        return entry

    def list_want_to_watch(self, user_id: int) -> List[WantToWatch]:
        return (
            self.db.query(WantToWatch)
            .filter(WantToWatch.user_id == user_id)
            .order_by(WantToWatch.added_at.desc(), WantToWatch.id.desc())
            .all()
        )
