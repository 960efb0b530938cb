"""
recommendation_store.py

Persistence for generated recommendations.

Saves are upserts keyed by (user, movie): regenerating a recommendation for
a movie already recommended replaces its reason and score instead of adding
a row, so the bounded "most recent" view lists distinct movies.
"""
import logging
from datetime import timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app import crud
from app.core.config import settings
from app.core.errors import NotFound, PersistenceFailed, ValidationFailed
from app.models import MATCH_LEVELS, Movie, Recommendation
from app.schemas import RecommendationIn
from app.utils.timezone import utc_now

logger = logging.getLogger(__name__)

DEFAULT_RECENT_LIMIT = settings.recommendations_recent_limit


def validate_recommendation(rec: RecommendationIn) -> None:
    if not rec.reason or not rec.reason.strip():
        raise ValidationFailed(f"Recommendation for movie {rec.movie_id} has no reason")
    if rec.match_score is not None and not 1 <= rec.match_score <= 100:
        raise ValidationFailed("match_score must be between 1 and 100")
    if rec.match_level is not None and rec.match_level not in MATCH_LEVELS:
        raise ValidationFailed(f"match_level must be one of {', '.join(MATCH_LEVELS)}")


class RecommendationStore:
    def __init__(self, db: Session):
        self.db = db

    def get(self, user_id: int, movie_id: int) -> Optional[Recommendation]:
        return self.db.query(Recommendation).filter(
            Recommendation.user_id == user_id,
            Recommendation.movie_id == movie_id,
        ).first()

    def save(self, user_id: int, recommendations: List[RecommendationIn]) -> List[Recommendation]:
        """Upsert every recommendation in one transaction and return the stored rows."""
        for rec in recommendations:
            validate_recommendation(rec)

        # Last one wins when a batch repeats a movie
        by_movie: Dict[int, RecommendationIn] = {}
        for rec in recommendations:
            by_movie.pop(rec.movie_id, None)
            by_movie[rec.movie_id] = rec

        try:
            try:
                stored = self._write_batch(user_id, by_movie)
            except IntegrityError:
                # Another request inserted one of these pairs first; the retry updates it
                self.db.rollback()
                logger.info(f"Recommendation save for user {user_id} raced another insert; retrying")
                stored = self._write_batch(user_id, by_movie)
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Error saving recommendations for user {user_id}: {e}")
            raise PersistenceFailed(f"Failed to save recommendations: {e}")

        for row in stored:
            self.db.refresh(row)
        logger.info(f"Saved {len(stored)} recommendations for user {user_id}")
        return stored

    def _write_batch(self, user_id: int, by_movie: Dict[int, RecommendationIn]) -> List[Recommendation]:
        stored: List[Recommendation] = []
        batch_time = utc_now()
        for rank, (movie_id, rec) in enumerate(by_movie.items()):
            crud.ensure_movie(self.db, movie_id, rec.title, rec.model_dump(), refresh=True)
            row = self.get(user_id, movie_id)
            # Keep the generator's ranking inside one batch when ordering by time
            now = batch_time - timedelta(microseconds=rank)
            if row is None:
                row = Recommendation(user_id=user_id, movie_id=movie_id)
                self.db.add(row)
            row.reason = rec.reason
            row.personalized_reason = rec.personalized_reason
            row.enhanced_reason = rec.enhanced_reason
            row.match_score = rec.match_score
            row.match_level = rec.match_level
            row.generated_at = now
            row.updated_at = now
            stored.append(row)
        self.db.commit()
        return stored

    def _check_limit(self, limit: int) -> int:
        if limit is None:
            return DEFAULT_RECENT_LIMIT
        if limit < 1:
            raise ValidationFailed("limit must be at least 1")
        return min(limit, settings.recommendations_max_limit)

    def most_recent(self, user_id: int, limit: int = DEFAULT_RECENT_LIMIT) -> List[Recommendation]:
        limit = self._check_limit(limit)
        return (
            self.db.query(Recommendation)
            .filter(Recommendation.user_id == user_id)
            .order_by(Recommendation.generated_at.desc(), Recommendation.id.desc())
            .limit(limit)
            .all()
        )

    def most_recent_with_movies(self, user_id: int, limit: int = DEFAULT_RECENT_LIMIT) -> List[Dict[str, Any]]:
        """Most recent recommendations joined with the movie fields needed for display."""
        limit = self._check_limit(limit)
        rows = (
            self.db.query(Recommendation, Movie)
            .join(Movie, Recommendation.movie_id == Movie.id)
            .filter(Recommendation.user_id == user_id)
            .order_by(Recommendation.generated_at.desc(), Recommendation.id.desc())
            .limit(limit)
            .all()
        )
        out = []
        for rec, movie in rows:
            out.append({
                "movie_id": rec.movie_id,
                "reason": rec.reason,
                "personalized_reason": rec.personalized_reason,
                "enhanced_reason": rec.enhanced_reason,
                "match_score": rec.match_score,
                "match_level": rec.match_level,
                "generated_at": rec.generated_at,
                "seen": rec.seen,
                "acted_on": rec.acted_on,
                "title": movie.title,
                "overview": movie.overview or "",
                "poster_path": movie.poster_path,
                "release_date": movie.release_date or "",
                "vote_average": movie.vote_average or 0,
                "vote_count": movie.vote_count or 0,
                "popularity": movie.popularity,
                "revenue": movie.revenue,
            })
        return out

    def all(self, user_id: int) -> List[Recommendation]:
        return (
            self.db.query(Recommendation)
            .filter(Recommendation.user_id == user_id)
            .order_by(Recommendation.generated_at.desc(), Recommendation.id.desc())
            .all()
        )

    def mark(self, user_id: int, movie_id: int, seen: Optional[bool] = None, acted_on: Optional[bool] = None) -> Recommendation:
        row = self.get(user_id, movie_id)
        if row is None:
            raise NotFound(f"No recommendation for movie {movie_id}")
        try:
            if seen is not None:
                row.seen = seen
            if acted_on is not None:
                row.acted_on = acted_on
            self.db.commit()
            self.db.refresh(row)
        except SQLAlchemyError as e:
            self.db.rollback()
            raise PersistenceFailed(f"Failed to update recommendation: {e}")
        return row
