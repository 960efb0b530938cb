"""
models.py

SQLAlchemy models for User, Movie, UserRating, WantToWatch and Recommendation.
"""
from sqlalchemy import Column, Integer, BigInteger, String, Boolean, ForeignKey, DateTime, Float, Text, UniqueConstraint, Index, JSON
from sqlalchemy.orm import declarative_base
from sqlalchemy.orm import relationship
from app.utils.timezone import utc_now

Base = declarative_base()

MATCH_LEVELS = ("LOVE IT", "LIKE IT", "MAYBE", "RISKY")


class User(Base):
    __tablename__ = "users"
    id = Column(Integer, primary_key=True)
    email = Column(String, unique=True, nullable=False)
    name = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utc_now)
    updated_at = Column(DateTime(timezone=True), default=utc_now, onupdate=utc_now)

    ratings = relationship("UserRating", back_populates="user", cascade="all, delete-orphan", passive_deletes=True)
    want_to_watch = relationship("WantToWatch", back_populates="user", cascade="all, delete-orphan", passive_deletes=True)
    recommendations = relationship("Recommendation", back_populates="user", cascade="all, delete-orphan", passive_deletes=True)


class Movie(Base):
    """Local copy of the TMDB fields needed to display ratings, lists and recommendations."""
    __tablename__ = "movies"
    id = Column(Integer, primary_key=True, autoincrement=False)  # TMDB id
    title = Column(String, nullable=False)
    overview = Column(Text)
    poster_path = Column(String)
    backdrop_path = Column(String)
    release_date = Column(String)  # raw YYYY-MM-DD
    vote_average = Column(Float)
    vote_count = Column(Integer)
    popularity = Column(Float)
    runtime = Column(Integer)
    status = Column(String)
    tagline = Column(String)
    budget = Column(BigInteger)
    revenue = Column(BigInteger)
    genres = Column(JSON)
    production_companies = Column(JSON)
    last_updated = Column(DateTime(timezone=True), default=utc_now, onupdate=utc_now)

    ratings = relationship("UserRating", back_populates="movie", cascade="all, delete-orphan", passive_deletes=True)
    want_to_watch = relationship("WantToWatch", back_populates="movie", cascade="all, delete-orphan", passive_deletes=True)
    recommendations = relationship("Recommendation", back_populates="movie", cascade="all, delete-orphan", passive_deletes=True)


class UserRating(Base):
    __tablename__ = "user_ratings"
    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    movie_id = Column(Integer, ForeignKey("movies.id", ondelete="CASCADE"), nullable=False, index=True)
    rating = Column(Integer, nullable=False)  # 1..10
    notes = Column(Text, nullable=True)
    rated_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utc_now)
    updated_at = Column(DateTime(timezone=True), default=utc_now, onupdate=utc_now)

    user = relationship("User", back_populates="ratings")
    movie = relationship("Movie", back_populates="ratings")

    __table_args__ = (
        UniqueConstraint("user_id", "movie_id", name="uq_user_ratings_user_movie"),
        Index("ix_user_ratings_user_rated_at", "user_id", "rated_at"),
    )


class WantToWatch(Base):
    __tablename__ = "want_to_watch"
    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    movie_id = Column(Integer, ForeignKey("movies.id", ondelete="CASCADE"), nullable=False, index=True)
    priority = Column(Integer, default=1, nullable=False)  # 1..5
    notes = Column(Text, nullable=True)
    # Denormalized for display without a join
    movie_title = Column(String, nullable=False)
    poster_path = Column(String, nullable=True)
    release_date = Column(String, nullable=True)
    added_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utc_now)
    updated_at = Column(DateTime(timezone=True), default=utc_now, onupdate=utc_now)

    user = relationship("User", back_populates="want_to_watch")
    movie = relationship("Movie", back_populates="want_to_watch")

    __table_args__ = (
        UniqueConstraint("user_id", "movie_id", name="uq_want_to_watch_user_movie"),
        Index("ix_want_to_watch_user_added_at", "user_id", "added_at"),
    )


class Recommendation(Base):
    __tablename__ = "recommendations"
    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    movie_id = Column(Integer, ForeignKey("movies.id", ondelete="CASCADE"), nullable=False, index=True)
    reason = Column(Text, nullable=False)
    personalized_reason = Column(Text, nullable=True)
    enhanced_reason = Column(Text, nullable=True)
    match_score = Column(Integer, nullable=True)  # 1..100
    match_level = Column(String, nullable=True)  # one of MATCH_LEVELS
    generated_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)
    seen = Column(Boolean, default=False, nullable=False)
    acted_on = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utc_now)
    updated_at = Column(DateTime(timezone=True), default=utc_now, onupdate=utc_now)

    user = relationship("User", back_populates="recommendations")
    movie = relationship("Movie", back_populates="recommendations")

    __table_args__ = (
        UniqueConstraint("user_id", "movie_id", name="uq_recommendations_user_movie"),
        Index("ix_recommendations_user_generated_at", "user_id", "generated_at"),
    )
