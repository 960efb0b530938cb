"""
schemas.py

Pydantic schemas for ratings, want-to-watch entries and recommendations.
Range checks live in the stores so every caller gets ValidationFailed.
"""
from pydantic import BaseModel, ConfigDict
from typing import Optional, List, Dict, Any
import datetime


class RatingCreate(BaseModel):
    movie_id: int
    rating: int
    notes: Optional[str] = None
    movie_title: Optional[str] = None
    poster_path: Optional[str] = None
    release_date: Optional[str] = None


class RatingSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    movie_id: int
    rating: int
    notes: Optional[str] = None
    rated_at: datetime.datetime


class WantToWatchCreate(BaseModel):
    movie_id: int
    priority: Optional[int] = 1
    notes: Optional[str] = None
    movie_title: Optional[str] = None
    poster_path: Optional[str] = None
    release_date: Optional[str] = None


class WantToWatchSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    movie_id: int
    priority: int
    notes: Optional[str] = None
    movie_title: str
    poster_path: Optional[str] = None
    release_date: Optional[str] = None
    added_at: datetime.datetime


class RecommendationIn(BaseModel):
    """A generated recommendation, before (or without) persistence."""
    movie_id: int
    title: str
    reason: str
    personalized_reason: Optional[str] = None
    enhanced_reason: Optional[str] = None
    match_score: Optional[int] = None
    match_level: Optional[str] = None
    # TMDB display fields carried onto the movie row
    overview: Optional[str] = None
    poster_path: Optional[str] = None
    backdrop_path: Optional[str] = None
    release_date: Optional[str] = None
    vote_average: Optional[float] = None
    vote_count: Optional[int] = None
    popularity: Optional[float] = None
    revenue: Optional[int] = None
    runtime: Optional[int] = None
    genres: Optional[List[Dict[str, Any]]] = None


class RecommendationSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    movie_id: int
    reason: str
    personalized_reason: Optional[str] = None
    enhanced_reason: Optional[str] = None
    match_score: Optional[int] = None
    match_level: Optional[str] = None
    generated_at: datetime.datetime
    seen: bool = False
    acted_on: bool = False


class RecentRecommendationSchema(RecommendationSchema):
    title: Optional[str] = None
    overview: Optional[str] = None
    poster_path: Optional[str] = None
    release_date: Optional[str] = None
    vote_average: Optional[float] = None
    vote_count: Optional[int] = None
    popularity: Optional[float] = None
    revenue: Optional[int] = None


class RecommendationMark(BaseModel):
    seen: Optional[bool] = None
    acted_on: Optional[bool] = None


class GenerationResponse(BaseModel):
    recommendations: List[RecommendationIn]
    saved: bool
    error: Optional[str] = None


class RevalidateResponse(BaseModel):
    success: bool
    message: str
    tag: str
    invalidated: int
    timestamp: str
