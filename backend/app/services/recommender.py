"""
recommender.py

Recommendation generation flow:
ratings + want-to-watch -> opaque LLM generator -> TMDB lookup per title ->
match score -> RecommendationStore.

The generator itself is treated as a black box returning a ranked list of
{title, reason, personalizedReason}. A failed save still hands the
generated list back to the caller (saved=False); nothing is retried.
"""
import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

import httpx
from redis.exceptions import RedisError
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.errors import NotConfigured, NotFound, PersistenceFailed, UpstreamUnavailable, ValidationFailed
from app.models import User, UserRating, WantToWatch
from app.schemas import RecommendationIn
from app.services.catalog import CatalogService
from app.services.library_store import LibraryStore
from app.services.rate_limit import check_rate_limit
from app.services.recommendation_store import RecommendationStore

logger = logging.getLogger(__name__)

RECOMMENDATION_COUNT = 10

SYSTEM_PROMPT = "You are a movie recommendation expert. Respond with strict JSON only."


def build_prompt(rated: List[Tuple[str, int]], want_to_watch: List[str], count: int = RECOMMENDATION_COUNT) -> str:
    rated_lines = "\n".join(f"- {title} (Rating: {score}/10)" for title, score in rated) or "- (none)"
    want_lines = "\n".join(f"- {title}" for title in want_to_watch) or "- (none)"
    return f"""Based on the user's rated movies and want-to-watch list, suggest {count} unique movie recommendations.

User's Rated Movies (with ratings 1-10):
{rated_lines}

User's Want-to-Watch List:
{want_lines}

Please provide {count} movie recommendations in this exact JSON format:
[
  {{
    "title": "Movie Title",
    "reason": "Brief reason why this movie matches their taste",
    "personalizedReason": "Personalized explanation based on their ratings"
  }}
]

Focus on:
1. Movies similar to their highly rated films (8-10 ratings)
2. Movies from genres they enjoy
3. Movies with similar themes or directors
4. Popular and critically acclaimed films
5. Diverse recommendations across different genres

Do not recommend movies they already rated. Return only the JSON array, no additional text."""


def parse_recommendations(content: str) -> List[Dict[str, str]]:
    """Pull the JSON array out of the model answer (tolerates ``` fences)."""
    text = (content or "").strip()
    fenced = re.search(r"```(?:json)?\s*(.*?)```", text, re.DOTALL)
    if fenced:
        text = fenced.group(1).strip()
    start, end = text.find("["), text.rfind("]")
    if start == -1 or end <= start:
        raise UpstreamUnavailable("Recommendation generator returned no JSON array")
    try:
        data = json.loads(text[start:end + 1])
    except json.JSONDecodeError as e:
        raise UpstreamUnavailable(f"Recommendation generator returned invalid JSON: {e}")

    items = []
    for item in data:
        if not isinstance(item, dict):
            continue
        title = str(item.get("title") or "").strip()
        if not title:
            continue
        items.append({
            "title": title,
            "reason": str(item.get("reason") or "").strip(),
            "personalizedReason": str(item.get("personalizedReason") or item.get("personalized_reason") or "").strip(),
        })
    return items


def calculate_match_score(movie: Dict[str, Any]) -> Tuple[int, str]:
    """Score a TMDB hit on vote quality and popularity; returns (score 1..100, level)."""
    vote_average = movie.get("vote_average") or 0
    vote_count = movie.get("vote_count") or 0
    popularity = movie.get("popularity") or 0

    score = 0
    if vote_average >= 7.5 and vote_count >= 1000:
        score += 40
    elif vote_average >= 7.0 and vote_count >= 500:
        score += 30
    elif vote_average >= 6.5 and vote_count >= 100:
        score += 20
    elif vote_average >= 6.0:
        score += 10

    if popularity > 100:
        score += 20
    elif popularity > 50:
        score += 15
    elif popularity > 20:
        score += 10

    if score >= 50:
        level = "LOVE IT"
    elif score >= 35:
        level = "LIKE IT"
    elif score >= 20:
        level = "MAYBE"
    else:
        level = "RISKY"
    return max(1, min(100, score)), level


def enhanced_reason(movie: Dict[str, Any]) -> str:
    vote_average = movie.get("vote_average") or 0
    vote_count = movie.get("vote_count") or 0
    popularity = movie.get("popularity") or 0

    if vote_average >= 7.5:
        quality = "highly acclaimed"
    elif vote_average >= 7.0:
        quality = "well-received"
    else:
        quality = "decent"
    reason = f'"{movie.get("title")}" is a {quality} film'
    if vote_count >= 10000:
        reason += f" with over {vote_count:,} ratings"
    elif vote_count >= 1000:
        reason += f" with {vote_count:,} ratings"
    if popularity > 100:
        reason += " and is currently trending"
    return reason


class LLMRecommendationGenerator:
    """OpenAI-compatible chat.completions caller."""

    def __init__(
        self,
        api_base: Optional[str] = None,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        rate_limit: Optional[bool] = None,
    ):
        self.api_base = (api_base or settings.ai_llm_api_base).rstrip("/")
        self.api_key = api_key if api_key is not None else settings.ai_llm_api_key
        self.model = model or settings.ai_llm_model
        self.timeout = timeout or settings.ai_llm_timeout_seconds
        self._transport = transport
        self.rate_limit = settings.ai_llm_rate_limit_enabled if rate_limit is None else rate_limit

    async def generate(
        self, rated: List[Tuple[str, int]], want_to_watch: List[str], user_id: Optional[str] = None
    ) -> List[Dict[str, str]]:
        if not self.api_key:
            raise NotConfigured("Recommendation generator API key not configured")
        if self.rate_limit:
            try:
                await check_rate_limit(user_id or "global", "ai_llm")
            except RedisError as e:
                logger.warning(f"Rate limiter unavailable, continuing without it: {e}")

        payload = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": build_prompt(rated, want_to_watch)},
            ],
            "max_tokens": settings.ai_llm_max_tokens,
        }
        headers = {"Content-Type": "application/json", "Authorization": f"Bearer {self.api_key}"}
        try:
            async with httpx.AsyncClient(base_url=self.api_base, timeout=self.timeout, transport=self._transport) as client:
                resp = await client.post("/chat/completions", headers=headers, json=payload)
                resp.raise_for_status()
                data = resp.json()
        except httpx.TimeoutException as e:
            logger.warning(f"Recommendation generator timeout: {e}")
            raise UpstreamUnavailable("Recommendation generator timed out")
        except httpx.HTTPStatusError as e:
            logger.warning(f"Recommendation generator HTTP error: {e.response.status_code} - {e.response.text[:200]}")
            raise UpstreamUnavailable(f"Recommendation generator error: {e.response.status_code}", status=e.response.status_code)
        except httpx.HTTPError as e:
            raise UpstreamUnavailable(f"Recommendation generator request failed: {e}")
        except ValueError as e:
            raise UpstreamUnavailable(f"Recommendation generator returned an unreadable body: {e}")

        choices = data.get("choices") if isinstance(data, dict) else None
        if not isinstance(choices, list) or not choices or not isinstance(choices[0], dict):
            raise UpstreamUnavailable("Recommendation generator returned no choices")
        content = (choices[0].get("message") or {}).get("content") or ""
        return parse_recommendations(content)


@dataclass
class GenerationResult:
    recommendations: List[RecommendationIn] = field(default_factory=list)
    saved: bool = False
    error: Optional[str] = None


class RecommendationService:
    def __init__(self, catalog: CatalogService, generator=None):
        self.catalog = catalog
        self.generator = generator or LLMRecommendationGenerator()

    async def _resolve(self, suggestion: Dict[str, str], skip_ids: set) -> Optional[RecommendationIn]:
        try:
            result = await self.catalog.search(suggestion["title"], 1)
        except UpstreamUnavailable as e:
            logger.warning(f"Could not look up \"{suggestion['title']}\": {e.message}")
            return None
        hits = (result.payload or {}).get("results") or []
        if not hits:
            logger.info(f"No movies found for title: \"{suggestion['title']}\"")
            return None
        best = hits[0]
        if not best.get("id") or best["id"] in skip_ids:
            return None

        score, level = calculate_match_score(best)
        title = best.get("title") or suggestion["title"]
        return RecommendationIn(
            movie_id=best["id"],
            title=title,
            reason=suggestion["reason"] or f'Found "{title}" in TMDB',
            personalized_reason=suggestion["personalizedReason"] or None,
            enhanced_reason=enhanced_reason(best),
            match_score=score,
            match_level=level,
            overview=best.get("overview"),
            poster_path=best.get("poster_path"),
            backdrop_path=best.get("backdrop_path"),
            release_date=best.get("release_date"),
            vote_average=best.get("vote_average"),
            vote_count=best.get("vote_count"),
            popularity=best.get("popularity"),
        )

    async def generate(self, db: Session, user: User) -> GenerationResult:
        library = LibraryStore(db)
        ratings: List[UserRating] = library.list_ratings(user.id)
        want: List[WantToWatch] = library.list_want_to_watch(user.id)
        if not ratings:
            raise ValidationFailed("Rate at least one movie before asking for recommendations")

        rated = [(r.movie.title if r.movie else f"Movie {r.movie_id}", r.rating) for r in ratings]
        suggestions = await self.generator.generate(rated, [w.movie_title for w in want], user_id=str(user.id))

        skip_ids = {r.movie_id for r in ratings}
        recommendations: List[RecommendationIn] = []
        for suggestion in suggestions:
            rec = await self._resolve(suggestion, skip_ids)
            if rec is None:
                continue
            skip_ids.add(rec.movie_id)
            recommendations.append(rec)

        if not recommendations:
            raise NotFound("No recommendations found")

        try:
            RecommendationStore(db).save(user.id, recommendations)
        except PersistenceFailed as e:
            logger.error(f"Generated {len(recommendations)} recommendations for user {user.id} but could not save them: {e.message}")
            return GenerationResult(recommendations=recommendations, saved=False, error=e.message)
        return GenerationResult(recommendations=recommendations, saved=True)
