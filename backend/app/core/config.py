import os
from pydantic_settings import BaseSettings



class Settings(BaseSettings):
    database_url: str = os.getenv("DATABASE_URL", f"postgresql+psycopg2://{os.getenv('POSTGRES_USER', 'cinecache')}:{os.getenv('POSTGRES_PASSWORD', 'cinecache')}@db:5432/{os.getenv('POSTGRES_DB', 'cinecache')}")
    redis_url: str = os.getenv("REDIS_URL", "redis://redis:6379/0")
    cors_origins: str = os.getenv("CORS_ORIGINS", "*")

    # TMDB catalog source (key stays server-side)
    tmdb_api_key: str = os.getenv("TMDB_API_KEY", "")
    tmdb_base_url: str = os.getenv("TMDB_BASE_URL", "https://api.themoviedb.org/3")
    tmdb_language: str = os.getenv("TMDB_LANGUAGE", "en-US")
    tmdb_rate_limit_enabled: bool = os.getenv("TMDB_RATE_LIMIT_ENABLED", "true").lower() == "true"

    # Fixed deadline for any upstream catalog fetch (seconds)
    upstream_timeout_seconds: float = float(os.getenv("UPSTREAM_TIMEOUT_SECONDS", "5"))

    # Recommendation generator (OpenAI-compatible chat completions)
    ai_llm_api_base: str = os.getenv("AI_LLM_API_BASE", os.getenv("OPENAI_API_BASE", "https://api.openai.com/v1"))
    ai_llm_api_key: str = os.getenv("AI_LLM_API_KEY", os.getenv("OPENAI_API_KEY", ""))
    ai_llm_model: str = os.getenv("AI_LLM_MODEL", "gpt-4")
    ai_llm_timeout_seconds: float = float(os.getenv("AI_LLM_TIMEOUT_SECONDS", "30"))
    ai_llm_max_tokens: int = int(os.getenv("AI_LLM_MAX_TOKENS", "2000"))
    ai_llm_rate_limit_enabled: bool = os.getenv("AI_LLM_RATE_LIMIT_ENABLED", "true").lower() == "true"

    # Bounded history view
    recommendations_recent_limit: int = int(os.getenv("RECOMMENDATIONS_RECENT_LIMIT", "5"))
    recommendations_max_limit: int = int(os.getenv("RECOMMENDATIONS_MAX_LIMIT", "50"))

settings = Settings()
