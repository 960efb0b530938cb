import os

# Settings are read at import time; point them at throwaway backends first.
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("REDIS_URL", "redis://localhost:6379/15")
os.environ.setdefault("TMDB_RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("TMDB_API_KEY", "test-key")
os.environ.setdefault("AI_LLM_RATE_LIMIT_ENABLED", "false")
