from fastapi import FastAPI, HTTPException
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from starlette.requests import Request
import logging

from app.api import genres, movies, ratings, recommendations, revalidate, status, want_to_watch
from app.core.config import settings
from app.core.database import init_db, SessionLocal
from app.core.errors import AppError
from app.core.redis_client import close_redis, get_redis
from app.utils.logger import configure_logging
from app.utils.timezone import utc_now

logger = logging.getLogger(__name__)

app = FastAPI(title="CineCache API", version="1.0.0")

# Add GZip compression middleware for better transfer performance
app.add_middleware(GZipMiddleware, minimum_size=1000)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in settings.cors_origins.split(",") if o.strip()],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Catalog (cached, public)
app.include_router(movies.router, prefix="/api/movies", tags=["Movies"])
app.include_router(genres.router, prefix="/api/genres", tags=["Genres"])
app.include_router(revalidate.router, prefix="/api/revalidate", tags=["Cache"])
app.include_router(status.router, prefix="/api/status", tags=["Status"])

# Per-user library and recommendations
app.include_router(ratings.router, prefix="/api/user-ratings", tags=["Ratings"])
app.include_router(want_to_watch.router, prefix="/api/want-to-watch", tags=["Want to Watch"])
app.include_router(recommendations.router, prefix="/api/recommendations", tags=["Recommendations"])
app.include_router(recommendations.generate_router, prefix="/api/recommend", tags=["Recommendations"])


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.kind}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.on_event("startup")
async def startup_event():
    configure_logging()
    await init_db()


@app.on_event("shutdown")
async def shutdown_event():
    await close_redis()


@app.get("/")
def root():
    return {"status": "CineCache API Running"}


@app.get("/health")
async def health_check():
    """Simple health check endpoint for load balancers/monitoring"""
    try:
        # Quick Redis check
        await get_redis().ping()

        # Quick DB check
        db = SessionLocal()
        try:
            db.execute(text("SELECT 1"))
        finally:
            db.close()

        return {"status": "healthy", "timestamp": utc_now().isoformat()}
    except Exception as e:
        raise HTTPException(status_code=503, detail=f"Service unhealthy: {str(e)}")
