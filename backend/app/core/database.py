from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
import asyncio
import logging

from app.core.config import settings

logger = logging.getLogger(__name__)


def make_engine(database_url: str) -> Engine:
    """Create an engine for the configured store.

    PostgreSQL gets a pooled engine; SQLite (tests, local runs) gets a single
    shared connection with foreign keys switched on so cascades hold.
    """
    if database_url.startswith("sqlite"):
        eng = create_engine(
            database_url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )

        @event.listens_for(eng, "connect")
        def _enable_foreign_keys(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

        return eng

    # pool_pre_ping: verify connections before using them
    # pool_recycle: recycle connections after N seconds to prevent stale connections
    return create_engine(
        database_url,
        pool_size=20,
        max_overflow=30,
        pool_timeout=30,
        pool_recycle=3600,
        pool_pre_ping=True,
    )


engine = make_engine(settings.database_url)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def create_schema(bind: Engine = None) -> None:
    from app.models import Base
    Base.metadata.create_all(bind=bind or engine)


async def init_db():
    loop = asyncio.get_running_loop()
    try:
        await loop.run_in_executor(None, create_schema)
        logger.info("Database schema ready")
    except Exception as e:
        logger.error(f"Database initialisation failed: {e}")
        raise
