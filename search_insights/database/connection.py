"""
Database and Redis connections for Search Insights
"""
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from typing import Any, Dict, Optional
import redis
import os
import logging

logger = logging.getLogger(__name__)

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./search_insights.db")
REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379/0")


def _engine_options(url: str) -> Dict[str, Any]:
    """Pool sizing applies to server databases only; SQLite uses its own pool"""
    options: Dict[str, Any] = {
        "pool_pre_ping": True,
        "echo": os.getenv("ENVIRONMENT") == "development"
    }
    if not url.startswith("sqlite"):
        options["pool_size"] = int(os.getenv("DB_POOL_SIZE", "10"))
        options["max_overflow"] = int(os.getenv("DB_MAX_OVERFLOW", "20"))
    return options


def _connect_redis(url: str) -> Optional[redis.Redis]:
    """Redis client, or None when the server cannot be reached"""
    client = redis.from_url(
        url,
        max_connections=int(os.getenv("REDIS_MAX_CONNECTIONS", "20")),
        decode_responses=True,
        socket_connect_timeout=2
    )
    try:
        client.ping()
    except redis.RedisError as e:
        logger.warning(f"Redis unavailable at {url}: {e}. Analytics reports will not be cached.")
        return None
    logger.info("Redis connection established successfully")
    return client


engine = create_engine(DATABASE_URL, **_engine_options(DATABASE_URL))
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
redis_client = _connect_redis(REDIS_URL)


def get_db():
    """Database session dependency for FastAPI"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_redis() -> Optional[redis.Redis]:
    """Redis dependency for FastAPI"""
    return redis_client


def create_tables():
    """Create the event tables"""
    from .models import Base
    Base.metadata.create_all(bind=engine)
    logger.info("Event tables created successfully")
