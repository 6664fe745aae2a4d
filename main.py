from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from search_insights import __version__
from search_insights.routes.analytics import router as analytics_router
from search_insights.database.connection import create_tables, get_redis, SessionLocal
from search_insights.cache.manager import CacheManager
import os
import logging

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Search Insights API",
    version=__version__,
    description="Search behavior analytics: sessions, funnels, stuck searches and suggestions"
)

# Comma-separated list of dashboard origins
cors_origins = [o.strip() for o in os.getenv("CORS_ORIGINS", "http://localhost:3000").split(",") if o.strip()]
app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
)

@app.on_event("startup")
async def startup_event():
    """Create event tables and report cache status"""
    create_tables()
    if get_redis() is None:
        logger.warning("Redis not available - analytics reports will be computed on every request")

app.include_router(analytics_router)

@app.get("/")
def root():
    return {"service": "Search Insights API", "version": __version__, "docs": "/docs"}

def _database_connected() -> bool:
    db = SessionLocal()
    try:
        db.execute(text("SELECT 1"))
        return True
    except SQLAlchemyError as e:
        logger.error(f"Database health check failed: {e}")
        return False
    finally:
        db.close()

@app.get("/health")
def health_check():
    """Database and cache status for monitoring"""
    cache_status = CacheManager(get_redis()).health_check()
    database_ok = _database_connected()

    return {
        "status": "healthy" if database_ok else "degraded",
        "database": "connected" if database_ok else "disconnected",
        "redis": "connected" if cache_status["redis_available"] else "disconnected",
        "cache": cache_status,
        "version": __version__
    }
