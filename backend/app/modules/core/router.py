import logging

from fastapi import APIRouter, Request
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from app.core.migrations import CurrentRevision, HeadRevision

router = APIRouter(prefix="/api", tags=["health"])
logger = logging.getLogger("core.health")


@router.get("/health")
async def api_health() -> dict:
    logger.debug("health check ok")
    return {"status": "ok"}


@router.get("/health/db")
def api_health_db(request: Request) -> dict:
    session_factory = request.app.state.session_factory
    db = session_factory()
    try:
        db.execute(text("SELECT 1")).scalar()
        revision = CurrentRevision(db.connection())
    except SQLAlchemyError:
        logger.exception("db check failed")
        return {"status": "error", "detail": "database unavailable"}
    finally:
        db.close()

    head = HeadRevision()
    if revision is not None and revision != head:
        logger.warning("db schema at %s, expected %s", revision, head)
        return {"status": "degraded", "revision": revision, "expected": head}
    logger.debug("db check ok")
    return {"status": "ok"}


@router.get("/health/cache")
def api_health_cache(request: Request) -> dict:
    if request.app.state.cache.Ping():
        logger.debug("cache check ok")
        return {"status": "ok"}
    logger.error("cache check failed")
    return {"status": "error", "detail": "cache unavailable"}
