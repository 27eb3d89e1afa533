import logging

from fastapi import APIRouter, Request
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from storefront.dependencies import get_runtime

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check(request: Request):
    """Liveness plus a quick look at the database, cache and scheduler"""
    runtime = get_runtime(request)

    database = "connected"
    try:
        async with runtime.db.session() as session:
            await session.execute(text("SELECT 1"))
    except (SQLAlchemyError, RuntimeError, OSError) as e:
        logger.error(f"Health check database error: {str(e)}")
        database = "error"

    if not runtime.cache.enabled:
        cache = "disabled"
    else:
        cache = "connected" if await runtime.cache.ping() else "unavailable"

    return {
        "status": "healthy" if database == "connected" else "unhealthy",
        "service": "Storefront Checkout",
        "database": database,
        "cache": cache,
        "scheduler": runtime.scheduler.status()["status"],
    }
