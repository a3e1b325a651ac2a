"""Health check endpoints."""
from fastapi import APIRouter, Request
import logging

from ..core.database import health_check_db
from ..core.retry import ChatError

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/health", tags=["Health"])


@router.get("/")
async def health_check(request: Request):
    """Basic health check"""
    return {
        "status": "healthy",
        "service": "HR Chat API",
        "version": request.app.state.settings.app_version,
    }


@router.get("/full-health")
async def full_health_check(request: Request):
    """Comprehensive health check"""
    health_status = {
        "service": "healthy",
        "database": "unknown",
        "cache": "unknown",
    }

    db_healthy = await health_check_db(request.app.state.engine)
    health_status["database"] = "healthy" if db_healthy else "unhealthy"

    try:
        cache_healthy = await request.app.state.cache.ping()
    except ChatError as e:
        logger.error(f"Cache health check failed: {e.message}")
        cache_healthy = False
    health_status["cache"] = "healthy" if cache_healthy else "unhealthy"

    overall_status = "healthy" if all(
        status == "healthy" for status in health_status.values()
    ) else "degraded"

    return {
        "status": overall_status,
        "components": health_status,
        "connections": len(request.app.state.realtime_hub.active_connections),
    }
