from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
from typing import Callable, Optional
from datetime import datetime
import logging
import time

import redis.asyncio as redis
from sqlalchemy.ext.asyncio import AsyncEngine

from .core.config import Settings, get_settings
from .core.database import build_engine, build_session_factory
from .core.cache import CacheManager
from .core.error_handlers import register_exception_handlers
from .core.logging import setup_logging
from .models.base import utcnow
from .services.chat.websocket_manager import RealtimeHub

from .routers import health, notifications
from .routers.chat import chat_router, typing_router, websocket_router

logger = logging.getLogger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    *,
    engine: Optional[AsyncEngine] = None,
    redis_client: Optional[redis.Redis] = None,
    clock: Optional[Callable[[], datetime]] = None
) -> FastAPI:
    """Build the API with every shared resource stored on ``app.state``"""
    settings = settings or get_settings()
    setup_logging(settings)

    engine = engine or build_engine(settings)
    cache = CacheManager(settings.redis_url, client=redis_client)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(f"Starting HR Chat API ({settings.environment})")
        await cache.connect()
        logger.info("Cache initialized")

        yield

        logger.info("Shutting down HR Chat API")
        await cache.disconnect()
        await engine.dispose()
        logger.info("Shutdown complete")

    app = FastAPI(
        title="HR Chat API",
        description="Chat read-state, unread counters, typing status and notifications",
        version=settings.app_version,
        lifespan=lifespan
    )

    app.state.settings = settings
    app.state.engine = engine
    app.state.session_factory = build_session_factory(engine)
    app.state.cache = cache
    app.state.retry_policy = settings.retry_policy
    app.state.realtime_hub = RealtimeHub()
    app.state.clock = clock or utcnow

    @app.middleware("http")
    async def add_process_time_header(request: Request, call_next):
        start_time = time.time()
        response = await call_next(request)
        process_time = time.time() - start_time
        response.headers["X-Process-Time"] = str(process_time)
        logger.info(f"{request.method} {request.url.path} - {process_time:.3f}s")
        return response

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        max_age=3600,
    )

    register_exception_handlers(app)

    app.include_router(health.router)
    app.include_router(chat_router)
    app.include_router(typing_router)
    app.include_router(notifications.router)
    app.include_router(websocket_router)

    @app.get("/")
    async def root():
        return {
            "message": "HR Chat API",
            "version": settings.app_version,
            "features": ["Read receipts", "Unread counts", "Typing status", "Notifications", "Realtime feed"],
            "status": "active"
        }

    return app


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("app.main:create_app", factory=True, host="0.0.0.0", port=8000, reload=True)
