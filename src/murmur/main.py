"""FastAPI application factory.

create_app() returns a configured FastAPI instance. The process-wide
real-time objects (Broadcaster, KeyedLock) are built here, explicitly,
and kept on app.state for the routes to inject. Lifespan manages the
optional Redis connection and shutdown.
"""

from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from murmur import __version__
from murmur.api import api_router
from murmur.config import settings
from murmur.errors import register_error_handlers
from murmur.middleware.rate_limit import RateLimitMiddleware
from murmur.middleware.request_id import RequestIdMiddleware
from murmur.middleware.security import SecurityHeadersMiddleware
from murmur.realtime import Broadcaster, KeyedLock
from murmur.realtime.websocket import router as ws_router

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown lifecycle.

    Anything before `yield` runs at startup, after `yield` at shutdown.
    """
    logger.info(
        "murmur.starting",
        version=__version__,
        environment=settings.environment,
        port=settings.port,
    )

    from murmur.db.redis import close_redis, init_redis
    try:
        await init_redis()
        logger.info("murmur.redis_connected", url=settings.redis_url)
    except Exception as e:
        # Redis only backs rate limiting; chat works without it
        logger.warning("murmur.redis_unavailable", error=str(e))

    yield

    logger.info("murmur.shutdown")

    # End every live subscription so WebSocket handlers can finish
    await app.state.broadcaster.close()

    await close_redis()

    from murmur.db.engine import engine
    await engine.dispose()


def create_app() -> FastAPI:
    """Build and return the FastAPI application."""
    app = FastAPI(
        title="Murmur",
        description="Real-time chat backend — direct and group conversations",
        version=__version__,
        lifespan=lifespan,
    )

    app.state.broadcaster = Broadcaster(queue_size=settings.subscriber_queue_size)
    app.state.locks = KeyedLock()

    register_error_handlers(app)

    # ── Middleware stack ──────────────────────────────────────
    # Starlette middleware executes in reverse order of registration.
    # Request flow: CORS → RateLimit → Security → RequestId → handler
    app.add_middleware(RequestIdMiddleware)
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(
        RateLimitMiddleware,
        default_rpm=settings.rate_limit_rpm,
        auth_rpm=settings.rate_limit_auth_rpm,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(api_router)
    app.include_router(ws_router)

    return app


# Default app instance (used by uvicorn: murmur.main:app)
app = create_app()


def run() -> None:
    """Console entry point: serve the app with uvicorn."""
    import uvicorn

    uvicorn.run(
        "murmur.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )
