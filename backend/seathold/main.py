"""
Seat Hold API - Main Application Entry Point

Real-time seat holds for a venue:
- Conditional-update hold ledger (no seat double-held, 8-hold cap per session)
- Expiry sweeper returning stale holds to the pool
- WebSocket fan-out of every seat change to all connected seat maps
- Structured logging with request/session correlation
"""

from contextlib import asynccontextmanager
from datetime import timedelta

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from seathold.core.config import get_settings
from seathold.core.logging import setup_logging, get_logger
from seathold.core.metrics import metrics_endpoint
from seathold.api.errors import register_exception_handlers
from seathold.api.middleware import RequestLoggingMiddleware
from seathold.api.router import api_router
from seathold.api.routes import realtime
from seathold.db.session import dispose_engine, get_session_factory
from seathold.realtime.registry import ConnectionRegistry
from seathold.services.cache_service import close_redis, get_cache_stats, get_redis, invalidate_seat_cache
from seathold.services.seat_service import SeatCommandProcessor
from seathold.services.sweeper import ExpirySweeper

settings = get_settings()


def wire_services(app: FastAPI, session_factory: async_sessionmaker[AsyncSession]) -> None:
    """Build the process-wide registry, sweeper and processor and attach them to app.state."""
    registry = ConnectionRegistry(before_broadcast=[invalidate_seat_cache])
    sweeper = ExpirySweeper(
        session_factory,
        registry,
        ttl=timedelta(seconds=settings.HOLD_TTL_SECONDS),
        interval=settings.SWEEP_INTERVAL_SECONDS,
    )
    processor = SeatCommandProcessor(
        registry,
        sweeper,
        max_holds_per_session=settings.MAX_HOLDS_PER_SESSION,
        max_page_size=settings.MAX_PAGE_SIZE,
    )

    app.state.session_factory = session_factory
    app.state.registry = registry
    app.state.sweeper = sweeper
    app.state.processor = processor


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifecycle: startup and shutdown hooks."""
    setup_logging()
    logger = get_logger(__name__)

    logger.info(
        "application_starting",
        app=settings.APP_NAME,
        version=settings.APP_VERSION,
        environment=settings.ENVIRONMENT,
    )

    wire_services(app, get_session_factory())
    app.state.registry.init()
    if settings.SWEEPER_ENABLED:
        app.state.sweeper.start()

    redis_client = await get_redis()
    if redis_client:
        logger.info("redis_ready")
    else:
        logger.warning("redis_unavailable", message="Running without seat list cache")

    yield

    await app.state.sweeper.stop()
    await app.state.registry.shutdown()
    await close_redis()
    await dispose_engine()
    logger.info("application_shutdown")


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Real-time seat hold API with conditional-update holds and WebSocket fan-out",
    lifespan=lifespan,
    docs_url="/api/docs",
    redoc_url="/api/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PATCH", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization", "x-session-id", "X-Requested-With", "Accept", "Origin"],
)
app.add_middleware(RequestLoggingMiddleware)

register_exception_handlers(app)

app.include_router(api_router)
app.include_router(realtime.router)


@app.get("/health", tags=["Health"])
async def health_check():
    """Health check endpoint for Docker and load balancers."""
    registry = getattr(app.state, "registry", None)
    return {
        "status": "healthy",
        "version": settings.APP_VERSION,
        "environment": settings.ENVIRONMENT,
        "cache": await get_cache_stats(),
        "channels": len(registry) if registry is not None else 0,
    }


@app.get("/metrics", tags=["Health"], include_in_schema=False)
def metrics():
    return metrics_endpoint()


@app.get("/", tags=["Root"])
async def root():
    return {
        "message": f"Welcome to {settings.APP_NAME}",
        "version": settings.APP_VERSION,
        "docs": "/api/docs",
        "realtime": "/ws/seats",
    }
