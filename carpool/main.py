"""
Carpool Coordination API - Main Application Entry Point

Lets outing members offer car trips and book seats on them:
- Concurrency-safe seat booking (exactly one winner for the last seat)
- Atomic cascades when a trip is withdrawn or an outing is cancelled
- Fire-and-forget passenger notifications after commit
- Structured logging with request correlation and Prometheus metrics
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from carpool.core.config import get_settings
from carpool.core.logging import setup_logging, get_logger
from carpool.core.metrics import metrics_endpoint
from carpool.api.router import api_router
from carpool.api.errors import register_exception_handlers
from carpool.api.middleware import RequestLoggingMiddleware
from carpool.infrastructure.redis_client import get_redis, close_redis
from carpool.services.notification_service import get_dispatcher

settings = get_settings()


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
        notification_sink=settings.NOTIFICATION_SINK,
    )

    redis_client = await get_redis()
    if redis_client:
        logger.info("redis_ready")
    elif settings.REDIS_ENABLED:
        logger.warning("redis_unavailable", message="Running without cache")

    yield

    # Let queued notifications finish before the loop goes away
    await get_dispatcher().drain()
    await close_redis()
    logger.info("application_shutdown")


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Carpool coordination API: trip offers, seat bookings and cascading cancellations",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Restrict in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_middleware(RequestLoggingMiddleware)

register_exception_handlers(app)

app.include_router(api_router)


@app.get("/health", tags=["Health"])
async def health_check():
    """Health check endpoint for Docker and load balancers."""
    redis_client = await get_redis()
    return {
        "status": "healthy",
        "version": settings.APP_VERSION,
        "environment": settings.ENVIRONMENT,
        "cache": "connected" if redis_client else "disabled",
    }


@app.get("/metrics", tags=["Health"], include_in_schema=False)
async def metrics():
    return metrics_endpoint()


@app.get("/", tags=["Root"])
async def root():
    return {
        "message": f"Welcome to {settings.APP_NAME}",
        "version": settings.APP_VERSION,
        "docs": "/docs",
    }
