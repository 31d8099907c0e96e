"""FastAPI application entry point."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import redis.asyncio as aioredis
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import DBAPIError, IntegrityError, InterfaceError, OperationalError

from campusgig.config import settings
from campusgig.errors import AlreadyExists, MarketplaceError, TransientStoreError
from campusgig.logging_config import configure_logging
from campusgig.middleware import BodySizeLimitMiddleware, SecurityHeadersMiddleware
from campusgig.realtime import build_event_bus
from campusgig.redis import close_redis_pool
from campusgig.routers import conversations, jobs, notifications, profile, ratings

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan: start and stop the realtime relay."""
    configure_logging()
    await app.state.event_bus.start()
    logger.info("CampusGig API started (realtime backend: %s)", settings.realtime_backend)

    yield

    await app.state.event_bus.stop()
    await close_redis_pool()


app = FastAPI(
    title="CampusGig",
    description="Campus micro-job marketplace: jobs, applicant conversations, notifications and ratings",
    version="0.1.0",
    lifespan=lifespan,
)
app.state.event_bus = build_event_bus()

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Outermost first
app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(BodySizeLimitMiddleware)


def _error_response(exc: MarketplaceError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(MarketplaceError)
async def marketplace_error_handler(request: Request, exc: MarketplaceError) -> JSONResponse:
    return _error_response(exc)


@app.exception_handler(IntegrityError)
async def integrity_error_handler(request: Request, exc: IntegrityError) -> JSONResponse:
    logger.warning("Integrity error on %s %s: %s", request.method, request.url.path, exc.orig)
    return _error_response(AlreadyExists("This record already exists"))


@app.exception_handler(OperationalError)
@app.exception_handler(InterfaceError)
async def database_error_handler(request: Request, exc: DBAPIError) -> JSONResponse:
    logger.error("Database error on %s %s: %s", request.method, request.url.path, exc.orig)
    return _error_response(TransientStoreError("The database is unavailable, try again"))


@app.exception_handler(aioredis.ConnectionError)
@app.exception_handler(aioredis.TimeoutError)
async def redis_error_handler(request: Request, exc: aioredis.RedisError) -> JSONResponse:
    logger.error("Redis error on %s %s: %s", request.method, request.url.path, exc)
    return _error_response(TransientStoreError("The event relay is unavailable, try again"))


app.include_router(jobs.router)
app.include_router(conversations.router)
app.include_router(notifications.router)
app.include_router(ratings.router)
app.include_router(profile.router)


@app.get("/health")
async def health() -> dict[str, str]:
    """Health check endpoint."""
    return {"status": "ok"}
