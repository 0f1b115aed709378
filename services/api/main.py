"""
CityJournal enrichment API: on-demand city enrichment and its read surface.

Entrypoint: uvicorn services.api.main:app --host 0.0.0.0 --port 8000
"""

import logging
import uuid
from contextlib import asynccontextmanager
from datetime import timedelta

import asyncpg
import redis.asyncio as aioredis
from fastapi import FastAPI, Request, Response
from sqlalchemy.ext.asyncio import async_sessionmaker
from starlette.responses import JSONResponse

from services.api.config import settings
from services.api.db.engine import create_engine as create_sa_engine
from services.api.enrichment.lock_store import PostgresLockStore
from services.api.enrichment.orchestrator import build_orchestrator
from services.api.enrichment.repository import CityEnrichmentRepository
from services.api.jobs.scheduler import MaintenanceScheduler
from services.api.jobs.stale_lock_sweeper import run_stale_lock_sweep
from services.api.jobs.stale_refresh import run_stale_refresh
from services.api.middleware.cors import setup_cors
from services.api.middleware.rate_limit import RateLimitMiddleware
from services.api.middleware.sentry import setup_sentry
from services.api.routers import admin_enrichment, enrichment, health

logger = logging.getLogger(__name__)

# Shared redis reference, set during lifespan and read by the rate limiter
_redis_holder: dict = {"client": None}


def build_scheduler(app: FastAPI) -> MaintenanceScheduler:
    """Register the sweep and stale-refresh loops against app.state services."""
    scheduler = MaintenanceScheduler()

    async def _sweep() -> None:
        await run_stale_lock_sweep(
            app.state.lock_store,
            max_age=timedelta(seconds=settings.enrichment_stale_lock_max_age_s),
        )

    async def _refresh() -> None:
        await run_stale_refresh(
            CityEnrichmentRepository(app.state.db),
            app.state.enrichment_orchestrator,
            stale_after=timedelta(days=settings.enrichment_stale_after_days),
            batch_size=settings.enrichment_refresh_batch_size,
        )

    scheduler.add_task("stale-lock-sweep", settings.enrichment_sweep_interval_s, _sweep)
    scheduler.add_task(
        "stale-refresh",
        settings.enrichment_refresh_interval_s,
        _refresh,
        run_immediately=False,
    )
    return scheduler


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup/shutdown lifecycle."""
    setup_sentry()

    # Redis for rate limiting
    redis_client = None
    if settings.redis_url:
        try:
            redis_client = aioredis.from_url(
                settings.redis_url,
                decode_responses=True,
                socket_connect_timeout=5,
            )
            await redis_client.ping()
        except Exception as e:
            # Rate limiting degrades gracefully; requests pass through
            logger.warning("Redis unavailable, rate limiting disabled: %s", e)
            redis_client = None

    _redis_holder["client"] = redis_client
    app.state.redis = redis_client
    app.state.settings = settings

    # SA engine for the read endpoints
    sa_engine = None
    if settings.database_url:
        try:
            sa_engine = create_sa_engine()
            app.state.db_engine = sa_engine
            # expire_on_commit=False: NullPool returns the connection after commit
            app.state.db_session_factory = async_sessionmaker(
                sa_engine, expire_on_commit=False
            )
        except Exception as e:
            logger.warning("SA engine failed to init: %s", e)

    # asyncpg pool for the enrichment write path (lock, upsert, audit)
    db_pool = None
    if settings.database_url:
        try:
            db_pool = await asyncpg.create_pool(
                settings.database_url,
                min_size=2,
                max_size=10,
                command_timeout=30,
            )
        except Exception as e:
            logger.warning("DB pool failed to connect: %s", e)

    app.state.db = db_pool

    scheduler = None
    if db_pool is not None:
        app.state.lock_store = PostgresLockStore(db_pool)
        app.state.enrichment_orchestrator = build_orchestrator(db_pool, settings)

        if settings.maintenance_scheduler_enabled:
            scheduler = build_scheduler(app)
            scheduler.start()
    app.state.scheduler = scheduler

    yield

    if scheduler:
        await scheduler.stop()
    if sa_engine:
        await sa_engine.dispose()
    if db_pool:
        await db_pool.close()
    if redis_client:
        await redis_client.aclose()


app = FastAPI(
    title="CityJournal Enrichment API",
    version=settings.app_version,
    docs_url="/docs" if settings.environment == "development" else None,
    redoc_url=None,
    lifespan=lifespan,
)

# -- Middleware (order matters: last added = outermost in Starlette) --

# Routers first (innermost)
app.include_router(health.router)
app.include_router(enrichment.router)
app.include_router(admin_enrichment.router)

# CORS (needs to be outermost to handle preflight)
setup_cors(app)


# Request ID injection
@app.middleware("http")
async def request_envelope_middleware(request: Request, call_next) -> Response:
    request_id = request.headers.get("x-request-id", str(uuid.uuid4()))
    request.state.request_id = request_id

    response = await call_next(request)
    response.headers["X-Request-ID"] = request_id
    return response


# Rate limiting, using the lazy redis reference from lifespan
class _LazyRateLimitMiddleware(RateLimitMiddleware):
    """Rate limiter that picks up Redis client after lifespan init."""

    def __init__(self, app):
        super().__init__(app, redis_client=None)

    async def dispatch(self, request, call_next):
        self.redis = _redis_holder.get("client")
        return await super().dispatch(request, call_next)


app.add_middleware(_LazyRateLimitMiddleware)


# -- Exception Handlers --

@app.exception_handler(404)
async def not_found_handler(request: Request, exc) -> JSONResponse:
    return JSONResponse(
        status_code=404,
        content={
            "success": False,
            "error": {"code": "NOT_FOUND", "message": getattr(exc, "detail", None) or "Resource not found."},
            "requestId": getattr(request.state, "request_id", str(uuid.uuid4())),
        },
    )


@app.exception_handler(422)
async def validation_error_handler(request: Request, exc) -> JSONResponse:
    return JSONResponse(
        status_code=422,
        content={
            "success": False,
            "error": {
                "code": "VALIDATION_ERROR",
                "message": str(exc.detail) if hasattr(exc, "detail") else "Validation error.",
            },
            "requestId": getattr(request.state, "request_id", str(uuid.uuid4())),
        },
    )


@app.exception_handler(500)
async def internal_error_handler(request: Request, exc) -> JSONResponse:
    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "error": {"code": "INTERNAL_ERROR", "message": "An unexpected error occurred."},
            "requestId": getattr(request.state, "request_id", str(uuid.uuid4())),
        },
    )
