"""
backend/wagerdesk/main.py

Purpose:
    FastAPI application bootstrap, middleware/router wiring, scheduler and
    event bus lifecycle, and the mapping of domain errors to HTTP responses.

Dependencies:
    - wagerdesk.database
    - wagerdesk.services.event_bus
    - wagerdesk.services.event_handlers
"""

import logging
from contextlib import asynccontextmanager

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pymongo.errors import (
    ConnectionFailure,
    DuplicateKeyError,
    OperationFailure,
    ServerSelectionTimeoutError,
)

from wagerdesk.config import settings
import wagerdesk.database as _db
from wagerdesk.database import connect_db, close_db
from wagerdesk.middleware.logging import StructuredLoggingMiddleware, setup_logging
from wagerdesk.services.match_errors import MatchError

logger = logging.getLogger("wagerdesk")
scheduler = AsyncIOScheduler()


def _build_job_specs() -> list[dict]:
    from wagerdesk.workers.checkout_reconciler import reconcile_checkouts
    from wagerdesk.workers.draft_purge import purge_drafts

    specs = [
        {"id": "draft_purge", "func": purge_drafts, "trigger": "interval", "trigger_kwargs": {"minutes": 5}},
    ]
    if settings.CHECKOUT_RECONCILE_ENABLED:
        specs.append({
            "id": "checkout_reconciler",
            "func": reconcile_checkouts,
            "trigger": "interval",
            "trigger_kwargs": {"seconds": settings.CHECKOUT_RECONCILE_INTERVAL_SECONDS},
        })
    return specs


def _register_jobs() -> int:
    added = 0
    for spec in _build_job_specs():
        if scheduler.get_job(spec["id"]):
            continue
        scheduler.add_job(
            spec["func"],
            spec["trigger"],
            id=spec["id"],
            replace_existing=True,
            max_instances=1,
            coalesce=True,
            **spec["trigger_kwargs"],
        )
        added += 1
    return added


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    await connect_db()
    from wagerdesk.providers.platform_bridge import platform_bridge
    from wagerdesk.services.event_bus import event_bus
    from wagerdesk.services.event_handlers import register_event_handlers

    if settings.EVENT_BUS_ENABLED:
        register_event_handlers(event_bus)
        await event_bus.start()
        logger.info("Event bus enabled")
    else:
        logger.info("Event bus disabled via config; checkouts rely on the reconciler")

    added = _register_jobs()
    scheduler.start()
    logger.info("Background scheduler started with %d jobs", added)

    yield

    if scheduler.running:
        scheduler.shutdown(wait=False)
    if settings.EVENT_BUS_ENABLED:
        await event_bus.stop()
    await platform_bridge.aclose()
    await close_db()


app = FastAPI(
    title="Wagerdesk",
    description="Coordination core for brokered two-player wager matches",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.BACKEND_CORS_ORIGINS.split(","),
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "X-Platform-Key"],
)

# Structured logging
app.add_middleware(StructuredLoggingMiddleware)

# Routers
from wagerdesk.routers.wager_matches import router as wager_matches_router
from wagerdesk.routers.drafts import router as drafts_router
from wagerdesk.routers.admin import router as admin_router

app.include_router(wager_matches_router)
app.include_router(drafts_router)
app.include_router(admin_router)


@app.exception_handler(MatchError)
async def match_error_handler(request: Request, exc: MatchError):
    if exc.status_code >= 500:
        logger.warning("%s on %s %s: %s", exc.kind, request.method, request.url.path, exc.detail)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail, "kind": exc.kind})


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    """Return clean validation errors without leaking internal field paths."""
    errors = []
    for err in exc.errors():
        loc = err.get("loc", ())
        # Strip the "body" / "query" prefix for cleaner messages
        field = ".".join(str(l) for l in loc[1:]) if len(loc) > 1 else str(loc[-1]) if loc else "unknown"
        errors.append({"field": field, "message": err.get("msg", "Invalid value.")})
    return JSONResponse(status_code=422, content={"detail": "Validation error.", "errors": errors})


@app.exception_handler(DuplicateKeyError)
async def duplicate_key_handler(request: Request, exc: DuplicateKeyError):
    return JSONResponse(status_code=409, content={"detail": "Duplicate entry."})


@app.exception_handler(ServerSelectionTimeoutError)
async def db_timeout_handler(request: Request, exc: ServerSelectionTimeoutError):
    logger.error("Database timeout: %s %s", request.method, request.url.path)
    return JSONResponse(status_code=503, content={"detail": "Service temporarily unavailable."})


@app.exception_handler(ConnectionFailure)
async def db_connection_handler(request: Request, exc: ConnectionFailure):
    logger.error("Database connection failure: %s %s", request.method, request.url.path)
    return JSONResponse(status_code=503, content={"detail": "Service temporarily unavailable."})


@app.exception_handler(OperationFailure)
async def db_operation_handler(request: Request, exc: OperationFailure):
    logger.error("Database operation error on %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=500, content={"detail": "An internal error occurred."})


@app.exception_handler(ValueError)
async def value_error_handler(request: Request, exc: ValueError):
    logger.warning("ValueError on %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=400, content={"detail": str(exc) or "Invalid input."})


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    """Catch-all: log the real error, return a safe generic message."""
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"detail": "An internal error occurred."})


@app.get("/health")
async def health():
    """Health check -- verifies DB connection and platform bridge status."""
    from wagerdesk.providers.platform_bridge import platform_bridge
    from wagerdesk.services.event_bus import event_bus

    try:
        result = await _db.db.command("ping")
        db_ok = result.get("ok") == 1.0
    except Exception:
        db_ok = False

    return {
        "status": "healthy" if db_ok else "degraded",
        "db": "connected" if db_ok else "disconnected",
        "platform_bridge": {
            "configured": bool(settings.PLATFORM_BRIDGE_URL),
            "circuit_open": platform_bridge.circuit_open,
        },
        "event_bus": {"running": event_bus.running},
    }
