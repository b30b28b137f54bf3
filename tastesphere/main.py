"""
TasteSphere Core — FastAPI application entry point.
Lifespan: create DB tables → verify connectivity → flush the notification outbox.
Domain errors become {"detail", "code"} bodies with an X-Error-Code header.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from tastesphere.config import settings
from tastesphere.database import AsyncSessionLocal, check_db_connectivity, engine
from tastesphere.dependencies import get_dispatcher
from tastesphere.errors import TasteSphereError
from tastesphere.models import Base
from tastesphere.services.notifications import flush_outbox
from tastesphere.services.record_store import RecordStore
from tastesphere.routers import (
    analytics,
    health,
    orders,
    recommendations,
    reviews,
    trending,
    view_history,
)

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """
    Startup: create missing tables, check the database, then hand any
    notification left pending by the previous process to the dispatcher.
    """
    logger.info("Starting TasteSphere Core (env=%s)", settings.app_env)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    if await check_db_connectivity():
        async with AsyncSessionLocal() as session:
            try:
                delivered = await flush_outbox(RecordStore(session), get_dispatcher())
            except SQLAlchemyError as exc:
                logger.warning("Startup outbox flush skipped: %s", exc)
            else:
                logger.info("Startup outbox flush: %d notifications re-dispatched", delivered)
    else:
        logger.error("Database unreachable at startup; requests will fail until it recovers.")

    yield

    logger.info("Shutting down TasteSphere Core.")
    await engine.dispose()


app = FastAPI(
    title="TasteSphere Core",
    description="Order lifecycle, seller analytics, trending and recommendations for TasteSphere.",
    version="1.0.0",
    lifespan=lifespan,
)

# ── CORS ─────────────────────────────────────────────────────────────────────

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ── Routers ──────────────────────────────────────────────────────────────────

app.include_router(health.router)
app.include_router(orders.router)
app.include_router(analytics.router)
app.include_router(trending.router)
app.include_router(recommendations.router)
app.include_router(reviews.router)
app.include_router(view_history.router)


# ── Exception handlers ───────────────────────────────────────────────────────

@app.exception_handler(TasteSphereError)
async def domain_exception_handler(request: Request, exc: TasteSphereError) -> JSONResponse:
    """Map a typed domain error to its HTTP status and X-Error-Code header."""
    logger.info("%s on %s %s: %s", exc.code, request.method, request.url.path, exc.message)
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "code": exc.code},
        headers={"X-Error-Code": exc.code},
    )


@app.exception_handler(ValueError)
async def value_error_handler(request: Request, exc: ValueError) -> JSONResponse:
    return JSONResponse(
        status_code=400,
        content={"detail": str(exc), "code": "BAD_REQUEST"},
        headers={"X-Error-Code": "BAD_REQUEST"},
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Return a machine-readable error for any unhandled exception."""
    logger.exception("Unhandled exception on %s %s", request.method, request.url)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error", "code": "INTERNAL_ERROR"},
    )
