"""Liveness and readiness probes for load balancers and uptime checks."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from tastesphere.config import settings
from tastesphere.database import get_db
from tastesphere.models import NotificationEvent

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


@router.get("/health")
async def health() -> dict:
    """Process is up; touches nothing else."""
    return {"status": "ok", "version": "1.0.0", "env": settings.app_env}


@router.get("/ready")
async def ready(db: AsyncSession = Depends(get_db)) -> JSONResponse:
    """
    Database answers and the notification outbox can be read.
    200 {"db": "ok", "pending_notifications": n, "exhausted_notifications": m},
    or 503 {"db": "error"}. Exhausted rows are pending rows that reached
    NOTIFICATION_MAX_ATTEMPTS and are no longer retried.
    """
    undispatched = NotificationEvent.dispatched_at.is_(None)
    try:
        pending = await db.scalar(
            select(func.count(NotificationEvent.id)).where(undispatched)
        )
        exhausted = await db.scalar(
            select(func.count(NotificationEvent.id)).where(
                undispatched,
                NotificationEvent.attempts >= settings.notification_max_attempts,
            )
        )
    except SQLAlchemyError as exc:
        logger.warning("Readiness check: database unreachable: %s", exc)
        return JSONResponse(content={"db": "error"}, status_code=503)

    return JSONResponse(content={
        "db": "ok",
        "pending_notifications": pending or 0,
        "exhausted_notifications": exhausted or 0,
    })
