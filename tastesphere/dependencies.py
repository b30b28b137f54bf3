"""FastAPI dependencies — one RecordStore / OrderService per request."""

from __future__ import annotations

import uuid

from fastapi import Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from tastesphere.database import get_db
from tastesphere.services.notifications import (
    LoggingNotificationDispatcher,
    NotificationDispatcher,
)
from tastesphere.services.order_service import OrderService
from tastesphere.services.record_store import RecordStore
from tastesphere.utils.clock import Clock, system_clock

_dispatcher = LoggingNotificationDispatcher()


def get_clock() -> Clock:
    return system_clock


def get_dispatcher() -> NotificationDispatcher:
    return _dispatcher


def get_store(
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
) -> RecordStore:
    return RecordStore(db, clock)


def get_order_service(
    store: RecordStore = Depends(get_store),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
    clock: Clock = Depends(get_clock),
) -> OrderService:
    return OrderService(store, dispatcher, clock)


def validate_uuid(value: str, what: str, error_code: str) -> str:
    """Reject identifiers that are not UUIDs with 400 before any lookup runs."""
    try:
        return str(uuid.UUID(value))
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid {what} format — must be a UUID",
            headers={"X-Error-Code": error_code},
        )
