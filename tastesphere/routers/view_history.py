"""
View history router.

Endpoints:
  POST   /view-history/track       — record a dish view (X-User-ID header or session_id)
  GET    /view-history/recent      — distinct dishes, latest view first
  GET    /view-history/most-viewed — views and unique viewers over the last N days
  DELETE /view-history/expired     — retention purge (VIEW_RETENTION_DAYS)
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query, status

from tastesphere.dependencies import get_clock, get_store
from tastesphere.schemas.catalog import MostViewedItem, RecentlyViewedItem, TrackViewRequest
from tastesphere.services.record_store import RecordStore
from tastesphere.services.view_history import (
    most_viewed,
    purge_expired,
    recently_viewed,
    track_view,
)
from tastesphere.utils.clock import Clock

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/view-history", tags=["view-history"])


def _missing_viewer() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_400_BAD_REQUEST,
        detail="Either X-User-ID header or session_id is required",
        headers={"X-Error-Code": "MISSING_VIEWER"},
    )


@router.post("/track")
async def track(
    body: TrackViewRequest,
    x_user_id: Optional[str] = Header(default=None, alias="X-User-ID"),
    store: RecordStore = Depends(get_store),
    clock: Clock = Depends(get_clock),
) -> dict:
    if not x_user_id and not body.session_id:
        raise _missing_viewer()
    result = await track_view(
        store,
        body.dish_id,
        user_id=x_user_id,
        session_id=body.session_id,
        clock=clock,
    )
    return {
        "dish_id": result.view.dish_id,
        "viewed_at": result.view.viewed_at,
        "coalesced": result.coalesced,
    }


@router.get("/recent", response_model=list[RecentlyViewedItem])
async def recent(
    session_id: Optional[str] = Query(default=None),
    limit: int = Query(default=20, ge=1, le=100),
    x_user_id: Optional[str] = Header(default=None, alias="X-User-ID"),
    store: RecordStore = Depends(get_store),
) -> list[RecentlyViewedItem]:
    if not x_user_id and not session_id:
        raise _missing_viewer()
    return await recently_viewed(store, user_id=x_user_id, session_id=session_id, limit=limit)


@router.get("/most-viewed", response_model=list[MostViewedItem])
async def popular(
    days: int = Query(default=7, ge=1, le=90),
    limit: int = Query(default=10, ge=1, le=50),
    store: RecordStore = Depends(get_store),
    clock: Clock = Depends(get_clock),
) -> list[MostViewedItem]:
    return await most_viewed(store, days=days, limit=limit, clock=clock)


@router.delete("/expired")
async def purge(
    store: RecordStore = Depends(get_store),
    clock: Clock = Depends(get_clock),
) -> dict:
    removed = await purge_expired(store, clock)
    return {"removed": removed}
