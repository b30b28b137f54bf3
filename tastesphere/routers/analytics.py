"""
Analytics router — seller dashboard snapshot.

Endpoints:
  GET /sellers/{seller_id}/analytics?range=week|month|year|all
  GET /sellers/{seller_id}/analytics?start=...&end=...   (explicit window)

Query parameters are parsed once into AnalyticsQuery; the aggregator only
sees a validated window. A seller id that is not a UUID → 400.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import ValidationError

from tastesphere.dependencies import get_clock, get_store, validate_uuid
from tastesphere.schemas.analytics import AnalyticsQuery, AnalyticsSnapshot
from tastesphere.services.analytics import compute_analytics_snapshot, window_for_range
from tastesphere.services.record_store import RecordStore
from tastesphere.utils.clock import Clock

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/sellers", tags=["analytics"])


def analytics_query(
    range: str = Query(default="week"),
    start: Optional[datetime] = Query(default=None),
    end: Optional[datetime] = Query(default=None),
) -> AnalyticsQuery:
    try:
        return AnalyticsQuery(range=range, start=start, end=end)
    except ValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=[err["msg"] for err in exc.errors()],
            headers={"X-Error-Code": "INVALID_QUERY"},
        )


@router.get("/{seller_id}/analytics", response_model=AnalyticsSnapshot)
async def seller_analytics(
    seller_id: str,
    query: AnalyticsQuery = Depends(analytics_query),
    store: RecordStore = Depends(get_store),
    clock: Clock = Depends(get_clock),
) -> AnalyticsSnapshot:
    """
    Revenue, orders, dishes, customers, performance and trends for the window,
    each compared against the preceding window of equal length.
    Sections that fail are returned with their defaults and listed in
    `degraded_sections`.
    """
    seller_id = validate_uuid(seller_id, "seller ID", "INVALID_SELLER_ID")

    if query.start is not None and query.end is not None:
        start, end = query.start, query.end
    else:
        window = window_for_range(query.range, clock.now())
        start, end = window.start, window.end

    return await compute_analytics_snapshot(seller_id, start, end, store)
