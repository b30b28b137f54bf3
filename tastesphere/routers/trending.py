"""
Trending router — dishes ranked by recent demand and quality.

Endpoints:
  GET /trending                        — ranked feed (min_orders filter applies)
  GET /trending/stats                  — activity counts and top categories
  GET /trending/category/{category}    — ranked within one category, no min_orders
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import ValidationError

from tastesphere.config import settings
from tastesphere.dependencies import get_clock, get_store
from tastesphere.schemas.recommendation import (
    CategoryTrendingQuery,
    TrendingOverview,
    TrendingPayload,
    TrendingQuery,
)
from tastesphere.services.record_store import RecordStore
from tastesphere.services.trending import get_trending, get_trending_stats
from tastesphere.utils.clock import Clock

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/trending", tags=["trending"])


def _invalid_query(exc: ValidationError) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_400_BAD_REQUEST,
        detail=[err["msg"] for err in exc.errors()],
        headers={"X-Error-Code": "INVALID_QUERY"},
    )


def trending_query(
    city: str = Query(default=""),
    limit: int = Query(default=10),
    days: Optional[int] = Query(default=None),
    min_orders: Optional[int] = Query(default=None),
) -> TrendingQuery:
    try:
        return TrendingQuery(
            city=city,
            limit=limit,
            days=settings.trending_window_days if days is None else days,
            min_orders=settings.trending_min_orders if min_orders is None else min_orders,
        )
    except ValidationError as exc:
        raise _invalid_query(exc)


def category_query(
    city: str = Query(default=""),
    limit: int = Query(default=10),
    days: Optional[int] = Query(default=None),
) -> CategoryTrendingQuery:
    try:
        return CategoryTrendingQuery(
            city=city,
            limit=limit,
            days=settings.trending_window_days if days is None else days,
        )
    except ValidationError as exc:
        raise _invalid_query(exc)


@router.get("", response_model=TrendingPayload)
async def trending(
    query: TrendingQuery = Depends(trending_query),
    store: RecordStore = Depends(get_store),
    clock: Clock = Depends(get_clock),
) -> TrendingPayload:
    return await get_trending(
        store,
        clock,
        city=query.city,
        days=query.days,
        min_orders=query.min_orders,
        limit=query.limit,
    )


@router.get("/stats", response_model=TrendingOverview)
async def trending_stats(
    query: CategoryTrendingQuery = Depends(category_query),
    store: RecordStore = Depends(get_store),
    clock: Clock = Depends(get_clock),
) -> TrendingOverview:
    return await get_trending_stats(store, clock, city=query.city, days=query.days)


@router.get("/category/{category}", response_model=TrendingPayload)
async def trending_by_category(
    category: str,
    query: CategoryTrendingQuery = Depends(category_query),
    store: RecordStore = Depends(get_store),
    clock: Clock = Depends(get_clock),
) -> TrendingPayload:
    return await get_trending(
        store,
        clock,
        city=query.city,
        days=query.days,
        limit=query.limit,
        category=category,
    )
