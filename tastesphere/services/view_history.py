"""
View history — who looked at which dish, and when.

track_view:
  - viewer is a user id or an anonymous session id (at least one required)
  - a repeat view of the same dish by the same viewer inside the coalesce
    window (VIEW_COALESCE_MINUTES, default 60) only refreshes viewed_at
  - otherwise a new entry is stored and the dish's view_count and
    popularity are each bumped by 1

purge_expired drops entries older than VIEW_RETENTION_DAYS (default 90).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Optional

from tastesphere.config import settings
from tastesphere.errors import NotFound
from tastesphere.schemas.catalog import MostViewedItem, RecentlyViewedItem, ViewRecord
from tastesphere.services.recommendation_service import POPULARITY_WEIGHTS
from tastesphere.utils.clock import Clock, system_clock

logger = logging.getLogger(__name__)


@dataclass
class TrackResult:
    view: ViewRecord
    coalesced: bool


def should_coalesce(
    last_viewed: Optional[datetime],
    now: datetime,
    window: timedelta,
) -> bool:
    """True when a previous view is recent enough to be refreshed instead of duplicated."""
    if last_viewed is None:
        return False
    return now - last_viewed < window


async def track_view(
    store: Any,
    dish_id: str,
    user_id: Optional[str] = None,
    session_id: Optional[str] = None,
    clock: Clock | None = None,
) -> TrackResult:
    if not user_id and not session_id:
        raise ValueError("Either user_id or session_id is required to track a view")

    clock = clock or system_clock
    now = clock.now()

    if await store.get_dish(dish_id) is None:
        raise NotFound("Dish", dish_id)

    window = timedelta(minutes=settings.view_coalesce_minutes)
    latest = await store.latest_view(dish_id, user_id=user_id, session_id=session_id)
    if latest is not None and should_coalesce(latest.viewed_at, now, window):
        view = await store.touch_view(latest.id, now)
        logger.debug("View coalesced: dish=%s user=%s session=%s", dish_id, user_id, session_id)
        return TrackResult(view=view, coalesced=True)

    view = await store.insert_view(dish_id, user_id=user_id, session_id=session_id, viewed_at=now)
    await store.increment_dish_views(dish_id, popularity=POPULARITY_WEIGHTS["view"])
    return TrackResult(view=view, coalesced=False)


async def purge_expired(store: Any, clock: Clock | None = None) -> int:
    """Delete view entries past the retention window; returns how many were removed."""
    clock = clock or system_clock
    cutoff = clock.now() - timedelta(days=settings.view_retention_days)
    removed = await store.delete_views_before(cutoff)
    if removed:
        logger.info("Purged %d view history entries older than %s", removed, cutoff.isoformat())
    return removed


async def recently_viewed(
    store: Any,
    user_id: Optional[str] = None,
    session_id: Optional[str] = None,
    limit: int = 20,
) -> list[RecentlyViewedItem]:
    if not user_id and not session_id:
        raise ValueError("Either user_id or session_id is required")
    views = await store.list_views(user_id=user_id, session_id=session_id)

    grouped: dict[str, RecentlyViewedItem] = {}
    for view in views:
        item = grouped.get(view.dish_id)
        if item is None:
            grouped[view.dish_id] = RecentlyViewedItem(
                dish_id=view.dish_id, last_viewed=view.viewed_at, view_count=1
            )
            continue
        item.view_count += 1
        if view.viewed_at > item.last_viewed:
            item.last_viewed = view.viewed_at

    items = sorted(grouped.values(), key=lambda i: i.last_viewed, reverse=True)
    return items[:limit]


async def most_viewed(
    store: Any,
    days: int = 7,
    limit: int = 10,
    clock: Clock | None = None,
) -> list[MostViewedItem]:
    clock = clock or system_clock
    since = clock.now() - timedelta(days=days)
    views = await store.list_views_since(since)

    counts: dict[str, int] = {}
    viewers: dict[str, set[str]] = {}
    last: dict[str, datetime] = {}
    for view in views:
        counts[view.dish_id] = counts.get(view.dish_id, 0) + 1
        viewer = f"u:{view.user_id}" if view.user_id else f"s:{view.session_id}"
        viewers.setdefault(view.dish_id, set()).add(viewer)
        if view.dish_id not in last or view.viewed_at > last[view.dish_id]:
            last[view.dish_id] = view.viewed_at

    items = [
        MostViewedItem(
            dish_id=dish_id,
            view_count=count,
            unique_viewers=len(viewers[dish_id]),
            last_viewed=last[dish_id],
        )
        for dish_id, count in counts.items()
    ]
    items.sort(key=lambda i: (i.view_count, i.unique_viewers), reverse=True)
    return items[:limit]
