"""
Recommendations router — personalised dish feed.

Endpoints:
  GET  /recommendations/{uid}             — blended preference / collaborative / popular feed
  POST /recommendations/behaviour         — record a view / add_to_cart / order signal

Authentication: X-User-ID header must match the uid in the path.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Header, HTTPException, Query, status

from tastesphere.dependencies import get_clock, get_store
from tastesphere.schemas.recommendation import BehaviourEvent, RecommendationPayload
from tastesphere.services.recommendation_service import get_recommendations, record_behaviour
from tastesphere.services.record_store import RecordStore
from tastesphere.utils.clock import Clock

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/recommendations", tags=["recommendations"])


def _require_user(x_user_id: str) -> str:
    user_id = x_user_id.strip()
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="X-User-ID header is required",
            headers={"X-Error-Code": "MISSING_USER_ID"},
        )
    return user_id


@router.get("/{uid}", response_model=RecommendationPayload)
async def recommendations(
    uid: str,
    limit: int = Query(default=10, ge=1, le=25),
    refresh: bool = Query(default=False),
    x_user_id: str = Header(..., alias="X-User-ID"),
    store: RecordStore = Depends(get_store),
    clock: Clock = Depends(get_clock),
) -> RecommendationPayload:
    """
    Return a ranked, personalised dish feed for the user.

    - Up to half from stated preferences (content score)
    - Remainder from wishlists of similar users
    - Shortfall padded with the most popular dishes
    - Cached per user (TTL RECOMMENDATION_CACHE_TTL); ?refresh=true recomputes
    """
    caller = _require_user(x_user_id)
    if caller != uid:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="X-User-ID does not match uid in path",
        )

    return await get_recommendations(uid, store, limit=limit, refresh=refresh, clock=clock)


@router.post("/behaviour")
async def behaviour(
    event: BehaviourEvent,
    x_user_id: str = Header(..., alias="X-User-ID"),
    store: RecordStore = Depends(get_store),
) -> dict:
    _require_user(x_user_id)
    popularity = await record_behaviour(store, event.dish_id, event.action)
    return {"dish_id": event.dish_id, "popularity": popularity}
