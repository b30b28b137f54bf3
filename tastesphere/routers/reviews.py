"""
Reviews router — one review per (user, dish), soft-deleted only.

Endpoints:
  POST   /reviews                         — create (409 DUPLICATE_REVIEW on a second review)
  PATCH  /reviews/{review_id}             — edit own review
  DELETE /reviews/{review_id}             — soft delete own review
  POST   /reviews/{review_id}/status      — moderation: hide / report / restore / delete
  GET    /dishes/{dish_id}/reviews        — active reviews, newest first
  GET    /dishes/{dish_id}/reviews/stats  — total, average, 1–5 distribution

Every write recomputes the dish's cached rating.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Header, status

from tastesphere.dependencies import get_clock, get_store
from tastesphere.errors import NotFound
from tastesphere.schemas.catalog import (
    ReviewCreate,
    ReviewRecord,
    ReviewStats,
    ReviewStatusChange,
    ReviewUpdate,
)
from tastesphere.services.record_store import RecordStore
from tastesphere.services.review_aggregate import (
    create_review,
    dish_review_stats,
    set_review_status,
    update_review,
)
from tastesphere.utils.clock import Clock

logger = logging.getLogger(__name__)

router = APIRouter(tags=["reviews"])


@router.post("/reviews", response_model=ReviewRecord, status_code=status.HTTP_201_CREATED)
async def post_review(
    body: ReviewCreate,
    x_user_id: str = Header(..., alias="X-User-ID"),
    store: RecordStore = Depends(get_store),
    clock: Clock = Depends(get_clock),
) -> ReviewRecord:
    return await create_review(store, x_user_id, body, clock)


@router.patch("/reviews/{review_id}", response_model=ReviewRecord)
async def patch_review(
    review_id: str,
    body: ReviewUpdate,
    x_user_id: str = Header(..., alias="X-User-ID"),
    store: RecordStore = Depends(get_store),
    clock: Clock = Depends(get_clock),
) -> ReviewRecord:
    return await update_review(store, review_id, x_user_id, body, clock)


@router.delete("/reviews/{review_id}", response_model=ReviewRecord)
async def delete_review(
    review_id: str,
    x_user_id: str = Header(..., alias="X-User-ID"),
    store: RecordStore = Depends(get_store),
    clock: Clock = Depends(get_clock),
) -> ReviewRecord:
    review = await store.get_review(review_id)
    if review is None or review.user_id != x_user_id:
        raise NotFound("Review", review_id)
    return await set_review_status(store, review_id, "deleted", clock)


@router.post("/reviews/{review_id}/status", response_model=ReviewRecord)
async def moderate_review(
    review_id: str,
    body: ReviewStatusChange,
    store: RecordStore = Depends(get_store),
    clock: Clock = Depends(get_clock),
) -> ReviewRecord:
    return await set_review_status(store, review_id, body.status, clock)


@router.get("/dishes/{dish_id}/reviews", response_model=list[ReviewRecord])
async def list_reviews(
    dish_id: str,
    store: RecordStore = Depends(get_store),
) -> list[ReviewRecord]:
    if await store.get_dish(dish_id) is None:
        raise NotFound("Dish", dish_id)
    return await store.list_dish_reviews(dish_id, status="active")


@router.get("/dishes/{dish_id}/reviews/stats", response_model=ReviewStats)
async def review_stats(
    dish_id: str,
    store: RecordStore = Depends(get_store),
) -> ReviewStats:
    if await store.get_dish(dish_id) is None:
        raise NotFound("Dish", dish_id)
    return await dish_review_stats(store, dish_id)
