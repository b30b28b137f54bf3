"""
Review aggregate — keeps a dish's cached rating consistent with its reviews.

Every review write (create, edit, status change) ends in the same hook:

  recompute_dish_rating(store, dish_id)
    1. Load the dish's active reviews
    2. compute_rating_aggregate()  → (average rounded to 1 dp, count)
    3. Write both onto the dish and return them

Reviews are never physically deleted. Deletion is the status change
active → deleted and goes through the same hook as hide / report.
"""

from __future__ import annotations

import logging
import uuid
from typing import Any, Iterable

from tastesphere.errors import DuplicateReview, InvalidTransition, NotFound
from tastesphere.schemas.catalog import (
    RatingAggregate,
    ReviewCreate,
    ReviewRecord,
    ReviewStats,
    ReviewUpdate,
)
from tastesphere.utils.clock import Clock, system_clock

logger = logging.getLogger(__name__)

REVIEW_STATUS_TRANSITIONS: dict[str, frozenset[str]] = {
    "active": frozenset({"hidden", "reported", "deleted"}),
    "hidden": frozenset({"active", "deleted"}),
    "reported": frozenset({"active", "deleted"}),
    "deleted": frozenset(),
}


# ── Pure aggregation ───────────────────────────────────────────────────────────


def compute_rating_aggregate(dish_id: str, reviews: Iterable[ReviewRecord]) -> RatingAggregate:
    """Average and count over active reviews only; 0 / 0 when there are none."""
    ratings = [r.rating for r in reviews if r.status == "active"]
    if not ratings:
        return RatingAggregate(dish_id=dish_id, average=0.0, count=0)
    return RatingAggregate(
        dish_id=dish_id,
        average=round(sum(ratings) / len(ratings), 1),
        count=len(ratings),
    )


def review_stats(reviews: Iterable[ReviewRecord]) -> ReviewStats:
    active = [r for r in reviews if r.status == "active"]
    distribution = {star: 0 for star in (5, 4, 3, 2, 1)}
    for review in active:
        distribution[review.rating] += 1
    average = sum(r.rating for r in active) / len(active) if active else 0.0
    return ReviewStats(
        total_reviews=len(active),
        average_rating=round(average, 1),
        distribution=distribution,
    )


def change_review_status(review: ReviewRecord, target: str) -> ReviewRecord:
    """Return the review with its new status; deleted is final."""
    if target == review.status:
        return review
    if target not in REVIEW_STATUS_TRANSITIONS.get(review.status, frozenset()):
        raise InvalidTransition(review.status, target, "review status change not allowed")
    return review.model_copy(update={"status": target})


# ── Store-backed operations ────────────────────────────────────────────────────


async def recompute_dish_rating(store: Any, dish_id: str) -> RatingAggregate:
    """Post-write hook: recompute and persist the dish's cached rating."""
    reviews = await store.list_dish_reviews(dish_id, status="active")
    aggregate = compute_rating_aggregate(dish_id, reviews)
    await store.update_dish_rating(dish_id, aggregate.average, aggregate.count)
    logger.debug(
        "Dish %s rating recomputed: %.1f over %d reviews",
        dish_id, aggregate.average, aggregate.count,
    )
    return aggregate


async def create_review(
    store: Any,
    user_id: str,
    body: ReviewCreate,
    clock: Clock | None = None,
) -> ReviewRecord:
    clock = clock or system_clock
    dish = await store.get_dish(body.dish_id)
    if dish is None:
        raise NotFound("Dish", body.dish_id)
    if await store.find_review(user_id, body.dish_id) is not None:
        raise DuplicateReview(f"User {user_id} has already reviewed dish {body.dish_id}")

    review = ReviewRecord(
        id=str(uuid.uuid4()),
        user_id=user_id,
        dish_id=body.dish_id,
        seller_id=dish.seller_id,
        rating=body.rating,
        title=body.title,
        comment=body.comment,
        status="active",
        created_at=clock.now(),
    )
    review = await store.insert_review(review)
    await recompute_dish_rating(store, body.dish_id)
    logger.info("Review %s created by user=%s for dish=%s", review.id, user_id, body.dish_id)
    return review


async def update_review(
    store: Any,
    review_id: str,
    user_id: str,
    body: ReviewUpdate,
    clock: Clock | None = None,
) -> ReviewRecord:
    """Edit a review owned by user_id. Deleted reviews cannot be edited."""
    clock = clock or system_clock
    review = await store.get_review(review_id)
    if review is None or review.user_id != user_id:
        raise NotFound("Review", review_id)
    if review.status == "deleted":
        raise InvalidTransition("deleted", "updated", "deleted reviews cannot be edited")

    changes = body.model_dump(exclude_none=True)
    changes["updated_at"] = clock.now()
    review = await store.save_review(review.model_copy(update=changes))
    await recompute_dish_rating(store, review.dish_id)
    return review


async def set_review_status(
    store: Any,
    review_id: str,
    target: str,
    clock: Clock | None = None,
) -> ReviewRecord:
    """Hide, report, restore or soft-delete a review."""
    clock = clock or system_clock
    review = await store.get_review(review_id)
    if review is None:
        raise NotFound("Review", review_id)

    changed = change_review_status(review, target)
    if changed is review:
        return review
    changed = await store.save_review(changed.model_copy(update={"updated_at": clock.now()}))
    await recompute_dish_rating(store, review.dish_id)
    logger.info("Review %s: %s → %s", review_id, review.status, target)
    return changed


async def dish_review_stats(store: Any, dish_id: str) -> ReviewStats:
    return review_stats(await store.list_dish_reviews(dish_id, status="active"))
