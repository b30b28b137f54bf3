"""
TrendingScorer — pure algorithmic ranking of catalog items.
No DB calls. Scores a dish from recent demand and intrinsic quality.

  score = (recent_orders  * 5.0
         + recent_reviews * 3.0
         + rating_average * rating_count * 2.0
         + view_count     * 0.5) * recency_factor

  recency_factor = 1.5 when the dish is younger than 30 days, else 1.0

Ranking: drop dishes with recent_orders < min_orders, sort by score DESC
(stable — ties keep candidate order), truncate to limit.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Iterable

from tastesphere.schemas.catalog import DishRecord
from tastesphere.schemas.recommendation import (
    CategoryStat,
    TrendingItem,
    TrendingOverview,
    TrendingPayload,
    TrendingStats,
)
from tastesphere.utils.clock import Clock, system_clock
from tastesphere.utils.order_states import ACTIVE_FULFILMENT

logger = logging.getLogger(__name__)

ORDER_WEIGHT = 5.0
REVIEW_WEIGHT = 3.0
RATING_WEIGHT = 2.0
VIEW_WEIGHT = 0.5
RECENCY_BOOST = 1.5
RECENCY_THRESHOLD = timedelta(days=30)
TOP_CATEGORY_LIMIT = 5


@dataclass(frozen=True)
class TrendingSignals:
    """Recent activity counted for one dish inside the trending window."""

    recent_orders: int = 0
    recent_reviews: int = 0


@dataclass
class ScoredDish:
    dish: DishRecord
    score: float
    recent_orders: int
    recent_reviews: int


class TrendingScorer:
    """
    Pure Python scorer. Receives pre-fetched dishes and signal counts.
    The clock decides dish age, so the recency boost is deterministic under test.
    """

    def __init__(self, clock: Clock | None = None) -> None:
        self._clock = clock or system_clock

    def score(
        self,
        dish: DishRecord,
        recent_order_count: int,
        recent_review_count: int,
    ) -> float:
        """Unrounded trending score for one dish."""
        base = (
            recent_order_count * ORDER_WEIGHT
            + recent_review_count * REVIEW_WEIGHT
            + dish.rating_average * dish.rating_count * RATING_WEIGHT
            + dish.view_count * VIEW_WEIGHT
        )
        return base * self.recency_factor(dish)

    def recency_factor(self, dish: DishRecord) -> float:
        age = self._clock.now() - dish.created_at
        return RECENCY_BOOST if age < RECENCY_THRESHOLD else 1.0

    def rank(
        self,
        candidates: Iterable[DishRecord],
        signals: dict[str, TrendingSignals],
        min_orders: int = 5,
        limit: int = 10,
    ) -> list[ScoredDish]:
        """Filter by min_orders, sort by score DESC (stable), truncate to limit."""
        scored: list[ScoredDish] = []
        for dish in candidates:
            signal = signals.get(dish.id, TrendingSignals())
            if signal.recent_orders < min_orders:
                continue
            scored.append(
                ScoredDish(
                    dish=dish,
                    score=self.score(dish, signal.recent_orders, signal.recent_reviews),
                    recent_orders=signal.recent_orders,
                    recent_reviews=signal.recent_reviews,
                )
            )
        scored.sort(key=lambda s: s.score, reverse=True)
        return scored[:limit]


def count_signals(
    dish_ids: Iterable[str],
    orders: Iterable[Any],
    reviews: Iterable[Any],
) -> dict[str, TrendingSignals]:
    """
    Count recent orders (active-fulfilment statuses only) and active reviews
    per dish. An order counts once per dish regardless of quantity.
    """
    wanted = set(dish_ids)
    order_counts: dict[str, int] = {}
    for order in orders:
        if order.status not in ACTIVE_FULFILMENT:
            continue
        for dish_id in {item.dish_id for item in order.items}:
            if dish_id in wanted:
                order_counts[dish_id] = order_counts.get(dish_id, 0) + 1

    review_counts: dict[str, int] = {}
    for review in reviews:
        if review.status == "active" and review.dish_id in wanted:
            review_counts[review.dish_id] = review_counts.get(review.dish_id, 0) + 1

    return {
        dish_id: TrendingSignals(
            recent_orders=order_counts.get(dish_id, 0),
            recent_reviews=review_counts.get(dish_id, 0),
        )
        for dish_id in wanted
    }


def to_payload(
    ranked: list[ScoredDish],
    generated_at: datetime,
    period_days: int,
    city: str,
) -> TrendingPayload:
    """Assemble the response; scores are rounded to 2 dp here and only here."""
    items = [
        TrendingItem(
            trend_rank=rank,
            dish=entry.dish,
            score=round(entry.score, 2),
            recent_orders=entry.recent_orders,
            recent_reviews=entry.recent_reviews,
        )
        for rank, entry in enumerate(ranked, start=1)
    ]
    avg_rating = (
        sum(e.dish.rating_average for e in ranked) / len(ranked) if ranked else 0.0
    )
    stats = TrendingStats(
        total_dishes=len(items),
        total_orders=sum(e.recent_orders for e in ranked),
        total_reviews=sum(e.recent_reviews for e in ranked),
        avg_rating=round(avg_rating, 1),
        period_days=period_days,
        city=city or "all cities",
    )
    return TrendingPayload(generated_at=generated_at, trending=items, stats=stats)


# ── Store-backed entry points ──────────────────────────────────────────────────


async def get_trending(
    store: Any,
    clock: Clock | None = None,
    city: str = "",
    days: int = 7,
    min_orders: int = 5,
    limit: int = 10,
    category: str | None = None,
) -> TrendingPayload:
    """
    Rank available dishes (optionally within one city / category) over the
    last `days` days. The category view ranks without the min_orders filter.
    """
    clock = clock or system_clock
    now = clock.now()
    since = now - timedelta(days=days)

    dishes = await store.list_available_dishes(city=city or None, category=category)
    if not dishes:
        logger.info("Trending: no dishes for city=%r category=%r", city, category)
        return to_payload([], now, days, city)

    dish_ids = [d.id for d in dishes]
    orders = await store.list_orders_since(since)
    reviews = await store.list_reviews_since(since, dish_ids=dish_ids)
    signals = count_signals(dish_ids, orders, reviews)

    scorer = TrendingScorer(clock)
    ranked = scorer.rank(
        dishes,
        signals,
        min_orders=0 if category else min_orders,
        limit=limit,
    )
    logger.info(
        "Trending computed: %d/%d dishes (city=%r, category=%r, days=%d)",
        len(ranked), len(dishes), city, category, days,
    )
    return to_payload(ranked, now, days, city)


async def get_trending_stats(
    store: Any,
    clock: Clock | None = None,
    city: str = "",
    days: int = 7,
) -> TrendingOverview:
    """
    Counts behind the trending feed: available dishes, active-fulfilment
    orders and active reviews in the last `days` days, plus the five largest
    categories. avg_rating is the mean of those categories' averages.
    """
    clock = clock or system_clock
    since = clock.now() - timedelta(days=days)

    categories = await store.category_breakdown(city=city or None, limit=TOP_CATEGORY_LIMIT)
    top = [
        CategoryStat(category=name, count=count, avg_rating=round(avg, 1))
        for name, count, avg in categories
    ]
    avg_rating = sum(avg for _, _, avg in categories) / len(categories) if categories else 0.0

    return TrendingOverview(
        total_dishes=await store.count_available_dishes(city=city or None),
        total_orders=await store.count_orders_since(since, ACTIVE_FULFILMENT),
        total_reviews=await store.count_reviews_since(since),
        period_days=days,
        city=city or "all cities",
        top_categories=top,
        avg_rating=round(avg_rating, 1),
    )
