"""
Recommendation service — personalised dish feed blended from three sources.

Pipeline:
  1. Fetch the requesting user (preferences + wishlist)
  2. Preference-based: available dishes matching stated cuisines / diet,
     scored by content_score()                         → up to ceil(limit / 2)
  3. Collaborative: wishlists of users whose similarity > 0.3 (top 10)
                                                        → fill the remainder
  4. Popularity fallback: best-rated dishes             → pad any shortfall
  5. De-duplicate by dish id, never return a dish already wishlisted

Caching:
  Key:  sha256(uid + limit)
  TTL:  RECOMMENDATION_CACHE_TTL (default 3600 s)
  Size: 1000 entries
  Bypass: refresh=True deletes the key before computing
"""

from __future__ import annotations

import hashlib
import logging
import math
from dataclasses import dataclass
from typing import Any, Iterable

from cachetools import TTLCache

from tastesphere.config import settings
from tastesphere.errors import NotFound
from tastesphere.schemas.catalog import DishRecord, UserPreferences, UserRecord
from tastesphere.schemas.recommendation import (
    RecommendationItem,
    RecommendationPayload,
    RecommendationSource,
)
from tastesphere.utils.clock import Clock, system_clock

logger = logging.getLogger(__name__)

SIMILARITY_THRESHOLD = 0.3
MAX_SIMILAR_USERS = 10

COLLABORATIVE_SCORE = 0.8
POPULARITY_SCORE = 0.6

# Dish popularity increments per user action
POPULARITY_WEIGHTS: dict[str, int] = {"view": 1, "add_to_cart": 2, "order": 5}

_REASONS: dict[str, str] = {
    "collaborative": "Users with similar taste also liked this",
    "popularity": "Popular choice among users",
}

# Cache: uid+limit → RecommendationPayload JSON string
_cache_recommendations: TTLCache = TTLCache(
    maxsize=1_000, ttl=settings.recommendation_cache_ttl
)


# ── Scoring ────────────────────────────────────────────────────────────────────


def _norm(value: str | None) -> str:
    return (value or "").strip().lower()


def _dietary_match(dish: DishRecord, dietary: str | None) -> bool:
    diet = _norm(dietary)
    if diet == "vegetarian":
        return dish.dish_type == "veg"
    if diet == "vegan":
        return dish.dish_type == "veg" and dish.is_vegan
    return False


def content_score(dish: DishRecord, prefs: UserPreferences) -> float:
    """
    [0, 1] affinity of a dish to stated preferences:
      cuisine match +0.4, dietary match +0.3, rating ≥ 4 +0.2,
      popularity > 100 +0.1, capped at 1.0.
    """
    score = 0.0
    if _norm(dish.category) in {_norm(c) for c in prefs.cuisines}:
        score += 0.4
    if _dietary_match(dish, prefs.dietary):
        score += 0.3
    if dish.rating_average >= 4:
        score += 0.2
    if dish.popularity > 100:
        score += 0.1
    return min(score, 1.0)


def content_reason(dish: DishRecord, prefs: UserPreferences) -> str:
    reasons: list[str] = []
    if _norm(dish.category) in {_norm(c) for c in prefs.cuisines}:
        reasons.append(f"matches your {dish.category} preference")
    if _dietary_match(dish, prefs.dietary):
        reasons.append(f"fits your {_norm(prefs.dietary)} diet")
    if not reasons:
        return "Recommended based on your preferences"
    return "Recommended because it " + " and ".join(reasons)


def user_similarity(a: UserPreferences, b: UserPreferences) -> float:
    """
    Equal-weighted average of per-factor contributions, in [0, 1]:
      cuisine overlap  |A ∩ B| / max(|A|, |B|)   (only when both list cuisines)
      dietary          1.0 on exact match, else 0.0
      spice level      1.0 on exact match, else 0.0
    Unstated dietary / spice values never count as a match.
    """
    contributions: list[float] = []

    cuisines_a = {_norm(c) for c in a.cuisines if c}
    cuisines_b = {_norm(c) for c in b.cuisines if c}
    if cuisines_a and cuisines_b:
        contributions.append(
            len(cuisines_a & cuisines_b) / max(len(cuisines_a), len(cuisines_b))
        )

    diet_a, diet_b = _norm(a.dietary), _norm(b.dietary)
    contributions.append(1.0 if diet_a and diet_a == diet_b else 0.0)

    spice_a, spice_b = _norm(a.spice_level), _norm(b.spice_level)
    contributions.append(1.0 if spice_a and spice_a == spice_b else 0.0)

    return sum(contributions) / len(contributions)


def most_similar_users(
    user: UserRecord,
    candidates: Iterable[UserRecord],
) -> list[tuple[UserRecord, float]]:
    """Candidates scoring above the threshold, most similar first, capped at 10."""
    scored = [
        (other, user_similarity(user.preferences, other.preferences))
        for other in candidates
        if other.id != user.id
    ]
    scored = [pair for pair in scored if pair[1] > SIMILARITY_THRESHOLD]
    scored.sort(key=lambda pair: pair[1], reverse=True)
    return scored[:MAX_SIMILAR_USERS]


# ── Blending ───────────────────────────────────────────────────────────────────


@dataclass
class Candidate:
    dish: DishRecord
    source: RecommendationSource
    reason: str
    score: float


def blend(
    preference: list[Candidate],
    collaborative: list[Candidate],
    popular: list[Candidate],
    wishlist_ids: set[str],
    limit: int,
) -> list[Candidate]:
    """
    Fill up to ceil(limit / 2) from preference results, the remainder from
    collaborative results, and pad any shortfall from popularity. Skips
    duplicates and wishlisted dishes at every step.
    """
    selected: list[Candidate] = []
    seen: set[str] = set(wishlist_ids)

    def take(pool: list[Candidate], cap: int) -> None:
        for candidate in pool:
            if len(selected) >= cap:
                return
            if candidate.dish.id in seen:
                continue
            seen.add(candidate.dish.id)
            selected.append(candidate)

    take(preference, math.ceil(limit / 2))
    take(collaborative, limit)
    take(popular, limit)
    return selected


# ── Main pipeline ──────────────────────────────────────────────────────────────


def _rec_cache_key(uid: str, limit: int) -> str:
    raw = f"{uid}:{limit}"
    return hashlib.sha256(raw.encode()).hexdigest()[:20]


async def get_recommendations(
    uid: str,
    store: Any,
    limit: int = 10,
    refresh: bool = False,
    clock: Clock | None = None,
) -> RecommendationPayload:
    """
    Build and return a RecommendationPayload for the user.
    Results are cached per (uid, limit). Pass refresh=True to force recompute.
    """
    clock = clock or system_clock
    limit = min(limit, 25)
    cache_key = _rec_cache_key(uid, limit)

    if refresh and cache_key in _cache_recommendations:
        del _cache_recommendations[cache_key]
        logger.debug("Recommendation cache INVALIDATED (uid=%s)", uid)

    if cache_key in _cache_recommendations:
        logger.debug("Recommendation cache HIT (uid=%s)", uid)
        return RecommendationPayload.model_validate_json(_cache_recommendations[cache_key])

    user: UserRecord | None = await store.get_user(uid)
    if user is None:
        raise NotFound("User", uid)
    wishlist_ids = set(user.wishlist)

    # ── Step 2: preference-based ──────────────────────────────────────────────
    preference: list[Candidate] = []
    if not user.preferences.is_empty():
        dishes = await store.find_dishes_for_preferences(
            user.preferences, limit=limit * 2 + len(wishlist_ids)
        )
        dishes.sort(key=lambda d: content_score(d, user.preferences), reverse=True)
        preference = [
            Candidate(
                dish=d,
                source="preference",
                reason=content_reason(d, user.preferences),
                score=content_score(d, user.preferences),
            )
            for d in dishes
        ]

    # ── Step 3: collaborative ─────────────────────────────────────────────────
    collaborative: list[Candidate] = []
    others = await store.list_similarity_candidates(user.preferences, exclude_id=user.id)
    similar = most_similar_users(user, others)
    if similar:
        liked: list[str] = []
        for other, _ in similar:
            liked.extend(d for d in other.wishlist if d not in wishlist_ids)
        liked_ids = list(dict.fromkeys(liked))
        dishes = await store.get_dishes(liked_ids)
        dishes.sort(key=lambda d: d.rating_average, reverse=True)
        collaborative = [
            Candidate(d, "collaborative", _REASONS["collaborative"], COLLABORATIVE_SCORE)
            for d in dishes[:limit]
        ]

    # ── Step 4: popularity fallback ───────────────────────────────────────────
    # Shortfall is measured after the preference cap and de-duplication
    selected = blend(preference, collaborative, [], wishlist_ids, limit)
    if len(selected) < limit:
        dishes = await store.list_popular_dishes(
            limit=limit + len(wishlist_ids) + len(selected)
        )
        popular = [
            Candidate(d, "popularity", _REASONS["popularity"], POPULARITY_SCORE)
            for d in dishes
        ]
        selected = blend(preference, collaborative, popular, wishlist_ids, limit)

    strategies = {"preference": 0, "collaborative": 0, "popularity": 0}
    for c in selected:
        strategies[c.source] += 1

    payload = RecommendationPayload(
        uid=uid,
        generated_at=clock.now(),
        recommendations=[
            RecommendationItem(
                rank=rank,
                dish=c.dish,
                source=c.source,
                reason=c.reason,
                score=round(c.score, 2),
            )
            for rank, c in enumerate(selected, start=1)
        ],
        strategies=strategies,
    )

    _cache_recommendations[cache_key] = payload.model_dump_json()
    logger.info(
        "Recommendations generated for uid=%s: %d items (limit=%d, similar_users=%d)",
        uid, len(selected), limit, len(similar),
    )
    return payload


async def record_behaviour(store: Any, dish_id: str, action: str) -> int:
    """Bump dish popularity for a user action; returns the new popularity."""
    increment = POPULARITY_WEIGHTS[action]
    popularity = await store.increment_dish_popularity(dish_id, increment)
    logger.debug("Behaviour %s on dish=%s → popularity=%d", action, dish_id, popularity)
    return popularity
