"""
Pydantic schemas for trending rankings and personalised recommendations.
"""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

from tastesphere.schemas.catalog import DishRecord

RecommendationSource = Literal["preference", "collaborative", "popularity"]


class TrendingItem(BaseModel):
    """A single ranked dish in the trending feed."""

    trend_rank: int
    dish: DishRecord
    score: float                 # rounded to 2 dp at the output boundary
    recent_orders: int
    recent_reviews: int


class TrendingStats(BaseModel):
    total_dishes: int = 0
    total_orders: int = 0
    total_reviews: int = 0
    avg_rating: float = 0.0
    period_days: int = 7
    city: str = "all cities"


class TrendingPayload(BaseModel):
    generated_at: datetime
    trending: list[TrendingItem]
    stats: TrendingStats


class CategoryStat(BaseModel):
    category: str
    count: int
    avg_rating: float


class TrendingOverview(BaseModel):
    """Catalog-wide activity for one city over the trending period."""

    total_dishes: int = 0
    total_orders: int = 0
    total_reviews: int = 0
    period_days: int = 7
    city: str = "all cities"
    top_categories: list[CategoryStat] = Field(default_factory=list)
    avg_rating: float = 0.0


class CategoryTrendingQuery(BaseModel):
    """Query parameters for the per-category feed; ranks without a minimum order count."""

    city: str = ""
    limit: int = Field(10, ge=1, le=50)
    days: int = Field(7, ge=1, le=90)


class TrendingQuery(CategoryTrendingQuery):
    """Query parameters for GET /trending, validated once at the boundary."""

    min_orders: int = Field(5, ge=0)


class RecommendationItem(BaseModel):
    """A single recommended dish with the reason it was picked."""

    rank: int
    dish: DishRecord
    source: RecommendationSource
    reason: str
    score: float                 # 0.0–1.0


class RecommendationPayload(BaseModel):
    """Top-level recommendations response."""

    uid: str
    generated_at: datetime
    recommendations: list[RecommendationItem]
    strategies: dict[str, int] = Field(default_factory=dict)


class BehaviourEvent(BaseModel):
    """Body for POST /recommendations/behaviour."""

    dish_id: str
    action: Literal["view", "add_to_cart", "order"]
