"""Pydantic schemas package."""

from tastesphere.schemas.order import (
    CustomerOrderSummary,
    OrderCreate,
    OrderItem,
    OrderRating,
    OrderRead,
    OrderRecord,
    PaymentUpdate,
    RatingRequest,
    TimelineEntry,
    TransitionRequest,
)
from tastesphere.schemas.catalog import (
    DishRecord,
    RatingAggregate,
    ReviewCreate,
    ReviewRecord,
    ReviewStats,
    ReviewStatusChange,
    ReviewUpdate,
    TrackViewRequest,
    UserPreferences,
    UserRecord,
    ViewRecord,
)
from tastesphere.schemas.analytics import AnalyticsQuery, AnalyticsSnapshot
from tastesphere.schemas.recommendation import (
    BehaviourEvent,
    CategoryTrendingQuery,
    RecommendationItem,
    RecommendationPayload,
    TrendingItem,
    TrendingOverview,
    TrendingPayload,
    TrendingQuery,
)

__all__ = [
    "CustomerOrderSummary", "OrderCreate", "OrderItem", "OrderRating",
    "OrderRead", "OrderRecord", "PaymentUpdate", "RatingRequest", "TimelineEntry",
    "TransitionRequest",
    "DishRecord", "RatingAggregate", "ReviewCreate", "ReviewRecord",
    "ReviewStats", "ReviewStatusChange", "ReviewUpdate", "TrackViewRequest",
    "UserPreferences", "UserRecord", "ViewRecord",
    "AnalyticsQuery", "AnalyticsSnapshot",
    "BehaviourEvent", "RecommendationItem", "RecommendationPayload",
    "CategoryTrendingQuery", "TrendingItem", "TrendingOverview", "TrendingPayload",
    "TrendingQuery",
]
