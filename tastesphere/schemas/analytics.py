"""
Pydantic schemas for the seller analytics snapshot.
Every field carries its documented default so a degraded section can be
returned as an empty model.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Literal, Optional

from pydantic import BaseModel, Field, field_validator, model_validator


class OverviewStats(BaseModel):
    total_revenue: float = 0.0
    total_orders: int = 0
    average_order_value: float = 0.0
    average_rating: float = 0.0


class DailyRevenue(BaseModel):
    date: str              # ISO date, e.g. "2026-10-19"
    revenue: float


class RevenueStats(BaseModel):
    growth: float = 0.0
    aov_growth: float = 0.0
    daily_data: list[DailyRevenue] = Field(default_factory=list)


class StatusBucket(BaseModel):
    status: str
    name: str
    value: int


class PaymentBucket(BaseModel):
    method: str
    count: int
    amount: float


class HourlyBucket(BaseModel):
    hour: int
    orders: int


class OrderStats(BaseModel):
    growth: float = 0.0
    status_distribution: list[StatusBucket] = Field(default_factory=list)
    payment_distribution: list[PaymentBucket] = Field(default_factory=list)
    hourly_data: list[HourlyBucket] = Field(default_factory=list)


class DishStat(BaseModel):
    dish_id: str
    name: str
    orders: int = 0
    revenue: float = 0.0
    rating: float = 0.0
    views: int = 0


class DishStats(BaseModel):
    top_dishes: list[DishStat] = Field(default_factory=list)
    total_dishes: int = 0


class CustomerStats(BaseModel):
    total: int = 0
    new: int = 0
    repeat: int = 0
    repeat_rate: float = 0.0


class PerformanceStats(BaseModel):
    avg_prep_time: int = 25
    acceptance_rate: float = 100.0
    cancellation_rate: float = 0.0
    rating_change: float = 0.0


class TrendStats(BaseModel):
    peak_hours: str = "19:00 - 21:00"
    top_category: str = "Main Course"
    growth_rate: float = 0.0


class AnalyticsSnapshot(BaseModel):
    seller_id: str
    start_date: datetime
    end_date: datetime
    overview: OverviewStats = Field(default_factory=OverviewStats)
    revenue: RevenueStats = Field(default_factory=RevenueStats)
    orders: OrderStats = Field(default_factory=OrderStats)
    dishes: DishStats = Field(default_factory=DishStats)
    customers: CustomerStats = Field(default_factory=CustomerStats)
    performance: PerformanceStats = Field(default_factory=PerformanceStats)
    trends: TrendStats = Field(default_factory=TrendStats)
    degraded_sections: list[str] = Field(default_factory=list)


class AnalyticsQuery(BaseModel):
    """
    Query parameters for GET /sellers/{seller_id}/analytics, validated once at
    the boundary. Explicit start/end override the range preset.
    """

    range: Literal["week", "month", "year", "all"] = "week"
    start: Optional[datetime] = None
    end: Optional[datetime] = None

    @model_validator(mode="after")
    def _start_and_end_together(self) -> "AnalyticsQuery":
        if (self.start is None) != (self.end is None):
            raise ValueError("start and end must be supplied together")
        return self

    @field_validator("start", "end")
    @classmethod
    def _assume_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value
