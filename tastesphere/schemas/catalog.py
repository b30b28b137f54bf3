"""Pydantic schemas for dishes, reviews, view history and user preferences."""

from __future__ import annotations

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

ReviewStatus = Literal["active", "hidden", "reported", "deleted"]


class DishRecord(BaseModel):
    """
    A catalog item. rating_average / rating_count / popularity / view_count
    are derived caches maintained by review and view side effects.
    """

    model_config = ConfigDict(from_attributes=True)

    id: str
    seller_id: str
    name: str
    category: str = "Main Course"
    price: float = 0.0
    dish_type: Literal["veg", "non-veg"] = "veg"
    is_vegan: bool = False
    city: Optional[str] = None
    is_active: bool = True
    availability: bool = True
    rating_average: float = 0.0
    rating_count: int = 0
    popularity: int = 0
    view_count: int = 0
    created_at: datetime


class ReviewRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str
    dish_id: str
    seller_id: str
    rating: int = Field(..., ge=1, le=5)
    title: str = ""
    comment: str = ""
    status: ReviewStatus = "active"
    created_at: datetime
    updated_at: Optional[datetime] = None


class ReviewCreate(BaseModel):
    """Body for POST /reviews."""

    dish_id: str
    rating: int = Field(..., ge=1, le=5)
    title: str = Field(..., min_length=1, max_length=100)
    comment: str = Field(..., min_length=1, max_length=1000)


class ReviewUpdate(BaseModel):
    """Body for PATCH /reviews/{review_id}; omitted fields are left unchanged."""

    rating: Optional[int] = Field(None, ge=1, le=5)
    title: Optional[str] = Field(None, min_length=1, max_length=100)
    comment: Optional[str] = Field(None, min_length=1, max_length=1000)


class ReviewStatusChange(BaseModel):
    status: ReviewStatus


class RatingAggregate(BaseModel):
    """Cached rating for a dish, recomputed from its active reviews."""

    dish_id: str
    average: float = 0.0
    count: int = 0


class ReviewStats(BaseModel):
    total_reviews: int = 0
    average_rating: float = 0.0
    distribution: dict[int, int] = Field(
        default_factory=lambda: {5: 0, 4: 0, 3: 0, 2: 0, 1: 0}
    )


class ViewRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    dish_id: str
    user_id: Optional[str] = None
    session_id: Optional[str] = None
    viewed_at: datetime


class TrackViewRequest(BaseModel):
    """Body for POST /view-history/track. X-User-ID header or session_id is required."""

    dish_id: str
    session_id: Optional[str] = None


class RecentlyViewedItem(BaseModel):
    dish_id: str
    last_viewed: datetime
    view_count: int


class MostViewedItem(BaseModel):
    dish_id: str
    view_count: int
    unique_viewers: int
    last_viewed: datetime


class UserPreferences(BaseModel):
    """Stated food preferences collected during onboarding."""

    cuisines: list[str] = Field(default_factory=list)
    dietary: Optional[str] = None
    spice_level: Optional[str] = None

    def is_empty(self) -> bool:
        return not self.cuisines and not self.dietary and not self.spice_level


class UserRecord(BaseModel):
    id: str
    preferences: UserPreferences = Field(default_factory=UserPreferences)
    wishlist: list[str] = Field(default_factory=list)
