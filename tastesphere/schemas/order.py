"""Pydantic schemas for orders, their timeline and the transition endpoints."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from tastesphere.utils.order_states import (
    INITIAL_STATUS,
    Actor,
    OrderStatus,
    PaymentStatus,
    normalise_status,
)


class TimelineEntry(BaseModel):
    """One audit-trail row — appended on every successful transition."""

    model_config = ConfigDict(frozen=True)

    status: OrderStatus
    timestamp: datetime
    actor: Actor
    note: str = ""


class OrderItem(BaseModel):
    model_config = ConfigDict(frozen=True)

    dish_id: str
    quantity: int = Field(1, ge=1)


class OrderRating(BaseModel):
    model_config = ConfigDict(frozen=True)

    score: int = Field(..., ge=1, le=5)
    review: Optional[str] = None
    rated_at: datetime


class OrderRecord(BaseModel):
    """
    Engine view of one customer purchase.
    Treated as a value: the state machine returns a new OrderRecord and never
    mutates the one it was given.
    """

    id: str
    seller_id: str
    customer_id: str
    status: OrderStatus = INITIAL_STATUS
    created_at: datetime
    total_amount: float = Field(0.0, ge=0)
    payment_status: PaymentStatus = PaymentStatus.PENDING
    payment_method: str = "cod"
    items: tuple[OrderItem, ...] = ()
    timeline: tuple[TimelineEntry, ...] = ()
    actual_delivery_time: Optional[datetime] = None
    cancellation_reason: Optional[str] = None
    cancelled_by: Optional[Actor] = None
    rating: Optional[OrderRating] = None
    version: int = 0

    @field_validator("status", mode="before")
    @classmethod
    def _canonical_status(cls, value: object) -> object:
        if isinstance(value, str):
            return normalise_status(value)
        return value

    def dish_quantity(self, dish_id: str) -> int:
        """Total quantity of dish_id in this order (0 when absent)."""
        return sum(item.quantity for item in self.items if item.dish_id == dish_id)


class OrderCreate(BaseModel):
    """Body for POST /orders."""

    seller_id: str
    customer_id: str
    total_amount: float = Field(..., ge=0)
    payment_method: str = "cod"
    items: list[OrderItem] = Field(..., min_length=1)


class TransitionRequest(BaseModel):
    """Body for POST /orders/{order_id}/transitions."""

    status: OrderStatus
    actor: Actor
    note: Optional[str] = Field(None, max_length=500)

    @field_validator("status", mode="before")
    @classmethod
    def _canonical_status(cls, value: object) -> object:
        if isinstance(value, str):
            return normalise_status(value)
        return value


class RatingRequest(BaseModel):
    """Body for POST /orders/{order_id}/rating."""

    score: int = Field(..., ge=1, le=5)
    review: Optional[str] = Field(None, max_length=1000)


class OrderRead(BaseModel):
    """Order plus its derived predicates, as returned by the HTTP layer."""

    order: OrderRecord
    status_label: str
    progress_percent: int
    is_terminal: bool
    can_cancel: bool
    can_rate: bool
    can_proceed_to_payment: bool
    allowed_next: list[OrderStatus]


class CustomerOrderSummary(BaseModel):
    customer_id: str
    total_orders: int = 0
    delivered: int = 0
    cancelled: int = 0
    in_progress: int = 0
    total_spent: float = 0.0


class PaymentUpdate(BaseModel):
    """Body for POST /orders/{order_id}/payment."""

    payment_status: PaymentStatus
