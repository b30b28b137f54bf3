"""Record builders shared by the test modules."""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional

from tastesphere.schemas.catalog import DishRecord, ReviewRecord, UserPreferences, UserRecord
from tastesphere.schemas.order import OrderItem, OrderRecord, TimelineEntry
from tastesphere.utils.order_states import Actor, OrderStatus, PaymentStatus

NOW = datetime(2026, 3, 15, 12, 0, tzinfo=timezone.utc)
SELLER_ID = "5f0c6a2e-3b1d-4c8e-9a7f-1d2e3f4a5b6c"


def new_id() -> str:
    return str(uuid.uuid4())


def make_order(
    status: str = "pending_seller",
    created_at: datetime = NOW,
    total_amount: float = 100.0,
    payment_status: str = "pending",
    payment_method: str = "cod",
    seller_id: str = SELLER_ID,
    customer_id: Optional[str] = None,
    items: Optional[list[OrderItem]] = None,
    timeline: Optional[tuple[TimelineEntry, ...]] = None,
    **extra,
) -> OrderRecord:
    status = OrderStatus(status)
    if timeline is None:
        timeline = (TimelineEntry(status=status, timestamp=created_at, actor=Actor.CUSTOMER),)
    return OrderRecord(
        id=new_id(),
        seller_id=seller_id,
        customer_id=customer_id or new_id(),
        status=status,
        created_at=created_at,
        total_amount=total_amount,
        payment_status=PaymentStatus(payment_status),
        payment_method=payment_method,
        items=tuple(items or [OrderItem(dish_id="dish-1", quantity=1)]),
        timeline=timeline,
        **extra,
    )


def paid_order(total_amount: float, created_at: datetime = NOW, **kwargs) -> OrderRecord:
    kwargs.setdefault("status", "delivered")
    return make_order(
        created_at=created_at,
        total_amount=total_amount,
        payment_status="completed",
        **kwargs,
    )


def make_dish(
    dish_id: Optional[str] = None,
    created_at: datetime = NOW - timedelta(days=60),
    seller_id: str = SELLER_ID,
    **fields,
) -> DishRecord:
    fields.setdefault("name", "Paneer Tikka")
    return DishRecord(
        id=dish_id or new_id(),
        seller_id=seller_id,
        created_at=created_at,
        **fields,
    )


def make_review(
    dish_id: str,
    rating: int = 5,
    created_at: datetime = NOW,
    status: str = "active",
    user_id: Optional[str] = None,
    seller_id: str = SELLER_ID,
) -> ReviewRecord:
    return ReviewRecord(
        id=new_id(),
        user_id=user_id or new_id(),
        dish_id=dish_id,
        seller_id=seller_id,
        rating=rating,
        title="Tasty",
        comment="Would order again",
        status=status,
        created_at=created_at,
    )


def make_user(
    user_id: Optional[str] = None,
    cuisines: Optional[list[str]] = None,
    dietary: Optional[str] = None,
    spice_level: Optional[str] = None,
    wishlist: Optional[list[str]] = None,
) -> UserRecord:
    return UserRecord(
        id=user_id or new_id(),
        preferences=UserPreferences(
            cuisines=cuisines or [],
            dietary=dietary,
            spice_level=spice_level,
        ),
        wishlist=wishlist or [],
    )
