"""
Orders router — order placement and the status lifecycle.

Endpoints:
  POST /orders                               — place an order (pending_seller)
  GET  /orders/{order_id}                    — order + derived predicates
  POST /orders/{order_id}/transitions        — apply a status transition
  POST /orders/{order_id}/rating             — rate a delivered order
  POST /orders/{order_id}/payment            — record a payment status change
  GET  /orders/customers/{customer_id}/summary
  POST /orders/notifications/flush           — re-dispatch pending notifications

Domain errors (InvalidTransition, NotFound, ConcurrentModification) are
mapped to HTTP responses by the application-level handler.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, status

from tastesphere.dependencies import get_order_service
from tastesphere.schemas.order import (
    CustomerOrderSummary,
    OrderCreate,
    OrderRead,
    PaymentUpdate,
    RatingRequest,
    TransitionRequest,
)
from tastesphere.services.order_service import OrderService, describe_order

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/orders", tags=["orders"])


@router.post("", response_model=OrderRead, status_code=status.HTTP_201_CREATED)
async def place_order(
    body: OrderCreate,
    service: OrderService = Depends(get_order_service),
) -> OrderRead:
    order = await service.place_order(body)
    return describe_order(order)


@router.get("/customers/{customer_id}/summary", response_model=CustomerOrderSummary)
async def customer_summary(
    customer_id: str,
    service: OrderService = Depends(get_order_service),
) -> CustomerOrderSummary:
    return await service.customer_summary(customer_id)


@router.post("/notifications/flush")
async def flush_notifications(
    service: OrderService = Depends(get_order_service),
) -> dict:
    delivered = await service.flush_notifications()
    return {"dispatched": delivered}


@router.get("/{order_id}", response_model=OrderRead)
async def get_order(
    order_id: str,
    service: OrderService = Depends(get_order_service),
) -> OrderRead:
    return describe_order(await service.get_order(order_id))


@router.post("/{order_id}/transitions", response_model=OrderRead)
async def transition_order(
    order_id: str,
    body: TransitionRequest,
    service: OrderService = Depends(get_order_service),
) -> OrderRead:
    """
    Move the order to `status`.

    - 409 INVALID_TRANSITION when the edge is not allowed or the order is terminal
    - 409 CONCURRENT_MODIFICATION when retries are exhausted under contention
    """
    order = await service.transition(order_id, body.status, body.actor, body.note)
    return describe_order(order)


@router.post("/{order_id}/rating", response_model=OrderRead)
async def rate_order(
    order_id: str,
    body: RatingRequest,
    service: OrderService = Depends(get_order_service),
) -> OrderRead:
    order = await service.rate(order_id, body.score, body.review)
    return describe_order(order)


@router.post("/{order_id}/payment", response_model=OrderRead)
async def record_payment(
    order_id: str,
    body: PaymentUpdate,
    service: OrderService = Depends(get_order_service),
) -> OrderRead:
    order = await service.record_payment(order_id, body.payment_status)
    return describe_order(order)
