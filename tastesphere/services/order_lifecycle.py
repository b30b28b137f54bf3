"""
OrderStateMachine — validates and applies order status transitions.
No DB calls. No notification delivery. Pure functions over OrderRecord values.

Graph (see utils.order_states.ALLOWED_TRANSITIONS):
  pending_seller    → seller_accepted | seller_rejected
  seller_accepted   → payment_pending | cancelled_by_user | cancelled_by_seller
  payment_pending   → payment_completed
  payment_completed → preparing | cancelled_by_seller
  preparing         → ready | cancelled_by_seller
  ready             → out_for_delivery
  out_for_delivery  → delivered
  any non-terminal  → cancelled_by_user, only while can_cancel() holds

Terminal: delivered, seller_rejected, cancelled_by_user, cancelled_by_seller.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from tastesphere.errors import InvalidTransition
from tastesphere.schemas.order import OrderRating, OrderRecord, TimelineEntry
from tastesphere.utils.clock import Clock, system_clock
from tastesphere.utils.order_states import (
    ALLOWED_TRANSITIONS,
    CANCELLABLE_STATUSES,
    CANCELLATION_DEFAULTS,
    PROGRESS_PERCENT,
    TERMINAL_STATUSES,
    Actor,
    OrderStatus,
    normalise_status,
)

logger = logging.getLogger(__name__)


# ── Derived predicates ─────────────────────────────────────────────────────────


def is_terminal(order: OrderRecord) -> bool:
    return order.status in TERMINAL_STATUSES


def can_cancel(order: OrderRecord) -> bool:
    """Customer-initiated cancellation window."""
    return order.status in CANCELLABLE_STATUSES


def can_rate(order: OrderRecord) -> bool:
    return order.status == OrderStatus.DELIVERED and order.rating is None


def can_proceed_to_payment(order: OrderRecord) -> bool:
    return order.status == OrderStatus.SELLER_ACCEPTED


def progress_percent(order: OrderRecord) -> int:
    return PROGRESS_PERCENT.get(order.status, 0)


def allowed_targets(order: OrderRecord) -> frozenset[OrderStatus]:
    """Every status applyTransition would currently accept for this order."""
    if is_terminal(order):
        return frozenset()
    targets = set(ALLOWED_TRANSITIONS.get(order.status, frozenset()))
    if can_cancel(order):
        targets.add(OrderStatus.CANCELLED_BY_USER)
    else:
        targets.discard(OrderStatus.CANCELLED_BY_USER)
    return frozenset(targets)


# ── State machine ──────────────────────────────────────────────────────────────


class OrderStateMachine:
    """
    Applies transitions to OrderRecord values.
    The clock is injected so timeline timestamps are deterministic under test.
    """

    def __init__(self, clock: Clock | None = None) -> None:
        self._clock = clock or system_clock

    def apply_transition(
        self,
        order: OrderRecord,
        target: OrderStatus | str,
        actor: Actor | str,
        note: Optional[str] = None,
    ) -> OrderRecord:
        """
        Return a new OrderRecord with `target` applied.

        Raises InvalidTransition when the order is terminal or the edge is not
        in the graph. The input order is never mutated, so a failed call
        leaves its timeline untouched.
        """
        target = normalise_status(target)
        actor = Actor(actor)

        if is_terminal(order):
            raise InvalidTransition(
                order.status.value, target.value, "order is in a terminal state"
            )
        if target not in allowed_targets(order):
            reason = (
                "cancellation window has closed"
                if target == OrderStatus.CANCELLED_BY_USER
                else None
            )
            raise InvalidTransition(order.status.value, target.value, reason)

        timestamp = self._next_timestamp(order)
        entry = TimelineEntry(
            status=target,
            timestamp=timestamp,
            actor=actor,
            note=note or "",
        )

        update: dict = {
            "status": target,
            "timeline": (*order.timeline, entry),
        }
        if target == OrderStatus.DELIVERED:
            update["actual_delivery_time"] = timestamp
        if target in CANCELLATION_DEFAULTS:
            cancelled_by, default_reason = CANCELLATION_DEFAULTS[target]
            update["cancelled_by"] = cancelled_by
            update["cancellation_reason"] = note or default_reason

        logger.debug(
            "Order %s: %s → %s (actor=%s)", order.id, order.status.value, target.value, actor.value
        )
        return order.model_copy(update=update)

    def open(
        self,
        order_id: str,
        seller_id: str,
        customer_id: str,
        items: list,
        total_amount: float,
        payment_method: str = "cod",
    ) -> OrderRecord:
        """Build a new order in the initial state with its first timeline entry."""
        now = self._clock.now()
        return OrderRecord(
            id=order_id,
            seller_id=seller_id,
            customer_id=customer_id,
            status=OrderStatus.PENDING_SELLER,
            created_at=now,
            total_amount=total_amount,
            payment_method=payment_method,
            items=tuple(items),
            timeline=(
                TimelineEntry(
                    status=OrderStatus.PENDING_SELLER,
                    timestamp=now,
                    actor=Actor.CUSTOMER,
                    note="Order placed",
                ),
            ),
        )

    def rate(
        self,
        order: OrderRecord,
        score: int,
        review: Optional[str] = None,
    ) -> OrderRecord:
        """Attach a 1–5 rating to a delivered, unrated order."""
        if not can_rate(order):
            raise InvalidTransition(
                order.status.value, "rated",
                "only delivered orders without a rating can be rated",
            )
        rating = OrderRating(score=score, review=review, rated_at=self._clock.now())
        return order.model_copy(update={"rating": rating})

    def _next_timestamp(self, order: OrderRecord) -> datetime:
        """Clock reading, never earlier than the last timeline entry."""
        now = self._clock.now()
        if order.timeline and order.timeline[-1].timestamp > now:
            return order.timeline[-1].timestamp
        return now
