"""
Canonical order status vocabulary — single source of truth for every lifecycle rule.
The state machine, the analytics aggregator and the trending scorer import
exclusively from here.
"""

from __future__ import annotations

from enum import Enum


class OrderStatus(str, Enum):
    PENDING_SELLER = "pending_seller"
    SELLER_ACCEPTED = "seller_accepted"
    SELLER_REJECTED = "seller_rejected"
    PAYMENT_PENDING = "payment_pending"
    PAYMENT_COMPLETED = "payment_completed"
    PREPARING = "preparing"
    READY = "ready"
    OUT_FOR_DELIVERY = "out_for_delivery"
    DELIVERED = "delivered"
    CANCELLED_BY_USER = "cancelled_by_user"
    CANCELLED_BY_SELLER = "cancelled_by_seller"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class Actor(str, Enum):
    CUSTOMER = "customer"
    SELLER = "seller"
    SYSTEM = "system"
    DELIVERY = "delivery"


INITIAL_STATUS = OrderStatus.PENDING_SELLER

TERMINAL_STATUSES: frozenset[OrderStatus] = frozenset({
    OrderStatus.DELIVERED,
    OrderStatus.SELLER_REJECTED,
    OrderStatus.CANCELLED_BY_USER,
    OrderStatus.CANCELLED_BY_SELLER,
})

# Customer-initiated cancellation window
CANCELLABLE_STATUSES: frozenset[OrderStatus] = frozenset({
    OrderStatus.PENDING_SELLER,
    OrderStatus.SELLER_ACCEPTED,
    OrderStatus.PREPARING,
})

CANCELLED_STATUSES: frozenset[OrderStatus] = frozenset({
    OrderStatus.SELLER_REJECTED,
    OrderStatus.CANCELLED_BY_USER,
    OrderStatus.CANCELLED_BY_SELLER,
})

# Statuses that prove the seller accepted the order at some point
ACCEPTED_OR_LATER: frozenset[OrderStatus] = frozenset({
    OrderStatus.SELLER_ACCEPTED,
    OrderStatus.PAYMENT_PENDING,
    OrderStatus.PAYMENT_COMPLETED,
    OrderStatus.PREPARING,
    OrderStatus.READY,
    OrderStatus.OUT_FOR_DELIVERY,
    OrderStatus.DELIVERED,
})

# Orders counted as "recent demand" by the trending scorer
ACTIVE_FULFILMENT: frozenset[OrderStatus] = frozenset({
    OrderStatus.PREPARING,
    OrderStatus.READY,
    OrderStatus.OUT_FOR_DELIVERY,
    OrderStatus.DELIVERED,
})

# Explicit edges. CANCELLED_BY_USER is additionally reachable from any status
# in CANCELLABLE_STATUSES.
ALLOWED_TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.PENDING_SELLER: frozenset({
        OrderStatus.SELLER_ACCEPTED,
        OrderStatus.SELLER_REJECTED,
    }),
    OrderStatus.SELLER_ACCEPTED: frozenset({
        OrderStatus.PAYMENT_PENDING,
        OrderStatus.CANCELLED_BY_USER,
        OrderStatus.CANCELLED_BY_SELLER,
    }),
    OrderStatus.PAYMENT_PENDING: frozenset({OrderStatus.PAYMENT_COMPLETED}),
    OrderStatus.PAYMENT_COMPLETED: frozenset({
        OrderStatus.PREPARING,
        OrderStatus.CANCELLED_BY_SELLER,
    }),
    OrderStatus.PREPARING: frozenset({
        OrderStatus.READY,
        OrderStatus.CANCELLED_BY_SELLER,
    }),
    OrderStatus.READY: frozenset({OrderStatus.OUT_FOR_DELIVERY}),
    OrderStatus.OUT_FOR_DELIVERY: frozenset({OrderStatus.DELIVERED}),
}

PROGRESS_PERCENT: dict[OrderStatus, int] = {
    OrderStatus.PENDING_SELLER: 10,
    OrderStatus.SELLER_ACCEPTED: 25,
    OrderStatus.PAYMENT_PENDING: 25,
    OrderStatus.PAYMENT_COMPLETED: 25,
    OrderStatus.PREPARING: 50,
    OrderStatus.READY: 70,
    OrderStatus.OUT_FOR_DELIVERY: 85,
    OrderStatus.DELIVERED: 100,
    OrderStatus.SELLER_REJECTED: 0,
    OrderStatus.CANCELLED_BY_USER: 0,
    OrderStatus.CANCELLED_BY_SELLER: 0,
}

STATUS_LABELS: dict[OrderStatus, str] = {
    OrderStatus.PENDING_SELLER: "Awaiting Restaurant",
    OrderStatus.SELLER_ACCEPTED: "Restaurant Accepted",
    OrderStatus.SELLER_REJECTED: "Declined by Restaurant",
    OrderStatus.PAYMENT_PENDING: "Payment Pending",
    OrderStatus.PAYMENT_COMPLETED: "Payment Completed",
    OrderStatus.PREPARING: "Preparing",
    OrderStatus.READY: "Ready",
    OrderStatus.OUT_FOR_DELIVERY: "Out for Delivery",
    OrderStatus.DELIVERED: "Delivered",
    OrderStatus.CANCELLED_BY_USER: "Cancelled by Customer",
    OrderStatus.CANCELLED_BY_SELLER: "Cancelled by Restaurant",
}

# Who is recorded as the canceller, and the fallback reason when no note is given
CANCELLATION_DEFAULTS: dict[OrderStatus, tuple[Actor, str]] = {
    OrderStatus.SELLER_REJECTED: (Actor.SELLER, "Declined by restaurant"),
    OrderStatus.CANCELLED_BY_USER: (Actor.CUSTOMER, "Cancelled by customer"),
    OrderStatus.CANCELLED_BY_SELLER: (Actor.SELLER, "Cancelled by seller"),
}

# Legacy vocabulary accepted at the read boundary only — never stored
LEGACY_STATUS_ALIASES: dict[str, OrderStatus] = {
    "pending": OrderStatus.PENDING_SELLER,
    "confirmed": OrderStatus.SELLER_ACCEPTED,
    "cancelled": OrderStatus.CANCELLED_BY_USER,
}


def normalise_status(raw: str | OrderStatus) -> OrderStatus:
    """Map a raw or legacy status string to the canonical OrderStatus."""
    if isinstance(raw, OrderStatus):
        return raw
    value = raw.strip().lower()
    if value in LEGACY_STATUS_ALIASES:
        return LEGACY_STATUS_ALIASES[value]
    return OrderStatus(value)


def status_label(status: str | OrderStatus) -> str:
    """Human-readable label; unknown values are title-cased."""
    try:
        return STATUS_LABELS[normalise_status(status)]
    except ValueError:
        return str(status).replace("_", " ").title()
