"""
OrderService — the only write path for orders.

transition(order_id, target, actor, note):
  1. Fresh read of the order (RecordStore.get_order)
  2. OrderStateMachine.apply_transition   → new OrderRecord or InvalidTransition
  3. RecordStore.save_transition           → conditional write + timeline + outbox
  4. ConcurrentModification → back to 1, at most TRANSITION_MAX_RETRIES times
  5. flush_outbox → NotificationDispatcher (failures stay pending)

Re-running step 2 on the fresh state means a lost race (e.g. seller accept
vs. customer cancel) surfaces as InvalidTransition, never as a silent overwrite.
"""

from __future__ import annotations

import logging
import uuid
from typing import Awaitable, Callable, Optional

from tastesphere.config import settings
from tastesphere.errors import ConcurrentModification
from tastesphere.schemas.order import (
    CustomerOrderSummary,
    OrderCreate,
    OrderRead,
    OrderRecord,
)
from tastesphere.services.notifications import (
    LoggingNotificationDispatcher,
    NotificationDispatcher,
    flush_outbox,
    recipient_role_for,
)
from tastesphere.services.order_lifecycle import (
    OrderStateMachine,
    allowed_targets,
    can_cancel,
    can_proceed_to_payment,
    can_rate,
    is_terminal,
    progress_percent,
)
from tastesphere.services.record_store import RecordStore
from tastesphere.utils.clock import Clock, system_clock
from tastesphere.utils.order_states import (
    CANCELLED_STATUSES,
    Actor,
    OrderStatus,
    PaymentStatus,
    status_label,
)

logger = logging.getLogger(__name__)


def describe_order(order: OrderRecord) -> OrderRead:
    """Order plus every derived predicate the client needs to render it."""
    return OrderRead(
        order=order,
        status_label=status_label(order.status),
        progress_percent=progress_percent(order),
        is_terminal=is_terminal(order),
        can_cancel=can_cancel(order),
        can_rate=can_rate(order),
        can_proceed_to_payment=can_proceed_to_payment(order),
        allowed_next=sorted(allowed_targets(order), key=lambda s: s.value),
    )


def summarise_orders(customer_id: str, orders: list[OrderRecord]) -> CustomerOrderSummary:
    delivered = [o for o in orders if o.status == OrderStatus.DELIVERED]
    cancelled = [o for o in orders if o.status in CANCELLED_STATUSES]
    return CustomerOrderSummary(
        customer_id=customer_id,
        total_orders=len(orders),
        delivered=len(delivered),
        cancelled=len(cancelled),
        in_progress=len(orders) - len(delivered) - len(cancelled),
        total_spent=round(sum(o.total_amount for o in delivered), 2),
    )


class OrderService:
    def __init__(
        self,
        store: RecordStore,
        dispatcher: Optional[NotificationDispatcher] = None,
        clock: Clock | None = None,
        max_retries: Optional[int] = None,
    ) -> None:
        self._store = store
        self._dispatcher = dispatcher or LoggingNotificationDispatcher()
        self._clock = clock or system_clock
        self._machine = OrderStateMachine(self._clock)
        self._max_retries = (
            settings.transition_max_retries if max_retries is None else max_retries
        )

    async def place_order(self, body: OrderCreate) -> OrderRecord:
        order = self._machine.open(
            order_id=str(uuid.uuid4()),
            seller_id=body.seller_id,
            customer_id=body.customer_id,
            items=body.items,
            total_amount=body.total_amount,
            payment_method=body.payment_method,
        )
        return await self._store.create_order(order)

    async def get_order(self, order_id: str) -> OrderRecord:
        return await self._store.get_order(order_id)

    async def transition(
        self,
        order_id: str,
        target: OrderStatus | str,
        actor: Actor | str,
        note: Optional[str] = None,
    ) -> OrderRecord:
        role = recipient_role_for(actor)
        saved = await self._write_with_retry(
            order_id,
            lambda order: self._machine.apply_transition(order, target, actor, note),
            lambda before, after: self._store.save_transition(before, after, role),
        )
        logger.info(
            "Order %s → %s (actor=%s, version=%d)",
            order_id, saved.status.value, Actor(actor).value, saved.version,
        )
        await self.flush_notifications()
        return saved

    async def rate(self, order_id: str, score: int, review: Optional[str] = None) -> OrderRecord:
        return await self._write_with_retry(
            order_id,
            lambda order: self._machine.rate(order, score, review),
            self._store.save_rating,
        )

    async def record_payment(
        self,
        order_id: str,
        payment_status: PaymentStatus | str,
    ) -> OrderRecord:
        """Payment is an independent axis; it never moves the order status."""
        payment_status = PaymentStatus(payment_status)
        return await self._write_with_retry(
            order_id,
            lambda order: order.model_copy(update={"payment_status": payment_status}),
            self._store.save_payment,
        )

    async def customer_summary(self, customer_id: str) -> CustomerOrderSummary:
        orders = await self._store.list_customer_orders(customer_id)
        return summarise_orders(customer_id, orders)

    async def flush_notifications(self) -> int:
        """Hand pending outbox rows to the dispatcher; never fails the caller."""
        try:
            return await flush_outbox(self._store, self._dispatcher)
        except Exception as exc:
            logger.warning("Outbox flush failed, events stay pending: %s", exc)
            return 0

    async def _write_with_retry(
        self,
        order_id: str,
        mutate: Callable[[OrderRecord], OrderRecord],
        save: Callable[[OrderRecord, OrderRecord], Awaitable[OrderRecord]],
    ) -> OrderRecord:
        attempt = 0
        while True:
            order = await self._store.get_order(order_id)
            updated = mutate(order)
            try:
                return await save(order, updated)
            except ConcurrentModification:
                attempt += 1
                if attempt > self._max_retries:
                    logger.warning(
                        "Order %s: giving up after %d conflicting writes",
                        order_id, attempt,
                    )
                    raise
                logger.info("Order %s: write conflict, retry %d", order_id, attempt)
