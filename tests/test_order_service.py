"""
Tests for OrderService: retries on conflicting writes, outbox dispatch,
rating, payment and the customer summary.
"""

from unittest.mock import AsyncMock

import pytest

from tastesphere.errors import ConcurrentModification, InvalidTransition, NotFound
from tastesphere.schemas.order import OrderCreate, OrderItem
from tastesphere.services.order_service import OrderService, describe_order
from tastesphere.utils.order_states import OrderStatus, PaymentStatus

from tests.factories import SELLER_ID, make_order, new_id


def _order_body(**overrides):
    body = {
        "seller_id": SELLER_ID,
        "customer_id": new_id(),
        "total_amount": 420.0,
        "items": [OrderItem(dish_id="dish-1", quantity=2)],
    }
    body.update(overrides)
    return OrderCreate(**body)


@pytest.fixture
def dispatcher():
    return AsyncMock()


@pytest.fixture
def service(store, dispatcher, clock):
    return OrderService(store, dispatcher=dispatcher, clock=clock)


class TestOrderFlow:
    """End-to-end through the real RecordStore."""

    @pytest.mark.asyncio
    async def test_full_fulfilment_path(self, service, dispatcher, clock):
        order = await service.place_order(_order_body())
        steps = [
            ("seller_accepted", "seller"),
            ("payment_pending", "system"),
            ("payment_completed", "system"),
            ("preparing", "seller"),
            ("ready", "seller"),
            ("out_for_delivery", "delivery"),
            ("delivered", "delivery"),
        ]
        for target, actor in steps:
            clock.advance(minutes=10)
            order = await service.transition(order.id, target, actor)

        assert order.status == OrderStatus.DELIVERED
        assert order.version == len(steps)
        assert dispatcher.dispatch.await_count == len(steps)

        loaded = await service.get_order(order.id)
        assert len(loaded.timeline) == len(steps) + 1
        assert loaded.actual_delivery_time == clock.now()

    @pytest.mark.asyncio
    async def test_recipient_depends_on_actor(self, service, dispatcher):
        order = await service.place_order(_order_body())

        await service.transition(order.id, "cancelled_by_user", "customer")

        [notification] = [call.args[0] for call in dispatcher.dispatch.await_args_list]
        assert notification.recipient_role == "seller"
        assert notification.status == "cancelled_by_user"

    @pytest.mark.asyncio
    async def test_invalid_transition_writes_nothing(self, service, store, dispatcher):
        order = await service.place_order(_order_body())

        with pytest.raises(InvalidTransition):
            await service.transition(order.id, "delivered", "delivery")

        loaded = await store.get_order(order.id)
        assert loaded.version == 0
        assert len(loaded.timeline) == 1
        assert await store.pending_notifications() == []
        dispatcher.dispatch.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unknown_order(self, service):
        with pytest.raises(NotFound):
            await service.transition(new_id(), "seller_accepted", "seller")

    @pytest.mark.asyncio
    async def test_dispatch_failure_keeps_event_pending(self, service, store, dispatcher):
        dispatcher.dispatch.side_effect = RuntimeError("push gateway down")
        order = await service.place_order(_order_body())

        saved = await service.transition(order.id, "seller_accepted", "seller")

        assert saved.status == OrderStatus.SELLER_ACCEPTED
        assert len(await store.pending_notifications()) == 1

        dispatcher.dispatch.side_effect = None
        assert await service.flush_notifications() == 1
        assert await store.pending_notifications() == []

    @pytest.mark.asyncio
    async def test_rating_and_payment(self, service):
        order = await service.place_order(_order_body())
        order = await service.record_payment(order.id, "completed")
        assert order.payment_status == PaymentStatus.COMPLETED
        assert order.status == OrderStatus.PENDING_SELLER

        with pytest.raises(InvalidTransition):
            await service.rate(order.id, 5)

    @pytest.mark.asyncio
    async def test_customer_summary(self, service):
        customer_id = new_id()
        delivered = await service.place_order(_order_body(customer_id=customer_id, total_amount=300.0))
        for target, actor in [
            ("seller_accepted", "seller"),
            ("payment_pending", "system"),
            ("payment_completed", "system"),
            ("preparing", "seller"),
            ("ready", "seller"),
            ("out_for_delivery", "delivery"),
            ("delivered", "delivery"),
        ]:
            await service.transition(delivered.id, target, actor)
        cancelled = await service.place_order(_order_body(customer_id=customer_id))
        await service.transition(cancelled.id, "cancelled_by_user", "customer")
        await service.place_order(_order_body(customer_id=customer_id))

        summary = await service.customer_summary(customer_id)

        assert summary.total_orders == 3
        assert summary.delivered == 1
        assert summary.cancelled == 1
        assert summary.in_progress == 1
        assert summary.total_spent == 300.0

        rated = await service.rate(delivered.id, 5, "Perfect")
        assert rated.rating.score == 5


class TestRetry:
    """Conflict handling with a mocked store."""

    def _store(self, *reads):
        store = AsyncMock()
        store.get_order.side_effect = list(reads)
        store.pending_notifications.return_value = []
        return store

    @pytest.mark.asyncio
    async def test_conflict_is_retried_on_fresh_state(self, clock):
        order = make_order()
        store = self._store(order, order)
        saved = make_order(status="seller_accepted")
        store.save_transition.side_effect = [ConcurrentModification(order.id, 0), saved]

        service = OrderService(store, dispatcher=AsyncMock(), clock=clock)
        result = await service.transition(order.id, "seller_accepted", "seller")

        assert result is saved
        assert store.get_order.await_count == 2
        assert store.save_transition.await_count == 2

    @pytest.mark.asyncio
    async def test_gives_up_after_max_retries(self, clock):
        order = make_order()
        store = self._store(*[order] * 3)
        store.save_transition.side_effect = ConcurrentModification(order.id, 0)

        service = OrderService(store, dispatcher=AsyncMock(), clock=clock, max_retries=2)
        with pytest.raises(ConcurrentModification):
            await service.transition(order.id, "seller_accepted", "seller")

        assert store.save_transition.await_count == 3

    @pytest.mark.asyncio
    async def test_lost_race_surfaces_as_invalid_transition(self, clock):
        """Seller accept loses to a customer cancel; the re-read order is terminal."""
        order = make_order()
        cancelled = make_order(status="cancelled_by_user")
        store = self._store(order, cancelled)
        store.save_transition.side_effect = ConcurrentModification(order.id, 0)

        service = OrderService(store, dispatcher=AsyncMock(), clock=clock)
        with pytest.raises(InvalidTransition):
            await service.transition(order.id, "seller_accepted", "seller")

        assert store.save_transition.await_count == 1


class TestDescribeOrder:
    def test_predicates_for_pending_order(self):
        view = describe_order(make_order())

        assert view.status_label == "Awaiting Restaurant"
        assert view.progress_percent == 10
        assert view.can_cancel
        assert not view.can_rate
        assert not view.is_terminal
        assert OrderStatus.SELLER_ACCEPTED in view.allowed_next
