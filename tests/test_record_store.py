"""
Tests for RecordStore against in-memory SQLite: conditional order writes,
the outbox and the analytics read paths.
"""

from datetime import timedelta

import pytest

from tastesphere.errors import ConcurrentModification, NotFound
from tastesphere.services.order_lifecycle import OrderStateMachine
from tastesphere.utils.order_states import ACTIVE_FULFILMENT, OrderStatus, PaymentStatus

from tests.factories import NOW, SELLER_ID, make_dish, make_order, make_review, make_user, new_id


@pytest.fixture
def machine(clock):
    return OrderStateMachine(clock)


class TestOrderWrites:
    @pytest.mark.asyncio
    async def test_create_and_read_back(self, store):
        order = make_order(total_amount=349.5)
        await store.create_order(order)

        loaded = await store.get_order(order.id)

        assert loaded.id == order.id
        assert loaded.status == OrderStatus.PENDING_SELLER
        assert loaded.total_amount == 349.5
        assert loaded.items == order.items
        assert len(loaded.timeline) == 1
        assert loaded.created_at == NOW
        assert loaded.version == 0

    @pytest.mark.asyncio
    async def test_missing_order(self, store):
        with pytest.raises(NotFound):
            await store.get_order(new_id())

    @pytest.mark.asyncio
    async def test_transition_bumps_version_and_enqueues_notification(self, store, machine):
        order = await store.create_order(make_order())
        after = machine.apply_transition(order, "seller_accepted", "seller", "On it")

        saved = await store.save_transition(order, after, "customer")

        assert saved.version == 1
        loaded = await store.get_order(order.id)
        assert loaded.version == 1
        assert loaded.status == OrderStatus.SELLER_ACCEPTED
        assert [e.status for e in loaded.timeline] == [
            OrderStatus.PENDING_SELLER,
            OrderStatus.SELLER_ACCEPTED,
        ]
        assert loaded.timeline[-1].note == "On it"

        pending = await store.pending_notifications()
        assert len(pending) == 1
        assert pending[0].order_id == order.id
        assert pending[0].status == "seller_accepted"
        assert pending[0].recipient_role == "customer"

    @pytest.mark.asyncio
    async def test_stale_version_is_rejected(self, store, machine):
        order = await store.create_order(make_order())
        accepted = machine.apply_transition(order, "seller_accepted", "seller")
        await store.save_transition(order, accepted, "customer")

        # Second writer still holds version 0
        cancelled = machine.apply_transition(order, "cancelled_by_user", "customer")
        with pytest.raises(ConcurrentModification) as exc_info:
            await store.save_transition(order, cancelled, "seller")

        assert exc_info.value.expected_version == 0
        loaded = await store.get_order(order.id)
        assert loaded.status == OrderStatus.SELLER_ACCEPTED
        assert len(loaded.timeline) == 2
        assert len(await store.pending_notifications()) == 1

    @pytest.mark.asyncio
    async def test_payment_is_persisted(self, store):
        order = await store.create_order(make_order())
        after = order.model_copy(update={"payment_status": PaymentStatus.COMPLETED})

        await store.save_payment(order, after)

        loaded = await store.get_order(order.id)
        assert loaded.payment_status.value == "completed"
        assert loaded.status == OrderStatus.PENDING_SELLER


class TestOutbox:
    @pytest.mark.asyncio
    async def test_dispatched_rows_leave_the_queue(self, store, machine):
        order = await store.create_order(make_order())
        await store.save_transition(
            order, machine.apply_transition(order, "seller_accepted", "seller"), "customer"
        )
        [event] = await store.pending_notifications()

        await store.mark_notification_failed(event.event_id, "smtp down")
        assert len(await store.pending_notifications()) == 1

        await store.mark_notification_dispatched(event.event_id)
        assert await store.pending_notifications() == []

    @pytest.mark.asyncio
    async def test_rows_at_max_attempts_are_no_longer_offered(self, store, machine):
        order = await store.create_order(make_order())
        await store.save_transition(
            order, machine.apply_transition(order, "seller_accepted", "seller"), "customer"
        )
        [event] = await store.pending_notifications()

        await store.mark_notification_failed(event.event_id, "smtp down")
        await store.mark_notification_failed(event.event_id, "smtp down")

        [retried] = await store.pending_notifications(max_attempts=3)
        assert retried.attempts == 2
        assert await store.pending_notifications(max_attempts=2) == []
        assert len(await store.pending_notifications()) == 1


class TestAnalyticsReads:
    @pytest.mark.asyncio
    async def test_seller_orders_filtered_by_window(self, store):
        inside = make_order(created_at=NOW - timedelta(days=2))
        outside = make_order(created_at=NOW - timedelta(days=40))
        other_seller = make_order(created_at=NOW - timedelta(days=1), seller_id=new_id())
        for order in (inside, outside, other_seller):
            await store.create_order(order)

        orders = await store.list_seller_orders(SELLER_ID, NOW - timedelta(days=30), NOW)

        assert [o.id for o in orders] == [inside.id]
        assert len(orders[0].timeline) == 1

    @pytest.mark.asyncio
    async def test_customer_histories(self, store):
        regular = new_id()
        await store.create_order(make_order(customer_id=regular, created_at=NOW - timedelta(days=100)))
        await store.create_order(make_order(customer_id=regular, created_at=NOW - timedelta(days=1)))
        newcomer = new_id()
        await store.create_order(make_order(customer_id=newcomer, created_at=NOW - timedelta(days=1)))

        histories = await store.customer_histories(SELLER_ID, [regular, newcomer])

        assert histories[regular].order_count == 2
        assert histories[regular].first_order_at == NOW - timedelta(days=100)
        assert histories[newcomer].order_count == 1

    @pytest.mark.asyncio
    async def test_customer_histories_empty_input(self, store):
        assert await store.customer_histories(SELLER_ID, []) == {}


class TestDishAndUserReads:
    @pytest.mark.asyncio
    async def test_popular_dishes_skip_unavailable(self, store):
        await store.create_dish(make_dish("top", rating_average=4.9, rating_count=20))
        await store.create_dish(make_dish("hidden", rating_average=5.0, availability=False))
        await store.create_dish(make_dish("second", rating_average=4.1))

        popular = await store.list_popular_dishes(limit=5)

        assert [d.id for d in popular] == ["top", "second"]

    @pytest.mark.asyncio
    async def test_popularity_increment_returns_new_value(self, store):
        await store.create_dish(make_dish("d", popularity=3))
        assert await store.increment_dish_popularity("d", 5) == 8

    @pytest.mark.asyncio
    async def test_increment_unknown_dish(self, store):
        with pytest.raises(NotFound):
            await store.increment_dish_popularity("missing", 1)

    @pytest.mark.asyncio
    async def test_preference_matching(self, store):
        await store.create_dish(make_dish("chinese", category="Chinese", dish_type="non-veg"))
        await store.create_dish(make_dish("veg", category="Italian", dish_type="veg"))
        await store.create_dish(make_dish("other", category="Italian", dish_type="non-veg"))
        user = make_user(cuisines=["chinese"], dietary="vegetarian")

        found = await store.find_dishes_for_preferences(user.preferences)

        assert {d.id for d in found} == {"chinese", "veg"}

    @pytest.mark.asyncio
    async def test_similarity_candidates_share_a_stated_value(self, store):
        me = make_user("me", cuisines=["Thai"], dietary="vegan", spice_level="hot")
        await store.upsert_user(me)
        await store.upsert_user(make_user("blank"))
        await store.upsert_user(make_user("diet", dietary="Vegan"))
        await store.upsert_user(make_user("spice", spice_level="hot"))
        await store.upsert_user(make_user("cuisine", cuisines=["Italian", "thai"]))
        await store.upsert_user(make_user("stranger", cuisines=["Mexican"], dietary="keto", spice_level="mild"))

        users = await store.list_similarity_candidates(me.preferences, exclude_id="me")

        assert [u.id for u in users] == ["cuisine", "diet", "spice"]

    @pytest.mark.asyncio
    async def test_no_stated_preferences_has_no_candidates(self, store):
        await store.upsert_user(make_user("peer", dietary="vegan"))
        assert await store.list_similarity_candidates(make_user("me").preferences, exclude_id="me") == []


class TestTrendingAggregates:
    @pytest.mark.asyncio
    async def test_category_breakdown_counts_available_dishes(self, store):
        await store.create_dish(make_dish("a", category="Chinese", city="Pune", rating_average=4.0))
        await store.create_dish(make_dish("b", category="Chinese", city="Pune", rating_average=5.0))
        await store.create_dish(make_dish("c", category="Desserts", city="Pune", rating_average=3.0))
        await store.create_dish(make_dish("d", category="Desserts", city="Pune", is_active=False))
        await store.create_dish(make_dish("e", category="Thai", city="Delhi", rating_average=4.8))

        breakdown = await store.category_breakdown(city="pune")

        assert breakdown == [("Chinese", 2, 4.5), ("Desserts", 1, 3.0)]
        assert await store.count_available_dishes(city="Pune") == 3
        assert await store.count_available_dishes() == 4

    @pytest.mark.asyncio
    async def test_activity_counts_since(self, store):
        since = NOW - timedelta(days=7)
        await store.create_order(make_order(status="delivered", created_at=NOW - timedelta(days=1)))
        await store.create_order(make_order(status="preparing", created_at=NOW - timedelta(days=2)))
        await store.create_order(make_order(status="pending_seller", created_at=NOW - timedelta(days=1)))
        await store.create_order(make_order(status="delivered", created_at=NOW - timedelta(days=8)))
        await store.create_dish(make_dish("r"))
        await store.insert_review(make_review("r", created_at=NOW - timedelta(days=1)))
        await store.insert_review(make_review("r", created_at=NOW - timedelta(days=1), status="hidden"))
        await store.insert_review(make_review("r", created_at=NOW - timedelta(days=9)))

        assert await store.count_orders_since(since, ACTIVE_FULFILMENT) == 2
        assert await store.count_reviews_since(since) == 1
