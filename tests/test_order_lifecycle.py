"""
Tests for the order state machine and its derived predicates.
"""

from datetime import timedelta

import pytest

from tastesphere.errors import InvalidTransition
from tastesphere.services.order_lifecycle import (
    OrderStateMachine,
    allowed_targets,
    can_cancel,
    can_proceed_to_payment,
    can_rate,
    is_terminal,
    progress_percent,
)
from tastesphere.utils.order_states import (
    TERMINAL_STATUSES,
    Actor,
    OrderStatus,
    normalise_status,
    status_label,
)

from tests.factories import make_order

HAPPY_PATH = [
    (OrderStatus.SELLER_ACCEPTED, Actor.SELLER),
    (OrderStatus.PAYMENT_PENDING, Actor.SYSTEM),
    (OrderStatus.PAYMENT_COMPLETED, Actor.SYSTEM),
    (OrderStatus.PREPARING, Actor.SELLER),
    (OrderStatus.READY, Actor.SELLER),
    (OrderStatus.OUT_FOR_DELIVERY, Actor.DELIVERY),
    (OrderStatus.DELIVERED, Actor.DELIVERY),
]


@pytest.fixture
def machine(clock):
    return OrderStateMachine(clock)


class TestApplyTransition:
    """Tests for OrderStateMachine.apply_transition."""

    def test_happy_path_reaches_delivered(self, machine, clock):
        """Every edge on the fulfilment path is accepted in order."""
        order = make_order()
        for target, actor in HAPPY_PATH:
            clock.advance(minutes=5)
            order = machine.apply_transition(order, target, actor)

        assert order.status == OrderStatus.DELIVERED
        assert order.actual_delivery_time == clock.now()
        assert len(order.timeline) == len(HAPPY_PATH) + 1

    def test_appends_exactly_one_matching_entry(self, machine):
        order = make_order()
        updated = machine.apply_transition(
            order, "seller_accepted", "seller", "Kitchen has capacity"
        )

        assert len(updated.timeline) == len(order.timeline) + 1
        last = updated.timeline[-1]
        assert last.status == OrderStatus.SELLER_ACCEPTED
        assert last.actor == Actor.SELLER
        assert last.note == "Kitchen has capacity"
        assert last.status == updated.status

    def test_input_order_is_not_mutated(self, machine):
        order = make_order()
        machine.apply_transition(order, OrderStatus.SELLER_ACCEPTED, Actor.SELLER)

        assert order.status == OrderStatus.PENDING_SELLER
        assert len(order.timeline) == 1

    def test_skipping_to_delivered_fails_and_keeps_timeline(self, machine):
        """pending_seller → delivered is not an edge; the order is left as it was."""
        order = make_order()
        before = order.timeline

        with pytest.raises(InvalidTransition) as exc_info:
            machine.apply_transition(order, OrderStatus.DELIVERED, Actor.DELIVERY)

        assert exc_info.value.current == "pending_seller"
        assert exc_info.value.target == "delivered"
        assert order.timeline == before

    @pytest.mark.parametrize("terminal", sorted(TERMINAL_STATUSES, key=lambda s: s.value))
    def test_terminal_orders_reject_every_target(self, machine, terminal):
        order = make_order(status=terminal.value)
        assert is_terminal(order)

        for target in OrderStatus:
            with pytest.raises(InvalidTransition):
                machine.apply_transition(order, target, Actor.SYSTEM)

    def test_timestamps_never_go_backwards(self, machine, clock):
        order = make_order()
        accepted = machine.apply_transition(order, "seller_accepted", "seller")

        clock.advance(minutes=-30)
        payment = machine.apply_transition(accepted, "payment_pending", "system")

        assert payment.timeline[-1].timestamp == accepted.timeline[-1].timestamp
        stamps = [entry.timestamp for entry in payment.timeline]
        assert stamps == sorted(stamps)

    def test_legacy_status_names_are_normalised(self, machine):
        order = make_order()
        updated = machine.apply_transition(order, "confirmed", "seller")
        assert updated.status == OrderStatus.SELLER_ACCEPTED


class TestCancellation:
    """Customer and seller cancellation rules."""

    @pytest.mark.parametrize("status", ["pending_seller", "seller_accepted", "preparing"])
    def test_customer_can_cancel_inside_window(self, machine, status):
        order = make_order(status=status)
        cancelled = machine.apply_transition(order, "cancelled_by_user", "customer")

        assert cancelled.status == OrderStatus.CANCELLED_BY_USER
        assert cancelled.cancelled_by == Actor.CUSTOMER
        assert cancelled.cancellation_reason == "Cancelled by customer"
        assert progress_percent(cancelled) == 0

    @pytest.mark.parametrize("status", ["payment_pending", "payment_completed", "ready", "out_for_delivery"])
    def test_customer_cannot_cancel_outside_window(self, machine, status):
        order = make_order(status=status)

        with pytest.raises(InvalidTransition, match="cancellation window has closed"):
            machine.apply_transition(order, "cancelled_by_user", "customer")

    def test_rejection_uses_note_as_reason(self, machine):
        order = make_order()
        rejected = machine.apply_transition(
            order, "seller_rejected", "seller", "Out of ingredients"
        )

        assert rejected.cancelled_by == Actor.SELLER
        assert rejected.cancellation_reason == "Out of ingredients"
        assert is_terminal(rejected)

    def test_seller_cancel_default_reason(self, machine):
        order = make_order(status="preparing")
        cancelled = machine.apply_transition(order, "cancelled_by_seller", "seller")
        assert cancelled.cancellation_reason == "Cancelled by seller"


class TestPredicates:
    """Derived predicates are pure and consistent with the graph."""

    def test_progress_is_non_decreasing_along_happy_path(self, machine):
        order = make_order()
        progress = [progress_percent(order)]
        for target, actor in HAPPY_PATH:
            order = machine.apply_transition(order, target, actor)
            progress.append(progress_percent(order))

        assert progress == sorted(progress)
        assert progress[0] == 10
        assert progress[-1] == 100

    def test_predicates_are_idempotent(self):
        order = make_order(status="preparing")
        first = (can_cancel(order), can_rate(order), is_terminal(order), progress_percent(order))
        second = (can_cancel(order), can_rate(order), is_terminal(order), progress_percent(order))
        assert first == second == (True, False, False, 50)

    def test_allowed_targets_from_pending_seller(self):
        assert allowed_targets(make_order()) == {
            OrderStatus.SELLER_ACCEPTED,
            OrderStatus.SELLER_REJECTED,
            OrderStatus.CANCELLED_BY_USER,
        }

    def test_allowed_targets_drop_user_cancel_once_window_closes(self):
        targets = allowed_targets(make_order(status="payment_completed"))
        assert targets == {OrderStatus.PREPARING, OrderStatus.CANCELLED_BY_SELLER}

    def test_can_proceed_to_payment_only_after_acceptance(self):
        assert can_proceed_to_payment(make_order(status="seller_accepted"))
        assert not can_proceed_to_payment(make_order(status="pending_seller"))

    def test_status_labels(self):
        assert status_label("pending_seller") == "Awaiting Restaurant"
        assert status_label("cancelled_by_seller") == "Cancelled by Restaurant"
        assert status_label("something_else") == "Something Else"

    def test_normalise_rejects_unknown_status(self):
        with pytest.raises(ValueError):
            normalise_status("teleported")


class TestRating:
    """OrderStateMachine.rate."""

    def test_delivered_order_can_be_rated_once(self, machine):
        order = make_order(status="delivered")
        assert can_rate(order)

        rated = machine.rate(order, 4, "Hot and fresh")

        assert rated.rating.score == 4
        assert rated.rating.review == "Hot and fresh"
        assert not can_rate(rated)
        with pytest.raises(InvalidTransition):
            machine.rate(rated, 5)

    def test_undelivered_order_cannot_be_rated(self, machine):
        with pytest.raises(InvalidTransition):
            machine.rate(make_order(status="ready"), 5)


class TestOpen:
    def test_open_builds_initial_order(self, machine, clock):
        order = machine.open("o-1", "s-1", "c-1", [], 250.0, payment_method="razorpay")

        assert order.status == OrderStatus.PENDING_SELLER
        assert order.created_at == clock.now()
        assert len(order.timeline) == 1
        assert order.timeline[0].actor == Actor.CUSTOMER
        assert order.version == 0

    def test_terminal_check_after_delivery(self, machine, clock):
        order = make_order(status="out_for_delivery")
        clock.advance(minutes=40)
        delivered = machine.apply_transition(order, "delivered", "delivery")
        assert delivered.actual_delivery_time - order.created_at == timedelta(minutes=40)
