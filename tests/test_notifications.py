"""
Tests for the notification outbox flush and recipient routing.
"""

from unittest.mock import AsyncMock

import pytest

from tastesphere.services.notifications import (
    LoggingNotificationDispatcher,
    OrderNotification,
    flush_outbox,
    recipient_role_for,
)


def _event(event_id, status="seller_accepted"):
    return OrderNotification(
        event_id=event_id,
        order_id=f"order-{event_id}",
        status=status,
        recipient_role="customer",
    )


class TestRecipientRole:
    @pytest.mark.parametrize("actor,role", [
        ("customer", "seller"),
        ("seller", "customer"),
        ("delivery", "customer"),
        ("system", "customer"),
    ])
    def test_routing(self, actor, role):
        assert recipient_role_for(actor) == role


class TestFlushOutbox:
    @pytest.mark.asyncio
    async def test_marks_each_delivered_event(self):
        store = AsyncMock()
        store.pending_notifications.return_value = [_event(1), _event(2)]
        dispatcher = AsyncMock()

        delivered = await flush_outbox(store, dispatcher)

        assert delivered == 2
        assert dispatcher.dispatch.await_count == 2
        store.mark_notification_dispatched.assert_any_await(1)
        store.mark_notification_dispatched.assert_any_await(2)
        store.mark_notification_failed.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_failure_is_recorded_and_flush_continues(self):
        store = AsyncMock()
        store.pending_notifications.return_value = [_event(1), _event(2)]
        dispatcher = AsyncMock()
        dispatcher.dispatch.side_effect = [ConnectionError("timeout"), None]

        delivered = await flush_outbox(store, dispatcher)

        assert delivered == 1
        store.mark_notification_failed.assert_awaited_once_with(1, "timeout")
        store.mark_notification_dispatched.assert_awaited_once_with(2)

    @pytest.mark.asyncio
    async def test_empty_outbox(self):
        store = AsyncMock()
        store.pending_notifications.return_value = []

        assert await flush_outbox(store, AsyncMock(), limit=10, max_attempts=4) == 0
        store.pending_notifications.assert_awaited_once_with(limit=10, max_attempts=4)

    @pytest.mark.asyncio
    async def test_final_failed_attempt_is_logged_as_error(self, caplog):
        store = AsyncMock()
        store.pending_notifications.return_value = [
            OrderNotification(event_id=3, order_id="order-3", status="ready", recipient_role="customer", attempts=2),
        ]
        dispatcher = AsyncMock()
        dispatcher.dispatch.side_effect = ConnectionError("timeout")

        delivered = await flush_outbox(store, dispatcher, max_attempts=3)

        assert delivered == 0
        store.mark_notification_failed.assert_awaited_once_with(3, "timeout")
        assert any(
            r.levelname == "ERROR" and "giving up" in r.getMessage() for r in caplog.records
        )


class TestLoggingDispatcher:
    @pytest.mark.asyncio
    async def test_logs_notification(self, caplog):
        caplog.set_level("INFO", logger="tastesphere.services.notifications")

        await LoggingNotificationDispatcher().dispatch(_event(7, status="ready"))

        assert "order-7 is now ready" in caplog.text
