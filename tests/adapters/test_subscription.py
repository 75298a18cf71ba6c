"""Tests for the queue-backed subscription."""

import asyncio

import pytest

from vitalwatch.adapters.subscription import QueueSubscription


class TestQueueSubscription:
    """Test suite for QueueSubscription."""

    @pytest.mark.asyncio
    async def test_items_are_delivered_in_order(self):
        subscription = QueueSubscription()
        for i in range(3):
            assert subscription.push(i)

        received = [await subscription.__anext__() for _ in range(3)]

        assert received == [0, 1, 2]

    @pytest.mark.asyncio
    async def test_cancel_wakes_waiting_consumer(self):
        subscription = QueueSubscription()

        async def consume():
            return [item async for item in subscription]

        consumer = asyncio.create_task(consume())
        await asyncio.sleep(0)
        subscription.cancel()

        assert await asyncio.wait_for(consumer, timeout=1) == []

    @pytest.mark.asyncio
    async def test_cancel_discards_pending_items_and_rejects_new_ones(self):
        subscription = QueueSubscription()
        subscription.push("pending")

        subscription.cancel()

        assert not subscription.push("late")
        assert [item async for item in subscription] == []

    def test_cancel_is_idempotent_and_notifies_owner_once(self):
        released = []
        subscription = QueueSubscription(on_cancel=released.append)

        subscription.cancel()
        subscription.cancel()

        assert released == [subscription]
        assert subscription.closed

    def test_full_queue_drops_items(self):
        subscription = QueueSubscription(maxsize=1)
        assert subscription.push(1)
        assert not subscription.push(2)
