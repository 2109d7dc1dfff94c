"""
Unit Tests: OfflineQueue

Tests for services/offline_queue.py covering:
- enqueue() - FIFO persistence with fresh ids
- drain() - success removes, failure retries, exhaustion drops after exactly 3 attempts
- Single in-flight drain
- Causal deferral of later items for the same product and of checkouts
- Items enqueued during a drain are kept
- Unreadable queue records and storage outages degrade to an empty queue
"""

import asyncio
import logging
from unittest.mock import AsyncMock

import pytest

from enums.queue_action_type import QueueActionType
from exceptions.queue import ReplayFailedException
from exceptions.storage import StorageUnavailableException
from services.offline_queue import OfflineQueue


class ScriptedReplayer:
    """Replays queue items, failing each action type a configured number of times."""

    def __init__(self, failures: dict[QueueActionType, int] | None = None):
        self.failures = dict(failures or {})
        self.calls: list[tuple[QueueActionType, dict]] = []
        self.gate: asyncio.Event | None = None

    async def __call__(self, item):
        self.calls.append((item.type, item.payload))
        if self.gate is not None:
            await self.gate.wait()
        if self.failures.get(item.type, 0) > 0:
            self.failures[item.type] -= 1
            raise ReplayFailedException(item.id, item.type.value, "HTTP 503", 503)

    def attempts(self, action: QueueActionType) -> int:
        return sum(1 for call_type, _ in self.calls if call_type == action)


@pytest.fixture
def replayer():
    return ScriptedReplayer()


@pytest.fixture
def queue(memory_storage, replayer, clock):
    return OfflineQueue(memory_storage, replayer, clock=clock)


class TestEnqueue:

    @pytest.mark.asyncio
    async def test_items_kept_in_order_with_unique_ids(self, queue):
        first = await queue.enqueue(QueueActionType.CART_ADD, {"id": "A-1", "quantity": 2})
        second = await queue.enqueue(QueueActionType.CART_UPDATE, {"id": "A-1", "quantity": 5})

        items = await queue.items()
        assert [item.id for item in items] == [first, second]
        assert first != second
        assert all(item.retry_count == 0 for item in items)
        assert await queue.size() == 2

    @pytest.mark.asyncio
    async def test_queue_survives_new_instance(self, queue, memory_storage, replayer, clock):
        await queue.enqueue(QueueActionType.CART_REMOVE, {"id": "A-1"})

        reopened = OfflineQueue(memory_storage, replayer, clock=clock)

        assert [item.type for item in await reopened.items()] == [QueueActionType.CART_REMOVE]


class TestDrain:

    @pytest.mark.asyncio
    async def test_successful_drain_empties_queue(self, queue, replayer):
        await queue.enqueue(QueueActionType.CART_ADD, {"id": "A-1", "quantity": 2})
        await queue.enqueue(QueueActionType.CART_UPDATE, {"id": "A-1", "quantity": 5})

        result = await queue.drain()

        assert result.processed == 2
        assert result.remaining == 0
        assert [call_type for call_type, _ in replayer.calls] == [
            QueueActionType.CART_ADD, QueueActionType.CART_UPDATE,
        ]
        assert await queue.size() == 0

    @pytest.mark.asyncio
    async def test_checkout_succeeds_on_third_drain(self, queue, replayer):
        """[cart_add, checkout]: checkout fails twice then succeeds, three attempts in total."""
        replayer.failures[QueueActionType.CHECKOUT] = 2
        await queue.enqueue(QueueActionType.CART_ADD, {"id": "A-1", "quantity": 1})
        await queue.enqueue(QueueActionType.CHECKOUT, {"items": [{"item_no": "A-1", "quantity": 1}]})

        first = await queue.drain()
        assert first.processed == 1
        assert [item.retry_count for item in await queue.items()] == [1]

        second = await queue.drain()
        assert second.processed == 0
        assert [item.retry_count for item in await queue.items()] == [2]

        third = await queue.drain()
        assert third.processed == 1
        assert await queue.size() == 0
        assert replayer.attempts(QueueActionType.CART_ADD) == 1
        assert replayer.attempts(QueueActionType.CHECKOUT) == 3

    @pytest.mark.asyncio
    async def test_item_dropped_after_exactly_three_failures(self, queue, replayer, caplog):
        replayer.failures[QueueActionType.CART_REMOVE] = 99
        await queue.enqueue(QueueActionType.CART_REMOVE, {"id": "A-1"})

        await queue.drain()
        await queue.drain()
        assert await queue.size() == 1

        with caplog.at_level(logging.WARNING):
            result = await queue.drain()

        assert result.dropped == 1
        assert await queue.size() == 0
        assert replayer.attempts(QueueActionType.CART_REMOVE) == 3
        assert any("after 3 failed attempts" in r.getMessage() for r in caplog.records)

        await queue.drain()
        assert replayer.attempts(QueueActionType.CART_REMOVE) == 3

    @pytest.mark.asyncio
    async def test_empty_queue_drain(self, queue, replayer):
        result = await queue.drain()

        assert result.processed == 0
        assert result.remaining == 0
        assert replayer.calls == []


class TestCausalOrdering:

    @pytest.mark.asyncio
    async def test_later_update_for_failed_product_is_deferred(self, queue, replayer):
        replayer.failures[QueueActionType.CART_ADD] = 1
        await queue.enqueue(QueueActionType.CART_ADD, {"id": "A-1", "quantity": 1})
        await queue.enqueue(QueueActionType.CART_UPDATE, {"id": "A-1", "quantity": 4})
        await queue.enqueue(QueueActionType.CART_ADD, {"id": "B-2", "quantity": 1})

        result = await queue.drain()

        assert result.deferred == 1
        assert result.processed == 1
        items = await queue.items()
        assert [(item.type, item.entity_id, item.retry_count) for item in items] == [
            (QueueActionType.CART_ADD, "A-1", 1),
            (QueueActionType.CART_UPDATE, "A-1", 0),
        ]
        # The deferred update was never sent
        assert replayer.attempts(QueueActionType.CART_UPDATE) == 0

        second = await queue.drain()
        assert second.processed == 2
        assert await queue.size() == 0

    @pytest.mark.asyncio
    async def test_checkout_waits_for_earlier_failure(self, queue, replayer):
        replayer.failures[QueueActionType.CART_UPDATE] = 1
        await queue.enqueue(QueueActionType.CART_UPDATE, {"id": "A-1", "quantity": 2})
        await queue.enqueue(QueueActionType.CHECKOUT, {"items": []})

        result = await queue.drain()

        assert result.deferred == 1
        assert replayer.attempts(QueueActionType.CHECKOUT) == 0
        assert [item.retry_count for item in await queue.items()] == [1, 0]


class TestConcurrency:

    @pytest.mark.asyncio
    async def test_second_drain_is_skipped_while_first_runs(self, queue, replayer):
        replayer.gate = asyncio.Event()
        await queue.enqueue(QueueActionType.CART_ADD, {"id": "A-1", "quantity": 1})

        first = asyncio.create_task(queue.drain())
        while not replayer.calls:
            await asyncio.sleep(0)
        assert queue.sync_in_progress is True

        second = await queue.drain()
        assert second.skipped is True

        replayer.gate.set()
        result = await first
        assert result.processed == 1
        assert replayer.attempts(QueueActionType.CART_ADD) == 1
        assert queue.sync_in_progress is False

    @pytest.mark.asyncio
    async def test_items_enqueued_during_drain_are_kept(self, queue, replayer):
        replayer.gate = asyncio.Event()
        await queue.enqueue(QueueActionType.CART_ADD, {"id": "A-1", "quantity": 1})

        drain = asyncio.create_task(queue.drain())
        while not replayer.calls:
            await asyncio.sleep(0)
        late_id = await queue.enqueue(QueueActionType.CART_ADD, {"id": "B-2", "quantity": 1})
        replayer.gate.set()
        result = await drain

        assert result.processed == 1
        assert [item.id for item in await queue.items()] == [late_id]
        assert result.remaining == 1


class TestUnreadableQueue:

    @pytest.mark.parametrize("raw", ["{not json", '{"id": "A-1"}', "42"])
    @pytest.mark.asyncio
    async def test_treated_as_empty(self, queue, replayer, memory_storage, raw, caplog):
        memory_storage.data[queue.queue_key] = raw

        assert await queue.size() == 0
        result = await queue.drain()
        assert result.processed == 0
        assert replayer.calls == []
        assert "Discarding unreadable offline queue" in caplog.text

    @pytest.mark.asyncio
    async def test_enqueue_replaces_unreadable_record(self, queue, memory_storage):
        memory_storage.data[queue.queue_key] = "{not json"

        item_id = await queue.enqueue(QueueActionType.CART_ADD, {"id": "A-1", "quantity": 1})

        assert [item.id for item in await queue.items()] == [item_id]


class TestStorageOutage:

    @pytest.fixture
    def broken_storage(self, memory_storage):
        error = StorageUnavailableException("memory", "get", "disk detached")
        memory_storage.get = AsyncMock(side_effect=error)
        memory_storage.set = AsyncMock(side_effect=error)
        memory_storage.delete = AsyncMock(side_effect=error)
        return memory_storage

    @pytest.mark.asyncio
    async def test_operations_degrade(self, broken_storage, replayer, clock):
        queue = OfflineQueue(broken_storage, replayer, clock=clock)

        assert await queue.enqueue(QueueActionType.CART_ADD, {"id": "A-1", "quantity": 1}) is None
        assert await queue.size() == 0
        assert await queue.clear() is False

        result = await queue.drain()

        assert result.processed == 0
        assert replayer.calls == []
        assert queue.sync_in_progress is False
