"""
Unit Tests: CacheWorker

Tests for services/cache_worker.py covering:
- Lifecycle: install, activation (automatic and via SKIP_WAITING), close
- Control messages with and without replies
- Fetches bypass the cache until the worker is active
"""

import asyncio

import pytest
import pytest_asyncio

from enums.control_message_type import ControlMessageType
from enums.worker_lifecycle import WorkerLifecycle
from services.cache_layer import NetworkCacheLayer
from services.cache_worker import CacheWorker


@pytest.fixture
def layer(memory_storage, fetcher, clock):
    return NetworkCacheLayer(memory_storage, fetcher, clock=clock, revalidate_in_background=False)


@pytest_asyncio.fixture
async def worker(layer):
    worker = CacheWorker(layer, auto_activate=True)
    await worker.start()
    yield worker
    await worker.close()


class TestLifecycle:

    @pytest.mark.asyncio
    async def test_auto_activation(self, worker):
        assert worker.lifecycle == WorkerLifecycle.ACTIVE

    @pytest.mark.asyncio
    async def test_skip_waiting_activates_installed_worker(self, layer, fetcher):
        fetcher.respond("/api/items", [])
        worker = CacheWorker(layer, auto_activate=False)
        await worker.start()
        try:
            assert worker.lifecycle == WorkerLifecycle.INSTALLED

            await worker.fetch("/api/items")
            # Not intercepting yet, nothing stored
            assert (await worker.post_message(ControlMessageType.GET_CACHE_STATUS))["total"] == 0

            await worker.post_message(ControlMessageType.SKIP_WAITING)
            await worker.post_message(ControlMessageType.GET_CACHE_STATUS)
            assert worker.is_active

            await worker.fetch("/api/items")
            assert (await worker.post_message(ControlMessageType.GET_CACHE_STATUS))["total"] == 1
        finally:
            await worker.close()

    @pytest.mark.asyncio
    async def test_activation_purges_old_versions(self, memory_storage, fetcher, clock):
        fetcher.respond("/api/items", [])
        old = NetworkCacheLayer(memory_storage, fetcher, clock=clock, cache_version="v0.9.0",
                                revalidate_in_background=False)
        await old.fetch("/api/items")

        worker = CacheWorker(NetworkCacheLayer(memory_storage, fetcher, clock=clock), auto_activate=True)
        await worker.start()
        await worker.close()

        assert (await old.cache_status())["total"] == 0

    @pytest.mark.asyncio
    async def test_close_stops_worker(self, layer):
        worker = CacheWorker(layer)
        await worker.start()
        await worker.close()

        assert worker.lifecycle == WorkerLifecycle.STOPPED
        with pytest.raises(RuntimeError):
            await worker.post_message(ControlMessageType.GET_CACHE_STATUS)


class TestMessages:

    @pytest.mark.asyncio
    async def test_fetch_reply_is_plain_response(self, worker, fetcher):
        fetcher.respond("/api/items", [{"item_no": "A-1"}])

        response = await worker.fetch("/api/items")

        assert response.status == 200
        assert response.json() == [{"item_no": "A-1"}]

    @pytest.mark.asyncio
    async def test_concurrent_fetches(self, worker, fetcher):
        fetcher.respond("/api/items", [])
        fetcher.respond("/api/employees", [])

        responses = await asyncio.gather(worker.fetch("/api/items"), worker.fetch("/api/employees"))

        assert [r.status for r in responses] == [200, 200]

    @pytest.mark.asyncio
    async def test_clear_cache_replies_with_success(self, worker, fetcher):
        fetcher.respond("/api/items", [])
        await worker.fetch("/api/items")

        reply = await worker.post_message(ControlMessageType.CLEAR_CACHE)

        assert reply == {"success": True}
        assert (await worker.post_message(ControlMessageType.GET_CACHE_STATUS))["total"] == 0

    @pytest.mark.asyncio
    async def test_prefetch_is_fire_and_forget(self, worker, fetcher):
        fetcher.respond("/api/items", [])
        fetcher.respond("/api/employees", [])

        assert await worker.post_message(ControlMessageType.PREFETCH_DATA) is None

        for _ in range(50):
            if (await worker.post_message(ControlMessageType.GET_CACHE_STATUS))["total"] == 2:
                break
            await asyncio.sleep(0)
        assert (await worker.post_message(ControlMessageType.GET_CACHE_STATUS))["api"] == 2

    @pytest.mark.asyncio
    async def test_offline_fetch_never_raises(self, worker, fetcher):
        fetcher.offline = True

        response = await worker.fetch("/api/items")

        assert response.status == 503
        assert response.offline is True
