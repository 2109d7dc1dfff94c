"""
Integration Tests: PosSyncClient against a live HTTP backend

A small aiohttp application stands in for the inventory backend. Going
offline is simulated by pointing the API client at a closed port.

Covers:
- Online checkout and the per-item fallback when the bulk endpoint is missing
- Offline mutations queued and replayed on the reconnect edge
- Catalog fetches through the cache worker, served from cache when offline
- Scanner bursts adding products to the cart
- CLI commands export/import
"""

import argparse
import json

import pytest
import pytest_asyncio
from aiohttp import web
from aiohttp.test_utils import TestServer

from client import PosSyncClient
from middleware.rate_limit import RateLimiter
from run import run_command
from services.api_client import ApiClient

UNREACHABLE_URL = "http://127.0.0.1:9"


class FakeBackend:
    def __init__(self):
        self.received: list[tuple[str, str, dict | None]] = []
        self.bulk_checkout = True
        self.items = [
            {"item_no": "HAM-001", "item_name": "Claw Hammer", "brand": "Stanley", "balance": 25},
            {"item_no": "SAW-002", "item_name": "Hand Saw", "balance": 3},
        ]

    async def _record(self, request: web.Request):
        body = await request.json() if request.can_read_body else None
        self.received.append((request.method, request.path, body))

    async def list_items(self, request):
        await self._record(request)
        return web.json_response({"success": True, "data": self.items})

    async def list_employees(self, request):
        await self._record(request)
        return web.json_response({"success": True, "employees": [{"name": "Ana"}]})

    async def health(self, request):
        return web.json_response({"status": "ok"})

    async def checkout(self, request):
        await self._record(request)
        if not self.bulk_checkout:
            return web.json_response({"error": "not found"}, status=404)
        return web.json_response({"success": True})

    async def checkout_item(self, request):
        await self._record(request)
        return web.json_response({"success": True})

    async def cart_item(self, request):
        await self._record(request)
        return web.json_response({"success": True})

    def paths(self, method: str) -> list[str]:
        return [path for m, path, _ in self.received if m == method]

    def build_app(self) -> web.Application:
        app = web.Application()
        app.router.add_get("/api/items", self.list_items)
        app.router.add_get("/api/employees", self.list_employees)
        app.router.add_get("/health", self.health)
        app.router.add_post("/api/items/checkout", self.checkout)
        app.router.add_post("/api/items/{item_no}/out", self.checkout_item)
        app.router.add_post("/api/cart/items", self.cart_item)
        app.router.add_put("/api/cart/items/{item_no}", self.cart_item)
        app.router.add_delete("/api/cart/items/{item_no}", self.cart_item)
        return app


@pytest.fixture
def backend():
    return FakeBackend()


@pytest_asyncio.fixture
async def server(backend):
    server = TestServer(backend.build_app())
    await server.start_server()
    yield server
    await server.close()


@pytest_asyncio.fixture
async def client(server, memory_storage, clock):
    api_client = ApiClient(base_url=str(server.make_url("")), rate_limiter=RateLimiter())
    client = PosSyncClient(storage=memory_storage, api_client=api_client, clock=clock, poll_health=False)
    await client.start()
    yield client
    await client.close()


def go_offline(client: PosSyncClient, server: TestServer):
    client.api_client.base_url = UNREACHABLE_URL
    client.connectivity.update(False)


def go_online(client: PosSyncClient, server: TestServer):
    client.api_client.base_url = str(server.make_url("")).rstrip("/")
    client.connectivity.update(True)


def titles(client: PosSyncClient) -> list[str]:
    return [notification.title for notification in client.notifications.recent]


class TestOnlineCheckout:

    @pytest.mark.asyncio
    async def test_checkout_posts_cart_and_clears_it(self, client, backend, make_product):
        await client.add_to_cart(make_product("HAM-001"), 2)

        assert await client.checkout(notes="job 14") is True

        method, path, body = backend.received[-1]
        assert (method, path) == ("POST", "/api/items/checkout")
        assert body["items"] == [{"item_no": "HAM-001", "quantity": 2, "item_name": "Claw Hammer"}]
        assert body["notes"] == "job 14"
        assert await client.cart.load() is None
        assert "Checkout Complete" in titles(client)
        # Online mutations are not queued
        assert await client.queue.size() == 0

    @pytest.mark.asyncio
    async def test_per_item_fallback_when_bulk_endpoint_missing(self, client, backend, make_product):
        backend.bulk_checkout = False
        await client.add_to_cart(make_product("HAM-001"), 1)
        await client.add_to_cart(make_product("SAW-002", name="Hand Saw"), 3)

        assert await client.checkout() is True

        assert backend.paths("POST")[-2:] == ["/api/items/HAM-001/out", "/api/items/SAW-002/out"]

    @pytest.mark.asyncio
    async def test_empty_cart_checkout(self, client, backend):
        assert await client.checkout() is False
        assert backend.received == []


class TestOfflineReplay:

    @pytest.mark.asyncio
    async def test_offline_mutations_replayed_on_reconnect(self, client, server, backend, make_product):
        go_offline(client, server)
        await client.add_to_cart(make_product("HAM-001"), 2)
        await client.update_quantity("HAM-001", 3)
        assert await client.checkout() is True
        assert "Checkout Queued" in titles(client)
        assert await client.queue.size() == 3

        go_online(client, server)
        await client.connectivity.wait_for_pending()

        assert await client.queue.size() == 0
        assert [(m, p) for m, p, _ in backend.received] == [
            ("POST", "/api/cart/items"),
            ("PUT", "/api/cart/items/HAM-001"),
            ("POST", "/api/items/checkout"),
        ]
        assert "Sync Complete" in titles(client)

    @pytest.mark.asyncio
    async def test_drain_skipped_while_offline(self, client, server, make_product):
        go_offline(client, server)
        await client.add_to_cart(make_product("HAM-001"), 1)

        result = await client.drain_queue()

        assert result.skipped is True
        assert result.remaining == 1

    @pytest.mark.asyncio
    async def test_check_connection_updates_monitor(self, client, server):
        go_offline(client, server)
        assert await client.check_connection() is False

        client.api_client.base_url = str(server.make_url("")).rstrip("/")
        assert await client.check_connection() is True
        assert client.is_online is True


class TestCatalog:

    @pytest.mark.asyncio
    async def test_products_served_from_cache_when_offline(self, client, server, backend):
        products = await client.fetch_products()
        assert [p.id for p in products] == ["HAM-001", "SAW-002"]

        go_offline(client, server)
        offline_products = await client.fetch_products()

        assert [p.id for p in offline_products] == ["HAM-001", "SAW-002"]
        status = await client.sync_status()
        assert status.is_online is False
        assert status.has_offline_data is True
        assert status.cache_status["api"] == 1

    @pytest.mark.asyncio
    async def test_employees(self, client):
        assert await client.fetch_employees() == [{"name": "Ana"}]

    @pytest.mark.asyncio
    async def test_clear_offline_data(self, client):
        await client.fetch_products()

        assert await client.clear_offline_data() is True

        status = await client.sync_status()
        assert status.has_offline_data is False
        assert status.cache_status["total"] == 0
        assert "Data Cleared" in titles(client)


class TestScanner:

    @pytest.mark.asyncio
    async def test_scanner_burst_adds_product(self, client):
        await client.fetch_products()

        for index, key in enumerate("SAW-002"):
            await client.handle_key(key, index * 5)
        result = await client.handle_key("Enter", 40)

        assert result.code == "SAW-002"
        assert await client.cart.get_item_quantity("SAW-002") == 1
        assert "Item Added" in titles(client)

    @pytest.mark.asyncio
    async def test_unknown_code_notifies(self, client):
        for index, key in enumerate("ZZZ-999"):
            await client.handle_key(key, index * 5)
        await client.handle_key("Enter", 40)

        assert "Item Not Found" in titles(client)
        assert await client.cart.load() is None


class TestCommands:

    @pytest.mark.asyncio
    async def test_export_then_import(self, client, make_product, tmp_path, capsys):
        await client.add_to_cart(make_product("HAM-001"), 4)
        export_file = tmp_path / "cart.json"

        assert await run_command(client, argparse.Namespace(command="export", output=export_file)) == 0
        assert json.loads(export_file.read_text())["current"]["totalItems"] == 4

        await client.cart.clear()
        assert await run_command(client, argparse.Namespace(command="import", file=export_file)) == 0
        assert await client.cart.get_item_quantity("HAM-001") == 4

    @pytest.mark.asyncio
    async def test_import_rejects_invalid_file(self, client, tmp_path):
        bad_file = tmp_path / "bad.json"
        bad_file.write_text('{"history": []}')

        assert await run_command(client, argparse.Namespace(command="import", file=bad_file)) == 1

    @pytest.mark.asyncio
    async def test_status(self, client, capsys):
        assert await run_command(client, argparse.Namespace(command="status")) == 0

        status = json.loads(capsys.readouterr().out)
        assert status["is_online"] is True
        assert status["queue_size"] == 0
