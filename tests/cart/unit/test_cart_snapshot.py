"""
Unit Tests: Cart export / import

Tests for CartStore.export_snapshot() and CartStore.import_snapshot():
- Round trip reproduces an equivalent cart
- Documents without a usable 'current' field are rejected with no side effects
"""

import json

import pytest

from services.cart_store import CartStore


@pytest.fixture
def store(memory_storage, clock):
    return CartStore(memory_storage, clock=clock)


class TestExport:

    @pytest.mark.asyncio
    async def test_document_shape(self, store, make_product, clock):
        await store.add_item(make_product("A-1"), 2)

        document = json.loads(await store.export_snapshot())

        assert set(document) == {"current", "metadata", "history", "exportedAt", "version"}
        assert document["version"] == "2.0"
        assert document["current"]["totalItems"] == 2
        assert document["current"]["items"][0]["productSnapshot"]["id"] == "A-1"
        assert document["metadata"]["deviceInfo"]["userAgent"]
        assert len(document["history"]) == 1

    @pytest.mark.asyncio
    async def test_empty_store_exports_null_current(self, store):
        document = json.loads(await store.export_snapshot())
        assert document["current"] is None
        assert document["history"] == []


class TestImport:

    @pytest.mark.asyncio
    async def test_round_trip(self, store, make_product):
        await store.add_item(make_product("A-1", price=3.0), 2, notes="bin 4")
        await store.add_item(make_product("B-7", name="Tape Measure"), 1)
        before = await store.load()
        exported = await store.export_snapshot()
        await store.clear()

        assert await store.import_snapshot(exported) is True

        after = await store.load()
        assert after.session_id == before.session_id
        assert [(i.id, i.quantity, i.notes) for i in after.items] == \
               [(i.id, i.quantity, i.notes) for i in before.items]
        assert after.total_items == before.total_items
        assert after.total_value == before.total_value == 6.0
        assert after.items[1].product_snapshot.name == "Tape Measure"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("payload", [
        '{"not_current":true}',
        '{"current": null, "history": []}',
        '[1, 2, 3]',
        'not json at all',
        '{"current": {"items": "nope"}}',
    ])
    async def test_rejected_documents_leave_state_untouched(self, store, memory_storage, make_product, payload):
        await store.add_item(make_product("A-1"), 3)
        stored_before = dict(memory_storage.data)

        assert await store.import_snapshot(payload) is False

        assert memory_storage.data == stored_before
        assert (await store.load()).find_item("A-1").quantity == 3

    @pytest.mark.asyncio
    async def test_import_accepts_document_without_optional_fields(self, store):
        document = {
            "current": {
                "items": [{
                    "id": "C-3",
                    "productSnapshot": {"id": "C-3", "name": "Pliers", "price": 4},
                    "quantity": 2,
                    "addedAt": "2026-01-10T08:00:00Z",
                }],
                "totalItems": 99,
                "totalValue": 0,
                "lastUpdated": "2026-01-10T08:00:00Z",
                "sessionId": "cart_1_abc",
            }
        }

        assert await store.import_snapshot(json.dumps(document)) is True

        state = await store.load()
        # Totals are recomputed from the items
        assert state.total_items == 2
        assert state.total_value == 8.0
