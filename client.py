import logging
from datetime import datetime
from typing import Any, Callable

from enums.control_message_type import ControlMessageType
from enums.queue_action_type import QueueActionType
from enums.scan_state import ScanSource
from exceptions.base import PosSyncException
from exceptions.network import NetworkFailureException
from middleware.rate_limit import RateLimiter
from models.base import utcnow
from models.offline_data import SyncStatusDTO
from models.offline_queue import DrainResultDTO
from models.product import ProductDTO
from repositories.storage import KeyValueStorage, build_storage
from services.api_client import ApiClient, build_checkout_payload
from services.cache_layer import NetworkCacheLayer
from services.cache_worker import CacheWorker
from services.cart_store import CartStore, describe_age
from services.catalog import CatalogService
from services.connectivity import ConnectivityMonitor, HealthCheckSignal
from services.notification import NotificationCenter
from services.offline_queue import OfflineQueue
from services.scanner import ScanInputClassifier, ScanResult
from utils.error_handler import describe_failure

logger = logging.getLogger(__name__)


class PosSyncClient:
    """
    Composition root of the offline sync engine.

    Owns every service and their lifecycles. UI mutations always go through
    the cart store; while offline they are also mirrored into the offline
    queue, which drains on the next offline->online edge.
    """

    def __init__(self,
                 storage: KeyValueStorage | None = None,
                 api_client: ApiClient | None = None,
                 clock: Callable[[], datetime] = utcnow,
                 initial_online: bool = True,
                 poll_health: bool = True):
        self.clock = clock
        self.storage = storage or build_storage()
        self.rate_limiter = RateLimiter()
        self.api_client = api_client or ApiClient(rate_limiter=self.rate_limiter)
        self.notifications = NotificationCenter()
        self.cart = CartStore(self.storage, clock=clock)
        self.queue = OfflineQueue(self.storage, self.api_client.replay, clock=clock, on_drained=self._on_drained)
        self.cache_layer = NetworkCacheLayer(self.storage, self.api_client.request, clock=clock)
        self.cache_worker = CacheWorker(self.cache_layer)
        self.catalog = CatalogService(self.cache_worker, self.storage, self.api_client, clock=clock)
        self.connectivity = ConnectivityMonitor(initial_online)
        self.connectivity.on_reconnect(self.drain_queue)
        self.health_signal = HealthCheckSignal(self.connectivity, self.api_client.is_reachable) if poll_health else None
        self.scanner = ScanInputClassifier()
        self.products: list[ProductDTO] = []

    @property
    def is_online(self) -> bool:
        return self.connectivity.is_online

    async def start(self) -> None:
        await self.rate_limiter.start()
        await self.api_client.start()
        await self.storage.probe()
        await self.cache_worker.start()
        if self.health_signal is not None:
            self.health_signal.start()

        state = await self.cart.load()
        if state is not None and state.items:
            count = state.total_items
            self.notifications.info(
                "Cart Restored",
                f"Found {count} item{'s' if count != 1 else ''} from {describe_age(state.last_updated, self.clock())}",
            )
        logger.info("[PosSync] Started")

    async def close(self) -> None:
        if self.health_signal is not None:
            await self.health_signal.close()
        await self.connectivity.close()
        await self.cart.close()
        await self.cache_worker.close()
        await self.api_client.close()
        await self.rate_limiter.close()
        await self.storage.close()
        logger.info("[PosSync] Stopped")

    # Cart mutations

    async def _mirror(self, action: QueueActionType, payload: dict[str, Any]) -> None:
        if not self.is_online:
            await self.queue.enqueue(action, payload)

    async def add_to_cart(self, product: ProductDTO, quantity: int = 1, notes: str | None = None) -> bool:
        added = await self.cart.add_item(product, quantity, notes)
        if added:
            await self._mirror(QueueActionType.CART_ADD, {
                "id": product.id, "quantity": quantity, "notes": notes, "item_name": product.name,
            })
        return added

    async def update_quantity(self, item_id: str, quantity: int) -> bool:
        updated = await self.cart.set_quantity(item_id, quantity)
        if updated:
            if quantity <= 0:
                await self._mirror(QueueActionType.CART_REMOVE, {"id": item_id})
            else:
                await self._mirror(QueueActionType.CART_UPDATE, {"id": item_id, "quantity": quantity})
        return updated

    async def remove_from_cart(self, item_id: str) -> bool:
        removed = await self.cart.remove_item(item_id)
        if removed:
            await self._mirror(QueueActionType.CART_REMOVE, {"id": item_id})
        return removed

    async def checkout(self, notes: str | None = None) -> bool:
        """
        Check out the current cart.

        Online checkouts go straight to the server and fall back to the queue
        if the network drops mid-request. Returns False only when there is
        nothing to check out or the server rejected the checkout.
        """
        state = await self.cart.load()
        if state is None or not state.items:
            return False
        payload = build_checkout_payload(state.items, notes, now=self.clock())

        if self.is_online:
            try:
                response = await self.api_client.checkout(payload)
            except NetworkFailureException as e:
                logger.info(f"[PosSync] Checkout failed in flight, queueing: {e.reason}")
                self.connectivity.update(False)
            else:
                if not response.ok:
                    self.notifications.error("Checkout Failed", f"Server answered {response.status}")
                    return False
                await self.cart.clear()
                self.notifications.success("Checkout Complete", f"{state.total_items} items checked out")
                return True

        if await self.queue.enqueue(QueueActionType.CHECKOUT, payload) is None:
            self.notifications.error("Checkout Failed", "Could not store the checkout for later sync")
            return False
        await self.cart.clear()
        self.notifications.info("Checkout Queued", "It will be sent when the connection returns")
        return True

    async def handle_key(self, key: str, timestamp_ms: float) -> ScanResult | None:
        """Feed a key press to the scan classifier; scanner bursts add the product to the cart."""
        result = self.scanner.feed(key, timestamp_ms)
        if result is None or result.source != ScanSource.SCANNER:
            return result
        product = next((p for p in self.products if p.id == result.code), None)
        if product is None:
            self.notifications.error("Item Not Found", f"No item found with ID: {result.code}")
        elif await self.add_to_cart(product):
            self.notifications.success("Item Added", f"{product.name} has been added to your toolbox")
        return result

    # Sync

    async def drain_queue(self) -> DrainResultDTO:
        if not self.is_online:
            return DrainResultDTO(remaining=await self.queue.size(), skipped=True)
        return await self.queue.drain()

    def _on_drained(self, result: DrainResultDTO) -> None:
        if result.processed:
            self.notifications.success("Sync Complete", f"Processed {result.processed} offline actions")

    async def check_connection(self) -> bool:
        try:
            online = await self.api_client.test_connection()
        except PosSyncException as e:
            title, description = describe_failure(e)
            self.notifications.warning(title, description)
            return self.is_online
        self.connectivity.update(online)
        return online

    async def fetch_products(self) -> list[ProductDTO]:
        self.products = await self.catalog.fetch_products()
        return self.products

    async def fetch_employees(self) -> list[dict[str, Any]]:
        return await self.catalog.fetch_employees()

    async def cache_status(self) -> dict[str, int]:
        return await self.cache_worker.post_message(ControlMessageType.GET_CACHE_STATUS)

    async def prefetch(self) -> None:
        await self.cache_worker.post_message(ControlMessageType.PREFETCH_DATA)

    async def sync_status(self) -> SyncStatusDTO:
        data = await self.catalog.load_offline_data()
        return SyncStatusDTO(
            is_online=self.is_online,
            is_cache_worker_ready=self.cache_worker.is_active,
            has_offline_data=data is not None and data.has_data,
            last_sync=data.last_sync if data else None,
            sync_in_progress=self.queue.sync_in_progress,
            queue_size=await self.queue.size(),
            cache_status=await self.cache_status() if self.cache_worker.is_active else None,
        )

    async def clear_offline_data(self) -> bool:
        cleared = await self.catalog.clear_offline_data()
        cleared = await self.queue.clear() and cleared
        reply = await self.cache_worker.post_message(ControlMessageType.CLEAR_CACHE)
        cleared = reply["success"] and cleared
        if cleared:
            self.notifications.success("Data Cleared", "All offline data has been cleared")
        return cleared
