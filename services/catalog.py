import json
import logging
from datetime import datetime
from typing import Any, Callable

from pydantic import ValidationError

import config
from enums.rate_limit_operation import RateLimitOperation
from exceptions.network import RateLimitExceededException
from exceptions.storage import StorageUnavailableException
from models.base import utcnow
from models.http import HttpResponseDTO
from models.offline_data import OfflineDataDTO
from models.product import ApiItemDTO, ProductDTO
from repositories.storage import KeyValueStorage
from services.api_client import ApiClient
from services.cache_worker import CacheWorker
from utils.payload_decoder import Err, Ok, decode_employees, decode_items

logger = logging.getLogger(__name__)

ITEMS_PATH = "/api/items?limit=1000"
EMPLOYEES_PATH = "/api/employees"


class CatalogService:
    """
    Reference data (products, employee roster) for the POS screens.

    Reads go through the cache worker. Every live network answer also
    refreshes a last-known-good OfflineData record, which is served when both
    the network and the response cache come up empty.
    """

    def __init__(self,
                 worker: CacheWorker,
                 storage: KeyValueStorage,
                 api_client: ApiClient | None = None,
                 clock: Callable[[], datetime] = utcnow,
                 namespace: str = config.STORAGE_NAMESPACE):
        self.worker = worker
        self.storage = storage
        self.api_client = api_client
        self.clock = clock
        self.offline_key = f"{namespace}-offline-data"
        self.last_served_offline = False

    @staticmethod
    def _payload(response: HttpResponseDTO) -> Any:
        try:
            return response.json()
        except ValueError:
            return None

    async def fetch_products(self) -> list[ProductDTO]:
        if self.api_client is not None:
            try:
                self.api_client.ensure_within_limit(RateLimitOperation.FETCH_ITEMS,
                                                    config.RATE_LIMIT_FETCH_ITEMS_PER_MINUTE)
            except RateLimitExceededException as e:
                logger.warning(f"[Catalog] {e}, serving offline data")
                return await self._offline_products()

        response = await self.worker.fetch(ITEMS_PATH)
        decoded = decode_items(self._payload(response))
        if isinstance(decoded, Err):
            logger.warning(f"[Catalog] Items response unusable ({response.status}): {decoded.reason}")
            return await self._offline_products()

        products = []
        for row in decoded.items:
            try:
                products.append(ApiItemDTO.model_validate(row).to_product())
            except ValidationError as e:
                logger.warning(f"[Catalog] Skipping invalid item row: {e.error_count()} errors")
        logger.info(f"[Catalog] Loaded {len(products)} products via {decoded.strategy}"
                    f"{' (offline cache)' if response.offline else ''}")

        self.last_served_offline = response.offline
        if not response.from_cache:
            await self.save_offline_data(products=products)
        return products

    async def fetch_employees(self) -> list[dict[str, Any]]:
        response = await self.worker.fetch(EMPLOYEES_PATH)
        decoded = decode_employees(self._payload(response))
        if isinstance(decoded, Ok):
            employees = [row for row in decoded.items if isinstance(row, dict)]
            self.last_served_offline = response.offline
            if not response.from_cache:
                await self.save_offline_data(employees=employees)
            return employees

        logger.warning(f"[Catalog] Employees response unusable ({response.status}): {decoded.reason}")
        data = await self.load_offline_data()
        self.last_served_offline = True
        return data.employees if data else []

    async def _offline_products(self) -> list[ProductDTO]:
        data = await self.load_offline_data()
        self.last_served_offline = True
        return data.products if data else []

    async def load_offline_data(self) -> OfflineDataDTO | None:
        try:
            raw = await self.storage.get(self.offline_key)
        except StorageUnavailableException as e:
            self.storage.report_unavailable(e)
            return None
        if raw is None:
            return None
        try:
            return OfflineDataDTO.model_validate_json(raw)
        except ValidationError:
            logger.warning("[Catalog] Discarding unreadable offline data")
            return None

    async def save_offline_data(self, products: list[ProductDTO] | None = None,
                                employees: list[dict[str, Any]] | None = None) -> bool:
        data = await self.load_offline_data() or OfflineDataDTO(version=config.OFFLINE_DATA_VERSION)
        if products is not None:
            data.products = products
        if employees is not None:
            data.employees = employees
        data.last_sync = self.clock()
        try:
            await self.storage.set(self.offline_key, json.dumps(data.to_document()))
        except StorageUnavailableException as e:
            self.storage.report_unavailable(e)
            return False
        logger.debug(f"[Catalog] Offline data saved: {len(data.products)} products, {len(data.employees)} employees")
        return True

    async def clear_offline_data(self) -> bool:
        try:
            await self.storage.delete(self.offline_key)
        except StorageUnavailableException as e:
            self.storage.report_unavailable(e)
            return False
        return True
