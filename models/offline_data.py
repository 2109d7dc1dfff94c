from datetime import datetime
from typing import Any

from pydantic import Field

from models.base import CamelDTO
from models.product import ProductDTO


class OfflineDataDTO(CamelDTO):
    """Last-known-good reference data kept for fully offline starts."""
    products: list[ProductDTO] = Field(default_factory=list)
    employees: list[dict[str, Any]] = Field(default_factory=list)
    last_sync: datetime | None = None
    version: str = "1.2.0"

    @property
    def has_data(self) -> bool:
        return bool(self.products or self.employees)


class SyncStatusDTO(CamelDTO):
    is_online: bool
    is_cache_worker_ready: bool
    has_offline_data: bool
    last_sync: datetime | None = None
    sync_in_progress: bool = False
    queue_size: int = 0
    cache_status: dict[str, int] | None = None
