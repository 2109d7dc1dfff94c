# A cart session lives on the device only. The current state, its metadata and
# a bounded history of snapshots are stored under separate keys and always
# written together in one batch.
from datetime import datetime

from pydantic import ConfigDict, Field

from models.base import CamelDTO, utcnow
from models.product import ProductDTO


class CartItemDTO(CamelDTO):
    id: str
    product_snapshot: ProductDTO
    quantity: int = Field(gt=0)
    added_at: datetime = Field(default_factory=utcnow)
    notes: str | None = None


class CartStateDTO(CamelDTO):
    items: list[CartItemDTO] = Field(default_factory=list)
    total_items: int = 0
    total_value: float = 0.0
    last_updated: datetime = Field(default_factory=utcnow)
    session_id: str
    employee_id: str | None = None
    location: str | None = None

    def find_item(self, item_id: str) -> CartItemDTO | None:
        return next((item for item in self.items if item.id == item_id), None)

    def recalculate(self) -> None:
        self.total_items = sum(item.quantity for item in self.items)
        self.total_value = round(sum(
            (item.product_snapshot.price or 0) * item.quantity
            for item in self.items
        ), 2)


class DeviceInfoDTO(CamelDTO):
    user_agent: str
    platform: str


class CartMetadataDTO(CamelDTO):
    version: str
    created_at: datetime
    last_accessed_at: datetime
    device_info: DeviceInfoDTO


class HistoryEntryDTO(CamelDTO):
    """Immutable snapshot of a cart state taken on save. Recovery only."""
    model_config = ConfigDict(frozen=True)

    entry_id: str
    saved_at: datetime
    state: CartStateDTO


class CartSnapshotDTO(CamelDTO):
    """Export/import document."""
    current: CartStateDTO
    metadata: CartMetadataDTO | None = None
    history: list[HistoryEntryDTO] = Field(default_factory=list)
    exported_at: datetime
    version: str


class CartSummaryDTO(CamelDTO):
    item_count: int
    total_value: float
    session_age: str
