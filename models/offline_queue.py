from datetime import datetime
from typing import Any

from pydantic import Field

from enums.queue_action_type import QueueActionType
from models.base import CamelDTO, utcnow


class OfflineQueueItemDTO(CamelDTO):
    id: str
    type: QueueActionType
    payload: dict[str, Any] = Field(default_factory=dict)
    enqueued_at: datetime = Field(default_factory=utcnow)
    retry_count: int = Field(0, ge=0)

    @property
    def entity_id(self) -> str | None:
        """Product id the mutation touches, if any."""
        value = self.payload.get("id") or self.payload.get("product_id")
        return str(value) if value is not None else None


class DrainResultDTO(CamelDTO):
    processed: int = 0
    remaining: int = 0
    dropped: int = 0
    deferred: int = 0
    skipped: bool = False  # Another drain was already in flight
